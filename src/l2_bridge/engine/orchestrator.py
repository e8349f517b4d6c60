"""Withdrawal orchestrator — the L2 → L1 withdrawal state machine.

States::

    IDLE -> REQUESTED -> AWAITING_BATCH -> PROOF_READY -> CLAIMING -> CLAIMED
                |                |                            |
          REQUEST_FAILED      EXPIRED                    CLAIM_FAILED

A flow is identified by ``(account, nonce)`` where the nonce is the one the
relay echoed on acceptance. Once a withdrawal has been batched, the
:class:`~l2_bridge.ledger.ClaimLedger` is the recovery root: a restart
rebuilds flows from it via :meth:`WithdrawalOrchestrator.resume` without any
new signature.

"Already processed" from the relay or the contract is success: the ledger
record is retired and the flow ends ``CLAIMED``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from l2_bridge.auth.authenticator import DualSignatureAuthenticator, IntentType
from l2_bridge.engine.poller import PollStatus
from l2_bridge.errors.chain_errors import ClaimFailureKind, ClaimReverted
from l2_bridge.errors.definitions import (
    AlreadyProcessed,
    ErrClaimInProgress,
    ErrWithdrawalNotFound,
    RequestRejected,
    ValidationError,
)
from l2_bridge.ledger.models import BatchRecord
from l2_bridge.relay.models import ProofStatus
from l2_bridge.utils.units import normalize_address, parse_amount

if TYPE_CHECKING:
    from l2_bridge.auth.authenticator import SignedMessage
    from l2_bridge.chain.bridge_contract import BridgeContract
    from l2_bridge.engine.nonce import NonceManager
    from l2_bridge.engine.poller import ProofPoller
    from l2_bridge.engine.session import BridgeSession
    from l2_bridge.errors.bridge_errors import BridgeError
    from l2_bridge.ledger.ledger import ClaimLedger
    from l2_bridge.metrics.collector import BridgeMetrics
    from l2_bridge.relay.client import RelayClient
    from l2_bridge.relay.models import BatchResult, Proof

logger = logging.getLogger(__name__)


class WithdrawalState(enum.StrEnum):
    """Withdrawal flow states."""

    IDLE = "idle"
    REQUESTED = "requested"
    AWAITING_BATCH = "awaiting_batch"
    PROOF_READY = "proof_ready"
    CLAIMING = "claiming"
    CLAIMED = "claimed"
    REQUEST_FAILED = "request_failed"
    CLAIM_FAILED = "claim_failed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class WithdrawalRequest:
    """A relay-accepted, dual-signed withdrawal. Immutable once signed."""

    account: str
    amount: int
    nonce: int
    timestamp: int
    signed: SignedMessage

    @property
    def message(self) -> str:
        return self.signed.message


@dataclass
class WithdrawalFlow:
    """Mutable progress of one withdrawal through the state machine.

    Attributes:
        request: The signed request; ``None`` for flows rebuilt from the
            ledger after a restart.
        proof: Cached proof once fetched. Reused for claim retries.
        failure_kind: Why the last claim attempt failed.
    """

    account: str
    amount: int
    nonce: int | None = None
    state: WithdrawalState = WithdrawalState.IDLE
    request: WithdrawalRequest | None = None
    batch_id: int | None = None
    proof: Proof | None = None
    claim_tx_hash: str | None = None
    failure_kind: ClaimFailureKind | None = None
    error: BridgeError | None = None
    degraded_nonce: bool = False

    @property
    def resumed(self) -> bool:
        """Rebuilt from the ledger rather than requested in this session."""
        return self.request is None

    def transition(self, state: WithdrawalState) -> None:
        if state is not self.state:
            logger.info(
                "Withdrawal %s nonce=%s: %s -> %s", self.account, self.nonce, self.state, state
            )
            self.state = state


class WithdrawalOrchestrator:
    """Drives withdrawals for the session's account.

    All flows tracked here belong to ``session.address`` and are keyed by
    nonce.
    """

    def __init__(
        self,
        session: BridgeSession,
        relay: RelayClient,
        contract: BridgeContract,
        ledger: ClaimLedger,
        nonces: NonceManager,
        poller: ProofPoller,
        *,
        authenticator: DualSignatureAuthenticator | None = None,
        metrics: BridgeMetrics | None = None,
    ) -> None:
        self._session = session
        self._relay = relay
        self._contract = contract
        self._ledger = ledger
        self._nonces = nonces
        self._poller = poller
        self._auth = authenticator or DualSignatureAuthenticator(session)
        self._metrics = metrics
        self._flows: dict[int, WithdrawalFlow] = {}
        self._claim_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def account(self) -> str:
        return self._session.address

    def flows(self) -> list[WithdrawalFlow]:
        """Active (not yet claimed) flows, ordered by nonce."""
        return [self._flows[n] for n in sorted(self._flows)]

    def get(self, nonce: int) -> WithdrawalFlow | None:
        return self._flows.get(nonce)

    # ------------------------------------------------------------------
    # IDLE -> REQUESTED -> AWAITING_BATCH
    # ------------------------------------------------------------------

    async def request_withdrawal(self, amount: int) -> WithdrawalFlow:
        """Sign and submit a withdrawal of *amount* wei.

        Returns:
            The flow in ``AWAITING_BATCH``, identified by the relay's nonce.

        Raises:
            ValidationError: Non-positive amount or insufficient L2 balance.
            AuthenticationUnavailable: Keypair not derived.
            RequestRejected: Relay declined the request. Not retried.
            NetworkError: Relay unreachable.
        """
        amount = parse_amount(amount)
        account = self.account
        flow = WithdrawalFlow(account=account, amount=amount)

        balance = await self._relay.get_balance(account)
        if balance.balance < amount:
            msg = f"insufficient L2 balance: have {balance.balance}, need {amount}"
            raise ValidationError(msg)

        reservation = await self._nonces.reserve(account)
        flow.degraded_nonce = reservation.degraded
        signed = await self._auth.authenticate(
            IntentType.WITHDRAWAL, amount=amount, nonce=reservation.nonce
        )

        flow.transition(WithdrawalState.REQUESTED)
        try:
            receipt = await self._relay.request_withdrawal(
                account, amount, signed, nonce=reservation.nonce
            )
        except RequestRejected as exc:
            flow.error = exc
            flow.transition(WithdrawalState.REQUEST_FAILED)
            self._count_request("rejected")
            logger.warning("Withdrawal request rejected for %s: %s", account, exc.reason)
            raise
        except BaseException:
            flow.transition(WithdrawalState.REQUEST_FAILED)
            self._count_request("error")
            raise

        nonce = self._nonces.confirm(account, reservation.nonce, receipt.nonce)
        flow.nonce = nonce
        flow.request = WithdrawalRequest(
            account=account,
            amount=amount,
            nonce=nonce,
            timestamp=signed.timestamp,
            signed=signed,
        )
        flow.transition(WithdrawalState.AWAITING_BATCH)
        self._flows[nonce] = flow
        self._count_request("accepted")
        return flow

    # ------------------------------------------------------------------
    # AWAITING_BATCH -> PROOF_READY
    # ------------------------------------------------------------------

    async def await_proof(self, nonce: int) -> WithdrawalFlow:
        """Poll for the proof of a tracked withdrawal.

        ``EXPIRED`` and superseded polls leave the ledger untouched and may
        be re-triggered.

        Raises:
            NetworkError, RelayError: The proof lookup failed; the flow stays
                in ``AWAITING_BATCH``.
        """
        flow = self._require(nonce)
        if flow.state in (WithdrawalState.PROOF_READY, WithdrawalState.CLAIMED) or (
            flow.state is WithdrawalState.CLAIM_FAILED and flow.proof is not None
        ):
            return flow

        flow.transition(WithdrawalState.AWAITING_BATCH)
        outcome = await self._poller.poll(flow.account, flow.amount, nonce)

        if outcome.status is PollStatus.READY and outcome.proof is not None:
            await self._accept_proof(flow, outcome.proof)
        elif outcome.status is PollStatus.ALREADY_PROCESSED:
            await self._settle(flow, AlreadyProcessed())
        elif outcome.status is PollStatus.EXPIRED:
            flow.error = outcome.error
            flow.transition(WithdrawalState.EXPIRED)
        elif outcome.status is PollStatus.FAILED and outcome.error is not None:
            flow.error = outcome.error
            raise outcome.error
        return flow

    async def refresh(self, nonce: int) -> WithdrawalFlow:
        """One proof lookup for a waiting flow, without starting a poll.

        Flows that already hold a proof or are being polled are left alone.
        """
        flow = self._require(nonce)
        if flow.proof is not None or self._poller.is_polling(flow.account, nonce):
            return flow
        lookup = await self._relay.get_proof(flow.account, flow.amount, nonce)
        if lookup.status is ProofStatus.AVAILABLE and lookup.proof is not None:
            await self._accept_proof(flow, lookup.proof)
        elif lookup.status is ProofStatus.ALREADY_PROCESSED:
            await self._settle(flow, AlreadyProcessed())
        return flow

    async def _accept_proof(self, flow: WithdrawalFlow, proof: Proof) -> None:
        if proof.amount != flow.amount or proof.nonce != flow.nonce:
            self._fail_mismatch(
                flow, f"proof is for amount={proof.amount} nonce={proof.nonce}"
            )
            return
        record = await self._ledger.get(flow.account, proof.nonce)
        if record is None:
            await self._ledger.record(
                BatchRecord(
                    account=flow.account,
                    amount=flow.amount,
                    nonce=proof.nonce,
                    batch_id=proof.batch_id,
                )
            )
            await self._refresh_ledger_size()
        elif record.batch_id != proof.batch_id:
            self._fail_mismatch(
                flow, f"proof is for batch {proof.batch_id}, ledger has batch {record.batch_id}"
            )
            return
        flow.proof = proof
        flow.batch_id = proof.batch_id
        flow.error = None
        flow.transition(WithdrawalState.PROOF_READY)

    # ------------------------------------------------------------------
    # PROOF_READY -> CLAIMING -> CLAIMED
    # ------------------------------------------------------------------

    async def claim(self, nonce: int) -> WithdrawalFlow:
        """Claim a withdrawal on L1, polling for the proof first if needed.

        A ``CLAIM_FAILED`` flow is retried with its cached proof; no new
        poll and no new signature.

        Raises:
            BridgeError: ``claim-in-progress`` if a claim for this nonce is
                already running.
        """
        flow = self._require(nonce)
        lock = self._claim_locks[nonce]
        if lock.locked():
            raise ErrClaimInProgress
        async with lock:
            if flow.proof is None:
                await self.await_proof(nonce)
                if flow.state is not WithdrawalState.PROOF_READY:
                    return flow
            return await self._submit_claim(flow)

    async def _submit_claim(self, flow: WithdrawalFlow) -> WithdrawalFlow:
        proof = flow.proof
        assert proof is not None
        assert flow.nonce is not None

        record = await self._ledger.get(flow.account, flow.nonce)
        if record is not None and record.amount != flow.amount:
            self._fail_mismatch(flow, f"ledger amount {record.amount} != signed amount {flow.amount}")
            return flow
        if proof.amount != flow.amount:
            self._fail_mismatch(flow, f"proof amount {proof.amount} != signed amount {flow.amount}")
            return flow

        flow.transition(WithdrawalState.CLAIMING)
        try:
            if self._metrics is not None:
                with self._metrics.track_claim():
                    receipt = await self._contract.withdraw(
                        flow.amount, flow.nonce, proof.batch_id, proof.proof
                    )
            else:
                receipt = await self._contract.withdraw(
                    flow.amount, flow.nonce, proof.batch_id, proof.proof
                )
        except ClaimReverted as exc:
            if exc.kind is ClaimFailureKind.ALREADY_PROCESSED:
                await self._settle(flow, AlreadyProcessed())
                return flow
            flow.error = exc
            flow.failure_kind = exc.kind
            flow.transition(WithdrawalState.CLAIM_FAILED)
            self._count_claim(exc.kind.value)
            logger.warning(
                "Claim for %s nonce=%d failed (%s); batch record kept", flow.account, flow.nonce, exc.kind
            )
            return flow
        except BaseException:
            flow.transition(WithdrawalState.PROOF_READY)
            raise

        flow.claim_tx_hash = receipt.tx_hash
        await self._settle(flow)
        return flow

    # ------------------------------------------------------------------
    # Recovery, batching, cancellation
    # ------------------------------------------------------------------

    async def resume(self) -> list[WithdrawalFlow]:
        """Rebuild flows for every ledger record of the session account.

        Resumed flows start in ``AWAITING_BATCH`` and carry no signature;
        only the on-chain claim remains.
        """
        resumed: list[WithdrawalFlow] = []
        for record in await self._ledger.list_for(self.account):
            if record.nonce in self._flows:
                continue
            flow = WithdrawalFlow(
                account=self.account,
                amount=record.amount,
                nonce=record.nonce,
                state=WithdrawalState.AWAITING_BATCH,
                batch_id=record.batch_id,
            )
            self._flows[record.nonce] = flow
            resumed.append(flow)
        if resumed:
            logger.info("Resumed %d batched withdrawal(s) for %s", len(resumed), self.account)
        await self._refresh_ledger_size()
        return resumed

    async def recover(
        self, amount: int, nonce: int, batch_id: int, tx_hash: str | None = None
    ) -> WithdrawalFlow:
        """Manual recovery: record a known-batched withdrawal and track it.

        Any tracked flow for *nonce* is replaced and its poll cancelled.

        Raises:
            BridgeError: ``claim-in-progress`` if the flow is being claimed.
            ValidationError: Malformed amount, nonce, batch id or tx hash.
        """
        nonce = int(nonce)
        existing = self._flows.get(nonce)
        if (existing is not None and existing.state is WithdrawalState.CLAIMING) or (
            nonce in self._claim_locks and self._claim_locks[nonce].locked()
        ):
            raise ErrClaimInProgress
        await self._ledger.recover(self.account, amount, nonce, batch_id, tx_hash)
        self._poller.cancel(self.account, nonce)
        self._flows.pop(nonce, None)
        await self.resume()
        return self._require(nonce)

    async def submit_batch(self) -> tuple[BatchResult, list[BatchRecord]]:
        """Trigger batch submission and record every included withdrawal.

        The pending set is snapshotted before submission; each withdrawal in
        it gets a :class:`BatchRecord` with the confirmed batch id.
        """
        pending = await self._relay.get_pending_withdrawals()
        result = await self._relay.submit_batch()
        records = await self._ledger.record_many(
            [
                BatchRecord(
                    account=normalize_address(w.user),
                    amount=w.amount,
                    nonce=w.nonce,
                    batch_id=result.batch_id,
                    tx_hash=result.tx_hash or None,
                )
                for w in pending
            ]
        )
        for record in records:
            flow = self._flows.get(record.nonce)
            if flow is not None and record.account.lower() == flow.account.lower():
                flow.batch_id = record.batch_id
        logger.info("Batch %d submitted with %d withdrawal(s)", result.batch_id, len(records))
        await self._refresh_ledger_size()
        return result, records

    def abandon(self, nonce: int) -> bool:
        """Stop tracking a flow. Its ledger record, if any, is kept."""
        flow = self._flows.get(nonce)
        if flow is None:
            return False
        if flow.state is WithdrawalState.CLAIMING:
            raise ErrClaimInProgress
        self._poller.cancel(flow.account, nonce)
        del self._flows[nonce]
        logger.info("Withdrawal %s nonce=%d abandoned", flow.account, nonce)
        return True

    def cancel_poll(self, nonce: int) -> bool:
        """Cancel an outstanding proof poll without dropping the flow."""
        return self._poller.cancel(self.account, nonce)

    def shutdown(self) -> None:
        """Cancel every outstanding poll. Ledger records are untouched."""
        self._poller.cancel_all()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, nonce: int) -> WithdrawalFlow:
        flow = self._flows.get(nonce)
        if flow is None:
            raise ErrWithdrawalNotFound
        return flow

    async def _settle(self, flow: WithdrawalFlow, notice: BridgeError | None = None) -> None:
        assert flow.nonce is not None
        await self._ledger.remove(flow.account, flow.nonce)
        self._poller.forget(flow.account, flow.nonce)
        flow.error = notice
        flow.failure_kind = None
        flow.transition(WithdrawalState.CLAIMED)
        self._flows.pop(flow.nonce, None)
        self._count_claim("claimed")
        await self._refresh_ledger_size()

    def _fail_mismatch(self, flow: WithdrawalFlow, detail: str) -> None:
        exc = ClaimReverted(ClaimFailureKind.MISMATCH, detail)
        flow.error = exc
        flow.failure_kind = ClaimFailureKind.MISMATCH
        flow.transition(WithdrawalState.CLAIM_FAILED)
        self._count_claim(ClaimFailureKind.MISMATCH.value)
        logger.warning("Refusing claim for %s nonce=%s: %s", flow.account, flow.nonce, detail)

    def _count_request(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_withdrawal_request(outcome)

    def _count_claim(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_claim(outcome)

    async def _refresh_ledger_size(self) -> None:
        if self._metrics is not None:
            self._metrics.set_ledger_size(len(await self._ledger.list_all()))
