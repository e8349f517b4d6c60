"""Relay HTTP client — balances, nonces, withdrawals, proofs, batches.

Provides an async HTTP client for the relay bridge API:
- GET  /api/v1/bridge/balance/{user} — L2 balance
- GET  /api/v1/bridge/nonce/{user} — next withdrawal nonce
- POST /api/v1/bridge/withdraw — submit a signed withdrawal
- GET  /api/v1/bridge/proof/{user}/{amount}/{nonce} — Merkle proof lookup
- POST /api/v1/bridge/submit-batch — close the pending batch
- plus reconciliation, deposit sync and transaction history endpoints
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from l2_bridge.errors.definitions import NetworkError, RelayError, RequestRejected
from l2_bridge.relay.models import (
    BalanceInfo,
    BatchResult,
    ContractsInfo,
    DepositResult,
    NonceInfo,
    PendingWithdrawal,
    Proof,
    ProofLookup,
    ProofStatus,
    ReconcileResult,
    SyncResult,
    TransactionHistory,
    TransactionRecord,
    TransferReceipt,
    WithdrawalReceipt,
)

if TYPE_CHECKING:
    from l2_bridge.auth.authenticator import SignedMessage
    from l2_bridge.config.settings import RelayConfig

logger = logging.getLogger(__name__)

_API = "/api/v1/bridge"


class RelayClient:
    """Async HTTP client for the off-chain relay.

    Usage::

        relay = RelayClient(config)
        await relay.connect()
        try:
            balance = await relay.get_balance(address)
        finally:
            await relay.close()
    """

    def __init__(self, config: RelayConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the relay client.

        Args:
            config: Relay configuration (url, timeout, api_token).
            transport: Optional httpx transport, used by tests.
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._config.url

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._config.api_token:
            headers["Authorization"] = f"Bearer {self._config.api_token}"

        self._client = httpx.AsyncClient(
            base_url=self._config.url,
            headers=headers,
            timeout=self._config.timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # System
    # ------------------------------------------------------------------

    async def get_contracts(self) -> ContractsInfo:
        """Fetch chain id and contract addresses advertised by the relay."""
        data = await self._request("GET", "/api/v1/system/contracts", "get_contracts")
        return ContractsInfo.from_dict(data)

    # ------------------------------------------------------------------
    # Account state
    # ------------------------------------------------------------------

    async def get_balance(self, user: str) -> BalanceInfo:
        """Return the relay's L2 balance for *user*."""
        data = await self._request("GET", f"{_API}/balance/{user}", "get_balance")
        return BalanceInfo.from_dict(data)

    async def get_nonce(self, user: str) -> NonceInfo:
        """Return the next withdrawal nonce the relay will accept for *user*."""
        data = await self._request("GET", f"{_API}/nonce/{user}", "get_nonce")
        return NonceInfo.from_dict(data)

    # ------------------------------------------------------------------
    # Signed requests
    # ------------------------------------------------------------------

    async def request_withdrawal(
        self,
        user: str,
        amount: int,
        signed: SignedMessage,
        *,
        nonce: int | None = None,
    ) -> WithdrawalReceipt:
        """Submit a dual-signed withdrawal request.

        Raises:
            RequestRejected: Relay refused the request.
            NetworkError: Relay unreachable.
        """
        payload: dict[str, Any] = {"user": user, "amount": str(amount)}
        if nonce is not None:
            payload["nonce"] = str(nonce)
        payload.update(signed.to_wire())
        data = await self._request("POST", f"{_API}/withdraw", "request_withdrawal", json=payload)
        return WithdrawalReceipt.from_dict(data)

    async def transfer(
        self,
        sender: str,
        recipient: str,
        amount: int,
        signed: SignedMessage,
    ) -> TransferReceipt:
        """Submit a dual-signed L2 transfer."""
        payload: dict[str, Any] = {"from": sender, "to": recipient, "amount": str(amount)}
        payload.update(signed.to_wire())
        data = await self._request("POST", f"{_API}/transfer", "transfer", json=payload)
        return TransferReceipt.from_dict(data)

    # ------------------------------------------------------------------
    # Proofs and batches
    # ------------------------------------------------------------------

    async def get_proof(self, user: str, amount: int, nonce: int) -> ProofLookup:
        """Look up the Merkle proof for a withdrawal.

        A 404 means the batch is not submitted yet and yields ``PENDING``.
        """
        client = self._ensure_connected()
        try:
            response = await client.get(f"{_API}/proof/{user}/{amount}/{nonce}")
        except httpx.HTTPError as exc:
            raise NetworkError(f"relay get_proof failed: {exc}") from exc

        if response.status_code == 404:
            return ProofLookup(ProofStatus.PENDING)
        if response.status_code != 200:
            self._raise_for_status(response, "get_proof")

        data = self._decode(response, "get_proof")
        if data.get("status") == ProofStatus.ALREADY_PROCESSED:
            return ProofLookup(ProofStatus.ALREADY_PROCESSED)
        if data.get("success") is False or not data.get("proof"):
            return ProofLookup(ProofStatus.PENDING)
        proof = Proof.from_dict(data, user=user, amount=amount, nonce=nonce)
        return ProofLookup(ProofStatus.AVAILABLE, proof)

    async def get_pending_withdrawals(self) -> list[PendingWithdrawal]:
        """Withdrawals accepted but not yet included in a batch."""
        data = await self._request("GET", f"{_API}/pending-withdrawals", "get_pending_withdrawals")
        return [PendingWithdrawal.from_dict(w) for w in data.get("withdrawals") or []]

    async def submit_batch(self) -> BatchResult:
        """Ask the relay to close and submit the pending batch."""
        data = await self._request("POST", f"{_API}/submit-batch", "submit_batch", json={})
        return BatchResult.from_dict(data)

    # ------------------------------------------------------------------
    # Reconciliation and deposits
    # ------------------------------------------------------------------

    async def reconcile_balance(self, user: str) -> ReconcileResult:
        """Ask the relay to recompute *user*'s balance from its history."""
        data = await self._request(
            "POST", f"{_API}/reconcile-balance", "reconcile_balance", json={"user": user}
        )
        return ReconcileResult.from_dict(data)

    async def sync_deposits(
        self,
        *,
        from_block: int | None = None,
        to_block: int | None = None,
        user: str | None = None,
    ) -> SyncResult:
        """Replay L1 deposit events in a block range."""
        payload: dict[str, Any] = {}
        if from_block is not None:
            payload["fromBlock"] = from_block
        if to_block is not None:
            payload["toBlock"] = to_block
        if user is not None:
            payload["user"] = user
        data = await self._request("POST", f"{_API}/sync-deposits", "sync_deposits", json=payload)
        return SyncResult.from_dict(data)

    async def process_deposit(self, tx_hash: str) -> DepositResult:
        """Replay a single deposit by its L1 transaction hash."""
        data = await self._request(
            "POST", f"{_API}/process-deposit", "process_deposit", json={"txHash": tx_hash}
        )
        return DepositResult.from_dict(data)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_transactions(self, user: str) -> TransactionHistory:
        """Full transaction history for *user*."""
        data = await self._request("GET", f"{_API}/transactions/{user}", "get_transactions")
        return TransactionHistory.from_dict(data)

    async def get_transaction(self, tx_hash: str) -> TransactionRecord:
        """Single transaction by hash."""
        data = await self._request("GET", f"{_API}/transaction/{tx_hash}", "get_transaction")
        return TransactionRecord.from_dict(data.get("transaction") or data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Relay client not connected. Call connect() first."
            raise RelayError(msg, status_code=500)
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = self._ensure_connected()
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise NetworkError(f"relay {operation} failed: {exc}") from exc

        if not response.is_success:
            self._raise_for_status(response, operation)

        data = self._decode(response, operation)
        if data.get("success") is False:
            raise RequestRejected(data.get("error") or f"{operation} refused by relay")
        return data

    @staticmethod
    def _decode(response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            msg = f"relay {operation} returned invalid JSON"
            raise RelayError(msg, status_code=response.status_code) from exc
        if not isinstance(data, dict):
            msg = f"relay {operation} returned unexpected payload"
            raise RelayError(msg, status_code=response.status_code)
        return data

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        """Raise ``RequestRejected`` for 4xx refusals, ``RelayError`` otherwise."""
        status = response.status_code
        try:
            body = response.json()
            detail = body.get("error", body.get("message", response.text))
        except Exception:  # noqa: BLE001
            detail = response.text

        logger.debug("Relay %s returned %d: %s", operation, status, detail)
        if 400 <= status < 500:  # noqa: PLR2004
            raise RequestRejected(str(detail), status_code=status)
        raise RelayError(f"relay {operation} failed ({status}): {detail}", status_code=status)
