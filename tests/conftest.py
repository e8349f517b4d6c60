"""Shared test fixtures for py-l2bridge test suite."""

from __future__ import annotations

from typing import Any

import pytest

from l2_bridge.chain.bridge_contract import TxReceipt
from l2_bridge.config.settings import LedgerBackend
from l2_bridge.errors.definitions import RequestRejected
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
    TransferReceipt,
    WithdrawalReceipt,
)

# Well-known development key (anvil / hardhat account #0)
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
BRIDGE_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
OTHER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class FakeRelay:
    """In-memory relay double with scriptable answers."""

    base_url = "http://relay.test"
    is_connected = True

    def __init__(self) -> None:
        self.balance = 10 * 10**18
        self.next_nonce: int | None = 0
        self.nonce_error: Exception | None = None
        self.echo_override: int | None = None
        self.omit_echo = False
        self.reject_reason: str | None = None
        self.withdraw_calls: list[dict[str, Any]] = []
        self.transfer_calls: list[dict[str, Any]] = []
        self.pending: list[PendingWithdrawal] = []
        self.pending_error: Exception | None = None
        self.batch_id = 42
        self.batch_calls = 0
        self.proofs: dict[int, list[ProofLookup | Exception]] = {}
        self.proof_calls = 0
        self.reconcile_result = ReconcileResult()
        self.history = TransactionHistory()
        self.history_error: Exception | None = None
        self.contracts = ContractsInfo(chain_id=84532, contracts={"gunL2Bridge": BRIDGE_ADDRESS})

    # -- scripting helpers --

    def set_proof(self, nonce: int, *answers: ProofLookup | Exception) -> None:
        """Queue answers for *nonce*; the last one repeats."""
        self.proofs[nonce] = list(answers)

    # -- relay surface --

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get_contracts(self) -> ContractsInfo:
        return self.contracts

    async def get_balance(self, user: str) -> BalanceInfo:
        return BalanceInfo(user=user, balance=self.balance, balance_eth="")

    async def get_nonce(self, user: str) -> NonceInfo:
        if self.nonce_error is not None:
            raise self.nonce_error
        return NonceInfo(user=user, next_nonce=self.next_nonce)

    async def request_withdrawal(self, user, amount, signed, *, nonce=None) -> WithdrawalReceipt:
        self.withdraw_calls.append({"user": user, "amount": amount, "signed": signed, "nonce": nonce})
        if self.reject_reason is not None:
            raise RequestRejected(self.reject_reason)
        assigned = self.echo_override if self.echo_override is not None else nonce
        if assigned is None:
            assigned = self.next_nonce or 0
        self.pending.append(PendingWithdrawal(user=user, amount=amount, nonce=assigned))
        self.next_nonce = assigned + 1
        return WithdrawalReceipt(
            user=user,
            amount=amount,
            nonce=None if self.omit_echo else assigned,
            status="pending",
        )

    async def transfer(self, sender, recipient, amount, signed) -> TransferReceipt:
        self.transfer_calls.append(
            {"sender": sender, "recipient": recipient, "amount": amount, "signed": signed}
        )
        return TransferReceipt(sender=sender, recipient=recipient, amount=amount, tx_hash="0xt")

    async def get_proof(self, user: str, amount: int, nonce: int) -> ProofLookup:
        self.proof_calls += 1
        answers = self.proofs.get(nonce)
        if not answers:
            return ProofLookup(ProofStatus.PENDING)
        answer = answers.pop(0) if len(answers) > 1 else answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def get_pending_withdrawals(self) -> list[PendingWithdrawal]:
        if self.pending_error is not None:
            raise self.pending_error
        return list(self.pending)

    async def submit_batch(self) -> BatchResult:
        self.batch_calls += 1
        count = len(self.pending)
        self.pending.clear()
        return BatchResult(batch_id=self.batch_id, tx_hash="0xbatch", withdrawal_count=count)

    async def reconcile_balance(self, user: str) -> ReconcileResult:
        return self.reconcile_result

    async def sync_deposits(self, *, from_block=None, to_block=None, user=None) -> SyncResult:
        return SyncResult(total=2, processed=1, skipped=1)

    async def process_deposit(self, tx_hash: str) -> DepositResult:
        return DepositResult(message="processed", tx_hash=tx_hash)

    async def get_transactions(self, user: str) -> TransactionHistory:
        if self.history_error is not None:
            raise self.history_error
        return self.history


class FakeContract:
    """Bridge contract double recording claims."""

    def __init__(self) -> None:
        self.withdraw_calls: list[tuple[int, int, int, tuple[str, ...]]] = []
        self.withdraw_results: list[TxReceipt | BaseException] = []
        self.deposit_calls: list[int] = []
        self.deposit_hook = None
        self.l1_balance = 100 * 10**18

    async def connect(self, bridge_address: str | None = None) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get_account_balance(self, address: str) -> int:
        return self.l1_balance

    async def deposit(self, amount: int) -> TxReceipt:
        self.deposit_calls.append(amount)
        if self.deposit_hook is not None:
            self.deposit_hook(amount)
        return TxReceipt(tx_hash="0x" + "cd" * 32, block_number=7, gas_used=30000, status=1)

    async def withdraw(self, amount, nonce, batch_id, proof) -> TxReceipt:
        self.withdraw_calls.append((amount, nonce, batch_id, tuple(proof)))
        if self.withdraw_results:
            result = self.withdraw_results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return TxReceipt(tx_hash="0x" + "ab" * 32, block_number=100, gas_used=60000, status=1)


def make_proof(account: str, amount: int, nonce: int, batch_id: int = 42) -> ProofLookup:
    return ProofLookup(
        ProofStatus.AVAILABLE,
        Proof(user=account, amount=amount, nonce=nonce, batch_id=batch_id, proof=("0x" + "11" * 32,)),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app_config():
    """Provide a test AppConfig with a memory ledger and no background jobs."""
    from l2_bridge.config.settings import (
        AppConfig,
        ChainConfig,
        LedgerConfig,
        PollerConfig,
        RelayConfig,
        TaskConfig,
    )

    return AppConfig(
        debug=True,
        relay=RelayConfig(url="http://relay.test"),
        chain=ChainConfig(bridge_address=BRIDGE_ADDRESS, receipt_poll_interval=0),
        ledger=LedgerConfig(backend=LedgerBackend.MEMORY),
        poller=PollerConfig(interval=0, max_attempts=3),
        task=TaskConfig(enabled=False),
    )


@pytest.fixture
def signer():
    from l2_bridge.wallet.signer import LocalWalletSigner

    return LocalWalletSigner(PRIVATE_KEY)


@pytest.fixture
async def session(signer):
    """Session with the secondary keypair already derived."""
    from l2_bridge.engine.session import BridgeSession

    s = BridgeSession(signer)
    await s.derive_keys()
    return s


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def store():
    from l2_bridge.ledger.store import MemoryStore

    return MemoryStore()


@pytest.fixture
def ledger(store):
    from l2_bridge.ledger.ledger import ClaimLedger

    return ClaimLedger(store)


@pytest.fixture
def proof_for():
    """Factory building an available proof lookup."""
    return make_proof


@pytest.fixture
def orchestrator(session, relay, contract, ledger):
    from l2_bridge.engine.nonce import NonceManager
    from l2_bridge.engine.orchestrator import WithdrawalOrchestrator
    from l2_bridge.engine.poller import ProofPoller

    return WithdrawalOrchestrator(
        session,
        relay,
        contract,
        ledger,
        NonceManager(relay),
        ProofPoller(relay, interval=0, max_attempts=3),
    )


@pytest.fixture
def other_address() -> str:
    return OTHER_ADDRESS


@pytest.fixture
def bridge_address() -> str:
    return BRIDGE_ADDRESS


@pytest.fixture
def private_key() -> str:
    return PRIVATE_KEY
