"""Relay data models — balances, nonces, proofs, batches.

Data classes representing relay API request/response objects. Wire
names are camelCase; integer amounts travel as decimal strings.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from l2_bridge.errors.definitions import RelayError


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _to_opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


# ---------------------------------------------------------------------------
# Balance / nonce
# ---------------------------------------------------------------------------


@dataclass
class BalanceInfo:
    """L2 balance as reported by the relay."""

    user: str = ""
    balance: int = 0
    balance_eth: str = "0"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BalanceInfo:
        """Create BalanceInfo from a relay JSON response."""
        return cls(
            user=data.get("user", ""),
            balance=_to_int(data.get("balance")),
            balance_eth=str(data.get("balanceEth", "0")),
        )


@dataclass
class NonceInfo:
    """Next valid withdrawal nonce for an account."""

    user: str = ""
    next_nonce: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NonceInfo:
        """Create NonceInfo from a relay JSON response."""
        return cls(
            user=data.get("user", ""),
            next_nonce=_to_opt_int(data.get("nextNonce")),
        )


# ---------------------------------------------------------------------------
# Withdrawal / transfer submission
# ---------------------------------------------------------------------------


@dataclass
class WithdrawalReceipt:
    """Relay acceptance of a withdrawal request.

    Attributes:
        nonce: Nonce the relay recorded for the request. This is the
            identity used for every later proof lookup and claim.
    """

    user: str = ""
    amount: int = 0
    nonce: int | None = None
    timestamp: int = 0
    status: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WithdrawalReceipt:
        """Create WithdrawalReceipt from ``{withdrawal: {...}, nonce}``."""
        w = data.get("withdrawal") or {}
        return cls(
            user=w.get("user", data.get("user", "")),
            amount=_to_int(w.get("amount", data.get("amount"))),
            nonce=_to_opt_int(w.get("nonce", data.get("nonce"))),
            timestamp=_to_int(w.get("timestamp", data.get("timestamp"))),
            status=w.get("status", data.get("status", "")),
        )


@dataclass
class TransferReceipt:
    """Relay confirmation of an L2 transfer."""

    sender: str = ""
    recipient: str = ""
    amount: int = 0
    tx_hash: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransferReceipt:
        """Create TransferReceipt from ``{transfer: {...}}``."""
        t = data.get("transfer") or {}
        return cls(
            sender=t.get("from", ""),
            recipient=t.get("to", ""),
            amount=_to_int(t.get("amount")),
            tx_hash=t.get("txHash", ""),
        )


@dataclass
class PendingWithdrawal:
    """A withdrawal accepted by the relay but not yet batched."""

    user: str
    amount: int
    nonce: int
    timestamp: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingWithdrawal:
        """Create PendingWithdrawal from a relay list item."""
        return cls(
            user=data["user"],
            amount=_to_int(data["amount"]),
            nonce=_to_int(data["nonce"]),
            timestamp=_to_int(data.get("timestamp")),
        )


# ---------------------------------------------------------------------------
# Proofs and batches
# ---------------------------------------------------------------------------


class ProofStatus(enum.StrEnum):
    """Outcome of a single proof lookup."""

    AVAILABLE = "available"
    PENDING = "pending"
    ALREADY_PROCESSED = "already_processed"


@dataclass(frozen=True)
class Proof:
    """Merkle proof for a batched withdrawal. Opaque to the client."""

    user: str
    amount: int
    nonce: int
    batch_id: int
    proof: tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, user: str, amount: int, nonce: int) -> Proof:
        """Create Proof from a relay response.

        Echoed ``amount``/``nonce`` fields win over the requested values so a
        divergent relay answer is visible to the caller.

        Raises:
            RelayError: The response carries no ``batchId``.
        """
        batch_id = _to_opt_int(data.get("batchId"))
        if batch_id is None:
            msg = f"relay proof for nonce {nonce} has no batchId"
            raise RelayError(msg)
        w = data.get("withdrawal") or {}
        return cls(
            user=w.get("user", data.get("user", user)),
            amount=_to_int(w.get("amount", data.get("amount")), amount),
            nonce=_to_int(w.get("nonce", data.get("nonce")), nonce),
            batch_id=batch_id,
            proof=tuple(data.get("proof") or ()),
        )


@dataclass(frozen=True)
class ProofLookup:
    """Result of one proof query."""

    status: ProofStatus
    proof: Proof | None = None


@dataclass
class BatchResult:
    """Confirmation of a submitted batch."""

    batch_id: int = 0
    tx_hash: str = ""
    root: str = ""
    withdrawal_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchResult:
        """Create BatchResult from ``{batch: {...}}``."""
        b = data.get("batch") or {}
        return cls(
            batch_id=_to_int(b.get("batchId")),
            tx_hash=b.get("txHash", ""),
            root=b.get("root", ""),
            withdrawal_count=_to_int(b.get("withdrawalCount")),
        )


# ---------------------------------------------------------------------------
# Reconciliation / deposits / history
# ---------------------------------------------------------------------------


@dataclass
class ReconcileResult:
    """Relay self-heal outcome."""

    current_balance: int = 0
    calculated_balance: int = 0
    corrected: bool = False
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReconcileResult:
        """Create ReconcileResult from a relay JSON response."""
        return cls(
            current_balance=_to_int(data.get("currentBalance")),
            calculated_balance=_to_int(data.get("calculatedBalance")),
            corrected=bool(data.get("corrected", False)),
            message=data.get("message", ""),
        )


@dataclass
class SyncResult:
    """Deposit sync counters."""

    total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncResult:
        """Create SyncResult from ``{results: {...}}``."""
        r = data.get("results") or {}
        return cls(
            total=_to_int(r.get("total")),
            processed=_to_int(r.get("processed")),
            skipped=_to_int(r.get("skipped")),
            failed=_to_int(r.get("failed")),
            errors=list(r.get("errors") or []),
        )


@dataclass
class DepositResult:
    """Outcome of replaying one deposit by transaction hash."""

    message: str = ""
    user: str = ""
    amount: int = 0
    block_number: int = 0
    tx_hash: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DepositResult:
        """Create DepositResult from ``{message, deposit: {...}}``."""
        d = data.get("deposit") or {}
        return cls(
            message=data.get("message", ""),
            user=d.get("user", ""),
            amount=_to_int(d.get("amount")),
            block_number=_to_int(d.get("blockNumber")),
            tx_hash=d.get("txHash", ""),
        )


class TxKind(enum.StrEnum):
    """Relay transaction history entry type."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"


@dataclass
class TransactionRecord:
    """One entry of the relay's transaction history."""

    type: TxKind
    amount: int
    status: str = ""
    sender: str = ""
    recipient: str = ""
    tx_hash: str = ""
    block_number: int | None = None
    timestamp: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionRecord:
        """Create TransactionRecord from a relay history item."""
        return cls(
            type=TxKind(data["type"]),
            amount=_to_int(data.get("amount")),
            status=data.get("status", ""),
            sender=data.get("from") or "",
            recipient=data.get("to") or "",
            tx_hash=data.get("txHash") or "",
            block_number=_to_opt_int(data.get("blockNumber")),
            timestamp=_to_int(data.get("timestamp")),
        )


@dataclass
class TransactionHistory:
    """Relay transaction history for an account."""

    transactions: list[TransactionRecord] = field(default_factory=list)
    deposits: int = 0
    withdrawals: int = 0
    transfers: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionHistory:
        """Create TransactionHistory from ``{transactions, summary}``."""
        summary = data.get("summary") or {}
        return cls(
            transactions=[TransactionRecord.from_dict(t) for t in data.get("transactions") or []],
            deposits=_to_int(summary.get("deposits")),
            withdrawals=_to_int(summary.get("withdrawals")),
            transfers=_to_int(summary.get("transfers")),
        )


@dataclass
class ContractsInfo:
    """Contract deployment info advertised by the relay."""

    chain_id: int = 0
    contracts: dict[str, Any] = field(default_factory=dict)

    @property
    def bridge_address(self) -> str:
        """Address of the bridge contract, if advertised."""
        entry = self.contracts.get("gunL2Bridge") or self.contracts.get("bridge") or ""
        if isinstance(entry, dict):
            return entry.get("address", "")
        return entry

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContractsInfo:
        """Create ContractsInfo from a relay JSON response."""
        return cls(
            chain_id=_to_int(data.get("chainId")),
            contracts=dict(data.get("contracts") or {}),
        )
