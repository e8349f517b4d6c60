"""BatchRecord — durable proof that a withdrawal was batched."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Self


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class BatchRecord:
    """A withdrawal included in a submitted batch but not yet claimed on L1.

    Identity is ``(account, nonce)``; the account is compared
    case-insensitively.

    Attributes:
        account: Checksum address of the withdrawing account.
        amount: Amount in wei, exactly as signed.
        nonce: Relay-confirmed withdrawal nonce.
        batch_id: Batch that includes the withdrawal.
        tx_hash: Relay's batch submission transaction, if known.
        captured_at: Milliseconds since epoch when the record was written.
    """

    account: str
    amount: int
    nonce: int
    batch_id: int
    tx_hash: str | None = None
    captured_at: int = 0

    @property
    def key(self) -> tuple[str, int]:
        return (self.account.lower(), self.nonce)

    def touched(self, at: int | None = None) -> Self:
        """Copy with ``captured_at`` refreshed."""
        return replace(self, captured_at=now_ms() if at is None else at)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape."""
        return {
            "user": self.account,
            "amount": str(self.amount),
            "nonce": str(self.nonce),
            "batchId": str(self.batch_id),
            "txHash": self.tx_hash,
            "batchedAt": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchRecord:
        """Deserialize from the persisted JSON shape.

        Raises:
            KeyError, TypeError, ValueError: On malformed input.
        """
        return cls(
            account=data["user"],
            amount=int(data["amount"]),
            nonce=int(data["nonce"]),
            batch_id=int(data["batchId"]),
            tx_hash=data.get("txHash") or None,
            captured_at=int(data.get("batchedAt") or 0),
        )
