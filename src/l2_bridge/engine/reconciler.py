"""Balance reconciler — ask the relay to self-heal an account balance.

The relay owns the balance. Reconciliation fetches the reported value, asks
the relay to recompute it from its event log, and reports whether the
relay corrected itself. No local number is ever patched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from l2_bridge.errors.bridge_errors import BridgeError
from l2_bridge.relay.models import TxKind
from l2_bridge.utils.units import normalize_address

if TYPE_CHECKING:
    from l2_bridge.metrics.collector import BridgeMetrics
    from l2_bridge.relay.client import RelayClient
    from l2_bridge.relay.models import TransactionHistory

logger = logging.getLogger(__name__)

# Statuses that leave the balance unchanged
_IGNORED_STATUSES = frozenset({"failed", "rejected"})


@dataclass(frozen=True)
class ReconcileReport:
    """Outcome of one reconciliation.

    Attributes:
        reported: Balance the relay reported before recomputation.
        recomputed: Balance the relay derived from its event log.
        corrected: The relay updated its stored balance.
        message: Relay's description of what happened.
        expected: Balance implied by the relay's transaction history, if
            the history could be fetched.
    """

    account: str
    reported: int
    recomputed: int
    corrected: bool
    message: str = ""
    expected: int | None = None

    @property
    def drift(self) -> int | None:
        """``recomputed - expected``, or ``None`` without history."""
        if self.expected is None:
            return None
        return self.recomputed - self.expected


def expected_balance(account: str, history: TransactionHistory) -> int:
    """Sum deposits and incoming transfers, minus outgoing transfers and withdrawals."""
    me = account.lower()
    total = 0
    for tx in history.transactions:
        if tx.status.lower() in _IGNORED_STATUSES:
            continue
        if tx.type is TxKind.DEPOSIT:
            total += tx.amount
        elif tx.type is TxKind.WITHDRAWAL:
            total -= tx.amount
        elif tx.type is TxKind.TRANSFER:
            if tx.recipient.lower() == me:
                total += tx.amount
            if tx.sender.lower() == me:
                total -= tx.amount
    return total


class BalanceReconciler:
    """Reconciles relay-reported balances."""

    def __init__(self, relay: RelayClient, *, metrics: BridgeMetrics | None = None) -> None:
        self._relay = relay
        self._metrics = metrics

    async def reconcile(self, account: str, *, with_history: bool = True) -> ReconcileReport:
        """Reconcile *account*'s L2 balance. Safe to repeat.

        Raises:
            ValidationError: Malformed address.
            NetworkError, RelayError, RequestRejected: Relay failures.
        """
        account = normalize_address(account)
        before = await self._relay.get_balance(account)
        result = await self._relay.reconcile_balance(account)

        expected: int | None = None
        if with_history:
            try:
                expected = expected_balance(account, await self._relay.get_transactions(account))
            except BridgeError as exc:
                logger.warning("Transaction history unavailable for %s: %s", account, exc.message)

        report = ReconcileReport(
            account=account,
            reported=before.balance,
            recomputed=result.calculated_balance,
            corrected=result.corrected,
            message=result.message,
            expected=expected,
        )
        if report.corrected:
            logger.info(
                "Relay corrected balance for %s: %d -> %d",
                account,
                report.reported,
                report.recomputed,
            )
        if report.drift:
            logger.warning("Balance for %s drifts from history by %d wei", account, report.drift)
        if self._metrics is not None:
            self._metrics.record_reconciliation(corrected=report.corrected)
        return report
