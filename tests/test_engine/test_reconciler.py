"""Tests for the balance reconciler."""

from __future__ import annotations

import pytest

from l2_bridge.engine.reconciler import BalanceReconciler, expected_balance
from l2_bridge.errors.definitions import NetworkError, ValidationError
from l2_bridge.metrics.collector import BridgeMetrics
from l2_bridge.relay.models import (
    ReconcileResult,
    TransactionHistory,
    TransactionRecord,
    TxKind,
)

ME = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PEER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def _history() -> TransactionHistory:
    return TransactionHistory(
        transactions=[
            TransactionRecord(type=TxKind.DEPOSIT, amount=10, status="processed", recipient=ME),
            TransactionRecord(type=TxKind.TRANSFER, amount=3, sender=ME.lower(), recipient=PEER),
            TransactionRecord(type=TxKind.TRANSFER, amount=2, sender=PEER, recipient=ME),
            TransactionRecord(type=TxKind.WITHDRAWAL, amount=4, status="pending", sender=ME),
            TransactionRecord(type=TxKind.WITHDRAWAL, amount=100, status="Failed", sender=ME),
        ]
    )


class TestExpectedBalance:
    def test_sums_history(self):
        assert expected_balance(ME, _history()) == 10 - 3 + 2 - 4

    def test_empty_history(self):
        assert expected_balance(ME, TransactionHistory()) == 0


class TestReconcile:
    async def test_corrected(self, relay):
        relay.balance = 5
        relay.reconcile_result = ReconcileResult(
            current_balance=5, calculated_balance=7, corrected=True, message="fixed"
        )
        relay.history = TransactionHistory(
            transactions=[TransactionRecord(type=TxKind.DEPOSIT, amount=7, recipient=ME)]
        )

        report = await BalanceReconciler(relay).reconcile(ME.lower())

        assert report.account == ME
        assert report.reported == 5
        assert report.recomputed == 7
        assert report.corrected
        assert report.message == "fixed"
        assert report.expected == 7
        assert report.drift == 0

    async def test_drift_reported(self, relay, caplog):
        relay.reconcile_result = ReconcileResult(calculated_balance=9)
        relay.history = _history()

        report = await BalanceReconciler(relay).reconcile(ME)

        assert report.drift == 9 - 5
        assert "drifts from history" in caplog.text

    async def test_history_failure_tolerated(self, relay):
        relay.history_error = NetworkError("down")
        report = await BalanceReconciler(relay).reconcile(ME)
        assert report.expected is None
        assert report.drift is None

    async def test_without_history(self, relay):
        relay.history_error = NetworkError("should not be called")
        report = await BalanceReconciler(relay).reconcile(ME, with_history=False)
        assert report.expected is None

    async def test_invalid_account(self, relay):
        with pytest.raises(ValidationError):
            await BalanceReconciler(relay).reconcile("0x123")

    async def test_metrics(self, relay):
        metrics = BridgeMetrics()
        relay.reconcile_result = ReconcileResult(corrected=True)
        await BalanceReconciler(relay, metrics=metrics).reconcile(ME, with_history=False)
        assert (
            metrics.registry.get_sample_value(
                "l2bridge_reconciliations_total", {"corrected": "true"}
            )
            == 1
        )
