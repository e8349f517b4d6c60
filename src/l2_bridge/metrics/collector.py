"""Metrics collector — Prometheus counters, gauges, histograms.

Bridge metrics exposed on ``/metrics``:
- ``l2bridge_withdrawal_requests_total`` counter (outcome)
- ``l2bridge_claims_total`` counter (outcome)
- ``l2bridge_proof_poll_attempts_total`` counter (status)
- ``l2bridge_reconciliations_total`` counter (corrected)
- ``l2bridge_ledger_records`` gauge
- ``l2bridge_claim_duration_seconds`` histogram
- ``l2bridge_cron_histogram`` / ``l2bridge_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "l2bridge"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`BridgeMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, doc, labels, registry=self._registry)


class BridgeMetrics:
    """High-level bridge metrics.

    All histograms track operation duration in seconds.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._withdrawals = self._collector.counter(
            f"{_PREFIX}_withdrawal_requests_total",
            "Withdrawal requests submitted to the relay",
            ("outcome",),
        )
        self._claims = self._collector.counter(
            f"{_PREFIX}_claims_total",
            "On-chain claim attempts",
            ("outcome",),
        )
        self._poll_attempts = self._collector.counter(
            f"{_PREFIX}_proof_poll_attempts_total",
            "Proof lookups issued by the poller",
            ("status",),
        )
        self._reconciliations = self._collector.counter(
            f"{_PREFIX}_reconciliations_total",
            "Balance reconciliations",
            ("corrected",),
        )
        self._ledger_size = self._collector.gauge(
            f"{_PREFIX}_ledger_records",
            "Batched withdrawals awaiting an on-chain claim",
        )
        self._claim_duration = self._collector.histogram(
            f"{_PREFIX}_claim_duration_seconds",
            "Duration of on-chain claim transactions",
        )
        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Counters / gauges --

    def record_withdrawal_request(self, outcome: str) -> None:
        self._withdrawals.labels(outcome=outcome).inc()

    def record_claim(self, outcome: str) -> None:
        self._claims.labels(outcome=outcome).inc()

    def record_poll_attempt(self, status: str) -> None:
        self._poll_attempts.labels(status=status).inc()

    def record_reconciliation(self, *, corrected: bool) -> None:
        self._reconciliations.labels(corrected=str(corrected).lower()).inc()

    def set_ledger_size(self, count: int) -> None:
        """Set the number of records currently held by the claim ledger."""
        self._ledger_size.set(count)

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_claim(self) -> Iterator[None]:
        """Track the duration of an on-chain claim."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._claim_duration.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
