"""Metrics — Prometheus metrics collection and exposure."""

from __future__ import annotations

from l2_bridge.metrics.collector import BridgeMetrics, MetricsCollector

__all__ = ["BridgeMetrics", "MetricsCollector"]
