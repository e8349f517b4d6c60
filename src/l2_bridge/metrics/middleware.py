"""Prometheus HTTP request metrics middleware for the control API.

Tracks:
- ``l2bridge_http_requests_total`` (counter) — by method, route, status
- ``l2bridge_http_request_duration_seconds`` (histogram) — by method, route

Routes are labelled by their template (``/api/v1/withdrawals/{nonce}/claim``)
so per-nonce paths do not explode label cardinality.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from prometheus_client import CollectorRegistry
    from starlette.requests import Request
    from starlette.responses import Response


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that records request count and duration."""

    def __init__(self, app: object, *, registry: CollectorRegistry) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._requests = Counter(
            "l2bridge_http_requests_total",
            "Control API requests",
            ("method", "route", "status_code"),
            registry=registry,
        )
        self._duration = Histogram(
            "l2bridge_http_request_duration_seconds",
            "Control API request duration in seconds",
            ("method", "route"),
            registry=registry,
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        route = _route_template(request)

        self._requests.labels(request.method, route, str(response.status_code)).inc()
        self._duration.labels(request.method, route).observe(time.monotonic() - start)
        return response
