"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from l2_bridge import __version__
from l2_bridge.api.v1 import v1_router
from l2_bridge.config.settings import AppConfig
from l2_bridge.engine.client import BridgeEngine
from l2_bridge.errors.bridge_errors import BridgeError
from l2_bridge.metrics.collector import BridgeMetrics
from l2_bridge.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialise the bridge engine on startup and close it on exit.

    An engine placed on ``app.state.engine`` before startup is used as-is.
    """
    engine: BridgeEngine | None = getattr(app.state, "engine", None)
    if engine is None:
        engine = BridgeEngine(app.state.config, metrics=app.state.metrics)

    try:
        if not engine.is_initialized:
            await engine.initialize()
        app.state.engine = engine
        logger.info("Bridge engine ready")
        yield
    finally:
        await engine.close()
        logger.info("Bridge engine shut down")


def create_app(*, config: AppConfig | None = None, engine: BridgeEngine | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables and the YAML file.
        engine: Optional pre-built engine; its metrics registry is exposed.
    """
    if config is None:
        config = engine.config if engine is not None else AppConfig()

    app = FastAPI(
        title="py-l2bridge",
        version=__version__,
        description="Local control API for the L1/L2 batching bridge client",
        lifespan=_lifespan,
    )

    app.state.config = config
    app.state.metrics = engine.metrics if engine is not None else BridgeMetrics()
    if engine is not None:
        app.state.engine = engine

    # -- Error handler --
    @app.exception_handler(BridgeError)
    async def _bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(app.state.metrics.registry),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    app.include_router(v1_router)

    return app
