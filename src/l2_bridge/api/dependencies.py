"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/balance")
    async def get_balance(
        engine: Annotated[BridgeEngine, Depends(get_engine)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from l2_bridge.engine.client import BridgeEngine  # noqa: TC001
from l2_bridge.engine.orchestrator import WithdrawalOrchestrator  # noqa: TC001
from l2_bridge.errors.definitions import ErrEngineNotInitialized


def get_engine(request: Request) -> BridgeEngine:
    """Retrieve the engine stored on ``app.state`` during lifespan startup.

    Raises:
        BridgeError: ``engine-not-initialized`` before startup completes.
    """
    engine: BridgeEngine | None = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise ErrEngineNotInitialized
    return engine


def get_orchestrator(
    engine: Annotated[BridgeEngine, Depends(get_engine)],
) -> WithdrawalOrchestrator:
    """Orchestrator of the connected session (``no-session`` otherwise)."""
    return engine.orchestrator
