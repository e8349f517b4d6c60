"""V1 REST API routes.

Combines all sub-routers under the ``/api/v1`` prefix.
"""

from fastapi import APIRouter

from l2_bridge.api.v1.balance import router as balance_router
from l2_bridge.api.v1.funds import router as funds_router
from l2_bridge.api.v1.withdrawals import router as withdrawals_router

v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(balance_router)
v1_router.include_router(withdrawals_router)
v1_router.include_router(funds_router)

__all__ = ["v1_router"]
