"""V1 balance endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from l2_bridge.api.dependencies import get_engine
from l2_bridge.api.v1.schemas import BalanceResponse, ReconcileResponse
from l2_bridge.engine.client import BridgeEngine  # noqa: TC001
from l2_bridge.utils.units import format_ether

router = APIRouter(tags=["balance"])


def _opt_str(value: int | None) -> str | None:
    return None if value is None else str(value)


@router.get("/balance")
async def get_balance(
    engine: Annotated[BridgeEngine, Depends(get_engine)],
) -> dict:
    """Relay-reported L2 balance of the session account."""
    account = engine.session.address
    info = await engine.relay.get_balance(account)
    return BalanceResponse(
        account=account,
        balance=str(info.balance),
        balance_eth=info.balance_eth or format_ether(info.balance),
    ).model_dump(mode="json")


@router.post("/balance/reconcile")
async def reconcile_balance(
    engine: Annotated[BridgeEngine, Depends(get_engine)],
    with_history: bool = True,
) -> dict:
    """Ask the relay to recompute the session account's balance."""
    report = await engine.reconciler.reconcile(engine.session.address, with_history=with_history)
    return ReconcileResponse(
        account=report.account,
        reported=str(report.reported),
        recomputed=str(report.recomputed),
        corrected=report.corrected,
        message=report.message,
        expected=_opt_str(report.expected),
        drift=_opt_str(report.drift),
    ).model_dump(mode="json")
