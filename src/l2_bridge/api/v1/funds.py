"""V1 deposit and transfer endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from l2_bridge.api.dependencies import get_engine
from l2_bridge.api.v1.schemas import (
    DepositCreateRequest,
    DepositResponse,
    TransferCreateRequest,
    TransferResponse,
)
from l2_bridge.engine.client import BridgeEngine  # noqa: TC001

router = APIRouter(tags=["funds"])


@router.post("/deposits", status_code=201)
async def create_deposit(
    body: DepositCreateRequest,
    engine: Annotated[BridgeEngine, Depends(get_engine)],
) -> dict:
    """Deposit from L1 into the bridge, optionally watching for L2 credit."""
    outcome = await engine.deposits.deposit(body.amount, watch=body.watch)
    return DepositResponse(
        tx_hash=outcome.receipt.tx_hash,
        block_number=outcome.receipt.block_number,
        credited=outcome.credited,
        l2_balance=None if outcome.l2_balance is None else str(outcome.l2_balance),
    ).model_dump(mode="json")


@router.post("/transfers", status_code=201)
async def create_transfer(
    body: TransferCreateRequest,
    engine: Annotated[BridgeEngine, Depends(get_engine)],
) -> dict:
    """Dual-signed L2 to L2 transfer from the session account."""
    receipt = await engine.transfers.transfer(body.to, body.amount)
    return TransferResponse(
        sender=receipt.sender,
        recipient=receipt.recipient,
        amount=str(receipt.amount),
        tx_hash=receipt.tx_hash or None,
    ).model_dump(mode="json")
