"""V1 withdrawal endpoints.

Request, claim and recover L2 → L1 withdrawals of the connected session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends

from l2_bridge.api.dependencies import get_engine, get_orchestrator
from l2_bridge.api.v1.schemas import (
    BatchRecordResponse,
    BatchSubmitResponse,
    PollCancelResponse,
    RecoverRequest,
    WithdrawalCreateRequest,
    WithdrawalResponse,
)
from l2_bridge.engine.client import BridgeEngine  # noqa: TC001
from l2_bridge.engine.orchestrator import WithdrawalOrchestrator  # noqa: TC001
from l2_bridge.errors.definitions import ErrWithdrawalNotFound
from l2_bridge.utils.units import same_address

if TYPE_CHECKING:
    from l2_bridge.engine.orchestrator import WithdrawalFlow
    from l2_bridge.ledger.models import BatchRecord

router = APIRouter(tags=["withdrawals"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _flow_resp(flow: WithdrawalFlow) -> dict:
    return WithdrawalResponse(
        account=flow.account,
        amount=str(flow.amount),
        nonce=flow.nonce,
        state=flow.state.value,
        batch_id=flow.batch_id,
        claim_tx_hash=flow.claim_tx_hash,
        failure_kind=flow.failure_kind.value if flow.failure_kind else None,
        error=flow.error.message if flow.error else None,
        resumed=flow.resumed,
        degraded_nonce=flow.degraded_nonce,
    ).model_dump(mode="json")


def _record_resp(record: BatchRecord) -> dict:
    return BatchRecordResponse(
        account=record.account,
        amount=str(record.amount),
        nonce=record.nonce,
        batch_id=record.batch_id,
        tx_hash=record.tx_hash,
        captured_at=record.captured_at,
    ).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/withdrawals")
async def list_withdrawals(
    engine: Annotated[BridgeEngine, Depends(get_engine)],
) -> list[dict]:
    """Batched, unclaimed withdrawals in the ledger for the session account."""
    records = await engine.ledger.list_for(engine.session.address)
    return [_record_resp(r) for r in records]


@router.get("/withdrawals/active")
async def list_active_withdrawals(
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> list[dict]:
    """Withdrawal flows tracked in this session."""
    return [_flow_resp(f) for f in orchestrator.flows()]


@router.post("/withdrawals", status_code=201)
async def create_withdrawal(
    body: WithdrawalCreateRequest,
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """Sign and submit a withdrawal request to the relay."""
    flow = await orchestrator.request_withdrawal(body.amount)
    return _flow_resp(flow)


@router.post("/withdrawals/recover", status_code=201)
async def recover_withdrawal(
    body: RecoverRequest,
    engine: Annotated[BridgeEngine, Depends(get_engine)],
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """Record a withdrawal known to be batched.

    Withdrawals of the session account are tracked and returned as a flow;
    any other account only gets the ledger record.
    """
    if body.account and not same_address(body.account, orchestrator.account):
        record = await engine.ledger.recover(
            body.account, body.amount, body.nonce, body.batch_id, body.tx_hash
        )
        return _record_resp(record)
    flow = await orchestrator.recover(body.amount, body.nonce, body.batch_id, body.tx_hash)
    return _flow_resp(flow)


@router.post("/withdrawals/batch", status_code=201)
async def submit_batch(
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """Ask the relay to batch pending withdrawals and record them."""
    result, records = await orchestrator.submit_batch()
    return BatchSubmitResponse(
        batch_id=result.batch_id,
        tx_hash=result.tx_hash,
        root=result.root,
        records=[BatchRecordResponse(**_record_resp(r)) for r in records],
    ).model_dump(mode="json")


@router.get("/withdrawals/{nonce}")
async def get_withdrawal(
    nonce: int,
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """Current state of one tracked withdrawal."""
    await orchestrator.resume()
    flow = orchestrator.get(nonce)
    if flow is None:
        raise ErrWithdrawalNotFound
    return _flow_resp(flow)


@router.post("/withdrawals/{nonce}/claim")
async def claim_withdrawal(
    nonce: int,
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """Poll for the proof if needed, then claim on L1."""
    await orchestrator.resume()
    flow = await orchestrator.claim(nonce)
    return _flow_resp(flow)


@router.delete("/withdrawals/{nonce}/poll")
async def cancel_poll(
    nonce: int,
    orchestrator: Annotated[WithdrawalOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """Cancel an outstanding proof poll. The flow and ledger are kept."""
    return PollCancelResponse(
        nonce=nonce, cancelled=orchestrator.cancel_poll(nonce)
    ).model_dump(mode="json")
