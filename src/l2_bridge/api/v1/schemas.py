"""V1 API request/response Pydantic schemas.

Amounts cross the HTTP boundary as decimal strings of wei so that values
above 2**53 survive JavaScript clients.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------


class WithdrawalCreateRequest(BaseModel):
    """POST /api/v1/withdrawals — request a withdrawal of *amount* wei."""

    amount: int = Field(..., gt=0)


class RecoverRequest(BaseModel):
    """POST /api/v1/withdrawals/recover — manual ledger insert.

    ``account`` defaults to the session account.
    """

    account: str | None = None
    amount: int = Field(..., gt=0)
    nonce: int = Field(..., ge=0)
    batch_id: int = Field(..., ge=0)
    tx_hash: str | None = None


class WithdrawalResponse(BaseModel):
    account: str
    amount: str
    nonce: int | None = None
    state: str
    batch_id: int | None = None
    claim_tx_hash: str | None = None
    failure_kind: str | None = None
    error: str | None = None
    resumed: bool = False
    degraded_nonce: bool = False


class BatchRecordResponse(BaseModel):
    account: str
    amount: str
    nonce: int
    batch_id: int
    tx_hash: str | None = None
    captured_at: int


class BatchSubmitResponse(BaseModel):
    batch_id: int
    tx_hash: str
    root: str = ""
    records: list[BatchRecordResponse] = Field(default_factory=list)


class PollCancelResponse(BaseModel):
    nonce: int
    cancelled: bool


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    account: str
    balance: str
    balance_eth: str


class ReconcileResponse(BaseModel):
    account: str
    reported: str
    recomputed: str
    corrected: bool
    message: str = ""
    expected: str | None = None
    drift: str | None = None


# ---------------------------------------------------------------------------
# Deposits / transfers
# ---------------------------------------------------------------------------


class DepositCreateRequest(BaseModel):
    """POST /api/v1/deposits — deposit *amount* wei from L1."""

    amount: int = Field(..., gt=0)
    watch: bool = False


class DepositResponse(BaseModel):
    tx_hash: str
    block_number: int
    credited: bool
    l2_balance: str | None = None


class TransferCreateRequest(BaseModel):
    """POST /api/v1/transfers — L2 to L2 transfer."""

    to: str
    amount: int = Field(..., gt=0)


class TransferResponse(BaseModel):
    sender: str
    recipient: str
    amount: str
    tx_hash: str | None = None
