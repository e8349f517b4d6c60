"""On-chain transaction and claim errors."""

from __future__ import annotations

import enum

from l2_bridge.errors.bridge_errors import BridgeError


class ClaimFailureKind(enum.StrEnum):
    """Why an on-chain claim did not land."""

    USER_REJECTED = "user_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    OUT_OF_GAS = "out_of_gas"
    INVALID_PROOF = "invalid_proof"
    ALREADY_PROCESSED = "already_processed"
    MISMATCH = "mismatch"
    REVERTED = "reverted"

    @property
    def is_retryable(self) -> bool:
        """Whether resubmitting the same claim can succeed."""
        return self in (
            ClaimFailureKind.USER_REJECTED,
            ClaimFailureKind.INSUFFICIENT_FUNDS,
            ClaimFailureKind.OUT_OF_GAS,
            ClaimFailureKind.REVERTED,
        )

    @property
    def requires_manual_recovery(self) -> bool:
        """Data inconsistency between relay proof and chain."""
        return self in (ClaimFailureKind.INVALID_PROOF, ClaimFailureKind.MISMATCH)


_GUIDANCE = {
    ClaimFailureKind.USER_REJECTED: "transaction rejected in wallet; resume when ready",
    ClaimFailureKind.INSUFFICIENT_FUNDS: "insufficient L1 funds for gas; top up and retry",
    ClaimFailureKind.OUT_OF_GAS: "transaction ran out of gas; retry with the same proof",
    ClaimFailureKind.INVALID_PROOF: "proof rejected on-chain; manual recovery required",
    ClaimFailureKind.ALREADY_PROCESSED: "withdrawal already processed",
    ClaimFailureKind.MISMATCH: "proof does not match the signed withdrawal; manual recovery required",
    ClaimFailureKind.REVERTED: "claim transaction reverted; retry later",
}


class ClaimReverted(BridgeError):
    """On-chain claim failed. The batch record stays in the ledger."""

    def __init__(
        self,
        kind: ClaimFailureKind,
        detail: str = "",
        *,
        tx_hash: str | None = None,
    ) -> None:
        message = _GUIDANCE[kind]
        if detail:
            message = f"{message} ({detail})"
        status = 422 if kind.requires_manual_recovery else 409
        super().__init__(message, status_code=status, code=f"claim-{kind.value.replace('_', '-')}")
        self.kind = kind
        self.detail = detail
        self.tx_hash = tx_hash


class TransactionFailed(BridgeError):
    """An L1 transaction (deposit, escape hatch, claim) did not land."""

    def __init__(
        self,
        kind: ClaimFailureKind,
        detail: str = "",
        *,
        tx_hash: str | None = None,
    ) -> None:
        message = f"transaction failed: {kind.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, status_code=502, code="transaction-failed")
        self.kind = kind
        self.detail = detail
        self.tx_hash = tx_hash
