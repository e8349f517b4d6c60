"""Errors — bridge exception hierarchy."""

from l2_bridge.errors.bridge_errors import BridgeError
from l2_bridge.errors.chain_errors import ClaimFailureKind, ClaimReverted, TransactionFailed
from l2_bridge.errors.definitions import (
    AlreadyProcessed,
    AuthenticationUnavailable,
    LedgerCorrupted,
    NetworkError,
    ProofNotReady,
    RelayError,
    RequestRejected,
    SigningRejected,
    ValidationError,
)

__all__ = [
    "AlreadyProcessed",
    "AuthenticationUnavailable",
    "BridgeError",
    "ClaimFailureKind",
    "ClaimReverted",
    "LedgerCorrupted",
    "NetworkError",
    "ProofNotReady",
    "RelayError",
    "RequestRejected",
    "SigningRejected",
    "TransactionFailed",
    "ValidationError",
]
