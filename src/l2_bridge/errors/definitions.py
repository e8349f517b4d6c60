"""Bridge error taxonomy.

Each class maps to one way a bridge operation can end short of success.
Only ``ClaimReverted`` and ``NetworkError`` describe conditions a caller
is expected to retry; the rest need user action or a fresh request.
"""

from __future__ import annotations

from l2_bridge.errors.bridge_errors import BridgeError

# -- Local input -----------------------------------------------------------


class ValidationError(BridgeError):
    """Bad user input (non-positive amount, malformed address, ...)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400, code="validation-error")


class AuthenticationUnavailable(BridgeError):
    """The secondary keypair has not been derived for this session."""

    def __init__(self, message: str = "secondary keypair not derived") -> None:
        super().__init__(message, status_code=412, code="authentication-unavailable")


class SigningRejected(BridgeError):
    """The wallet declined to sign a message or transaction."""

    def __init__(self, message: str = "signature request rejected by wallet") -> None:
        super().__init__(message, status_code=409, code="signing-rejected")


# -- Relay -----------------------------------------------------------------


class NetworkError(BridgeError):
    """Relay or RPC endpoint unreachable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=502, code="network-error")


class RelayError(BridgeError):
    """Relay answered with an unexpected non-2xx status."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, status_code=status_code, code="relay-error")

    @property
    def status_class(self) -> str:
        """Status code class, e.g. ``"5xx"``."""
        return f"{self.status_code // 100}xx"


class RequestRejected(BridgeError):
    """Relay declined a signed request (balance, signature, stale nonce)."""

    def __init__(self, reason: str, *, status_code: int = 422) -> None:
        super().__init__(f"request rejected: {reason}", status_code=status_code, code="request-rejected")
        self.reason = reason


class ProofNotReady(BridgeError):
    """The batch containing a withdrawal has not been submitted yet.

    Status text for an expired proof poll; not raised.
    """

    def __init__(self, message: str = "proof not available yet") -> None:
        super().__init__(message, status_code=404, code="proof-not-ready")


class AlreadyProcessed(BridgeError):
    """Withdrawal was already claimed on-chain. Success-equivalent.

    Attached to a flow settled without this client's claim; not raised.
    """

    def __init__(self, message: str = "withdrawal already processed") -> None:
        super().__init__(message, status_code=200, code="already-processed")


# -- Ledger ----------------------------------------------------------------


class LedgerCorrupted(BridgeError):
    """Persisted ledger contents could not be decoded."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=500, code="ledger-corrupted")


# -- Predefined instances ----------------------------------------------------

ErrNoSession = BridgeError("no wallet session connected", status_code=409, code="no-session")
ErrEngineNotInitialized = BridgeError(
    "engine not initialized", status_code=503, code="engine-not-initialized"
)
ErrWithdrawalNotFound = BridgeError(
    "no withdrawal tracked for this nonce", status_code=404, code="withdrawal-not-found"
)
ErrClaimInProgress = BridgeError(
    "a claim for this withdrawal is already in progress", status_code=409, code="claim-in-progress"
)
