"""Auth — secondary keypair and dual-signature credentials."""

from l2_bridge.auth.authenticator import (
    DualSignatureAuthenticator,
    IntentType,
    SignedMessage,
    canonical_message,
)
from l2_bridge.auth.keys import SecondaryKeypair, verify_secondary_signature

__all__ = [
    "DualSignatureAuthenticator",
    "IntentType",
    "SecondaryKeypair",
    "SignedMessage",
    "canonical_message",
    "verify_secondary_signature",
]
