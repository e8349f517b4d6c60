"""Dual-signature authenticator.

Builds the canonical message for a bridge intent and signs the exact same
byte string twice: once with the secondary keypair, once with the chain
account (EIP-191 personal message). The relay accepts a request only if
both signatures verify against the message it receives.
"""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from l2_bridge.auth.keys import verify_secondary_signature
from l2_bridge.errors.definitions import AuthenticationUnavailable, ValidationError
from l2_bridge.utils.units import normalize_address, parse_amount
from l2_bridge.wallet.signer import verify_account_signature

if TYPE_CHECKING:
    from l2_bridge.engine.session import BridgeSession


class IntentType(enum.StrEnum):
    """Kind of signed bridge request."""

    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"


def canonical_message(
    intent: IntentType,
    *,
    account: str,
    amount: int,
    timestamp: int,
    nonce: int | None = None,
    recipient: str | None = None,
) -> str:
    """Serialize an intent into its canonical, signable form.

    Field order is fixed: ``ethereumAddress, to, amount, nonce, timestamp,
    type``. Addresses are lower-cased and integers rendered as decimal
    strings; ``to`` and ``nonce`` are omitted when not applicable.
    """
    fields: dict[str, Any] = {"ethereumAddress": account.lower()}
    if recipient is not None:
        fields["to"] = recipient.lower()
    fields["amount"] = str(amount)
    if nonce is not None:
        fields["nonce"] = str(nonce)
    fields["timestamp"] = timestamp
    fields["type"] = intent.value
    return json.dumps(fields, separators=(",", ":"))


@dataclass(frozen=True)
class SignedMessage:
    """Canonical message plus its two independent signatures."""

    intent: IntentType
    message: str
    secondary_signature: str
    account_signature: str
    secondary_public_key: str
    timestamp: int

    def to_wire(self) -> dict[str, str]:
        """Relay JSON fields carrying the credential bundle."""
        return {
            "message": self.message,
            "seaSignature": self.secondary_signature,
            "ethSignature": self.account_signature,
            "gunPubKey": self.secondary_public_key,
        }

    def verify(self, address: str) -> bool:
        """Check both signatures independently against the message."""
        return verify_secondary_signature(
            self.secondary_public_key, self.message, self.secondary_signature
        ) and verify_account_signature(address, self.message, self.account_signature)


class DualSignatureAuthenticator:
    """Produces dual-signature credentials for the session's account."""

    def __init__(self, session: BridgeSession) -> None:
        self._session = session

    async def authenticate(
        self,
        intent: IntentType,
        *,
        amount: int,
        nonce: int | None = None,
        recipient: str | None = None,
        timestamp: int | None = None,
    ) -> SignedMessage:
        """Build and dual-sign the canonical message for *intent*.

        Args:
            intent: Withdrawal or transfer.
            amount: Amount in wei.
            nonce: Relay-reserved nonce, if one was obtained.
            recipient: Transfer destination (transfers only).
            timestamp: Milliseconds since epoch; defaults to now.

        Raises:
            AuthenticationUnavailable: The secondary keypair is not derived.
            ValidationError: Invalid amount or recipient.
            SigningRejected: The wallet refused to sign.
        """
        keypair = self._session.keypair
        if keypair is None:
            raise AuthenticationUnavailable
        amount = parse_amount(amount)
        if intent is IntentType.TRANSFER:
            if not recipient:
                msg = "transfer requires a recipient"
                raise ValidationError(msg)
            recipient = normalize_address(recipient)
        elif recipient is not None:
            msg = f"{intent.value} does not take a recipient"
            raise ValidationError(msg)

        ts = timestamp if timestamp is not None else int(time.time() * 1000)
        message = canonical_message(
            intent,
            account=self._session.address,
            amount=amount,
            timestamp=ts,
            nonce=nonce,
            recipient=recipient,
        )
        secondary = keypair.sign(message)
        account_sig = await self._session.signer.sign_message(message)
        return SignedMessage(
            intent=intent,
            message=message,
            secondary_signature=secondary,
            account_signature=account_sig,
            secondary_public_key=keypair.pub,
            timestamp=ts,
        )
