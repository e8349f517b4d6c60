"""L2 → L2 transfers, signed with the same dual-signature scheme as withdrawals."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from l2_bridge.auth.authenticator import DualSignatureAuthenticator, IntentType
from l2_bridge.errors.definitions import ValidationError
from l2_bridge.utils.units import normalize_address, parse_amount, same_address

if TYPE_CHECKING:
    from l2_bridge.engine.session import BridgeSession
    from l2_bridge.relay.client import RelayClient
    from l2_bridge.relay.models import TransferReceipt

logger = logging.getLogger(__name__)


class TransferService:
    def __init__(
        self,
        session: BridgeSession,
        relay: RelayClient,
        *,
        authenticator: DualSignatureAuthenticator | None = None,
    ) -> None:
        self._session = session
        self._relay = relay
        self._auth = authenticator or DualSignatureAuthenticator(session)

    async def transfer(self, to: str, amount: int) -> TransferReceipt:
        """Move *amount* wei on L2 from the session account to *to*.

        Raises:
            ValidationError: Bad recipient, self-transfer, bad amount or
                insufficient L2 balance.
            RequestRejected: Relay declined the transfer.
        """
        recipient = normalize_address(to)
        amount = parse_amount(amount)
        sender = self._session.address
        if same_address(sender, recipient):
            msg = "cannot transfer to self"
            raise ValidationError(msg)

        balance = await self._relay.get_balance(sender)
        if balance.balance < amount:
            msg = f"insufficient L2 balance: have {balance.balance}, need {amount}"
            raise ValidationError(msg)

        signed = await self._auth.authenticate(
            IntentType.TRANSFER, amount=amount, recipient=recipient
        )
        receipt = await self._relay.transfer(sender, recipient, amount, signed)
        logger.info("Transferred %d wei from %s to %s", amount, sender, recipient)
        return receipt
