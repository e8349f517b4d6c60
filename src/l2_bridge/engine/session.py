"""Wallet session — the connected account and its derived secondary keypair."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from l2_bridge.auth.keys import DERIVATION_MESSAGE, SecondaryKeypair
from l2_bridge.utils.units import normalize_address

if TYPE_CHECKING:
    from l2_bridge.wallet.signer import WalletSigner

logger = logging.getLogger(__name__)


class BridgeSession:
    """One connected chain account.

    The secondary keypair is derived on demand from a wallet signature and
    held in memory only. ``close()`` drops it; a new session must derive it
    again.
    """

    def __init__(self, signer: WalletSigner) -> None:
        self._signer = signer
        self._address = normalize_address(signer.address)
        self._keypair: SecondaryKeypair | None = None
        self._open = True

    @property
    def address(self) -> str:
        """Checksum address of the connected account."""
        return self._address

    @property
    def signer(self) -> WalletSigner:
        return self._signer

    @property
    def keypair(self) -> SecondaryKeypair | None:
        """Secondary keypair, or ``None`` until :meth:`derive_keys` runs."""
        return self._keypair

    @property
    def is_open(self) -> bool:
        return self._open

    async def derive_keys(self) -> SecondaryKeypair:
        """Ask the wallet to sign the derivation message and derive the keypair.

        Idempotent: a session derives at most once.

        Raises:
            SigningRejected: The wallet refused the derivation signature.
        """
        if self._keypair is None:
            signature = await self._signer.sign_message(DERIVATION_MESSAGE)
            self._keypair = SecondaryKeypair.from_wallet_signature(signature)
            logger.info("Secondary keypair derived for %s", self._address)
        return self._keypair

    def close(self) -> None:
        """Drop the in-memory keypair and mark the session closed."""
        self._keypair = None
        self._open = False
        logger.info("Session closed for %s", self._address)
