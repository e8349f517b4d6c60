"""Nonce manager — relay-authoritative anti-replay counters.

The relay is the only source of nonces. A reservation is a hint embedded in
the signed message; the nonce the relay echoes back on acceptance is what
identifies the withdrawal from then on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from l2_bridge.errors.bridge_errors import BridgeError
from l2_bridge.errors.definitions import NetworkError, RelayError, RequestRejected

if TYPE_CHECKING:
    from l2_bridge.relay.client import RelayClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NonceReservation:
    """Result of asking the relay for the next nonce.

    ``nonce`` is ``None`` on the degraded path, where the relay assigns one
    when the request is submitted.
    """

    account: str
    nonce: int | None
    reason: str = ""

    @property
    def degraded(self) -> bool:
        return self.nonce is None


class NonceManager:
    """Reserves nonces and tracks the last relay-confirmed nonce per account."""

    def __init__(self, relay: RelayClient) -> None:
        self._relay = relay
        self._confirmed: dict[str, int] = {}

    async def reserve(self, account: str) -> NonceReservation:
        """Ask the relay for *account*'s next nonce.

        Never raises for relay failures: they yield a degraded reservation
        and a warning.
        """
        try:
            info = await self._relay.get_nonce(account)
        except (NetworkError, RelayError, RequestRejected) as exc:
            logger.warning(
                "Nonce reservation failed for %s; relay will assign one: %s", account, exc.message
            )
            return NonceReservation(account, None, reason=exc.message)

        if info.next_nonce is None:
            logger.warning("Relay returned no nonce for %s; relay will assign one", account)
            return NonceReservation(account, None, reason="relay returned no nonce")

        last = self._confirmed.get(account.lower())
        if last is not None and info.next_nonce <= last:
            logger.warning(
                "Relay offered stale nonce %d for %s (last confirmed %d); relay will assign one",
                info.next_nonce,
                account,
                last,
            )
            return NonceReservation(account, None, reason="stale nonce")

        return NonceReservation(account, info.next_nonce)

    def confirm(self, account: str, reserved: int | None, echoed: int | None) -> int:
        """Adopt the relay-echoed nonce as the request's identity.

        Raises:
            BridgeError: The relay accepted the request without echoing a
                nonce, so it cannot be tracked.
        """
        if echoed is None:
            msg = "relay accepted the withdrawal but returned no nonce"
            raise BridgeError(msg, status_code=502, code="nonce-missing")
        if reserved is not None and echoed != reserved:
            logger.warning(
                "Relay assigned nonce %d to %s instead of reserved %d; using relay value",
                echoed,
                account,
                reserved,
            )
        key = account.lower()
        if echoed > self._confirmed.get(key, -1):
            self._confirmed[key] = echoed
        return echoed

    def last_confirmed(self, account: str) -> int | None:
        return self._confirmed.get(account.lower())

    def forget(self, account: str) -> None:
        self._confirmed.pop(account.lower(), None)
