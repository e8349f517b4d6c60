"""Proof poller — bounded, single-flight Merkle proof polling.

One polling task runs per ``(account, nonce)``. Starting a new poll for a
key that is already being polled cancels the old task; its caller sees a
``CANCELLED`` outcome. The attempt budget is a wait budget only: an
``EXPIRED`` outcome says nothing about the proof or the ledger record.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from l2_bridge.errors.bridge_errors import BridgeError
from l2_bridge.errors.definitions import ProofNotReady
from l2_bridge.relay.models import Proof, ProofStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from l2_bridge.config.settings import PollerConfig
    from l2_bridge.relay.client import RelayClient

logger = logging.getLogger(__name__)

PollKey = tuple[str, int]


class PollStatus(enum.StrEnum):
    """Terminal result of one polling run."""

    READY = "ready"
    ALREADY_PROCESSED = "already_processed"
    EXPIRED = "expired"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome:
    """What a polling run ended with."""

    status: PollStatus
    proof: Proof | None = None
    attempts: int = 0
    error: BridgeError | None = None

    @property
    def is_success(self) -> bool:
        """Proof obtained or withdrawal already settled."""
        return self.status in (PollStatus.READY, PollStatus.ALREADY_PROCESSED)


def _key(account: str, nonce: int) -> PollKey:
    return (account.lower(), nonce)


class ProofPoller:
    """Polls the relay for withdrawal proofs.

    Args:
        relay: Relay client used for proof lookups.
        interval: Seconds between lookups.
        max_attempts: Lookups per run before reporting ``EXPIRED``.
        on_attempt: Called with the lookup status after each lookup.
    """

    def __init__(
        self,
        relay: RelayClient,
        *,
        interval: float = 5.0,
        max_attempts: int = 60,
        on_attempt: Callable[[str], None] | None = None,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self._relay = relay
        self._interval = interval
        self._max_attempts = max_attempts
        self._on_attempt = on_attempt
        self._tasks: dict[PollKey, asyncio.Task[PollOutcome]] = {}
        self._settled: set[PollKey] = set()

    @classmethod
    def from_config(
        cls,
        relay: RelayClient,
        config: PollerConfig,
        *,
        on_attempt: Callable[[str], None] | None = None,
    ) -> ProofPoller:
        return cls(
            relay,
            interval=config.interval,
            max_attempts=config.max_attempts,
            on_attempt=on_attempt,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def poll(self, account: str, amount: int, nonce: int) -> PollOutcome:
        """Poll until the proof is available, settled, expired or failed.

        Supersedes any outstanding poll for the same key.
        """
        task = self.start(account, amount, nonce)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Proof poll for %s nonce=%d superseded", account, nonce)
            return PollOutcome(PollStatus.CANCELLED)

    def start(self, account: str, amount: int, nonce: int) -> asyncio.Task[PollOutcome]:
        """Start a polling task in the background and return it."""
        key = _key(account, nonce)
        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.create_task(
            self._run(account, amount, nonce),
            name=f"proof-poll:{key[0]}:{nonce}",
        )
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._discard(key, t))
        return task

    def cancel(self, account: str, nonce: int) -> bool:
        """Cancel the outstanding poll for ``(account, nonce)``, if any."""
        task = self._tasks.get(_key(account, nonce))
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for task in list(self._tasks.values()):
            task.cancel()

    def is_polling(self, account: str, nonce: int) -> bool:
        task = self._tasks.get(_key(account, nonce))
        return task is not None and not task.done()

    def is_settled(self, account: str, nonce: int) -> bool:
        """Whether the relay has already reported this withdrawal as processed."""
        return _key(account, nonce) in self._settled

    def forget(self, account: str, nonce: int) -> None:
        """Drop the settled marker once the withdrawal is retired."""
        self._settled.discard(_key(account, nonce))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _discard(self, key: PollKey, task: asyncio.Task[PollOutcome]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _run(self, account: str, amount: int, nonce: int) -> PollOutcome:
        key = _key(account, nonce)
        if key in self._settled:
            return PollOutcome(PollStatus.ALREADY_PROCESSED)

        for attempt in range(1, self._max_attempts + 1):
            try:
                lookup = await self._relay.get_proof(account, amount, nonce)
            except BridgeError as exc:
                logger.warning(
                    "Proof lookup for %s nonce=%d failed: %s", account, nonce, exc.message
                )
                return PollOutcome(PollStatus.FAILED, attempts=attempt, error=exc)

            if self._on_attempt is not None:
                self._on_attempt(lookup.status.value)

            if lookup.status is ProofStatus.AVAILABLE:
                logger.info("Proof available for %s nonce=%d after %d attempt(s)", account, nonce, attempt)
                return PollOutcome(PollStatus.READY, proof=lookup.proof, attempts=attempt)
            if lookup.status is ProofStatus.ALREADY_PROCESSED:
                self._settled.add(key)
                logger.info("Withdrawal %s nonce=%d already processed", account, nonce)
                return PollOutcome(PollStatus.ALREADY_PROCESSED, attempts=attempt)

            if attempt < self._max_attempts:
                await asyncio.sleep(self._interval)

        logger.warning(
            "Proof polling for %s nonce=%d expired after %d attempts",
            account,
            nonce,
            self._max_attempts,
        )
        return PollOutcome(
            PollStatus.EXPIRED,
            attempts=self._max_attempts,
            error=ProofNotReady(f"proof not available after {self._max_attempts} lookups"),
        )
