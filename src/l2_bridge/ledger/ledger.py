"""Durable claim ledger — the recovery root for batched withdrawals.

The ledger holds one :class:`BatchRecord` per ``(account, nonce)`` that has
been batched by the relay but not yet claimed on L1. All records live as a
single JSON list under a fixed namespace key; every mutation is one
read-modify-write under a lock followed by one store write.

A record leaves the ledger only through :meth:`ClaimLedger.remove`, called
after a successful claim or a confirmed "already processed" answer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from l2_bridge.errors.definitions import LedgerCorrupted, ValidationError
from l2_bridge.ledger.models import BatchRecord, now_ms
from l2_bridge.utils.units import normalize_address, parse_amount, validate_tx_hash

if TYPE_CHECKING:
    from collections.abc import Callable

    from l2_bridge.ledger.store import KeyValueStore

logger = logging.getLogger(__name__)


class ClaimLedger:
    """Persisted ``(account, nonce) -> BatchRecord`` map."""

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str = "l2bridge_batched_withdrawals",
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def namespace(self) -> str:
        return self._namespace

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def record(self, record: BatchRecord) -> BatchRecord:
        """Insert or overwrite the record for ``record.key``.

        The capture time is always refreshed.

        Returns:
            The stored record.
        """
        stored = record.touched(self._clock())
        async with self._lock:
            records = await self._load()
            records[stored.key] = stored
            await self._save(records)
        logger.info(
            "Ledger recorded %s nonce=%d batch=%d", stored.account, stored.nonce, stored.batch_id
        )
        return stored

    async def record_many(self, records: list[BatchRecord]) -> list[BatchRecord]:
        """Upsert several records in one store write."""
        at = self._clock()
        stored = [r.touched(at) for r in records]
        if not stored:
            return []
        async with self._lock:
            current = await self._load()
            current.update((r.key, r) for r in stored)
            await self._save(current)
        logger.info("Ledger recorded %d batched withdrawal(s)", len(stored))
        return stored

    async def remove(self, account: str, nonce: int) -> bool:
        """Delete the record for ``(account, nonce)``.

        Returns:
            ``True`` if a record was removed.
        """
        key = (account.lower(), nonce)
        async with self._lock:
            records = await self._load()
            if key not in records:
                return False
            del records[key]
            await self._save(records)
        logger.info("Ledger retired %s nonce=%d", account, nonce)
        return True

    async def recover(
        self,
        account: str,
        amount: int,
        nonce: int,
        batch_id: int,
        tx_hash: str | None = None,
    ) -> BatchRecord:
        """Manually insert a record for a withdrawal known to be batched.

        Operator entry point for when the batch confirmation was missed.

        Raises:
            ValidationError: Malformed account, amount, nonce, batch id or
                transaction hash.
        """
        try:
            nonce, batch_id = int(nonce), int(batch_id)
        except (TypeError, ValueError) as exc:
            msg = "nonce and batch id must be integers"
            raise ValidationError(msg) from exc
        if nonce < 0 or batch_id < 0:
            msg = "nonce and batch id must be non-negative"
            raise ValidationError(msg)
        record = BatchRecord(
            account=normalize_address(account),
            amount=parse_amount(amount),
            nonce=nonce,
            batch_id=batch_id,
            tx_hash=validate_tx_hash(tx_hash) if tx_hash else None,
        )
        logger.info("Manual ledger recovery for %s nonce=%d", record.account, record.nonce)
        return await self.record(record)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_for(self, account: str) -> list[BatchRecord]:
        """Records for *account*, ordered by nonce."""
        wanted = account.lower()
        records = await self._load()
        return sorted(
            (r for k, r in records.items() if k[0] == wanted),
            key=lambda r: r.nonce,
        )

    async def list_all(self) -> list[BatchRecord]:
        records = await self._load()
        return sorted(records.values(), key=lambda r: (r.account.lower(), r.nonce))

    async def get(self, account: str, nonce: int) -> BatchRecord | None:
        records = await self._load()
        return records.get((account.lower(), nonce))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _load(self) -> dict[tuple[str, int], BatchRecord]:
        raw = await self._store.get(self._namespace)
        if not raw:
            return {}
        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                msg = "ledger payload is not a list"
                raise TypeError(msg)
            parsed = [BatchRecord.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerCorrupted(f"cannot decode ledger {self._namespace!r}: {exc}") from exc
        # Later duplicates win, matching upsert semantics
        return {r.key: r for r in parsed}

    async def _save(self, records: dict[tuple[str, int], BatchRecord]) -> None:
        payload = json.dumps([r.to_dict() for r in records.values()], separators=(",", ":"))
        await self._store.set(self._namespace, payload)
