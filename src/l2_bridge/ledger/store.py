"""Durable key-value stores backing the claim ledger.

The ledger needs only whole-value reads and writes under a single key, so
any embedded or file-backed store satisfies the contract.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import delete

from l2_bridge.config.settings import LedgerBackend
from l2_bridge.datastore.models import KeyValueEntry

if TYPE_CHECKING:
    from l2_bridge.config.settings import LedgerConfig
    from l2_bridge.datastore.client import Datastore

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Protocol for durable key-value backends."""

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:  # noqa: ASYNC910
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:  # noqa: ASYNC910
        self._data[key] = value

    async def delete(self, key: str) -> None:  # noqa: ASYNC910
        self._data.pop(key, None)


class DatabaseStore:
    """Store backed by the ``kv_store`` table.

    Each ``set`` is a single-row upsert in its own transaction, so a
    crash leaves either the previous or the new value, never a mix.
    """

    def __init__(self, datastore: Datastore) -> None:
        self._datastore = datastore

    async def get(self, key: str) -> str | None:
        async with self._datastore.session() as session:
            entry = await session.get(KeyValueEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: str) -> None:
        async with self._datastore.session() as session, session.begin():
            await session.merge(KeyValueEntry(namespace=key, value=value))

    async def delete(self, key: str) -> None:
        async with self._datastore.session() as session, session.begin():
            await session.execute(delete(KeyValueEntry).where(KeyValueEntry.namespace == key))


def create_store(config: LedgerConfig, datastore: Datastore | None = None) -> KeyValueStore:
    """Build the store selected by ``config.backend``.

    Raises:
        ValueError: Database backend requested without a datastore.
    """
    if config.backend is LedgerBackend.MEMORY:
        logger.warning("Claim ledger is memory-backed; batched withdrawals will not survive a restart")
        return MemoryStore()
    if datastore is None:
        msg = "database ledger backend requires an open datastore"
        raise ValueError(msg)
    return DatabaseStore(datastore)
