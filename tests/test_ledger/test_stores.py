"""Tests for the ledger key-value stores."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from l2_bridge.config.settings import DatabaseConfig, LedgerBackend, LedgerConfig
from l2_bridge.datastore.client import Datastore
from l2_bridge.ledger.ledger import ClaimLedger
from l2_bridge.ledger.models import BatchRecord
from l2_bridge.ledger.store import DatabaseStore, MemoryStore, create_store

if TYPE_CHECKING:
    from pathlib import Path

ALICE = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _db_config(tmp_path: Path) -> DatabaseConfig:
    return DatabaseConfig(dsn=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")


class TestMemoryStore:
    async def test_get_set_delete(self):
        store = MemoryStore()
        assert await store.get("k") is None
        await store.set("k", "v")
        assert await store.get("k") == "v"
        await store.delete("k")
        assert await store.get("k") is None


class TestDatabaseStore:
    async def test_get_set_overwrite_delete(self, tmp_path):
        ds = Datastore(_db_config(tmp_path))
        await ds.open()
        try:
            store = DatabaseStore(ds)
            assert await store.get("k") is None
            await store.set("k", "one")
            await store.set("k", "two")
            assert await store.get("k") == "two"
            await store.delete("k")
            assert await store.get("k") is None
        finally:
            await ds.close()

    async def test_ledger_survives_restart(self, tmp_path):
        ds = Datastore(_db_config(tmp_path))
        await ds.open()
        await ClaimLedger(DatabaseStore(ds)).record(
            BatchRecord(account=ALICE, amount=5, nonce=7, batch_id=42)
        )
        await ds.close()

        reopened = Datastore(_db_config(tmp_path))
        await reopened.open()
        try:
            records = await ClaimLedger(DatabaseStore(reopened)).list_for(ALICE)
            assert [(r.nonce, r.batch_id, r.amount) for r in records] == [(7, 42, 5)]
        finally:
            await reopened.close()


class TestCreateStore:
    def test_memory(self):
        assert isinstance(create_store(LedgerConfig(backend=LedgerBackend.MEMORY)), MemoryStore)

    def test_database_requires_datastore(self):
        with pytest.raises(ValueError, match="datastore"):
            create_store(LedgerConfig(backend=LedgerBackend.DATABASE))

    def test_database(self, tmp_path):
        store = create_store(LedgerConfig(), Datastore(_db_config(tmp_path)))
        assert isinstance(store, DatabaseStore)


class TestDatastore:
    def test_closed_session_raises(self, tmp_path):
        with pytest.raises(RuntimeError, match="not open"):
            Datastore(_db_config(tmp_path)).session()

    async def test_open_close(self, tmp_path):
        ds = Datastore(_db_config(tmp_path))
        assert not ds.is_open
        await ds.open()
        assert ds.is_open
        await ds.close()
        assert not ds.is_open
