"""Ledger — durable record of batched, unclaimed withdrawals."""

from l2_bridge.ledger.ledger import ClaimLedger
from l2_bridge.ledger.models import BatchRecord
from l2_bridge.ledger.store import DatabaseStore, KeyValueStore, MemoryStore, create_store

__all__ = [
    "BatchRecord",
    "ClaimLedger",
    "DatabaseStore",
    "KeyValueStore",
    "MemoryStore",
    "create_store",
]
