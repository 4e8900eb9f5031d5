"""Movement stores: the repository boundary between the ledger engine and storage."""

from inventory_ledger.stores.base import AppendOnlyRecord, FencedRecord, MovementStore
from inventory_ledger.stores.memory import InMemoryMovementStore
from inventory_ledger.stores.sql import SqlMovementStore

__all__ = [
    "AppendOnlyRecord",
    "FencedRecord",
    "InMemoryMovementStore",
    "MovementStore",
    "SqlMovementStore",
]
