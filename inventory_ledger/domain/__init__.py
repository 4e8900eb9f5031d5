"""
Pure domain layer.

Value objects, ledger records and events with NO dependencies on
SQLAlchemy, the database or I/O.  All domain objects are immutable.
"""

from inventory_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_ledger.domain.events import MovementCommitted, MovementKind
from inventory_ledger.domain.records import (
    Branch,
    BranchTransferRecord,
    ClosingStock,
    ClosingStockRecord,
    ComputedClosingStock,
    DayMovements,
    EntryMode,
    IssuanceRecord,
    Item,
    ManualClosingStock,
    OpeningStockRecord,
    RestockingRecord,
    ReturnRecord,
    SaleRecord,
    SaleSource,
    StockFence,
    WasteKind,
    WasteSpoilageRecord,
)
from inventory_ledger.domain.values import BatchKind, BatchRef, Scope

__all__ = [
    "BatchKind",
    "BatchRef",
    "Branch",
    "BranchTransferRecord",
    "Clock",
    "ClosingStock",
    "ClosingStockRecord",
    "ComputedClosingStock",
    "DayMovements",
    "DeterministicClock",
    "EntryMode",
    "IssuanceRecord",
    "Item",
    "ManualClosingStock",
    "MovementCommitted",
    "MovementKind",
    "OpeningStockRecord",
    "RestockingRecord",
    "ReturnRecord",
    "SaleRecord",
    "SaleSource",
    "Scope",
    "StockFence",
    "SystemClock",
    "WasteKind",
    "WasteSpoilageRecord",
]
