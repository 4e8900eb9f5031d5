"""
Records -- Immutable ledger entities as seen by the engine.

Responsibility:
    Frozen dataclasses for every record the engine reads from or writes to a
    ``MovementStore``.  Stores translate their own persistence format to and
    from these types; the engine never sees ORM instances.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Closing stock is a tagged variant: ``ManualClosingStock`` is a sentinel
      that recomputation never overwrites, ``ComputedClosingStock`` carries
      the derivation trace that produced it.
    - Opening stock records an ``entry_mode`` so that a manual entry is
      never replaced by a cascade-derived value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Union
from uuid import UUID, uuid4

from inventory_ledger.domain.values import ZERO, Scope


class EntryMode(str, Enum):
    """How a stock level record came to exist."""

    MANUAL = "manual"
    CASCADE = "cascade"
    COMPUTED = "computed"


class SaleSource(str, Enum):
    MANUAL = "manual"
    ISSUANCE = "issuance"


class WasteKind(str, Enum):
    WASTE = "waste"
    SPOILAGE = "spoilage"


@dataclass(frozen=True)
class Item:
    id: str
    organization_id: str
    name: str
    unit: str = "unit"
    cost_price: Decimal = ZERO
    selling_price: Decimal = ZERO
    low_stock_threshold: Decimal | None = None


@dataclass(frozen=True)
class Branch:
    id: str
    organization_id: str
    name: str = ""


@dataclass(frozen=True)
class OpeningStockRecord:
    scope: Scope
    item_id: str
    date: date
    quantity: Decimal
    entry_mode: EntryMode = EntryMode.MANUAL
    recorded_by: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_manual(self) -> bool:
        return self.entry_mode == EntryMode.MANUAL


@dataclass(frozen=True)
class ManualClosingStock:
    """User-entered closing stock; blocks automatic recomputation."""

    quantity: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class ComputedClosingStock:
    """Closing stock produced by the calculator."""

    quantity: Decimal
    derivation: str


ClosingStock = Union[ManualClosingStock, ComputedClosingStock]


@dataclass(frozen=True)
class ClosingStockRecord:
    scope: Scope
    item_id: str
    date: date
    value: ClosingStock
    recorded_by: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def quantity(self) -> Decimal:
        return self.value.quantity

    @property
    def is_manual(self) -> bool:
        return isinstance(self.value, ManualClosingStock)

    @property
    def entry_mode(self) -> EntryMode:
        return EntryMode.MANUAL if self.is_manual else EntryMode.COMPUTED

    @property
    def notes(self) -> str | None:
        if isinstance(self.value, ComputedClosingStock):
            return self.value.derivation
        return self.value.notes


@dataclass(frozen=True)
class RestockingRecord:
    scope: Scope
    item_id: str
    date: date
    quantity: Decimal
    cost_price: Decimal | None = None
    notes: str | None = None
    recorded_by: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class SaleRecord:
    scope: Scope
    item_id: str
    date: date
    quantity: Decimal
    price_per_unit: Decimal = ZERO
    total_price: Decimal = ZERO
    payment_mode: str = "cash"
    source: SaleSource = SaleSource.MANUAL
    restocking_id: UUID | None = None
    opening_stock_id: UUID | None = None
    issuance_id: UUID | None = None
    batch_label: str | None = None
    description: str | None = None
    recorded_by: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class WasteSpoilageRecord:
    scope: Scope
    item_id: str
    date: date
    quantity: Decimal
    kind: WasteKind = WasteKind.WASTE
    reason: str | None = None
    notes: str | None = None
    recorded_by: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class BranchTransferRecord:
    """Outbound at ``from_branch_id``, inbound at ``to_branch_id``."""

    organization_id: str
    item_id: str
    date: date
    quantity: Decimal
    from_branch_id: str
    to_branch_id: str
    notes: str | None = None
    performed_by: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class IssuanceRecord:
    scope: Scope
    item_id: str
    staff_id: str
    date: date
    quantity: Decimal
    shift: str | None = None
    notes: str | None = None
    issued_by: str | None = None
    confirmed_at: datetime | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class ReturnRecord:
    issuance_id: UUID
    scope: Scope
    item_id: str
    staff_id: str
    date: date
    quantity: Decimal
    reason: str | None = None
    notes: str | None = None
    returned_to: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class StockFence:
    """
    Uniqueness token for a stock-consuming write.

    ``sequence`` is the fence value observed at re-check time plus one.  A
    store must reject a second fence with the same
    (scope, item_id, date, sequence) and must write the fence and its
    movement atomically.
    """

    scope: Scope
    item_id: str
    date: date
    sequence: int


@dataclass(frozen=True)
class DayMovements:
    """
    Every movement touching one item in one scope on one day.

    Read from the store in one call so the calculator and the availability
    check work from the same snapshot.
    """

    scope: Scope
    item_id: str
    date: date
    opening: OpeningStockRecord | None = None
    previous_closing: ClosingStockRecord | None = None
    closing: ClosingStockRecord | None = None
    restockings: tuple[RestockingRecord, ...] = ()
    sales: tuple[SaleRecord, ...] = ()
    waste: tuple[WasteSpoilageRecord, ...] = ()
    incoming_transfers: tuple[BranchTransferRecord, ...] = ()
    outgoing_transfers: tuple[BranchTransferRecord, ...] = ()
    fence_sequence: int = 0
