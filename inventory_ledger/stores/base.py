"""
Module: inventory_ledger.stores.base
Responsibility: The narrow repository interface through which the ledger
    engine reads and writes movements.  The engine owns no storage; every
    service receives a ``MovementStore`` by constructor injection.
Architecture position: Ledger > Stores.  May import from domain/ and
    exceptions only.  Implementations live beside this module (in-memory for
    tests and embedding, SQLAlchemy for a relational database).

Invariants every implementation must honor:
    - Scope equality is exact.  A ``Scope`` whose branch is ``None`` matches
      only records whose branch is ``None``.
    - ``read_day`` reads the fence sequence BEFORE the movements, so any
      fenced movement with a sequence at or below the returned
      ``fence_sequence`` is visible in the same snapshot.
    - ``insert_fenced`` writes the fence and the movement atomically and
      raises ``DuplicateMovementError`` if the fence already exists.  This
      uniqueness constraint is the only mutual exclusion the engine relies on.
    - ``upsert_closing_stock`` / ``upsert_opening_stock`` are keyed on
      (item_id, date, organization_id, branch).  Replacing a row keeps its id.
    - ``upsert_settlement_sale`` is keyed on
      (item_id, date, organization_id, branch, issuance_id).

Failure modes:
    - DuplicateMovementError on any uniqueness violation.
    - Implementation-specific I/O errors propagate unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from uuid import UUID

from inventory_ledger.domain.records import (
    Branch,
    BranchTransferRecord,
    ClosingStockRecord,
    DayMovements,
    IssuanceRecord,
    Item,
    OpeningStockRecord,
    RestockingRecord,
    ReturnRecord,
    SaleRecord,
    StockFence,
    WasteSpoilageRecord,
)
from inventory_ledger.domain.values import BatchRef, Scope

AppendOnlyRecord = (
    RestockingRecord | SaleRecord | WasteSpoilageRecord | IssuanceRecord | ReturnRecord
)
FencedRecord = SaleRecord | BranchTransferRecord


class MovementStore(ABC):
    """
    Capability set the ledger needs from persistent storage.

    Contract:
        Each method is one blocking round trip.  No method spans more than
        one logical transaction; the engine assumes no multi-call atomicity.

    Non-goals:
        - Does NOT compute stock levels; that is the engines' job.
        - Does NOT validate business rules (positive quantities, dates).
    """

    # -- reference data ---------------------------------------------------

    @abstractmethod
    def add_item(self, item: Item) -> Item: ...

    @abstractmethod
    def get_item(self, item_id: str) -> Item | None: ...

    @abstractmethod
    def list_items(self, organization_id: str) -> list[Item]: ...

    @abstractmethod
    def add_branch(self, branch: Branch) -> Branch: ...

    @abstractmethod
    def get_branch(self, branch_id: str) -> Branch | None: ...

    # -- reads ------------------------------------------------------------

    @abstractmethod
    def read_day(self, scope: Scope, item_id: str, day: date) -> DayMovements:
        """Every movement for one item in one scope on one day."""

    @abstractmethod
    def get_opening_stock(self, opening_stock_id: UUID) -> OpeningStockRecord | None: ...

    @abstractmethod
    def get_restocking(self, restocking_id: UUID) -> RestockingRecord | None: ...

    @abstractmethod
    def batch_sales(self, scope: Scope, day: date, batch: BatchRef) -> list[SaleRecord]:
        """Sales linked to ``batch`` in ``scope`` on ``day``."""

    @abstractmethod
    def get_sale(self, sale_id: UUID) -> SaleRecord | None: ...

    @abstractmethod
    def get_issuance(self, issuance_id: UUID) -> IssuanceRecord | None: ...

    @abstractmethod
    def list_issuances(self, scope: Scope, day: date) -> list[IssuanceRecord]: ...

    @abstractmethod
    def list_returns(self, issuance_id: UUID) -> list[ReturnRecord]: ...

    # -- writes -----------------------------------------------------------

    @abstractmethod
    def insert_movement(self, record: AppendOnlyRecord) -> AppendOnlyRecord:
        """Append an unfenced movement."""

    @abstractmethod
    def insert_fenced(self, record: FencedRecord, fence: StockFence) -> FencedRecord:
        """Atomically claim ``fence`` and append ``record``."""

    @abstractmethod
    def delete_sale(self, sale_id: UUID) -> SaleRecord | None:
        """Remove a sale; returns the removed record, or None if absent."""

    @abstractmethod
    def update_issuance(self, record: IssuanceRecord) -> IssuanceRecord: ...

    @abstractmethod
    def upsert_opening_stock(self, record: OpeningStockRecord) -> OpeningStockRecord: ...

    @abstractmethod
    def upsert_closing_stock(self, record: ClosingStockRecord) -> ClosingStockRecord: ...

    @abstractmethod
    def upsert_settlement_sale(self, record: SaleRecord) -> SaleRecord: ...

    @abstractmethod
    def delete_settlement_sale(
        self, scope: Scope, item_id: str, day: date, issuance_id: UUID
    ) -> bool:
        """Remove the derived sale for an issuance; True if one existed."""
