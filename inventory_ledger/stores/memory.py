"""
In-memory MovementStore.

Backs the test suite and single-process embedding.  A single re-entrant lock
makes each method behave like one database statement/transaction: that is
the atomicity a real store gives ``insert_fenced`` and the upserts, and
nothing more.  The engine itself takes no locks.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, timedelta
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
    SaleSource,
    StockFence,
    WasteSpoilageRecord,
)
from inventory_ledger.domain.values import BatchKind, BatchRef, Scope
from inventory_ledger.exceptions import DuplicateMovementError
from inventory_ledger.stores.base import AppendOnlyRecord, FencedRecord, MovementStore

_DayKey = tuple[str, str, str, date]


def _day_key(scope: Scope, item_id: str, day: date) -> _DayKey:
    return (scope.organization_id, scope.branch_key, item_id, day)


class InMemoryMovementStore(MovementStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._items: dict[str, Item] = {}
        self._branches: dict[str, Branch] = {}
        self._opening: dict[_DayKey, OpeningStockRecord] = {}
        self._closing: dict[_DayKey, ClosingStockRecord] = {}
        self._restockings: dict[UUID, RestockingRecord] = {}
        self._sales: dict[UUID, SaleRecord] = {}
        self._waste: dict[UUID, WasteSpoilageRecord] = {}
        self._transfers: dict[UUID, BranchTransferRecord] = {}
        self._issuances: dict[UUID, IssuanceRecord] = {}
        self._returns: dict[UUID, ReturnRecord] = {}
        self._fences: set[tuple[_DayKey, int]] = set()
        self._fence_heads: dict[_DayKey, int] = {}

    # -- reference data ---------------------------------------------------

    def add_item(self, item: Item) -> Item:
        with self._lock:
            self._items[item.id] = item
        return item

    def get_item(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def list_items(self, organization_id: str) -> list[Item]:
        with self._lock:
            items = [i for i in self._items.values() if i.organization_id == organization_id]
        return sorted(items, key=lambda i: (i.name, i.id))

    def add_branch(self, branch: Branch) -> Branch:
        with self._lock:
            self._branches[branch.id] = branch
        return branch

    def get_branch(self, branch_id: str) -> Branch | None:
        return self._branches.get(branch_id)

    # -- reads ------------------------------------------------------------

    def read_day(self, scope: Scope, item_id: str, day: date) -> DayMovements:
        key = _day_key(scope, item_id, day)
        with self._lock:
            fence_sequence = self._fence_heads.get(key, 0)

            def _in_day(record) -> bool:
                return (
                    record.item_id == item_id
                    and record.date == day
                    and record.scope == scope
                )

            return DayMovements(
                scope=scope,
                item_id=item_id,
                date=day,
                opening=self._opening.get(key),
                previous_closing=self._closing.get(
                    _day_key(scope, item_id, day - timedelta(days=1))
                ),
                closing=self._closing.get(key),
                restockings=tuple(r for r in self._restockings.values() if _in_day(r)),
                sales=tuple(s for s in self._sales.values() if _in_day(s)),
                waste=tuple(w for w in self._waste.values() if _in_day(w)),
                incoming_transfers=tuple(
                    t
                    for t in self._transfers.values()
                    if t.item_id == item_id
                    and t.date == day
                    and scope.contains(t.organization_id, t.to_branch_id)
                ),
                outgoing_transfers=tuple(
                    t
                    for t in self._transfers.values()
                    if t.item_id == item_id
                    and t.date == day
                    and scope.contains(t.organization_id, t.from_branch_id)
                ),
                fence_sequence=fence_sequence,
            )

    def get_opening_stock(self, opening_stock_id: UUID) -> OpeningStockRecord | None:
        with self._lock:
            for record in self._opening.values():
                if record.id == opening_stock_id:
                    return record
        return None

    def get_restocking(self, restocking_id: UUID) -> RestockingRecord | None:
        return self._restockings.get(restocking_id)

    def batch_sales(self, scope: Scope, day: date, batch: BatchRef) -> list[SaleRecord]:
        attr = (
            "restocking_id" if batch.kind == BatchKind.RESTOCKING else "opening_stock_id"
        )
        with self._lock:
            return [
                s
                for s in self._sales.values()
                if getattr(s, attr) == batch.batch_id
                and s.date == day
                and s.scope == scope
            ]

    def get_sale(self, sale_id: UUID) -> SaleRecord | None:
        return self._sales.get(sale_id)

    def get_issuance(self, issuance_id: UUID) -> IssuanceRecord | None:
        return self._issuances.get(issuance_id)

    def list_issuances(self, scope: Scope, day: date) -> list[IssuanceRecord]:
        with self._lock:
            return [
                i for i in self._issuances.values() if i.scope == scope and i.date == day
            ]

    def list_returns(self, issuance_id: UUID) -> list[ReturnRecord]:
        with self._lock:
            return [r for r in self._returns.values() if r.issuance_id == issuance_id]

    # -- writes -----------------------------------------------------------

    def _table_for(self, record) -> dict:
        if isinstance(record, RestockingRecord):
            return self._restockings
        if isinstance(record, SaleRecord):
            return self._sales
        if isinstance(record, WasteSpoilageRecord):
            return self._waste
        if isinstance(record, IssuanceRecord):
            return self._issuances
        if isinstance(record, ReturnRecord):
            return self._returns
        if isinstance(record, BranchTransferRecord):
            return self._transfers
        raise TypeError(f"Unsupported movement type: {type(record).__name__}")

    def insert_movement(self, record: AppendOnlyRecord) -> AppendOnlyRecord:
        with self._lock:
            table = self._table_for(record)
            if record.id in table:
                raise DuplicateMovementError(type(record).__name__, str(record.id))
            table[record.id] = record
        return record

    def insert_fenced(self, record: FencedRecord, fence: StockFence) -> FencedRecord:
        key = _day_key(fence.scope, fence.item_id, fence.date)
        with self._lock:
            if (key, fence.sequence) in self._fences:
                raise DuplicateMovementError(
                    "StockFence", f"{fence.scope}:{fence.item_id}:{fence.date}:{fence.sequence}"
                )
            table = self._table_for(record)
            if record.id in table:
                raise DuplicateMovementError(type(record).__name__, str(record.id))
            self._fences.add((key, fence.sequence))
            self._fence_heads[key] = max(self._fence_heads.get(key, 0), fence.sequence)
            table[record.id] = record
        return record

    def delete_sale(self, sale_id: UUID) -> SaleRecord | None:
        with self._lock:
            return self._sales.pop(sale_id, None)

    def update_issuance(self, record: IssuanceRecord) -> IssuanceRecord:
        with self._lock:
            self._issuances[record.id] = record
        return record

    def upsert_opening_stock(self, record: OpeningStockRecord) -> OpeningStockRecord:
        key = _day_key(record.scope, record.item_id, record.date)
        with self._lock:
            existing = self._opening.get(key)
            if existing is not None:
                record = replace(record, id=existing.id)
            self._opening[key] = record
        return record

    def upsert_closing_stock(self, record: ClosingStockRecord) -> ClosingStockRecord:
        key = _day_key(record.scope, record.item_id, record.date)
        with self._lock:
            existing = self._closing.get(key)
            if existing is not None:
                record = replace(record, id=existing.id)
            self._closing[key] = record
        return record

    def _find_settlement_sale(
        self, scope: Scope, item_id: str, day: date, issuance_id: UUID
    ) -> SaleRecord | None:
        for sale in self._sales.values():
            if (
                sale.source == SaleSource.ISSUANCE
                and sale.issuance_id == issuance_id
                and sale.item_id == item_id
                and sale.date == day
                and sale.scope == scope
            ):
                return sale
        return None

    def upsert_settlement_sale(self, record: SaleRecord) -> SaleRecord:
        with self._lock:
            existing = self._find_settlement_sale(
                record.scope, record.item_id, record.date, record.issuance_id
            )
            if existing is not None:
                record = replace(record, id=existing.id)
            self._sales[record.id] = record
        return record

    def delete_settlement_sale(
        self, scope: Scope, item_id: str, day: date, issuance_id: UUID
    ) -> bool:
        with self._lock:
            existing = self._find_settlement_sale(scope, item_id, day, issuance_id)
            if existing is None:
                return False
            del self._sales[existing.id]
            return True
