"""
Module: inventory_ledger.selectors.stock_report
Responsibility: Read-only daily stock report for one scope: per item, the
    opening figure and where it came from, each movement total, the closing
    figure and whether it is a manual entry, and a low-stock flag.
Architecture position: Ledger > Selectors.  May import from domain/,
    engines/ and stores/base.py.  MUST NOT write to the store.

Invariants enforced:
    - Figures come from the same calculator the cascade uses, so a report
      line always agrees with what auto-save would store.
    - A manual closing stock is reported as entered, never recomputed.
    - Items are listed in name order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from inventory_ledger.domain.records import Item
from inventory_ledger.domain.values import Scope
from inventory_ledger.engines.closing_stock import OpeningSource, compute_day
from inventory_ledger.stores.base import MovementStore

CLOSING_SOURCE_MANUAL = "manual"
CLOSING_SOURCE_CALCULATED = "calculated"


@dataclass(frozen=True)
class StockReportLine:
    item: Item
    opening: Decimal
    opening_source: OpeningSource
    restocking: Decimal
    incoming: Decimal
    sales: Decimal
    waste: Decimal
    outgoing: Decimal
    closing: Decimal
    closing_source: str
    low_stock: bool


class StockReportSelector:
    """
    Builds stock report lines.

    Contract:
        ``report(day, scope)`` returns one line per item of the scope's
        organization, including items with no movements that day.

    Non-goals:
        - Does NOT persist the computed closing figures (auto-save does).
    """

    def __init__(self, store: MovementStore, default_low_stock_threshold: Decimal = Decimal("10")):
        self._store = store
        self._default_threshold = default_low_stock_threshold

    def report(self, day: date, scope: Scope) -> list[StockReportLine]:
        return [
            self.line(scope, item, day)
            for item in self._store.list_items(scope.organization_id)
        ]

    def line(self, scope: Scope, item: Item, day: date) -> StockReportLine:
        snapshot = self._store.read_day(scope, item.id, day)
        computation = compute_day(snapshot)

        if snapshot.closing is not None and snapshot.closing.is_manual:
            closing = snapshot.closing.quantity
            closing_source = CLOSING_SOURCE_MANUAL
        else:
            closing = computation.closing
            closing_source = CLOSING_SOURCE_CALCULATED

        threshold = (
            item.low_stock_threshold
            if item.low_stock_threshold is not None
            else self._default_threshold
        )
        return StockReportLine(
            item=item,
            opening=computation.opening,
            opening_source=computation.opening_source,
            restocking=computation.restocking,
            incoming=computation.incoming,
            sales=computation.sales,
            waste=computation.waste,
            outgoing=computation.outgoing,
            closing=closing,
            closing_source=closing_source,
            low_stock=closing <= threshold,
        )
