"""
Closing Stock Engine.

Pure functions with deterministic behavior. No I/O.

Turns one day's movements for one item in one scope into a closing-stock
quantity and a human-readable derivation trace:

    opening  = opening-stock record for the day
               else previous day's closing stock
               else 0
    net      = opening + restocking + incoming transfers
               - sales - waste/spoilage - outgoing transfers
    closing  = max(0, net)

The same arithmetic, left unclamped, is the availability figure the
concurrency controller checks a consuming write against.

Usage:
    from inventory_ledger.engines.closing_stock import calculate_closing_stock

    result = calculate_closing_stock(
        opening_quantity=Decimal("100"),
        restocking=(Decimal("20"),),
        sales=(Decimal("30"),),
        waste=(Decimal("5"),),
    )
    assert result.closing == Decimal("85")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from inventory_ledger.domain.records import DayMovements, SaleRecord
from inventory_ledger.domain.values import ZERO, BatchKind
from inventory_ledger.engines.tracer import traced_engine


class OpeningSource(str, Enum):
    """Where the opening figure of a computation came from."""

    OPENING_STOCK = "opening_stock"
    PREVIOUS_CLOSING = "previous_closing_stock"
    NONE = "none"


@dataclass(frozen=True)
class StockComputation:
    """
    Result of one closing-stock calculation.

    Attributes:
        opening: Resolved opening quantity
        opening_source: Which record the opening came from
        restocking: Sum of restocking deliveries
        incoming: Sum of transfers into the scope
        sales: Sum of sales (manual and issuance-derived)
        waste: Sum of waste and spoilage
        outgoing: Sum of transfers out of the scope
    """

    opening: Decimal
    opening_source: OpeningSource
    restocking: Decimal = ZERO
    incoming: Decimal = ZERO
    sales: Decimal = ZERO
    waste: Decimal = ZERO
    outgoing: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        """Unclamped stock on hand; negative means the day is oversold."""
        return (
            self.opening
            + self.restocking
            + self.incoming
            - self.sales
            - self.waste
            - self.outgoing
        )

    @property
    def closing(self) -> Decimal:
        return max(ZERO, self.net)

    @property
    def derivation(self) -> str:
        return (
            f"Auto-calculated: Opening ({self.opening}) + Restocking ({self.restocking}) "
            f"+ IncomingTransfers ({self.incoming}) - Sales ({self.sales}) "
            f"- Waste/Spoilage ({self.waste}) - OutgoingTransfers ({self.outgoing})"
        )


def _total(quantities: Iterable[Decimal]) -> Decimal:
    return sum(quantities, ZERO)


def resolve_opening(
    opening_quantity: Decimal | None,
    previous_closing_quantity: Decimal | None,
) -> tuple[Decimal, OpeningSource]:
    """Opening-stock record first, then yesterday's closing, then zero."""
    if opening_quantity is not None:
        return opening_quantity, OpeningSource.OPENING_STOCK
    if previous_closing_quantity is not None:
        return previous_closing_quantity, OpeningSource.PREVIOUS_CLOSING
    return ZERO, OpeningSource.NONE


@traced_engine(
    "closing_stock",
    "1.0",
    fingerprint_fields=(
        "opening_quantity",
        "previous_closing_quantity",
        "restocking",
        "incoming",
        "sales",
        "waste",
        "outgoing",
    ),
)
def calculate_closing_stock(
    *,
    opening_quantity: Decimal | None = None,
    previous_closing_quantity: Decimal | None = None,
    restocking: Iterable[Decimal] = (),
    incoming: Iterable[Decimal] = (),
    sales: Iterable[Decimal] = (),
    waste: Iterable[Decimal] = (),
    outgoing: Iterable[Decimal] = (),
) -> StockComputation:
    """
    Compute closing stock for one item/scope/day.

    Pure function - no side effects, no I/O, deterministic output.
    """
    opening, source = resolve_opening(opening_quantity, previous_closing_quantity)
    return StockComputation(
        opening=opening,
        opening_source=source,
        restocking=_total(restocking),
        incoming=_total(incoming),
        sales=_total(sales),
        waste=_total(waste),
        outgoing=_total(outgoing),
    )


def compute_day(day: DayMovements) -> StockComputation:
    """Run the calculator over a store snapshot."""
    return calculate_closing_stock(
        opening_quantity=day.opening.quantity if day.opening else None,
        previous_closing_quantity=(
            day.previous_closing.quantity if day.previous_closing else None
        ),
        restocking=tuple(r.quantity for r in day.restockings),
        incoming=tuple(t.quantity for t in day.incoming_transfers),
        sales=tuple(s.quantity for s in day.sales),
        waste=tuple(w.quantity for w in day.waste),
        outgoing=tuple(t.quantity for t in day.outgoing_transfers),
    )


def batch_availability(
    kind: BatchKind,
    batch_quantity: Decimal,
    sales_from_batch: Iterable[SaleRecord],
) -> Decimal:
    """
    Stock left in one named batch on one day.

    A restocking batch never reports below zero; an opening-stock batch
    reports its raw balance so an oversold batch stays visible.
    """
    remaining = batch_quantity - _total(s.quantity for s in sales_from_batch)
    if kind == BatchKind.RESTOCKING:
        return max(ZERO, remaining)
    return remaining
