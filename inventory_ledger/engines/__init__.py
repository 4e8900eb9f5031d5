"""Pure calculation engines. No I/O, no store access."""

from inventory_ledger.engines.closing_stock import (
    OpeningSource,
    StockComputation,
    batch_availability,
    calculate_closing_stock,
    compute_day,
    resolve_opening,
)

__all__ = [
    "OpeningSource",
    "StockComputation",
    "batch_availability",
    "calculate_closing_stock",
    "compute_day",
    "resolve_opening",
]
