"""Read-only query selectors."""

from inventory_ledger.selectors.stock_report import StockReportLine, StockReportSelector

__all__ = ["StockReportLine", "StockReportSelector"]
