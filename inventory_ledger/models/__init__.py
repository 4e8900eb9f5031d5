"""ORM models for the SQL movement store.  Importing this package registers every table."""

from inventory_ledger.models.issuance import IssuanceModel, ReturnModel
from inventory_ledger.models.movements import (
    BranchTransferModel,
    RestockingModel,
    SaleModel,
    StockFenceModel,
    WasteSpoilageModel,
)
from inventory_ledger.models.reference import BranchModel, ItemModel
from inventory_ledger.models.stock_levels import ClosingStockModel, OpeningStockModel

__all__ = [
    "BranchModel",
    "BranchTransferModel",
    "ClosingStockModel",
    "IssuanceModel",
    "ItemModel",
    "OpeningStockModel",
    "RestockingModel",
    "ReturnModel",
    "SaleModel",
    "StockFenceModel",
    "WasteSpoilageModel",
]
