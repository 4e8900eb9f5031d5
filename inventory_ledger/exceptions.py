"""
Typed Exception Hierarchy for the Inventory Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (request handlers, scheduled jobs) have to map every
failure onto a response: reject the input, report missing data, tell the user
the stock ran out, or ask them to refresh and retry. Parsing message strings
for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (quantities, ids, dates)

Example:
    try:
        ledger.record_sale(scope, item_id, day, Decimal("5"))
    except StockConflictError as e:
        api_response(409, code=e.code, available_stock=e.available_stock)
    except InsufficientStockError as e:
        api_response(400, code=e.code, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryLedgerError (base)
    |
    +-- LedgerValidationError
    |   +-- FutureDateError
    |   +-- OwnershipMismatchError
    |   +-- ReturnExceedsIssuanceError
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- BranchNotFoundError
    |   +-- BatchNotFoundError
    |   +-- IssuanceNotFoundError
    |   +-- SaleNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- StockConflictError
    |   +-- DuplicateMovementError
    |   +-- RetryExhaustedError
    |
    +-- PropagationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|-------------------------------------------
Validation    | VALIDATION_ERROR         | Bad/missing input, non-positive quantity
              | FUTURE_DATE              | Movement dated after the clock's today
              | OWNERSHIP_MISMATCH       | Record belongs to another org/branch
              | RETURN_EXCEEDS_ISSUANCE  | Return larger than the open issuance
--------------|--------------------------|-------------------------------------------
Not found     | ITEM_NOT_FOUND           | Item id unknown
              | BRANCH_NOT_FOUND         | Branch id unknown
              | BATCH_NOT_FOUND          | restocking_id / opening_stock_id unknown
              | ISSUANCE_NOT_FOUND       | Issuance id unknown
              | SALE_NOT_FOUND           | Sale id unknown
--------------|--------------------------|-------------------------------------------
Stock         | INSUFFICIENT_STOCK       | First availability read is short
--------------|--------------------------|-------------------------------------------
Concurrency   | STOCK_CONFLICT           | Fresh re-check before commit is short
              | DUPLICATE_MOVEMENT       | Store uniqueness constraint violated
              | RETRY_EXHAUSTED          | Uniqueness conflicts outlasted the budget
--------------|--------------------------|-------------------------------------------
Propagation   | PROPAGATION_FAILED       | Forward walk halted (never surfaced)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ConcurrencyError means "state changed, refresh and retry". It is never a
   transient infrastructure fault.
2. InsufficientStockError is a business-rule rejection based on one fresh read.
3. PropagationError is caught by the propagation handler and logged. A later
   propagation run repairs the ledger because every step is an upsert.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal


class InventoryLedgerError(Exception):
    """
    Base exception for all inventory ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_LEDGER_ERROR"


# Validation exceptions


class LedgerValidationError(InventoryLedgerError):
    """Input rejected before any store access."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class FutureDateError(LedgerValidationError):
    """Movement references a date after the server's today."""

    code: str = "FUTURE_DATE"

    def __init__(self, movement_date: date, today: date):
        self.movement_date = movement_date
        self.today = today
        super().__init__(
            f"Date {movement_date.isoformat()} is in the future "
            f"(today is {today.isoformat()})",
            field="date",
        )


class OwnershipMismatchError(LedgerValidationError):
    """A referenced record belongs to another organization or branch."""

    code: str = "OWNERSHIP_MISMATCH"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} {reason}")


class ReturnExceedsIssuanceError(LedgerValidationError):
    """Return quantity larger than the issuance's open balance."""

    code: str = "RETURN_EXCEEDS_ISSUANCE"

    def __init__(self, issuance_id: str, requested: Decimal, returnable: Decimal):
        self.issuance_id = issuance_id
        self.requested = requested
        self.returnable = returnable
        super().__init__(
            f"Cannot return {requested} against issuance {issuance_id}. "
            f"Available to return: {returnable}"
        )


# Not-found exceptions


class NotFoundError(InventoryLedgerError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "record"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"
    entity_type: str = "Item"


class BranchNotFoundError(NotFoundError):
    code: str = "BRANCH_NOT_FOUND"
    entity_type: str = "Branch"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"
    entity_type: str = "Batch"


class IssuanceNotFoundError(NotFoundError):
    code: str = "ISSUANCE_NOT_FOUND"
    entity_type: str = "Issuance"


class SaleNotFoundError(NotFoundError):
    code: str = "SALE_NOT_FOUND"
    entity_type: str = "Sale"


# Stock exceptions


class InsufficientStockError(InventoryLedgerError):
    """Requested quantity exceeds the available stock on the first read."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        requested: Decimal,
        available: Decimal,
        derivation: str = "",
    ):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        self.derivation = derivation
        detail = f" ({derivation})" if derivation else ""
        super().__init__(
            f"Cannot consume {requested} of item {item_id}. "
            f"Available stock: {available}{detail}"
        )


# Concurrency exceptions


class ConcurrencyError(InventoryLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StockConflictError(ConcurrencyError):
    """The re-check immediately before commit found the margin gone."""

    code: str = "STOCK_CONFLICT"

    def __init__(self, item_id: str, requested: Decimal, available_stock: Decimal):
        self.item_id = item_id
        self.requested = requested
        self.available_stock = available_stock
        super().__init__(
            f"Stock changed. Available stock is now {available_stock}. "
            "Please refresh and try again."
        )


class DuplicateMovementError(ConcurrencyError):
    """The store rejected a write on a uniqueness constraint."""

    code: str = "DUPLICATE_MOVEMENT"

    def __init__(self, entity_type: str, key: str):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"Duplicate {entity_type} for key {key}")


class RetryExhaustedError(ConcurrencyError):
    """Uniqueness conflicts persisted through the whole retry budget."""

    code: str = "RETRY_EXHAUSTED"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Failed to {operation} after {attempts} attempts. Please try again."
        )


# Propagation exceptions


class PropagationError(InventoryLedgerError):
    """Forward recomputation halted part-way through the walk."""

    code: str = "PROPAGATION_FAILED"

    def __init__(self, item_id: str, failed_on: date, reason: str):
        self.item_id = item_id
        self.failed_on = failed_on
        self.reason = reason
        super().__init__(
            f"Propagation for item {item_id} halted on "
            f"{failed_on.isoformat()}: {reason}"
        )
