"""
Values -- Immutable, self-validating ledger value objects.

Responsibility:
    Provides ``Scope`` (the organization/branch key every ledger computation
    is partitioned by), ``BatchRef`` (a named batch a sale draws from) and the
    quantity/date coercion helpers used at every input boundary.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A missing branch is its own scope.  ``Scope("org", None)`` never equals
      ``Scope("org", "b1")``, and stores key it with ``branch_key == ""``.
    - Quantities are ``Decimal``; floats are converted through ``str`` so
      ``0.1`` stays ``0.1``.

Failure modes:
    - LedgerValidationError on empty organization ids, non-numeric or
      non-finite quantities, and non-positive quantities where positivity is
      required.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from inventory_ledger.exceptions import FutureDateError, LedgerValidationError

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class Scope:
    """
    Organization/branch partition of the ledger.

    Contract:
        Two scopes are equal only when both organization and branch match
        exactly; ``branch_id=None`` is the organization-wide (no-branch) scope,
        never a wildcard.

    Guarantees:
        - Immutable and hashable.
        - An empty-string branch is normalized to ``None``.
    """

    organization_id: str
    branch_id: str | None = None

    def __post_init__(self) -> None:
        if not self.organization_id:
            raise LedgerValidationError(
                "organization_id is required", field="organization_id"
            )
        if self.branch_id == "":
            object.__setattr__(self, "branch_id", None)

    @property
    def branch_key(self) -> str:
        """Non-null key for uniqueness constraints."""
        return self.branch_id or ""

    def with_branch(self, branch_id: str | None) -> Scope:
        return Scope(self.organization_id, branch_id)

    def contains(self, organization_id: str | None, branch_id: str | None) -> bool:
        """True when a record keyed by (organization_id, branch_id) is in this scope."""
        return (
            organization_id == self.organization_id
            and (branch_id or None) == self.branch_id
        )

    def __str__(self) -> str:
        return f"{self.organization_id}/{self.branch_id or '*'}"


class BatchKind(str, Enum):
    RESTOCKING = "restocking"
    OPENING_STOCK = "opening_stock"


@dataclass(frozen=True, slots=True)
class BatchRef:
    """A specific restocking delivery or opening-stock record a sale draws from."""

    kind: BatchKind
    batch_id: UUID

    @classmethod
    def restocking(cls, batch_id: UUID) -> BatchRef:
        return cls(BatchKind.RESTOCKING, batch_id)

    @classmethod
    def opening_stock(cls, batch_id: UUID) -> BatchRef:
        return cls(BatchKind.OPENING_STOCK, batch_id)

    @classmethod
    def from_ids(
        cls,
        restocking_id: UUID | None = None,
        opening_stock_id: UUID | None = None,
    ) -> BatchRef | None:
        """Build from the two optional request fields; both at once is invalid."""
        if restocking_id and opening_stock_id:
            raise LedgerValidationError(
                "Cannot specify both restocking_id and opening_stock_id",
                field="batch",
            )
        if restocking_id:
            return cls.restocking(restocking_id)
        if opening_stock_id:
            return cls.opening_stock(opening_stock_id)
        return None


def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Coerce a raw input to a finite Decimal."""
    if isinstance(value, bool) or value is None:
        raise LedgerValidationError(f"Invalid {field}: {value!r}", field=field)
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise LedgerValidationError(f"Invalid {field}: {value!r}", field=field)
    if not quantity.is_finite():
        raise LedgerValidationError(f"Invalid {field}: {value!r}", field=field)
    return quantity


def positive_quantity(value: Any, field: str = "quantity") -> Decimal:
    quantity = to_quantity(value, field)
    if quantity <= ZERO:
        raise LedgerValidationError(
            f"Invalid {field}. Must be a positive number.", field=field
        )
    return quantity


def non_negative_quantity(value: Any, field: str = "quantity") -> Decimal:
    quantity = to_quantity(value, field)
    if quantity < ZERO:
        raise LedgerValidationError(
            f"Invalid {field}. Must be a non-negative number.", field=field
        )
    return quantity


def to_day(value: date | datetime | str, field: str = "date") -> date:
    """Normalize to a calendar day; time-of-day is discarded."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        raw = value.split("T")[0].strip()
        try:
            return date.fromisoformat(raw)
        except ValueError:
            raise LedgerValidationError(f"Invalid {field}: {value!r}", field=field)
    raise LedgerValidationError(f"Invalid {field}: {value!r}", field=field)


def ensure_not_future(day: date, today: date) -> None:
    if day > today:
        raise FutureDateError(day, today)
