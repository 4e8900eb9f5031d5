"""
AvailabilityController -- compute-then-verify-then-commit for consuming writes.

Responsibility:
    Guards every stock-consuming write (manual sale, batch-linked sale,
    branch transfer) against overselling.  Computes availability from the
    same movements the closing-stock calculator uses, re-checks it against
    a fresh snapshot immediately before the insert, and retries the insert
    with exponential backoff when the store reports a uniqueness conflict.

Architecture position:
    Ledger > Services -- imperative shell around the pure closing-stock
    engine.  Called by the ``InventoryLedger`` facade.

Invariants enforced:
    - Availability for a scope is the UNCLAMPED closing-stock arithmetic:
      opening (record, else previous closing, else 0) + restocking +
      incoming - sales - waste - outgoing.
    - Restocking batches report ``max(0, batch - linked sales that day)``;
      opening-stock batches report the raw balance.
    - Every insert carries a ``StockFence`` whose sequence is the fence head
      seen by the re-check plus one.  A concurrent writer that committed in
      between has claimed that sequence, so the insert fails and the loop
      re-checks against a snapshot that includes the winner's movement.

Failure modes:
    - InsufficientStockError: the first check found too little stock.
    - StockConflictError: a re-check found too little stock; carries the
      fresh ``available_stock``.
    - RetryExhaustedError: the fence kept conflicting for the whole budget.
    - BatchNotFoundError / OwnershipMismatchError: bad batch reference.

This is optimistic concurrency over a uniqueness constraint, a mitigation
for stores without an atomic conditional decrement.  Writes that bypass the
controller (waste, settlement-derived sales, deletions) are not fenced and
can still drive a day below zero; the calculator clamps such a day at 0.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeVar

from inventory_ledger.domain.records import StockFence
from inventory_ledger.domain.values import BatchKind, BatchRef, Scope
from inventory_ledger.engines.closing_stock import batch_availability, compute_day
from inventory_ledger.exceptions import (
    BatchNotFoundError,
    DuplicateMovementError,
    InsufficientStockError,
    OwnershipMismatchError,
    RetryExhaustedError,
    StockConflictError,
)
from inventory_ledger.logging_config import get_logger
from inventory_ledger.stores.base import FencedRecord, MovementStore

logger = get_logger("services.availability")

R = TypeVar("R", bound=FencedRecord)


@dataclass(frozen=True)
class Availability:
    """Stock available for one consuming write, with the fence head it was read at."""

    available: Decimal
    derivation: str
    fence_sequence: int


class AvailabilityController:
    """
    Verifies and commits stock-consuming writes.

    Contract:
        ``commit`` either inserts exactly one fenced movement or raises.
        It never inserts after a failed check.

    Guarantees:
        - The first check and every re-check read the store afresh.
        - Backoff before retry ``n`` (0-based) is ``backoff_base * 2**n``.
        - Non-conflict store errors surface immediately without retry.

    Non-goals:
        - Does NOT take locks; ordering comes from the store's fence
          uniqueness constraint.
        - Does NOT publish events; the facade does that after commit.
    """

    def __init__(
        self,
        store: MovementStore,
        max_write_retries: int = 3,
        backoff_base_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_write_retries < 1:
            raise ValueError("max_write_retries must be at least 1")
        self._store = store
        self._max_retries = max_write_retries
        self._backoff_base = backoff_base_seconds
        self._sleep = sleep

    @property
    def max_write_retries(self) -> int:
        return self._max_retries

    def compute_available(
        self,
        scope: Scope,
        item_id: str,
        day: date,
        batch: BatchRef | None = None,
    ) -> Availability:
        """
        Stock available for ``item_id`` in ``scope`` on ``day``.

        With ``batch`` set, availability is the batch's remaining quantity
        rather than the scope's.  The fence head is always the scope's.

        Raises:
            BatchNotFoundError: ``batch`` names no record.
            OwnershipMismatchError: ``batch`` belongs to another scope or item.
        """
        snapshot = self._store.read_day(scope, item_id, day)
        if batch is None:
            computation = compute_day(snapshot)
            return Availability(
                available=computation.net,
                derivation=computation.derivation,
                fence_sequence=snapshot.fence_sequence,
            )

        if batch.kind == BatchKind.RESTOCKING:
            record = self._store.get_restocking(batch.batch_id)
        else:
            record = self._store.get_opening_stock(batch.batch_id)
        if record is None:
            raise BatchNotFoundError(str(batch.batch_id))
        if record.scope != scope:
            raise OwnershipMismatchError(
                batch.kind.value, str(batch.batch_id), f"does not belong to {scope}"
            )
        if record.item_id != item_id:
            raise OwnershipMismatchError(
                batch.kind.value, str(batch.batch_id), f"is not a batch of item {item_id}"
            )

        sales = self._store.batch_sales(scope, day, batch)
        available = batch_availability(batch.kind, record.quantity, sales)
        return Availability(
            available=available,
            derivation=(
                f"Batch {batch.kind.value} {batch.batch_id}: {record.quantity} "
                f"- linked sales ({sum((s.quantity for s in sales), Decimal('0'))})"
            ),
            fence_sequence=snapshot.fence_sequence,
        )

    def check(
        self,
        scope: Scope,
        item_id: str,
        day: date,
        quantity: Decimal,
        batch: BatchRef | None = None,
    ) -> Availability:
        """First-read check; raises InsufficientStockError when short."""
        availability = self.compute_available(scope, item_id, day, batch)
        if quantity > availability.available:
            logger.info(
                "insufficient_stock",
                extra={
                    "item_id": item_id,
                    "requested": quantity,
                    "available": availability.available,
                    "date": day,
                },
            )
            raise InsufficientStockError(
                item_id, quantity, availability.available, availability.derivation
            )
        return availability

    def commit(
        self,
        scope: Scope,
        item_id: str,
        day: date,
        quantity: Decimal,
        record: R,
        batch: BatchRef | None = None,
        operation: str = "record movement",
    ) -> R:
        """
        Check, re-check, and insert ``record`` under a fence.

        ``scope`` is the scope the stock leaves; for a transfer that is the
        source branch.
        """
        self.check(scope, item_id, day, quantity, batch)

        for attempt in range(self._max_retries):
            fresh = self.compute_available(scope, item_id, day, batch)
            if quantity > fresh.available:
                logger.warning(
                    "stock_conflict",
                    extra={
                        "item_id": item_id,
                        "requested": quantity,
                        "available": fresh.available,
                        "attempt": attempt + 1,
                    },
                )
                raise StockConflictError(item_id, quantity, fresh.available)

            fence = StockFence(scope, item_id, day, fresh.fence_sequence + 1)
            try:
                return self._store.insert_fenced(record, fence)
            except DuplicateMovementError:
                logger.info(
                    "write_conflict_retry",
                    extra={
                        "item_id": item_id,
                        "operation": operation,
                        "attempt": attempt + 1,
                        "max_attempts": self._max_retries,
                        "fence_sequence": fence.sequence,
                    },
                )
                if attempt < self._max_retries - 1:
                    self._sleep(self._backoff_base * (2 ** attempt))

        logger.error(
            "write_retries_exhausted",
            extra={"item_id": item_id, "operation": operation, "attempts": self._max_retries},
        )
        raise RetryExhaustedError(operation, self._max_retries)
