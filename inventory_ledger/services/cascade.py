"""
CascadePropagator -- forward recomputation of closing and opening stock.

Responsibility:
    Turns a correction on day D into updated closing stock for D and updated
    (cascade-derived) opening stock for D+1, D+2, ... up to today.

Architecture position:
    Ledger > Services -- imperative shell.  Invoked by the propagation
    handler after a past-dated movement commits, and by the facade for
    auto-save.

Invariants enforced:
    - A manual closing stock (sentinel) is never overwritten.  The day after
      a sentinel still gets its opening from the sentinel's quantity.
    - A manual opening stock is never overwritten by a cascade-derived one.
    - The walk never writes a date after today.
    - Rerunning a walk over unchanged movements writes the same values.

Per-date state machine::

    PENDING --recompute--> RECOMPUTED --next opening synced--> PROPAGATED

    Today ends RECOMPUTED (there is no next opening to sync).  A walk cut
    off by the iteration cap records the first date it did not reach as a
    PENDING step, which is where a later walk has to resume.

Terminal conditions:
    REACHED_TODAY    -- today's closing was recomputed (or the start was
                        already past today).
    MANUAL_SENTINEL  -- a sentinel day whose quantity the next day's
                        opening already reflected.
    ITERATION_CAP    -- ``max_cascade_days`` dates were walked.

Failure modes:
    - PropagationError wraps any store or engine failure and names the
      date the walk halted on.  Dates before it are already written.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from inventory_ledger.domain.clock import Clock
from inventory_ledger.domain.records import (
    ClosingStockRecord,
    ComputedClosingStock,
    EntryMode,
    OpeningStockRecord,
)
from inventory_ledger.domain.values import Scope
from inventory_ledger.engines.closing_stock import StockComputation, compute_day
from inventory_ledger.exceptions import PropagationError
from inventory_ledger.logging_config import get_logger
from inventory_ledger.stores.base import MovementStore

logger = get_logger("services.cascade")


class StepState(str, Enum):
    PENDING = "pending"
    RECOMPUTED = "recomputed"
    PROPAGATED = "propagated"


class CascadeTermination(str, Enum):
    REACHED_TODAY = "reached_today"
    MANUAL_SENTINEL = "manual_sentinel"
    ITERATION_CAP = "iteration_cap"


@dataclass(frozen=True)
class CascadeStep:
    date: date
    state: StepState
    closing: Decimal | None
    manual: bool = False
    opening_updated: bool = False


@dataclass(frozen=True)
class ItemCascade:
    item_id: str
    steps: tuple[CascadeStep, ...]
    termination: CascadeTermination

    @property
    def days_walked(self) -> int:
        return sum(1 for s in self.steps if s.state != StepState.PENDING)

    @property
    def resume_from(self) -> date | None:
        """First date left unwalked, when the walk was cut off."""
        if self.steps and self.steps[-1].state == StepState.PENDING:
            return self.steps[-1].date
        return None


@dataclass(frozen=True)
class CascadeResult:
    scope: Scope
    start_date: date
    items: tuple[ItemCascade, ...]

    def for_item(self, item_id: str) -> ItemCascade | None:
        for cascade in self.items:
            if cascade.item_id == item_id:
                return cascade
        return None


@dataclass(frozen=True)
class DayRecomputation:
    """Outcome of recomputing one date: either a fresh computation or a skipped sentinel."""

    closing: ClosingStockRecord | None
    computation: StockComputation | None

    @property
    def skipped(self) -> bool:
        return self.computation is None


class CascadePropagator:
    """
    Walks the ledger forward from a corrected date.

    Contract:
        ``propagate(start_date, scope)`` recomputes every date from
        ``start_date`` through today for each item, stopping early at a
        manual sentinel whose value is already reflected downstream.

    Guarantees:
        - Each date is read once per item per walk.
        - Only the given ``scope`` is read or written.

    Non-goals:
        - Does NOT swallow failures; the propagation handler does.
        - Does NOT validate that ``start_date`` is in the past.
    """

    def __init__(
        self,
        store: MovementStore,
        clock: Clock,
        max_cascade_days: int = 366,
    ):
        if max_cascade_days < 1:
            raise ValueError("max_cascade_days must be at least 1")
        self._store = store
        self._clock = clock
        self._max_days = max_cascade_days

    def recompute_day(
        self,
        scope: Scope,
        item_id: str,
        day: date,
        recorded_by: str | None = None,
    ) -> DayRecomputation:
        """Recompute and upsert one closing stock unless it is a manual entry."""
        snapshot = self._store.read_day(scope, item_id, day)
        if snapshot.closing is not None and snapshot.closing.is_manual:
            return DayRecomputation(closing=snapshot.closing, computation=None)

        computation = compute_day(snapshot)
        saved = self._store.upsert_closing_stock(
            ClosingStockRecord(
                scope=scope,
                item_id=item_id,
                date=day,
                value=ComputedClosingStock(computation.closing, computation.derivation),
                recorded_by=recorded_by,
            )
        )
        return DayRecomputation(closing=saved, computation=computation)

    def propagate(
        self,
        start_date: date,
        scope: Scope,
        item_ids: list[str] | tuple[str, ...] | None = None,
    ) -> CascadeResult:
        """
        Propagate from ``start_date`` for ``item_ids`` (default: every item
        of the scope's organization).

        Raises:
            PropagationError: the walk for some item failed part-way.
        """
        if item_ids is None:
            item_ids = [item.id for item in self._store.list_items(scope.organization_id)]

        logger.info(
            "propagation_started",
            extra={
                "start_date": start_date,
                "scope": str(scope),
                "item_count": len(item_ids),
            },
        )
        cascades = tuple(self._walk(scope, item_id, start_date) for item_id in item_ids)
        logger.info(
            "propagation_completed",
            extra={
                "start_date": start_date,
                "scope": str(scope),
                "days_walked": sum(c.days_walked for c in cascades),
            },
        )
        return CascadeResult(scope=scope, start_date=start_date, items=cascades)

    def _walk(self, scope: Scope, item_id: str, start_date: date) -> ItemCascade:
        today = self._clock.today()
        steps: list[CascadeStep] = []
        day = start_date

        for _ in range(self._max_days):
            if day > today:
                return ItemCascade(item_id, tuple(steps), CascadeTermination.REACHED_TODAY)
            try:
                step = self._step(scope, item_id, day, today)
            except Exception as exc:
                raise PropagationError(item_id, day, str(exc)) from exc
            steps.append(step)

            if day == today:
                return ItemCascade(item_id, tuple(steps), CascadeTermination.REACHED_TODAY)
            if step.manual and not step.opening_updated:
                logger.debug(
                    "propagation_stopped_at_sentinel",
                    extra={"item_id": item_id, "date": day},
                )
                return ItemCascade(item_id, tuple(steps), CascadeTermination.MANUAL_SENTINEL)
            day += timedelta(days=1)

        logger.warning(
            "propagation_iteration_cap",
            extra={"item_id": item_id, "start_date": start_date, "cap": self._max_days},
        )
        steps.append(CascadeStep(day, StepState.PENDING, closing=None))
        return ItemCascade(item_id, tuple(steps), CascadeTermination.ITERATION_CAP)

    def _step(self, scope: Scope, item_id: str, day: date, today: date) -> CascadeStep:
        recomputation = self.recompute_day(scope, item_id, day)
        closing = recomputation.closing.quantity

        if day >= today:
            return CascadeStep(
                day, StepState.RECOMPUTED, closing, manual=recomputation.skipped
            )

        next_day = day + timedelta(days=1)
        next_opening = self._store.read_day(scope, item_id, next_day).opening
        updated = False
        if next_opening is None or (
            not next_opening.is_manual and next_opening.quantity != closing
        ):
            self._store.upsert_opening_stock(
                OpeningStockRecord(
                    scope=scope,
                    item_id=item_id,
                    date=next_day,
                    quantity=closing,
                    entry_mode=EntryMode.CASCADE,
                )
            )
            updated = True

        return CascadeStep(
            day,
            StepState.PROPAGATED,
            closing,
            manual=recomputation.skipped,
            opening_updated=updated,
        )
