"""
Tests for forward propagation of past-dated corrections.

Covers the worked example, sentinel preservation, convergence, deletion of
a past sale, the iteration cap, transfers touching two scopes, and the
guarantee that a failed cascade never fails the committed write.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from inventory_ledger.domain.records import (
    ClosingStockRecord,
    EntryMode,
    ManualClosingStock,
    OpeningStockRecord,
)
from inventory_ledger.exceptions import PropagationError
from inventory_ledger.services.cascade import (
    CascadePropagator,
    CascadeTermination,
    StepState,
)
from inventory_ledger.services.ledger import InventoryLedger
from inventory_ledger.stores.memory import InMemoryMovementStore
from tests.helpers import (
    BRANCH_A,
    BRANCH_B,
    ITEM,
    ORG,
    SCOPE_A,
    SCOPE_B,
    TODAY,
    days_ago,
    seed_reference_data,
)


def _closing(store, scope, day):
    record = store.read_day(scope, ITEM, day).closing
    return record.quantity if record is not None else None


def _opening(store, scope, day):
    record = store.read_day(scope, ITEM, day).opening
    return record.quantity if record is not None else None


def _ledger_state(store, scope, start):
    state = []
    day = start
    while day <= TODAY:
        snapshot = store.read_day(scope, ITEM, day)
        state.append(
            (
                day,
                snapshot.opening.quantity if snapshot.opening else None,
                snapshot.opening.entry_mode if snapshot.opening else None,
                snapshot.closing.quantity if snapshot.closing else None,
            )
        )
        day += timedelta(days=1)
    return state


class TestWorkedExample:
    def test_closing_85_carries_to_next_opening(self, ledger, memory_store):
        day = days_ago(2)
        ledger.record_opening_stock(SCOPE_A, ITEM, day, Decimal("100"))
        ledger.record_restocking(SCOPE_A, ITEM, day, Decimal("20"))
        ledger.record_sale(SCOPE_A, ITEM, day, Decimal("30"))
        ledger.record_waste(SCOPE_A, ITEM, day, Decimal("5"))

        assert _closing(memory_store, SCOPE_A, day) == Decimal("85")
        assert _opening(memory_store, SCOPE_A, days_ago(1)) == Decimal("85")
        assert _closing(memory_store, SCOPE_A, days_ago(1)) == Decimal("85")
        assert _opening(memory_store, SCOPE_A, TODAY) == Decimal("85")

    def test_derived_openings_are_marked_cascade(self, ledger, memory_store):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(2), Decimal("100"))

        opening = memory_store.read_day(SCOPE_A, ITEM, days_ago(1)).opening
        assert opening.entry_mode == EntryMode.CASCADE

    def test_todays_movement_runs_no_cascade(self, ledger, memory_store):
        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("20"))

        assert memory_store.read_day(SCOPE_A, ITEM, TODAY).closing is None


class TestManualSentinel:
    def test_sentinel_is_never_overwritten(self, ledger, memory_store):
        day = days_ago(2)
        ledger.record_opening_stock(SCOPE_A, ITEM, day, Decimal("100"))
        ledger.record_closing_stock(SCOPE_A, ITEM, day, Decimal("50"), notes="stock count")
        ledger.record_restocking(SCOPE_A, ITEM, day, Decimal("20"))

        closing = memory_store.read_day(SCOPE_A, ITEM, day).closing
        assert closing.is_manual
        assert closing.quantity == Decimal("50")
        assert _opening(memory_store, SCOPE_A, days_ago(1)) == Decimal("50")

    def test_walk_stops_at_reflected_sentinel(self, ledger, memory_store):
        ledger.record_closing_stock(SCOPE_A, ITEM, days_ago(2), Decimal("50"))

        result = ledger.propagator.propagate(days_ago(4), SCOPE_A, [ITEM])

        cascade = result.for_item(ITEM)
        assert cascade.termination == CascadeTermination.MANUAL_SENTINEL
        assert [s.date for s in cascade.steps] == [days_ago(4), days_ago(3), days_ago(2)]
        assert cascade.steps[-1].manual
        assert not cascade.steps[-1].opening_updated

    def test_walk_continues_when_sentinel_changes_next_opening(self, ledger, memory_store):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(3), Decimal("10"))
        memory_store.upsert_closing_stock(
            ClosingStockRecord(SCOPE_A, ITEM, days_ago(3), ManualClosingStock(Decimal("4")))
        )

        result = ledger.propagator.propagate(days_ago(3), SCOPE_A, [ITEM])

        cascade = result.for_item(ITEM)
        assert cascade.termination == CascadeTermination.REACHED_TODAY
        assert cascade.steps[0].manual
        assert cascade.steps[0].opening_updated
        assert _opening(memory_store, SCOPE_A, TODAY) == Decimal("4")

    def test_manual_opening_is_never_replaced(self, ledger, memory_store):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(1), Decimal("7"))
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(2), Decimal("30"))

        opening = memory_store.read_day(SCOPE_A, ITEM, days_ago(1)).opening
        assert opening.is_manual
        assert opening.quantity == Decimal("7")
        assert _closing(memory_store, SCOPE_A, days_ago(1)) == Decimal("7")


class TestConvergence:
    def test_second_walk_changes_nothing(self, ledger, memory_store):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(5), Decimal("40"))
        ledger.record_sale(SCOPE_A, ITEM, days_ago(4), Decimal("6"))
        ledger.record_restocking(SCOPE_A, ITEM, days_ago(2), Decimal("3"))

        first = _ledger_state(memory_store, SCOPE_A, days_ago(5))
        result = ledger.propagator.propagate(days_ago(5), SCOPE_A, [ITEM])
        second = _ledger_state(memory_store, SCOPE_A, days_ago(5))

        assert first == second
        assert not any(s.opening_updated for s in result.for_item(ITEM).steps)
        assert _closing(memory_store, SCOPE_A, TODAY) == Decimal("37")

    def test_step_states(self, ledger):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(1), Decimal("5"))

        steps = ledger.propagator.propagate(days_ago(1), SCOPE_A, [ITEM]).for_item(ITEM).steps

        assert [s.state for s in steps] == [StepState.PROPAGATED, StepState.RECOMPUTED]


class TestDeletePastSale:
    def test_recomputes_that_day_and_every_later_opening(self, ledger, memory_store):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(3), Decimal("50"))
        sale = ledger.record_sale(SCOPE_A, ITEM, days_ago(3), Decimal("10"))
        assert _opening(memory_store, SCOPE_A, TODAY) == Decimal("40")

        ledger.delete_sale(sale.id)

        assert _closing(memory_store, SCOPE_A, days_ago(3)) == Decimal("50")
        for n in (2, 1, 0):
            assert _opening(memory_store, SCOPE_A, days_ago(n)) == Decimal("50")
        assert _closing(memory_store, SCOPE_A, TODAY) == Decimal("50")


class TestIterationCap:
    def test_walk_stops_after_cap(self, memory_store, clock):
        propagator = CascadePropagator(memory_store, clock, max_cascade_days=2)

        cascade = propagator.propagate(days_ago(5), SCOPE_A, [ITEM]).for_item(ITEM)

        assert cascade.termination == CascadeTermination.ITERATION_CAP
        assert cascade.days_walked == 2
        assert [s.state for s in cascade.steps] == [
            StepState.PROPAGATED,
            StepState.PROPAGATED,
            StepState.PENDING,
        ]
        assert cascade.resume_from == days_ago(3)
        assert cascade.steps[-1].closing is None

    def test_resumed_walk_finishes_the_job(self, memory_store, clock):
        memory_store.upsert_opening_stock(
            OpeningStockRecord(SCOPE_A, ITEM, days_ago(5), Decimal("9"))
        )
        capped = CascadePropagator(memory_store, clock, max_cascade_days=2)
        cut_off = capped.propagate(days_ago(5), SCOPE_A, [ITEM]).for_item(ITEM)

        resumed = CascadePropagator(memory_store, clock).propagate(
            cut_off.resume_from, SCOPE_A, [ITEM]
        ).for_item(ITEM)

        assert resumed.termination == CascadeTermination.REACHED_TODAY
        assert resumed.resume_from is None
        assert _closing(memory_store, SCOPE_A, TODAY) == Decimal("9")

    def test_start_after_today_walks_nothing(self, memory_store, clock):
        propagator = CascadePropagator(memory_store, clock)

        cascade = propagator.propagate(
            TODAY + timedelta(days=1), SCOPE_A, [ITEM]
        ).for_item(ITEM)

        assert cascade.termination == CascadeTermination.REACHED_TODAY
        assert cascade.steps == ()

    def test_cap_must_be_positive(self, memory_store, clock):
        with pytest.raises(ValueError):
            CascadePropagator(memory_store, clock, max_cascade_days=0)


class TestTransfers:
    def test_both_scopes_are_propagated(self, ledger, memory_store):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(2), Decimal("20"))

        ledger.create_transfer(ORG, ITEM, BRANCH_A, BRANCH_B, days_ago(2), Decimal("5"))

        assert _opening(memory_store, SCOPE_A, days_ago(1)) == Decimal("15")
        assert _opening(memory_store, SCOPE_B, days_ago(1)) == Decimal("5")
        assert _closing(memory_store, SCOPE_B, TODAY) == Decimal("5")


class _FailingClosingStore(InMemoryMovementStore):
    def upsert_closing_stock(self, record):
        raise RuntimeError("closing stock table unavailable")


class TestFailureIsolation:
    def test_failed_cascade_does_not_fail_the_write(self, clock, settings, captured_logs):
        store = _FailingClosingStore()
        seed_reference_data(store)
        ledger = InventoryLedger(store, clock=clock, settings=settings, sleep=lambda s: None)

        record = ledger.record_restocking(SCOPE_A, ITEM, days_ago(2), Decimal("20"))

        assert store.read_day(SCOPE_A, ITEM, days_ago(2)).restockings == (record,)
        failures = [r for r in captured_logs() if r["message"] == "propagation_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_type"] == "PropagationError"
        assert failures[0]["exc_code"] == "PROPAGATION_FAILED"
        assert failures[0]["item_id"] == ITEM

    def test_propagator_raises_propagation_error(self, clock):
        store = _FailingClosingStore()
        seed_reference_data(store)

        with pytest.raises(PropagationError) as exc_info:
            CascadePropagator(store, clock).propagate(days_ago(2), SCOPE_A, [ITEM])

        assert exc_info.value.failed_on == days_ago(2)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
