"""Tests for scope, batch references and input coercion."""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_ledger.domain.events import MovementCommitted, MovementKind
from inventory_ledger.domain.records import (
    ClosingStockRecord,
    ComputedClosingStock,
    EntryMode,
    ManualClosingStock,
)
from inventory_ledger.domain.values import (
    BatchKind,
    BatchRef,
    Scope,
    ensure_not_future,
    non_negative_quantity,
    positive_quantity,
    to_day,
)
from inventory_ledger.exceptions import FutureDateError, LedgerValidationError


class TestScope:
    def test_no_branch_is_distinct_from_a_branch(self):
        assert Scope("org-1") != Scope("org-1", "branch-a")
        assert Scope("org-1").branch_key == ""
        assert Scope("org-1", "branch-a").branch_key == "branch-a"

    def test_empty_branch_normalizes_to_none(self):
        assert Scope("org-1", "") == Scope("org-1")

    def test_organization_required(self):
        with pytest.raises(LedgerValidationError):
            Scope("")

    def test_contains_is_exact(self):
        scope = Scope("org-1")

        assert scope.contains("org-1", None)
        assert not scope.contains("org-1", "branch-a")
        assert not scope.contains("org-2", None)

    def test_hashable(self):
        assert len({Scope("org-1"), Scope("org-1"), Scope("org-1", "b")}) == 2


class TestBatchRef:
    def test_from_ids(self):
        batch_id = uuid4()

        assert BatchRef.from_ids(restocking_id=batch_id) == BatchRef(
            BatchKind.RESTOCKING, batch_id
        )
        assert BatchRef.from_ids(opening_stock_id=batch_id).kind == BatchKind.OPENING_STOCK
        assert BatchRef.from_ids() is None

    def test_both_ids_rejected(self):
        with pytest.raises(LedgerValidationError, match="both"):
            BatchRef.from_ids(restocking_id=uuid4(), opening_stock_id=uuid4())


class TestCoercion:
    @pytest.mark.parametrize("raw", ["3", 3, Decimal("3"), "3.0"])
    def test_positive_quantity(self, raw):
        assert positive_quantity(raw) == Decimal("3")

    @pytest.mark.parametrize("raw", [0, "-1", "abc", None, True, "NaN", float("inf")])
    def test_positive_quantity_rejects(self, raw):
        with pytest.raises(LedgerValidationError):
            positive_quantity(raw)

    def test_non_negative_allows_zero(self):
        assert non_negative_quantity(0) == Decimal("0")
        with pytest.raises(LedgerValidationError):
            non_negative_quantity("-0.5")

    def test_to_day_drops_time(self):
        assert to_day("2024-01-10T23:59:00Z") == date(2024, 1, 10)
        assert to_day(datetime(2024, 1, 10, 8, 30)) == date(2024, 1, 10)
        assert to_day(date(2024, 1, 10)) == date(2024, 1, 10)

    def test_to_day_rejects_garbage(self):
        with pytest.raises(LedgerValidationError):
            to_day("10/01/2024")

    def test_future_date_rejected(self):
        with pytest.raises(FutureDateError) as exc_info:
            ensure_not_future(date(2024, 1, 16), date(2024, 1, 15))

        assert exc_info.value.code == "FUTURE_DATE"
        ensure_not_future(date(2024, 1, 15), date(2024, 1, 15))


class TestClosingStockVariant:
    def test_manual_is_sentinel(self):
        record = ClosingStockRecord(
            Scope("org-1"), "item-1", date(2024, 1, 10), ManualClosingStock(Decimal("4"), "counted")
        )

        assert record.is_manual
        assert record.entry_mode == EntryMode.MANUAL
        assert record.notes == "counted"

    def test_computed_carries_derivation(self):
        record = ClosingStockRecord(
            Scope("org-1"), "item-1", date(2024, 1, 10), ComputedClosingStock(Decimal("4"), "trace")
        )

        assert not record.is_manual
        assert record.entry_mode == EntryMode.COMPUTED
        assert record.notes == "trace"
        assert record.quantity == Decimal("4")


def test_settlement_event_affects_all_items():
    event = MovementCommitted(Scope("org-1"), date(2024, 1, 10), MovementKind.SETTLEMENT)

    assert event.affects_all_items
