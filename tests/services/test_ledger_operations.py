"""
Tests for the InventoryLedger facade operations.

Input validation, ownership checks, transfers between branches, manual
stock levels, auto-save, and the events published after each commit.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_ledger.domain.events import MovementKind
from inventory_ledger.domain.records import EntryMode, WasteKind
from inventory_ledger.domain.values import BatchRef, Scope
from inventory_ledger.exceptions import (
    BranchNotFoundError,
    DuplicateMovementError,
    FutureDateError,
    InsufficientStockError,
    ItemNotFoundError,
    LedgerValidationError,
    OwnershipMismatchError,
    SaleNotFoundError,
)
from tests.helpers import (
    BRANCH_A,
    BRANCH_B,
    FOREIGN_ITEM,
    ITEM,
    ORG,
    OTHER_ITEM,
    SCOPE_A,
    SCOPE_B,
    TODAY,
    days_ago,
)


@pytest.fixture
def published(ledger):
    events = []
    ledger.events.subscribe(events.append)
    return events


class TestTransfers:
    def test_moves_stock_between_branches(self, any_ledger):
        any_ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))

        transfer = any_ledger.create_transfer(
            ORG, ITEM, BRANCH_A, BRANCH_B, TODAY, Decimal("4"), notes="top up", performed_by="u1"
        )

        assert SCOPE_A.contains(transfer.organization_id, transfer.from_branch_id)
        assert SCOPE_B.contains(transfer.organization_id, transfer.to_branch_id)
        assert any_ledger.check_availability(SCOPE_A, ITEM, TODAY).available == Decimal("6")
        assert any_ledger.check_availability(SCOPE_B, ITEM, TODAY).available == Decimal("4")

    def test_rejected_transfer_leaves_destination_untouched(self, any_ledger):
        any_ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))

        with pytest.raises(InsufficientStockError) as exc_info:
            any_ledger.create_transfer(ORG, ITEM, BRANCH_A, BRANCH_B, TODAY, Decimal("15"))

        assert exc_info.value.available == Decimal("10")
        snapshot = any_ledger.store.read_day(SCOPE_B, ITEM, TODAY)
        assert snapshot.incoming_transfers == ()
        assert any_ledger.check_availability(SCOPE_B, ITEM, TODAY).available == Decimal("0")

    def test_same_branch_rejected(self, ledger):
        with pytest.raises(LedgerValidationError, match="same branch"):
            ledger.create_transfer(ORG, ITEM, BRANCH_A, BRANCH_A, TODAY, Decimal("1"))

    def test_branch_of_another_organization(self, ledger):
        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))

        with pytest.raises(OwnershipMismatchError):
            ledger.create_transfer(ORG, ITEM, BRANCH_A, "branch-z", TODAY, Decimal("1"))

    def test_unknown_branch(self, ledger):
        with pytest.raises(BranchNotFoundError):
            ledger.create_transfer(ORG, ITEM, BRANCH_A, "branch-missing", TODAY, Decimal("1"))

    def test_publishes_both_sides(self, ledger, published):
        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))
        published.clear()

        transfer = ledger.create_transfer(ORG, ITEM, BRANCH_A, BRANCH_B, TODAY, Decimal("1"))

        assert [(e.kind, e.scope) for e in published] == [
            (MovementKind.TRANSFER_OUT, SCOPE_A),
            (MovementKind.TRANSFER_IN, SCOPE_B),
        ]
        assert {e.movement_id for e in published} == {transfer.id}

    def test_destination_cascade_logs_destination_branch(self, ledger, captured_logs):
        ledger.record_restocking(SCOPE_A, ITEM, days_ago(1), Decimal("10"))

        ledger.create_transfer(ORG, ITEM, BRANCH_A, BRANCH_B, days_ago(1), Decimal("4"))

        started = {
            r["scope"]: r for r in captured_logs() if r["message"] == "propagation_started"
        }
        assert started[str(SCOPE_A)]["branch_id"] == BRANCH_A
        assert started[str(SCOPE_B)]["branch_id"] == BRANCH_B
        assert ledger.store.read_day(SCOPE_B, ITEM, TODAY).opening.quantity == Decimal("4")


class TestValidation:
    @pytest.mark.parametrize("quantity", [0, "-1", "abc"])
    def test_sale_quantity_must_be_positive(self, ledger, quantity):
        with pytest.raises(LedgerValidationError):
            ledger.record_sale(SCOPE_A, ITEM, TODAY, quantity)

    def test_restocking_allows_zero(self, ledger):
        assert ledger.record_restocking(SCOPE_A, ITEM, TODAY, 0).quantity == Decimal("0")

    def test_negative_cost_rejected(self, ledger):
        with pytest.raises(LedgerValidationError):
            ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("1"), cost_price="-2")

    def test_future_date_rejected(self, ledger, memory_store):
        with pytest.raises(FutureDateError):
            ledger.record_restocking(SCOPE_A, ITEM, "2024-01-16", Decimal("1"))

        assert memory_store.read_day(SCOPE_A, ITEM, TODAY).restockings == ()

    def test_datetime_input_is_truncated(self, ledger):
        record = ledger.record_restocking(SCOPE_A, ITEM, "2024-01-15T18:30:00", Decimal("1"))

        assert record.date == TODAY

    def test_item_of_another_organization(self, ledger):
        with pytest.raises(OwnershipMismatchError) as exc_info:
            ledger.record_restocking(SCOPE_A, FOREIGN_ITEM, TODAY, Decimal("1"))

        assert exc_info.value.code == "OWNERSHIP_MISMATCH"

    def test_unknown_item(self, ledger):
        with pytest.raises(ItemNotFoundError):
            ledger.record_sale(SCOPE_A, "item-missing", TODAY, Decimal("1"))

    def test_scope_branch_must_exist(self, ledger):
        with pytest.raises(BranchNotFoundError):
            ledger.record_restocking(Scope(ORG, "branch-missing"), ITEM, TODAY, Decimal("1"))

    def test_invalid_waste_kind(self, ledger):
        with pytest.raises(LedgerValidationError, match="waste kind"):
            ledger.record_waste(SCOPE_A, ITEM, TODAY, Decimal("1"), kind="theft")

    def test_spoilage_kind_accepted_as_string(self, ledger):
        record = ledger.record_waste(SCOPE_A, ITEM, TODAY, Decimal("1"), kind="spoilage")

        assert record.kind == WasteKind.SPOILAGE


class TestSales:
    def test_explicit_price_overrides_item_price(self, ledger):
        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))

        sale = ledger.record_sale(
            SCOPE_A, ITEM, TODAY, Decimal("2"), price_per_unit="3", payment_mode="card"
        )

        assert sale.total_price == Decimal("6")
        assert sale.payment_mode == "card"

    def test_batch_from_request_ids(self, ledger):
        delivery = ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("6"))

        sale = ledger.record_sale(SCOPE_A, ITEM, TODAY, Decimal("2"), restocking_id=delivery.id)

        assert sale.restocking_id == delivery.id
        assert sale.batch_label == "restocking"

    def test_batch_and_batch_id_together_rejected(self, ledger):
        delivery = ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("6"))

        with pytest.raises(LedgerValidationError):
            ledger.record_sale(
                SCOPE_A,
                ITEM,
                TODAY,
                Decimal("1"),
                batch=BatchRef.restocking(delivery.id),
                opening_stock_id=uuid4(),
            )

    def test_both_batch_ids_rejected(self, ledger):
        with pytest.raises(LedgerValidationError):
            ledger.record_sale(
                SCOPE_A, ITEM, TODAY, Decimal("1"), restocking_id=uuid4(), opening_stock_id=uuid4()
            )

    def test_logs_sale_with_context(self, ledger, captured_logs):
        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))

        sale = ledger.record_sale(SCOPE_A, ITEM, TODAY, Decimal("2"), recorded_by="u1")

        records = [r for r in captured_logs() if r["message"] == "sale_recorded"]
        assert len(records) == 1
        assert records[0]["sale_id"] == str(sale.id)
        assert records[0]["organization_id"] == ORG
        assert records[0]["branch_id"] == BRANCH_A
        assert records[0]["actor_id"] == "u1"

    def test_delete_unknown_sale(self, ledger):
        with pytest.raises(SaleNotFoundError):
            ledger.delete_sale(uuid4())

    def test_delete_from_another_scope(self, ledger):
        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))
        sale = ledger.record_sale(SCOPE_A, ITEM, TODAY, Decimal("2"))

        with pytest.raises(OwnershipMismatchError):
            ledger.delete_sale(sale.id, scope=SCOPE_B)

        assert ledger.store.get_sale(sale.id) == sale

    def test_delete_restores_availability(self, any_ledger):
        any_ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("10"))
        sale = any_ledger.record_sale(SCOPE_A, ITEM, TODAY, Decimal("4"))

        any_ledger.delete_sale(sale.id, scope=SCOPE_A)

        assert any_ledger.store.get_sale(sale.id) is None
        assert any_ledger.check_availability(SCOPE_A, ITEM, TODAY).available == Decimal("10")


class TestStockLevels:
    def test_second_manual_opening_rejected(self, ledger):
        ledger.record_opening_stock(SCOPE_A, ITEM, TODAY, Decimal("5"))

        with pytest.raises(DuplicateMovementError):
            ledger.record_opening_stock(SCOPE_A, ITEM, TODAY, Decimal("6"))

    def test_manual_opening_replaces_cascade_opening(self, ledger):
        ledger.record_opening_stock(SCOPE_A, ITEM, days_ago(1), Decimal("5"))
        derived = ledger.store.read_day(SCOPE_A, ITEM, TODAY).opening
        assert derived.entry_mode == EntryMode.CASCADE

        record = ledger.record_opening_stock(SCOPE_A, ITEM, TODAY, Decimal("9"))

        assert record.id == derived.id
        assert record.is_manual
        assert ledger.check_availability(SCOPE_A, ITEM, TODAY).available == Decimal("9")

    def test_manual_closing_can_be_corrected(self, ledger):
        first = ledger.record_closing_stock(SCOPE_A, ITEM, TODAY, Decimal("5"))

        second = ledger.record_closing_stock(SCOPE_A, ITEM, TODAY, Decimal("4"), notes="recount")

        assert second.id == first.id
        assert ledger.store.read_day(SCOPE_A, ITEM, TODAY).closing.notes == "recount"

    def test_auto_save_skips_manual_closing(self, any_ledger):
        any_ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("8"))
        any_ledger.record_closing_stock(SCOPE_A, OTHER_ITEM, TODAY, Decimal("3"))

        result = any_ledger.auto_save_closing_stock(TODAY, SCOPE_A)

        assert result.records_saved == 1
        assert result.skipped_manual == 1
        closing = any_ledger.store.read_day(SCOPE_A, ITEM, TODAY).closing
        assert closing.quantity == Decimal("8")
        assert closing.entry_mode == EntryMode.COMPUTED
        assert closing.notes.startswith("Auto-calculated: Opening (0)")

    def test_auto_save_of_past_day_propagates(self, ledger):
        ledger.record_restocking(SCOPE_A, ITEM, days_ago(3), Decimal("8"))

        ledger.auto_save_closing_stock(days_ago(3), SCOPE_A)

        assert ledger.store.read_day(SCOPE_A, ITEM, TODAY).opening.quantity == Decimal("8")
        assert ledger.store.read_day(SCOPE_A, OTHER_ITEM, TODAY).opening.quantity == Decimal("0")


class TestEvents:
    def test_event_published_after_commit(self, ledger, published):
        record = ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("3"), recorded_by="u1")

        assert len(published) == 1
        event = published[0]
        assert event.kind == MovementKind.RESTOCKING
        assert event.movement_id == record.id
        assert event.actor_id == "u1"
        assert ledger.store.read_day(SCOPE_A, ITEM, TODAY).restockings == (record,)

    def test_rejected_write_publishes_nothing(self, ledger, published):
        with pytest.raises(InsufficientStockError):
            ledger.record_sale(SCOPE_A, ITEM, TODAY, Decimal("1"))

        assert published == []

    def test_unsubscribe(self, ledger):
        events = []
        ledger.events.subscribe(events.append)
        ledger.events.unsubscribe(events.append)

        ledger.record_restocking(SCOPE_A, ITEM, TODAY, Decimal("3"))

        assert events == []

    def test_return_publishes_stock_neutral_event(self, ledger, published):
        issuance = ledger.create_issuance(SCOPE_A, ITEM, "staff-1", TODAY, Decimal("3"))

        ledger.record_return(issuance.id, Decimal("1"), TODAY, move_to_waste=True)

        assert [e.kind for e in published] == [MovementKind.RETURN, MovementKind.WASTE]
