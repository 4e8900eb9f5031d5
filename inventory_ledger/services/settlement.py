"""
IssuanceSettlementService -- staff issuances, returns, and derived sales.

Responsibility:
    Records stock handed to staff (issuances) and handed back (returns), and
    settles a day by turning each issuance's unreturned balance into a sale
    with ``source='issuance'``.

Architecture position:
    Ledger > Services -- imperative shell.  Called by the ``InventoryLedger``
    facade, which publishes the resulting events.

Invariants enforced:
    - sum(returns for an issuance) <= issuance.quantity.
    - One derived sale per (item, date, organization, branch, issuance); a
      rerun updates it in place, never duplicates it.
    - A fully returned issuance has no derived sale; one left by an earlier
      run is removed.
    - Settlement never rejects on insufficient stock.  Issued stock has
      physically left the store room.

Failure modes:
    - IssuanceNotFoundError, ItemNotFoundError, BranchNotFoundError.
    - OwnershipMismatchError: item/branch outside the organization, or a
      confirmation by someone other than the issued staff member.
    - ReturnExceedsIssuanceError: return larger than the open balance.
    - FutureDateError, LedgerValidationError: bad input.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from inventory_ledger.domain.clock import Clock
from inventory_ledger.domain.records import (
    IssuanceRecord,
    ReturnRecord,
    SaleRecord,
    SaleSource,
    WasteKind,
    WasteSpoilageRecord,
)
from inventory_ledger.domain.values import (
    ZERO,
    Scope,
    ensure_not_future,
    positive_quantity,
    to_day,
)
from inventory_ledger.exceptions import (
    IssuanceNotFoundError,
    LedgerValidationError,
    OwnershipMismatchError,
    ReturnExceedsIssuanceError,
)
from inventory_ledger.logging_config import get_logger
from inventory_ledger.services.reference import ReferenceGuard
from inventory_ledger.stores.base import MovementStore

logger = get_logger("services.settlement")


@dataclass(frozen=True)
class SettlementOutcome:
    sales: tuple[SaleRecord, ...]
    created: int = 0
    removed: int = 0

    @property
    def updated(self) -> int:
        return len(self.sales) - self.created


@dataclass(frozen=True)
class ReturnOutcome:
    returned: ReturnRecord
    waste: WasteSpoilageRecord | None = None


class IssuanceSettlementService:
    """
    Issuance lifecycle plus per-day settlement.

    Contract:
        ``settle(day, scope)`` reads every issuance of ``scope`` on ``day``
        and leaves exactly one derived sale for each one with a positive
        unreturned balance.

    Non-goals:
        - Does NOT trigger propagation; the facade publishes events.
        - Does NOT check stock availability for issuances.
    """

    def __init__(self, store: MovementStore, clock: Clock):
        self._store = store
        self._clock = clock
        self._guard = ReferenceGuard(store)

    # -- issuances ---------------------------------------------------------

    def create_issuance(
        self,
        scope: Scope,
        item_id: str,
        staff_id: str,
        day: date | str,
        quantity,
        shift: str | None = None,
        notes: str | None = None,
        issued_by: str | None = None,
    ) -> IssuanceRecord:
        if not staff_id:
            raise LedgerValidationError("staff_id is required", field="staff_id")
        quantity = positive_quantity(quantity)
        day = to_day(day)
        ensure_not_future(day, self._clock.today())
        self._guard.require_item(scope, item_id)
        self._guard.require_scope(scope)

        issuance = self._store.insert_movement(
            IssuanceRecord(
                scope=scope,
                item_id=item_id,
                staff_id=staff_id,
                date=day,
                quantity=quantity,
                shift=shift,
                notes=notes,
                issued_by=issued_by,
            )
        )
        logger.info(
            "issuance_created",
            extra={
                "issuance_id": issuance.id,
                "item_id": item_id,
                "staff_id": staff_id,
                "quantity": quantity,
                "date": day,
            },
        )
        return issuance

    def confirm_issuance(self, issuance_id: UUID, staff_id: str) -> IssuanceRecord:
        """Stamp ``confirmed_at``; only the staff member it was issued to may confirm."""
        issuance = self._require_issuance(issuance_id)
        if issuance.staff_id != staff_id:
            raise OwnershipMismatchError(
                "Issuance", str(issuance_id), f"was not issued to staff {staff_id}"
            )
        if issuance.confirmed_at is not None:
            return issuance

        confirmed = self._store.update_issuance(
            replace(issuance, confirmed_at=self._clock.now_utc())
        )
        logger.info(
            "issuance_confirmed",
            extra={"issuance_id": issuance_id, "staff_id": staff_id},
        )
        return confirmed

    def returnable_quantity(self, issuance: IssuanceRecord) -> Decimal:
        returned = sum((r.quantity for r in self._store.list_returns(issuance.id)), ZERO)
        return issuance.quantity - returned

    def record_return(
        self,
        issuance_id: UUID,
        quantity,
        day: date | str,
        reason: str | None = None,
        notes: str | None = None,
        returned_to: str | None = None,
        move_to_waste: bool = False,
    ) -> ReturnOutcome:
        """
        Record stock handed back against an issuance.

        With ``move_to_waste`` the returned stock is also written off as
        waste, so it leaves through the waste channel rather than coming
        back on hand.
        """
        quantity = positive_quantity(quantity)
        day = to_day(day)
        ensure_not_future(day, self._clock.today())
        issuance = self._require_issuance(issuance_id)

        returnable = self.returnable_quantity(issuance)
        if quantity > returnable:
            raise ReturnExceedsIssuanceError(str(issuance_id), quantity, returnable)

        returned = self._store.insert_movement(
            ReturnRecord(
                issuance_id=issuance.id,
                scope=issuance.scope,
                item_id=issuance.item_id,
                staff_id=issuance.staff_id,
                date=day,
                quantity=quantity,
                reason=reason,
                notes=notes,
                returned_to=returned_to,
            )
        )

        waste = None
        if move_to_waste:
            waste = self._store.insert_movement(
                WasteSpoilageRecord(
                    scope=issuance.scope,
                    item_id=issuance.item_id,
                    date=day,
                    quantity=quantity,
                    kind=WasteKind.WASTE,
                    reason=reason or "Returned stock written off",
                    notes=f"From return {returned.id} against issuance {issuance.id}",
                    recorded_by=returned_to,
                )
            )

        logger.info(
            "return_recorded",
            extra={
                "issuance_id": issuance_id,
                "return_id": returned.id,
                "quantity": quantity,
                "move_to_waste": move_to_waste,
            },
        )
        return ReturnOutcome(returned=returned, waste=waste)

    # -- settlement --------------------------------------------------------

    def settle(self, day: date, scope: Scope, recorded_by: str | None = None) -> SettlementOutcome:
        sales: list[SaleRecord] = []
        created = 0
        removed = 0

        for issuance in self._store.list_issuances(scope, day):
            sold = self.returnable_quantity(issuance)
            if sold <= ZERO:
                if self._store.delete_settlement_sale(
                    scope, issuance.item_id, day, issuance.id
                ):
                    removed += 1
                continue

            item = self._store.get_item(issuance.item_id)
            if item is None:
                logger.warning(
                    "settlement_item_missing",
                    extra={"issuance_id": issuance.id, "item_id": issuance.item_id},
                )
                continue

            settled_before = any(
                s.issuance_id == issuance.id
                for s in self._store.read_day(scope, issuance.item_id, day).sales
            )
            if not settled_before:
                created += 1
            sales.append(
                self._store.upsert_settlement_sale(
                    SaleRecord(
                        scope=scope,
                        item_id=issuance.item_id,
                        date=day,
                        quantity=sold,
                        price_per_unit=item.selling_price,
                        total_price=sold * item.selling_price,
                        payment_mode="cash",
                        source=SaleSource.ISSUANCE,
                        issuance_id=issuance.id,
                        description=f"Auto-calculated from issuance to {issuance.staff_id}",
                        recorded_by=recorded_by,
                    )
                )
            )

        logger.info(
            "issuances_settled",
            extra={
                "date": day,
                "scope": str(scope),
                "sales_created": created,
                "sales_updated": len(sales) - created,
                "sales_removed": removed,
            },
        )
        return SettlementOutcome(sales=tuple(sales), created=created, removed=removed)

    def _require_issuance(self, issuance_id: UUID) -> IssuanceRecord:
        issuance = self._store.get_issuance(issuance_id)
        if issuance is None:
            raise IssuanceNotFoundError(str(issuance_id))
        return issuance
