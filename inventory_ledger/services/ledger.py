"""
InventoryLedger -- the public facade of the ledger engine.

Responsibility:
    One entry point per ledger operation.  Validates input, delegates to the
    availability controller, the settlement service, the cascade propagator
    and the report selector, and publishes ``MovementCommitted`` after every
    committed write.

Architecture position:
    Ledger > Services -- outermost layer.  The surrounding application
    resolves the acting user's organization/branch into a ``Scope`` before
    calling in.

Invariants enforced:
    - No movement is dated after the clock's today.
    - Every referenced item and branch belongs to the scope's organization.
    - Consuming writes (sales, transfers) go through the availability
      controller; nothing else does.
    - Events are published only after the write commits.  A past-dated
      event runs the cascade synchronously; a cascade failure is logged by
      the propagation handler and never fails the write.

Usage:
    ledger = InventoryLedger(InMemoryMovementStore(), clock=SystemClock())
    sale = ledger.record_sale(Scope("org-1", "branch-1"), "item-1",
                              "2024-01-15", Decimal("3"))
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from inventory_ledger.config.loader import LedgerSettings, load_settings
from inventory_ledger.domain.clock import Clock, SystemClock
from inventory_ledger.domain.events import MovementCommitted, MovementKind
from inventory_ledger.domain.records import (
    BranchTransferRecord,
    ClosingStockRecord,
    EntryMode,
    IssuanceRecord,
    ManualClosingStock,
    OpeningStockRecord,
    RestockingRecord,
    SaleRecord,
    SaleSource,
    WasteKind,
    WasteSpoilageRecord,
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
from inventory_ledger.exceptions import (
    DuplicateMovementError,
    LedgerValidationError,
    OwnershipMismatchError,
    SaleNotFoundError,
)
from inventory_ledger.logging_config import LogContext, configure_logging, get_logger
from inventory_ledger.selectors.stock_report import StockReportLine, StockReportSelector
from inventory_ledger.services.availability import Availability, AvailabilityController
from inventory_ledger.services.cascade import CascadePropagator
from inventory_ledger.services.events import LedgerEventBus, PropagationHandler
from inventory_ledger.services.reference import ReferenceGuard
from inventory_ledger.services.settlement import IssuanceSettlementService, ReturnOutcome
from inventory_ledger.stores.base import MovementStore

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class AutoSaveResult:
    records_saved: int
    skipped_manual: int = 0


@dataclass(frozen=True)
class SettlementResult:
    sales_created: int
    sales_updated: int = 0
    sales_removed: int = 0
    sales: tuple[SaleRecord, ...] = ()


class InventoryLedger:
    """
    Facade over the ledger services.

    Contract:
        Each operation is a short synchronous call.  Propagation and
        settlement run inside the triggering call.

    Guarantees:
        - Validation errors are raised before any store access.
        - Returned records are the values the store committed.

    Non-goals:
        - Does NOT authenticate or authorize; the scope is trusted.
        - Does NOT hold locks; see ``AvailabilityController``.
    """

    def __init__(
        self,
        store: MovementStore,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        event_bus: LedgerEventBus | None = None,
    ):
        self._settings = settings or LedgerSettings()
        self._store = store
        self._clock = clock or SystemClock()
        self._guard = ReferenceGuard(store)
        self._availability = AvailabilityController(
            store,
            max_write_retries=self._settings.max_write_retries,
            backoff_base_seconds=self._settings.backoff_base_seconds,
            sleep=sleep,
        )
        self._propagator = CascadePropagator(
            store, self._clock, max_cascade_days=self._settings.max_cascade_days
        )
        self._settlement = IssuanceSettlementService(store, self._clock)
        self._report = StockReportSelector(
            store, self._settings.default_low_stock_threshold
        )
        self._bus = event_bus or LedgerEventBus()
        self._bus.subscribe(PropagationHandler(self._propagator, self._clock))

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ) -> InventoryLedger:
        """
        Build a ledger over the SQL store at ``settings.database_url``.

        The ``inventory_ledger`` loggers are set to ``settings.log_level``.
        """
        from inventory_ledger.db.engine import (
            create_tables,
            get_session_factory,
            init_engine_from_url,
        )
        from inventory_ledger.stores.sql import SqlMovementStore

        settings = settings or load_settings()
        configure_logging(level=settings.log_level)
        init_engine_from_url(settings.database_url)
        create_tables()
        return cls(SqlMovementStore(get_session_factory()), clock=clock, settings=settings)

    @property
    def store(self) -> MovementStore:
        return self._store

    @property
    def events(self) -> LedgerEventBus:
        return self._bus

    @property
    def propagator(self) -> CascadePropagator:
        return self._propagator

    # -- helpers -----------------------------------------------------------

    def _movement_day(self, value) -> date:
        day = to_day(value)
        ensure_not_future(day, self._clock.today())
        return day

    def _publish(
        self,
        scope: Scope,
        day: date,
        kind: MovementKind,
        item_id: str | None = None,
        movement_id: UUID | None = None,
        actor_id: str | None = None,
    ) -> None:
        self._bus.publish(
            MovementCommitted(
                scope=scope,
                date=day,
                kind=kind,
                item_id=item_id,
                movement_id=movement_id,
                actor_id=actor_id,
            )
        )

    @staticmethod
    def _context(scope: Scope, item_id: str | None = None, actor_id: str | None = None):
        return LogContext.bind(
            organization_id=scope.organization_id,
            branch_id=scope.branch_id,
            item_id=item_id,
            actor_id=actor_id,
        )

    # -- consuming writes --------------------------------------------------

    def record_sale(
        self,
        scope: Scope,
        item_id: str,
        date: date | str,
        quantity,
        batch: BatchRef | None = None,
        price_per_unit=None,
        total_price=None,
        payment_mode: str = "cash",
        description: str | None = None,
        recorded_by: str | None = None,
        restocking_id: UUID | None = None,
        opening_stock_id: UUID | None = None,
    ) -> SaleRecord:
        """
        Record a manual sale, optionally drawn from a named batch.

        The batch is either ``batch`` or one of the raw ``restocking_id`` /
        ``opening_stock_id`` request fields, never both.

        Raises:
            InsufficientStockError: too little stock on the first read.
            StockConflictError: stock was taken between check and commit.
            RetryExhaustedError: the commit kept conflicting.
        """
        if batch is None:
            batch = BatchRef.from_ids(restocking_id, opening_stock_id)
        elif restocking_id or opening_stock_id:
            raise LedgerValidationError("Pass a batch or a batch id, not both", field="batch")
        quantity = positive_quantity(quantity)
        day = self._movement_day(date)
        with self._context(scope, item_id, recorded_by):
            item = self._guard.require_item(scope, item_id)
            self._guard.require_scope(scope)

            price = (
                item.selling_price
                if price_per_unit is None
                else non_negative_quantity(price_per_unit, "price_per_unit")
            )
            total = (
                quantity * price
                if total_price is None
                else non_negative_quantity(total_price, "total_price")
            )
            sale = SaleRecord(
                scope=scope,
                item_id=item_id,
                date=day,
                quantity=quantity,
                price_per_unit=price,
                total_price=total,
                payment_mode=payment_mode,
                source=SaleSource.MANUAL,
                restocking_id=(
                    batch.batch_id if batch and batch.kind == BatchKind.RESTOCKING else None
                ),
                opening_stock_id=(
                    batch.batch_id if batch and batch.kind == BatchKind.OPENING_STOCK else None
                ),
                batch_label=batch.kind.value if batch else None,
                description=description,
                recorded_by=recorded_by,
            )
            sale = self._availability.commit(
                scope, item_id, day, quantity, sale, batch=batch, operation="record sale"
            )
            logger.info(
                "sale_recorded",
                extra={"sale_id": sale.id, "quantity": quantity, "date": day},
            )
            self._publish(scope, day, MovementKind.SALE, item_id, sale.id, recorded_by)
            return sale

    def delete_sale(
        self,
        sale_id: UUID,
        scope: Scope | None = None,
        deleted_by: str | None = None,
    ) -> None:
        """Delete a sale; a past-dated deletion recomputes forward from its date."""
        sale = self._store.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        if scope is not None and sale.scope != scope:
            raise OwnershipMismatchError("Sale", str(sale_id), f"does not belong to {scope}")

        with self._context(sale.scope, sale.item_id, deleted_by):
            if self._store.delete_sale(sale_id) is None:
                raise SaleNotFoundError(str(sale_id))
            logger.info(
                "sale_deleted",
                extra={"sale_id": sale_id, "quantity": sale.quantity, "date": sale.date},
            )
            self._publish(
                sale.scope, sale.date, MovementKind.SALE_DELETED, sale.item_id, sale_id, deleted_by
            )

    def create_transfer(
        self,
        organization_id: str,
        item_id: str,
        from_branch_id: str,
        to_branch_id: str,
        date: date | str,
        quantity,
        notes: str | None = None,
        performed_by: str | None = None,
    ) -> BranchTransferRecord:
        """
        Move stock between two branches of one organization.

        Availability is checked at the source only; the destination is
        never touched when the transfer is rejected.
        """
        if not from_branch_id or not to_branch_id:
            raise LedgerValidationError("Both branches are required", field="branch")
        if from_branch_id == to_branch_id:
            raise LedgerValidationError(
                "Cannot transfer to the same branch", field="to_branch_id"
            )
        quantity = positive_quantity(quantity)
        day = self._movement_day(date)
        source = Scope(organization_id, from_branch_id)
        destination = source.with_branch(to_branch_id)

        with self._context(source, item_id, performed_by):
            self._guard.require_item(source, item_id)
            self._guard.require_branch(organization_id, from_branch_id)
            self._guard.require_branch(organization_id, to_branch_id)

            transfer = self._availability.commit(
                source,
                item_id,
                day,
                quantity,
                BranchTransferRecord(
                    organization_id=organization_id,
                    item_id=item_id,
                    date=day,
                    quantity=quantity,
                    from_branch_id=from_branch_id,
                    to_branch_id=to_branch_id,
                    notes=notes,
                    performed_by=performed_by,
                ),
                operation="create transfer",
            )
            logger.info(
                "transfer_created",
                extra={
                    "transfer_id": transfer.id,
                    "from_branch_id": from_branch_id,
                    "to_branch_id": to_branch_id,
                    "quantity": quantity,
                    "date": day,
                },
            )
            self._publish(
                source, day, MovementKind.TRANSFER_OUT, item_id, transfer.id, performed_by
            )

        with self._context(destination, item_id, performed_by):
            self._publish(
                destination, day, MovementKind.TRANSFER_IN, item_id, transfer.id, performed_by
            )
        return transfer

    def check_availability(
        self,
        scope: Scope,
        item_id: str,
        date: date | str,
        batch: BatchRef | None = None,
    ) -> Availability:
        day = self._movement_day(date)
        self._guard.require_item(scope, item_id)
        return self._availability.compute_available(scope, item_id, day, batch)

    # -- non-consuming writes ----------------------------------------------

    def record_restocking(
        self,
        scope: Scope,
        item_id: str,
        date: date | str,
        quantity,
        cost_price=None,
        notes: str | None = None,
        recorded_by: str | None = None,
    ) -> RestockingRecord:
        quantity = non_negative_quantity(quantity)
        cost = None if cost_price is None else non_negative_quantity(cost_price, "cost_price")
        day = self._movement_day(date)
        with self._context(scope, item_id, recorded_by):
            self._guard.require_item(scope, item_id)
            self._guard.require_scope(scope)
            record = self._store.insert_movement(
                RestockingRecord(
                    scope=scope,
                    item_id=item_id,
                    date=day,
                    quantity=quantity,
                    cost_price=cost,
                    notes=notes,
                    recorded_by=recorded_by,
                )
            )
            logger.info(
                "restocking_recorded",
                extra={"restocking_id": record.id, "quantity": quantity, "date": day},
            )
            self._publish(scope, day, MovementKind.RESTOCKING, item_id, record.id, recorded_by)
            return record

    def record_waste(
        self,
        scope: Scope,
        item_id: str,
        date: date | str,
        quantity,
        kind: WasteKind | str = WasteKind.WASTE,
        reason: str | None = None,
        notes: str | None = None,
        recorded_by: str | None = None,
    ) -> WasteSpoilageRecord:
        quantity = positive_quantity(quantity)
        day = self._movement_day(date)
        try:
            kind = WasteKind(kind)
        except ValueError:
            raise LedgerValidationError(f"Invalid waste kind: {kind!r}", field="kind")

        with self._context(scope, item_id, recorded_by):
            self._guard.require_item(scope, item_id)
            self._guard.require_scope(scope)
            record = self._store.insert_movement(
                WasteSpoilageRecord(
                    scope=scope,
                    item_id=item_id,
                    date=day,
                    quantity=quantity,
                    kind=kind,
                    reason=reason,
                    notes=notes,
                    recorded_by=recorded_by,
                )
            )
            logger.info(
                "waste_recorded",
                extra={
                    "waste_id": record.id,
                    "kind": kind.value,
                    "quantity": quantity,
                    "date": day,
                },
            )
            self._publish(scope, day, MovementKind.WASTE, item_id, record.id, recorded_by)
            return record

    def record_opening_stock(
        self,
        scope: Scope,
        item_id: str,
        date: date | str,
        quantity,
        recorded_by: str | None = None,
    ) -> OpeningStockRecord:
        """
        Enter opening stock by hand.

        A cascade-derived opening for the day is replaced; a manual one is
        not (raises DuplicateMovementError).
        """
        quantity = non_negative_quantity(quantity)
        day = self._movement_day(date)
        with self._context(scope, item_id, recorded_by):
            self._guard.require_item(scope, item_id)
            self._guard.require_scope(scope)

            existing = self._store.read_day(scope, item_id, day).opening
            if existing is not None and existing.is_manual:
                raise DuplicateMovementError(
                    "OpeningStock", f"{scope}:{item_id}:{day.isoformat()}"
                )
            record = self._store.upsert_opening_stock(
                OpeningStockRecord(
                    scope=scope,
                    item_id=item_id,
                    date=day,
                    quantity=quantity,
                    entry_mode=EntryMode.MANUAL,
                    recorded_by=recorded_by,
                )
            )
            logger.info(
                "opening_stock_recorded",
                extra={"opening_stock_id": record.id, "quantity": quantity, "date": day},
            )
            self._publish(scope, day, MovementKind.OPENING_STOCK, item_id, record.id, recorded_by)
            return record

    def record_closing_stock(
        self,
        scope: Scope,
        item_id: str,
        date: date | str,
        quantity,
        notes: str | None = None,
        recorded_by: str | None = None,
    ) -> ClosingStockRecord:
        """Enter closing stock by hand.  The entry is a sentinel recomputation never overwrites."""
        quantity = non_negative_quantity(quantity)
        day = self._movement_day(date)
        with self._context(scope, item_id, recorded_by):
            self._guard.require_item(scope, item_id)
            self._guard.require_scope(scope)
            record = self._store.upsert_closing_stock(
                ClosingStockRecord(
                    scope=scope,
                    item_id=item_id,
                    date=day,
                    value=ManualClosingStock(quantity=quantity, notes=notes),
                    recorded_by=recorded_by,
                )
            )
            logger.info(
                "closing_stock_recorded",
                extra={"closing_stock_id": record.id, "quantity": quantity, "date": day},
            )
            self._publish(scope, day, MovementKind.CLOSING_STOCK, item_id, record.id, recorded_by)
            return record

    # -- day-level operations ----------------------------------------------

    def auto_save_closing_stock(
        self,
        date: date | str,
        scope: Scope,
        recorded_by: str | None = None,
    ) -> AutoSaveResult:
        """
        Compute and store closing stock for every item of the scope.

        Items with a manual closing stock for the day are skipped.  A past
        date is then propagated forward to today.
        """
        day = self._movement_day(date)
        saved = 0
        skipped = 0
        with self._context(scope, actor_id=recorded_by):
            self._guard.require_scope(scope)
            for item in self._store.list_items(scope.organization_id):
                outcome = self._propagator.recompute_day(scope, item.id, day, recorded_by)
                if outcome.skipped:
                    skipped += 1
                else:
                    saved += 1

            logger.info(
                "closing_stock_auto_saved",
                extra={"date": day, "records_saved": saved, "skipped_manual": skipped},
            )
            self._publish(scope, day, MovementKind.CLOSING_STOCK, actor_id=recorded_by)
        return AutoSaveResult(records_saved=saved, skipped_manual=skipped)

    def settle_issuances(
        self,
        date: date | str,
        scope: Scope,
        recorded_by: str | None = None,
    ) -> SettlementResult:
        """Turn the day's unreturned issuance balances into derived sales."""
        day = self._movement_day(date)
        with self._context(scope, actor_id=recorded_by):
            outcome = self._settlement.settle(day, scope, recorded_by)
            self._publish(scope, day, MovementKind.SETTLEMENT, actor_id=recorded_by)
        return SettlementResult(
            sales_created=outcome.created,
            sales_updated=outcome.updated,
            sales_removed=outcome.removed,
            sales=outcome.sales,
        )

    def get_stock_report(self, date: date | str, scope: Scope) -> list[StockReportLine]:
        day = self._movement_day(date)
        return self._report.report(day, scope)

    # -- issuances ---------------------------------------------------------

    def create_issuance(
        self,
        scope: Scope,
        item_id: str,
        staff_id: str,
        date: date | str,
        quantity,
        shift: str | None = None,
        notes: str | None = None,
        issued_by: str | None = None,
    ) -> IssuanceRecord:
        with self._context(scope, item_id, issued_by):
            return self._settlement.create_issuance(
                scope, item_id, staff_id, date, quantity, shift, notes, issued_by
            )

    def confirm_issuance(self, issuance_id: UUID, staff_id: str) -> IssuanceRecord:
        return self._settlement.confirm_issuance(issuance_id, staff_id)

    def record_return(
        self,
        issuance_id: UUID,
        quantity,
        date: date | str,
        reason: str | None = None,
        notes: str | None = None,
        returned_to: str | None = None,
        move_to_waste: bool = False,
    ) -> ReturnOutcome:
        outcome = self._settlement.record_return(
            issuance_id, quantity, date, reason, notes, returned_to, move_to_waste
        )
        returned = outcome.returned
        self._publish(
            returned.scope,
            returned.date,
            MovementKind.RETURN,
            returned.item_id,
            returned.id,
            returned_to,
        )
        if outcome.waste is not None:
            self._publish(
                returned.scope,
                returned.date,
                MovementKind.WASTE,
                returned.item_id,
                outcome.waste.id,
                returned_to,
            )
        return outcome
