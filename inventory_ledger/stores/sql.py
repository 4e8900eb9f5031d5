"""
Module: inventory_ledger.stores.sql
Responsibility: SQLAlchemy-backed ``MovementStore``.  Translates ORM rows to
    and from the frozen domain records; the engine never sees a model.
Architecture position: Ledger > Stores.  The only module that imports both
    models/ and domain/.

Invariants enforced:
    - Every method runs in its own ``session_scope`` and therefore in its own
      transaction.  Nothing is held open between calls.
    - ``insert_fenced`` adds the fence row and the movement row in ONE
      transaction; the ``uq_stock_fence`` constraint rejects the loser of a
      race and both rows roll back together.
    - ``read_day`` selects the fence head before the movements.
    - Upserts that lose an insert race are retried once as updates.

Failure modes:
    - DuplicateMovementError wraps every IntegrityError raised on insert.
    - Other SQLAlchemy errors propagate unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from inventory_ledger.db.engine import session_scope
from inventory_ledger.domain.records import (
    Branch,
    BranchTransferRecord,
    ClosingStockRecord,
    ComputedClosingStock,
    DayMovements,
    EntryMode,
    IssuanceRecord,
    Item,
    ManualClosingStock,
    OpeningStockRecord,
    RestockingRecord,
    ReturnRecord,
    SaleRecord,
    SaleSource,
    StockFence,
    WasteKind,
    WasteSpoilageRecord,
)
from inventory_ledger.domain.values import BatchKind, BatchRef, Scope
from inventory_ledger.exceptions import DuplicateMovementError
from inventory_ledger.logging_config import get_logger
from inventory_ledger.models import (
    BranchModel,
    BranchTransferModel,
    ClosingStockModel,
    IssuanceModel,
    ItemModel,
    OpeningStockModel,
    RestockingModel,
    ReturnModel,
    SaleModel,
    StockFenceModel,
    WasteSpoilageModel,
)
from inventory_ledger.stores.base import AppendOnlyRecord, FencedRecord, MovementStore

logger = get_logger("stores.sql")


def _scope_of(row) -> Scope:
    return Scope(row.organization_id, row.branch_id)


def _scoped(model, scope: Scope):
    return (
        model.organization_id == scope.organization_id,
        model.branch_key == scope.branch_key,
    )


# -- model -> record -------------------------------------------------------


def _item(row: ItemModel) -> Item:
    return Item(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        unit=row.unit,
        cost_price=row.cost_price,
        selling_price=row.selling_price,
        low_stock_threshold=row.low_stock_threshold,
    )


def _opening(row: OpeningStockModel) -> OpeningStockRecord:
    return OpeningStockRecord(
        scope=_scope_of(row),
        item_id=row.item_id,
        date=row.day,
        quantity=row.quantity,
        entry_mode=EntryMode(row.entry_mode),
        recorded_by=row.recorded_by,
        id=row.id,
    )


def _closing(row: ClosingStockModel) -> ClosingStockRecord:
    if row.entry_mode == EntryMode.MANUAL.value:
        value = ManualClosingStock(quantity=row.quantity, notes=row.notes)
    else:
        value = ComputedClosingStock(quantity=row.quantity, derivation=row.notes or "")
    return ClosingStockRecord(
        scope=_scope_of(row),
        item_id=row.item_id,
        date=row.day,
        value=value,
        recorded_by=row.recorded_by,
        id=row.id,
    )


def _restocking(row: RestockingModel) -> RestockingRecord:
    return RestockingRecord(
        scope=_scope_of(row),
        item_id=row.item_id,
        date=row.day,
        quantity=row.quantity,
        cost_price=row.cost_price,
        notes=row.notes,
        recorded_by=row.recorded_by,
        id=row.id,
    )


def _sale(row: SaleModel) -> SaleRecord:
    return SaleRecord(
        scope=_scope_of(row),
        item_id=row.item_id,
        date=row.day,
        quantity=row.quantity,
        price_per_unit=row.price_per_unit,
        total_price=row.total_price,
        payment_mode=row.payment_mode,
        source=SaleSource(row.source),
        restocking_id=row.restocking_id,
        opening_stock_id=row.opening_stock_id,
        issuance_id=row.issuance_id,
        batch_label=row.batch_label,
        description=row.description,
        recorded_by=row.recorded_by,
        id=row.id,
    )


def _waste(row: WasteSpoilageModel) -> WasteSpoilageRecord:
    return WasteSpoilageRecord(
        scope=_scope_of(row),
        item_id=row.item_id,
        date=row.day,
        quantity=row.quantity,
        kind=WasteKind(row.kind),
        reason=row.reason,
        notes=row.notes,
        recorded_by=row.recorded_by,
        id=row.id,
    )


def _transfer(row: BranchTransferModel) -> BranchTransferRecord:
    return BranchTransferRecord(
        organization_id=row.organization_id,
        item_id=row.item_id,
        date=row.day,
        quantity=row.quantity,
        from_branch_id=row.from_branch_id,
        to_branch_id=row.to_branch_id,
        notes=row.notes,
        performed_by=row.recorded_by,
        id=row.id,
    )


def _issuance(row: IssuanceModel) -> IssuanceRecord:
    return IssuanceRecord(
        scope=_scope_of(row),
        item_id=row.item_id,
        staff_id=row.staff_id,
        date=row.day,
        quantity=row.quantity,
        shift=row.shift,
        notes=row.notes,
        issued_by=row.recorded_by,
        confirmed_at=row.confirmed_at,
        id=row.id,
    )


def _return(row: ReturnModel) -> ReturnRecord:
    return ReturnRecord(
        issuance_id=row.issuance_id,
        scope=_scope_of(row),
        item_id=row.item_id,
        staff_id=row.staff_id,
        date=row.day,
        quantity=row.quantity,
        reason=row.reason,
        notes=row.notes,
        returned_to=row.recorded_by,
        id=row.id,
    )


# -- record -> model -------------------------------------------------------


def _scope_columns(scope: Scope) -> dict:
    return {
        "organization_id": scope.organization_id,
        "branch_id": scope.branch_id,
        "branch_key": scope.branch_key,
    }


def _to_model(record):
    if isinstance(record, RestockingRecord):
        return RestockingModel(
            id=record.id,
            item_id=record.item_id,
            day=record.date,
            quantity=record.quantity,
            cost_price=record.cost_price,
            notes=record.notes,
            recorded_by=record.recorded_by,
            **_scope_columns(record.scope),
        )
    if isinstance(record, SaleRecord):
        return SaleModel(
            id=record.id,
            item_id=record.item_id,
            day=record.date,
            quantity=record.quantity,
            price_per_unit=record.price_per_unit,
            total_price=record.total_price,
            payment_mode=record.payment_mode,
            source=record.source.value,
            restocking_id=record.restocking_id,
            opening_stock_id=record.opening_stock_id,
            issuance_id=record.issuance_id,
            batch_label=record.batch_label,
            description=record.description,
            recorded_by=record.recorded_by,
            **_scope_columns(record.scope),
        )
    if isinstance(record, WasteSpoilageRecord):
        return WasteSpoilageModel(
            id=record.id,
            item_id=record.item_id,
            day=record.date,
            quantity=record.quantity,
            kind=record.kind.value,
            reason=record.reason,
            notes=record.notes,
            recorded_by=record.recorded_by,
            **_scope_columns(record.scope),
        )
    if isinstance(record, BranchTransferRecord):
        return BranchTransferModel(
            id=record.id,
            item_id=record.item_id,
            day=record.date,
            organization_id=record.organization_id,
            from_branch_id=record.from_branch_id,
            to_branch_id=record.to_branch_id,
            quantity=record.quantity,
            notes=record.notes,
            recorded_by=record.performed_by,
        )
    if isinstance(record, IssuanceRecord):
        return IssuanceModel(
            id=record.id,
            item_id=record.item_id,
            staff_id=record.staff_id,
            day=record.date,
            quantity=record.quantity,
            shift=record.shift,
            notes=record.notes,
            confirmed_at=record.confirmed_at,
            recorded_by=record.issued_by,
            **_scope_columns(record.scope),
        )
    if isinstance(record, ReturnRecord):
        return ReturnModel(
            id=record.id,
            issuance_id=record.issuance_id,
            item_id=record.item_id,
            staff_id=record.staff_id,
            day=record.date,
            quantity=record.quantity,
            reason=record.reason,
            notes=record.notes,
            recorded_by=record.returned_to,
            **_scope_columns(record.scope),
        )
    raise TypeError(f"Unsupported movement type: {type(record).__name__}")


class SqlMovementStore(MovementStore):
    """
    MovementStore over any SQLAlchemy 2.0 engine.

    Contract:
        Constructed with a session factory (see ``db.engine``).  Each call
        opens, commits and closes its own session.

    Guarantees:
        - Fence uniqueness is enforced by the database, so the guarantee
          holds across processes, not just threads.
        - Returned records are detached domain values; mutating the database
          afterwards does not change them.

    Non-goals:
        - Does NOT participate in a caller-managed transaction.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _session(self):
        return session_scope(self._session_factory)

    # -- reference data ---------------------------------------------------

    def add_item(self, item: Item) -> Item:
        with self._session() as session:
            session.merge(
                ItemModel(
                    id=item.id,
                    organization_id=item.organization_id,
                    name=item.name,
                    unit=item.unit,
                    cost_price=item.cost_price,
                    selling_price=item.selling_price,
                    low_stock_threshold=item.low_stock_threshold,
                )
            )
        return item

    def get_item(self, item_id: str) -> Item | None:
        with self._session() as session:
            row = session.get(ItemModel, item_id)
            return _item(row) if row is not None else None

    def list_items(self, organization_id: str) -> list[Item]:
        with self._session() as session:
            rows = session.scalars(
                select(ItemModel)
                .where(ItemModel.organization_id == organization_id)
                .order_by(ItemModel.name, ItemModel.id)
            ).all()
            return [_item(r) for r in rows]

    def add_branch(self, branch: Branch) -> Branch:
        with self._session() as session:
            session.merge(
                BranchModel(
                    id=branch.id,
                    organization_id=branch.organization_id,
                    name=branch.name,
                )
            )
        return branch

    def get_branch(self, branch_id: str) -> Branch | None:
        with self._session() as session:
            row = session.get(BranchModel, branch_id)
            if row is None:
                return None
            return Branch(id=row.id, organization_id=row.organization_id, name=row.name)

    # -- reads ------------------------------------------------------------

    def read_day(self, scope: Scope, item_id: str, day: date) -> DayMovements:
        with self._session() as session:
            # Fence head first: movements fenced at or below it are committed.
            fence_sequence = session.scalar(
                select(func.coalesce(func.max(StockFenceModel.sequence), 0)).where(
                    StockFenceModel.organization_id == scope.organization_id,
                    StockFenceModel.branch_key == scope.branch_key,
                    StockFenceModel.item_id == item_id,
                    StockFenceModel.day == day,
                )
            )

            def _rows(model, on: date = day):
                return session.scalars(
                    select(model)
                    .where(*_scoped(model, scope), model.item_id == item_id, model.day == on)
                    .order_by(model.created_at, model.id)
                ).all()

            opening = _rows(OpeningStockModel)
            closing = _rows(ClosingStockModel)
            previous = _rows(ClosingStockModel, day - timedelta(days=1))

            incoming: list[BranchTransferRecord] = []
            outgoing: list[BranchTransferRecord] = []
            if scope.branch_id is not None:
                transfers = session.scalars(
                    select(BranchTransferModel)
                    .where(
                        BranchTransferModel.organization_id == scope.organization_id,
                        BranchTransferModel.item_id == item_id,
                        BranchTransferModel.day == day,
                        or_(
                            BranchTransferModel.from_branch_id == scope.branch_id,
                            BranchTransferModel.to_branch_id == scope.branch_id,
                        ),
                    )
                    .order_by(BranchTransferModel.created_at, BranchTransferModel.id)
                ).all()
                for row in transfers:
                    if row.to_branch_id == scope.branch_id:
                        incoming.append(_transfer(row))
                    if row.from_branch_id == scope.branch_id:
                        outgoing.append(_transfer(row))

            return DayMovements(
                scope=scope,
                item_id=item_id,
                date=day,
                opening=_opening(opening[0]) if opening else None,
                previous_closing=_closing(previous[0]) if previous else None,
                closing=_closing(closing[0]) if closing else None,
                restockings=tuple(_restocking(r) for r in _rows(RestockingModel)),
                sales=tuple(_sale(r) for r in _rows(SaleModel)),
                waste=tuple(_waste(r) for r in _rows(WasteSpoilageModel)),
                incoming_transfers=tuple(incoming),
                outgoing_transfers=tuple(outgoing),
                fence_sequence=int(fence_sequence or 0),
            )

    def get_opening_stock(self, opening_stock_id: UUID) -> OpeningStockRecord | None:
        with self._session() as session:
            row = session.get(OpeningStockModel, opening_stock_id)
            return _opening(row) if row is not None else None

    def get_restocking(self, restocking_id: UUID) -> RestockingRecord | None:
        with self._session() as session:
            row = session.get(RestockingModel, restocking_id)
            return _restocking(row) if row is not None else None

    def batch_sales(self, scope: Scope, day: date, batch: BatchRef) -> list[SaleRecord]:
        column = (
            SaleModel.restocking_id
            if batch.kind == BatchKind.RESTOCKING
            else SaleModel.opening_stock_id
        )
        with self._session() as session:
            rows = session.scalars(
                select(SaleModel).where(
                    *_scoped(SaleModel, scope),
                    SaleModel.day == day,
                    column == batch.batch_id,
                )
            ).all()
            return [_sale(r) for r in rows]

    def get_sale(self, sale_id: UUID) -> SaleRecord | None:
        with self._session() as session:
            row = session.get(SaleModel, sale_id)
            return _sale(row) if row is not None else None

    def get_issuance(self, issuance_id: UUID) -> IssuanceRecord | None:
        with self._session() as session:
            row = session.get(IssuanceModel, issuance_id)
            return _issuance(row) if row is not None else None

    def list_issuances(self, scope: Scope, day: date) -> list[IssuanceRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(IssuanceModel)
                .where(*_scoped(IssuanceModel, scope), IssuanceModel.day == day)
                .order_by(IssuanceModel.created_at, IssuanceModel.id)
            ).all()
            return [_issuance(r) for r in rows]

    def list_returns(self, issuance_id: UUID) -> list[ReturnRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(ReturnModel)
                .where(ReturnModel.issuance_id == issuance_id)
                .order_by(ReturnModel.created_at, ReturnModel.id)
            ).all()
            return [_return(r) for r in rows]

    # -- writes -----------------------------------------------------------

    def insert_movement(self, record: AppendOnlyRecord) -> AppendOnlyRecord:
        try:
            with self._session() as session:
                session.add(_to_model(record))
        except IntegrityError as exc:
            raise DuplicateMovementError(type(record).__name__, str(record.id)) from exc
        return record

    def insert_fenced(self, record: FencedRecord, fence: StockFence) -> FencedRecord:
        try:
            with self._session() as session:
                session.add(
                    StockFenceModel(
                        organization_id=fence.scope.organization_id,
                        branch_key=fence.scope.branch_key,
                        item_id=fence.item_id,
                        day=fence.date,
                        sequence=fence.sequence,
                        movement_id=record.id,
                    )
                )
                session.add(_to_model(record))
        except IntegrityError as exc:
            logger.debug(
                "stock_fence_conflict",
                extra={
                    "item_id": fence.item_id,
                    "date": fence.date,
                    "sequence": fence.sequence,
                },
            )
            raise DuplicateMovementError(
                "StockFence",
                f"{fence.scope}:{fence.item_id}:{fence.date}:{fence.sequence}",
            ) from exc
        return record

    def delete_sale(self, sale_id: UUID) -> SaleRecord | None:
        with self._session() as session:
            row = session.get(SaleModel, sale_id)
            if row is None:
                return None
            removed = _sale(row)
            session.delete(row)
            return removed

    def update_issuance(self, record: IssuanceRecord) -> IssuanceRecord:
        with self._session() as session:
            row = session.get(IssuanceModel, record.id)
            if row is None:
                session.add(_to_model(record))
            else:
                row.quantity = record.quantity
                row.shift = record.shift
                row.notes = record.notes
                row.confirmed_at = record.confirmed_at
        return record

    def _upsert(self, find, apply, create, label: str):
        """Update the row ``find`` locates, else insert ``create()``; retry once on a race."""
        for attempt in range(2):
            try:
                with self._session() as session:
                    row = session.scalars(find).first()
                    if row is None:
                        row = create()
                        session.add(row)
                    else:
                        apply(row)
                    session.flush()
                    return row.id
            except IntegrityError as exc:
                if attempt == 1:
                    raise DuplicateMovementError(label, "upsert") from exc
                logger.debug("upsert_race_retry", extra={"table": label})
        raise AssertionError("unreachable")

    def upsert_opening_stock(self, record: OpeningStockRecord) -> OpeningStockRecord:
        def apply(row: OpeningStockModel) -> None:
            row.quantity = record.quantity
            row.entry_mode = record.entry_mode.value
            row.recorded_by = record.recorded_by

        def create() -> OpeningStockModel:
            return OpeningStockModel(
                id=record.id,
                item_id=record.item_id,
                day=record.date,
                quantity=record.quantity,
                entry_mode=record.entry_mode.value,
                recorded_by=record.recorded_by,
                **_scope_columns(record.scope),
            )

        row_id = self._upsert(
            select(OpeningStockModel).where(
                *_scoped(OpeningStockModel, record.scope),
                OpeningStockModel.item_id == record.item_id,
                OpeningStockModel.day == record.date,
            ),
            apply,
            create,
            "OpeningStock",
        )
        return replace(record, id=row_id)

    def upsert_closing_stock(self, record: ClosingStockRecord) -> ClosingStockRecord:
        def apply(row: ClosingStockModel) -> None:
            row.quantity = record.quantity
            row.entry_mode = record.entry_mode.value
            row.notes = record.notes
            row.recorded_by = record.recorded_by

        def create() -> ClosingStockModel:
            return ClosingStockModel(
                id=record.id,
                item_id=record.item_id,
                day=record.date,
                quantity=record.quantity,
                entry_mode=record.entry_mode.value,
                notes=record.notes,
                recorded_by=record.recorded_by,
                **_scope_columns(record.scope),
            )

        row_id = self._upsert(
            select(ClosingStockModel).where(
                *_scoped(ClosingStockModel, record.scope),
                ClosingStockModel.item_id == record.item_id,
                ClosingStockModel.day == record.date,
            ),
            apply,
            create,
            "ClosingStock",
        )
        return replace(record, id=row_id)

    def _settlement_query(self, scope: Scope, item_id: str, day: date, issuance_id: UUID):
        return select(SaleModel).where(
            *_scoped(SaleModel, scope),
            SaleModel.item_id == item_id,
            SaleModel.day == day,
            SaleModel.issuance_id == issuance_id,
            SaleModel.source == SaleSource.ISSUANCE.value,
        )

    def upsert_settlement_sale(self, record: SaleRecord) -> SaleRecord:
        def apply(row: SaleModel) -> None:
            row.quantity = record.quantity
            row.price_per_unit = record.price_per_unit
            row.total_price = record.total_price
            row.description = record.description
            row.recorded_by = record.recorded_by

        row_id = self._upsert(
            self._settlement_query(
                record.scope, record.item_id, record.date, record.issuance_id
            ),
            apply,
            lambda: _to_model(record),
            "SettlementSale",
        )
        return replace(record, id=row_id)

    def delete_settlement_sale(
        self, scope: Scope, item_id: str, day: date, issuance_id: UUID
    ) -> bool:
        with self._session() as session:
            row = session.scalars(
                self._settlement_query(scope, item_id, day, issuance_id)
            ).first()
            if row is None:
                return False
            session.delete(row)
            return True
