"""
Module: inventory_ledger.models.movements
Responsibility: ORM persistence for stock movements (restocking, sales,
    waste/spoilage, branch transfers) and for the stock fence that orders
    concurrent consuming writes.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - Movements are append-only, except sales which may be deleted.
    - Settlement sales are unique per (item_id, date, organization_id,
      branch_key, issuance_id).  Manual sales carry a NULL issuance_id and
      are therefore never constrained by it.
    - Stock fences are unique per (organization_id, branch_key, item_id,
      date, sequence).  A fence row is written in the same transaction as
      the sale or transfer it guards.

Failure modes:
    - IntegrityError on a duplicate fence or settlement sale.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import Base, RecordedBase, UUIDString


class RestockingModel(RecordedBase):
    __tablename__ = "restocking"

    __table_args__ = (
        Index("idx_restocking_scope_day", "organization_id", "branch_key", "item_id", "date"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    cost_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class SaleModel(RecordedBase):
    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "date", "organization_id", "branch_key", "issuance_id",
            name="uq_sales_settlement",
        ),
        Index("idx_sales_scope_day", "organization_id", "branch_key", "item_id", "date"),
        Index("idx_sales_restocking", "restocking_id"),
        Index("idx_sales_opening_stock", "opening_stock_id"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    payment_mode: Mapped[str] = mapped_column(String(30), nullable=False, default="cash")

    # manual | issuance
    source: Mapped[str] = mapped_column(String(20), nullable=False)

    restocking_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    opening_stock_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    issuance_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    batch_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class WasteSpoilageModel(RecordedBase):
    __tablename__ = "waste_spoilage"

    __table_args__ = (
        Index("idx_waste_scope_day", "organization_id", "branch_key", "item_id", "date"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # waste | spoilage
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class BranchTransferModel(RecordedBase):
    __tablename__ = "branch_transfers"

    __table_args__ = (
        Index("idx_transfer_from", "organization_id", "from_branch_id", "item_id", "date"),
        Index("idx_transfer_to", "organization_id", "to_branch_id", "item_id", "date"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    from_branch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    to_branch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class StockFenceModel(Base):
    __tablename__ = "stock_fences"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "branch_key", "item_id", "date", "sequence",
            name="uq_stock_fence",
        ),
    )

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_key: Mapped[str] = mapped_column(String(100), nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    movement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
