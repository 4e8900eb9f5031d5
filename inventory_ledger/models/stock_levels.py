"""
Module: inventory_ledger.models.stock_levels
Responsibility: ORM persistence for per-day stock levels: opening stock and
    closing stock.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - One opening and one closing row per (item_id, date, organization_id,
      branch_key).  ``branch_key`` is ``branch_id`` or ``""`` so that the
      no-branch scope is a real key under SQL NULL semantics.
    - ``entry_mode`` distinguishes manual entries (sentinels) from
      cascade-derived / computed rows.

Failure modes:
    - IntegrityError on a second row for the same key; the SQL store turns
      it into DuplicateMovementError.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import RecordedBase


class OpeningStockModel(RecordedBase):
    __tablename__ = "opening_stock"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "date", "organization_id", "branch_key",
            name="uq_opening_stock_scope_day",
        ),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    day: Mapped[date] = mapped_column("date", Date, nullable=False)

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # manual | cascade
    entry_mode: Mapped[str] = mapped_column(String(20), nullable=False)


class ClosingStockModel(RecordedBase):
    __tablename__ = "closing_stock"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "date", "organization_id", "branch_key",
            name="uq_closing_stock_scope_day",
        ),
        Index("idx_closing_stock_org_day", "organization_id", "date"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    day: Mapped[date] = mapped_column("date", Date, nullable=False)

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # manual | computed
    entry_mode: Mapped[str] = mapped_column(String(20), nullable=False)

    # Derivation trace for computed rows, free text for manual ones
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
