"""
Module: inventory_ledger.models.issuance
Responsibility: ORM persistence for staff issuances and the returns recorded
    against them.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - A return references exactly one issuance.
    - ``confirmed_at`` is set once; issuances are otherwise immutable.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import RecordedBase, UUIDString


class IssuanceModel(RecordedBase):
    __tablename__ = "issuances"

    __table_args__ = (
        Index("idx_issuance_scope_day", "organization_id", "branch_key", "date"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    staff_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    shift: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class ReturnModel(RecordedBase):
    __tablename__ = "returns"

    __table_args__ = (Index("idx_returns_issuance", "issuance_id"),)

    issuance_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    staff_id: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    branch_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
