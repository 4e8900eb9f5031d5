"""
Module: inventory_ledger.models.reference
Responsibility: ORM persistence for the reference data the ledger validates
    against: items (SKUs) and branches.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - Item and branch ids are the surrounding application's ids (strings),
      not generated UUIDs.
    - An item is never deleted while movements reference it; the ledger
      never issues deletes against this table.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import Base


class ItemModel(Base):
    """A tracked SKU.  No stock quantity is stored here; stock lives in the ledger."""

    __tablename__ = "items"

    __table_args__ = (Index("idx_item_org", "organization_id"),)

    id: Mapped[str] = mapped_column(String(100), primary_key=True)

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")

    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    selling_price: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    low_stock_threshold: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Item {self.id}: {self.name} org={self.organization_id}>"


class BranchModel(Base):
    __tablename__ = "branches"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
