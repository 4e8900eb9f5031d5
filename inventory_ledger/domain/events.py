"""
Ledger events -- post-commit notifications.

A ``MovementCommitted`` event is published after a movement is durably
written.  Consumers (the propagation handler) react to it; the write itself
has already succeeded and is never rolled back by a consumer failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from inventory_ledger.domain.values import Scope


class MovementKind(str, Enum):
    OPENING_STOCK = "opening_stock"
    CLOSING_STOCK = "closing_stock"
    RESTOCKING = "restocking"
    SALE = "sale"
    SALE_DELETED = "sale_deleted"
    WASTE = "waste"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    SETTLEMENT = "settlement"
    RETURN = "return"


@dataclass(frozen=True)
class MovementCommitted:
    scope: Scope
    date: date
    kind: MovementKind
    item_id: str | None = None
    movement_id: UUID | None = None
    actor_id: str | None = None

    @property
    def affects_all_items(self) -> bool:
        """Settlement touches every issued item in the scope."""
        return self.item_id is None
