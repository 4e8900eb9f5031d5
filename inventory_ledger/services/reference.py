"""Reference-data checks shared by the ledger services."""

from __future__ import annotations

from inventory_ledger.domain.records import Branch, Item
from inventory_ledger.domain.values import Scope
from inventory_ledger.exceptions import (
    BranchNotFoundError,
    ItemNotFoundError,
    OwnershipMismatchError,
)
from inventory_ledger.stores.base import MovementStore


class ReferenceGuard:
    """Resolves items and branches and rejects ones outside the caller's organization."""

    def __init__(self, store: MovementStore):
        self._store = store

    def require_item(self, scope: Scope, item_id: str) -> Item:
        item = self._store.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        if item.organization_id != scope.organization_id:
            raise OwnershipMismatchError(
                "Item", item_id, "does not belong to your organization"
            )
        return item

    def require_branch(self, organization_id: str, branch_id: str) -> Branch:
        branch = self._store.get_branch(branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        if branch.organization_id != organization_id:
            raise OwnershipMismatchError(
                "Branch", branch_id, "does not belong to your organization"
            )
        return branch

    def require_scope(self, scope: Scope) -> None:
        """A branch-less scope always passes; a branch must exist in the organization."""
        if scope.branch_id is not None:
            self.require_branch(scope.organization_id, scope.branch_id)
