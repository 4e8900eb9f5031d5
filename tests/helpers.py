"""Shared identifiers, dates and reference data for the ledger tests."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from inventory_ledger.domain.records import Branch, Item
from inventory_ledger.domain.values import Scope

TODAY = date(2024, 1, 15)
TODAY_CLOCK_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
YESTERDAY = TODAY - timedelta(days=1)

ORG = "org-1"
OTHER_ORG = "org-2"
BRANCH_A = "branch-a"
BRANCH_B = "branch-b"
ITEM = "item-rice"
OTHER_ITEM = "item-beans"
FOREIGN_ITEM = "item-foreign"

SCOPE_A = Scope(ORG, BRANCH_A)
SCOPE_B = Scope(ORG, BRANCH_B)
ORG_SCOPE = Scope(ORG)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def seed_reference_data(store) -> None:
    """Two branches and two items in ORG, plus a branch and item in OTHER_ORG."""
    store.add_branch(Branch(id=BRANCH_A, organization_id=ORG, name="Main"))
    store.add_branch(Branch(id=BRANCH_B, organization_id=ORG, name="Annex"))
    store.add_branch(Branch(id="branch-z", organization_id=OTHER_ORG, name="Elsewhere"))
    store.add_item(
        Item(
            id=ITEM,
            organization_id=ORG,
            name="Rice",
            unit="kg",
            cost_price=Decimal("1.50"),
            selling_price=Decimal("2.50"),
            low_stock_threshold=Decimal("5"),
        )
    )
    store.add_item(
        Item(
            id=OTHER_ITEM,
            organization_id=ORG,
            name="Beans",
            unit="kg",
            selling_price=Decimal("4"),
        )
    )
    store.add_item(Item(id=FOREIGN_ITEM, organization_id=OTHER_ORG, name="Salt"))
