"""Services for the inventory ledger (write side)."""

from inventory_ledger.services.availability import Availability, AvailabilityController
from inventory_ledger.services.cascade import (
    CascadePropagator,
    CascadeResult,
    CascadeStep,
    CascadeTermination,
    ItemCascade,
    StepState,
)
from inventory_ledger.services.events import LedgerEventBus, PropagationHandler
from inventory_ledger.services.ledger import AutoSaveResult, InventoryLedger, SettlementResult
from inventory_ledger.services.reference import ReferenceGuard
from inventory_ledger.services.settlement import (
    IssuanceSettlementService,
    ReturnOutcome,
    SettlementOutcome,
)

__all__ = [
    "AutoSaveResult",
    "Availability",
    "AvailabilityController",
    "CascadePropagator",
    "CascadeResult",
    "CascadeStep",
    "CascadeTermination",
    "InventoryLedger",
    "IssuanceSettlementService",
    "ItemCascade",
    "LedgerEventBus",
    "PropagationHandler",
    "ReferenceGuard",
    "ReturnOutcome",
    "SettlementOutcome",
    "SettlementResult",
    "StepState",
]
