"""
Post-commit event dispatch.

``LedgerEventBus`` delivers ``MovementCommitted`` events synchronously to its
subscribers, in subscription order, on the caller's thread.  The write that
produced an event has already committed when subscribers run.

``PropagationHandler`` is the subscriber that turns a past-dated movement
into a cascade.  It never lets a propagation failure reach the caller: the
failure is logged as ``propagation_failed`` and the committed write stands.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from inventory_ledger.domain.clock import Clock
from inventory_ledger.domain.events import MovementCommitted, MovementKind
from inventory_ledger.logging_config import get_logger
from inventory_ledger.services.cascade import CascadePropagator, CascadeResult

logger = get_logger("services.events")

Subscriber = Callable[[MovementCommitted], object]

# A return moves nothing until settlement turns it into a smaller derived sale.
STOCK_NEUTRAL_KINDS = frozenset({MovementKind.RETURN})


class LedgerEventBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def publish(self, event: MovementCommitted) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug(
            "movement_committed",
            extra={
                "kind": event.kind.value,
                "date": event.date,
                "scope": str(event.scope),
                "item_id": event.item_id,
            },
        )
        for subscriber in subscribers:
            subscriber(event)


class PropagationHandler:
    """
    Runs the cascade for movements dated before today.

    Contract:
        Called with every ``MovementCommitted``.  Events dated today need no
        cascade (there is no later date to update) and are ignored, as are
        stock-neutral events.

    Guarantees:
        - Returns the ``CascadeResult`` on success, ``None`` when skipped or
          failed.
        - Never raises.
    """

    def __init__(self, propagator: CascadePropagator, clock: Clock):
        self._propagator = propagator
        self._clock = clock

    def __call__(self, event: MovementCommitted) -> CascadeResult | None:
        if event.kind in STOCK_NEUTRAL_KINDS or event.date >= self._clock.today():
            return None

        item_ids = None if event.affects_all_items else [event.item_id]
        try:
            return self._propagator.propagate(event.date, event.scope, item_ids)
        except Exception:
            # The movement is committed; a failed cascade is repaired by the
            # next propagation or auto-save covering this date.
            logger.error(
                "propagation_failed",
                extra={
                    "kind": event.kind.value,
                    "date": event.date,
                    "scope": str(event.scope),
                    "item_id": event.item_id,
                    "movement_id": event.movement_id,
                },
                exc_info=True,
            )
            return None
