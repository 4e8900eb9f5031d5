"""
Pytest fixtures for the inventory ledger test suite.

Provides:
- Structured log capture
- A deterministic clock pinned to 2024-01-15 12:00 UTC
- In-memory and SQLite-backed movement stores seeded with reference data
- A wired InventoryLedger whose retry sleep is recorded instead of slept
"""

import json
import logging
from io import StringIO

import pytest

from inventory_ledger.config.loader import LedgerSettings
from inventory_ledger.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_ledger.domain.clock import DeterministicClock
from inventory_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_ledger.services.ledger import InventoryLedger
from inventory_ledger.stores.memory import InMemoryMovementStore
from inventory_ledger.stores.sql import SqlMovementStore
from tests.helpers import TODAY_CLOCK_TIME, seed_reference_data


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_sale(...)
            assert any(r["message"] == "sale_recorded" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_ledger")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and stores
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TODAY_CLOCK_TIME)


@pytest.fixture
def memory_store() -> InMemoryMovementStore:
    store = InMemoryMovementStore()
    seed_reference_data(store)
    return store


@pytest.fixture
def sql_store():
    init_engine_from_url("sqlite://")
    create_tables()
    store = SqlMovementStore(get_session_factory())
    seed_reference_data(store)
    yield store
    drop_tables()
    reset_engine()


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Runs a test once per MovementStore implementation."""
    return request.getfixturevalue(f"{request.param}_store")


# =============================================================================
# Ledger
# =============================================================================


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(max_write_retries=3, backoff_base_seconds=0.1, max_cascade_days=366)


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the retry loop, in order."""
    return []


@pytest.fixture
def ledger(memory_store, clock, settings, sleeps) -> InventoryLedger:
    return InventoryLedger(memory_store, clock=clock, settings=settings, sleep=sleeps.append)


@pytest.fixture
def sql_ledger(sql_store, clock, settings, sleeps) -> InventoryLedger:
    return InventoryLedger(sql_store, clock=clock, settings=settings, sleep=sleeps.append)


@pytest.fixture(params=["memory", "sql"])
def any_ledger(request, clock, settings, sleeps) -> InventoryLedger:
    store = request.getfixturevalue(f"{request.param}_store")
    return InventoryLedger(store, clock=clock, settings=settings, sleep=sleeps.append)
