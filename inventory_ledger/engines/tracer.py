"""
inventory_ledger.engines.tracer -- LEDGER_ENGINE_TRACE records for pure calculations.

Responsibility:
    ``@traced_engine`` wraps a keyword-only engine function and logs, at
    DEBUG, which engine ran, a fingerprint of the movements it was given and
    how long it took.  Nothing else about the call changes.

Invariants enforced:
    - The fingerprint depends only on the values of the named keyword
      arguments.  Quantities are compared by value, so ``Decimal("5")`` and
      ``Decimal("5.000")`` (what a SQL round trip can hand back) produce the
      same fingerprint.  Recomputing an unchanged day therefore logs the
      same fingerprint twice.
    - A named argument that was not passed is fingerprinted as null.

Usage:
    @traced_engine("closing_stock", "1.0", fingerprint_fields=("sales",))
    def calculate_closing_stock(*, sales=()):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from inventory_ledger.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_TYPE = "LEDGER_ENGINE_TRACE"


def _plain(value: Any) -> Any:
    """Reduce movement inputs to JSON values with one spelling per quantity."""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """First 16 hex chars of the SHA-256 of the named inputs."""
    selected = {name: _plain(kwargs.get(name)) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            elapsed_ms = (time.monotonic() - started) * 1000

            if _logger.isEnabledFor(logging.DEBUG):
                _logger.debug(
                    TRACE_TYPE,
                    extra={
                        "trace_type": TRACE_TYPE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": (
                            compute_input_fingerprint(fingerprint_fields, kwargs)
                            if fingerprint_fields
                            else ""
                        ),
                        "duration_ms": round(elapsed_ms, 2),
                        "function": func.__qualname__,
                    },
                )
            return result

        return wrapper

    return decorator
