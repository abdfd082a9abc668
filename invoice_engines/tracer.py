"""
invoice_engines.tracer -- INVOICE_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine method and emits one structured
    log record per call: engine name and version, a fingerprint of the
    inputs that determine the result, the duration, and the integer result
    when there is one.  Two calls with the same fingerprint must produce
    the same answer; the trace is how a disputed balance is replayed.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emitting a log record is the only side effect.

Fingerprint:
    SHA-256 over a canonical text form of the named keyword inputs,
    truncated to 16 hex characters.  Dataclass inputs (FeeTerms,
    AppliedAmount, ApplicationTarget) are rendered field by field and enums
    by value, so the fingerprint does not depend on reprs.  Missing inputs
    render as ``null``.

Usage:
    @traced_engine("fee_accrual", "1.0", fingerprint_fields=("principal", "as_of"))
    def accrued_outstanding(self, *, principal, ..., as_of):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any

from invoice_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_TYPE = "INVOICE_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16


def _canonicalize(value: Any) -> str:
    match value:
        case None:
            return "null"
        case bool():
            return "true" if value else "false"
        case Enum():
            return _canonicalize(value.value)
        case int() | str():
            return str(value)
        case Decimal():
            return format(value.normalize(), "f")
        case dict():
            return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in sorted(value.items())) + "}"
        case list() | tuple():
            return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        inner = ",".join(
            f"{f.name}={_canonicalize(getattr(value, f.name))}" for f in dataclasses.fields(value)
        )
        return f"{type(value).__name__}({inner})"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    canonical = "|".join(f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Emit INVOICE_ENGINE_TRACE for each call of the decorated engine method."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""

            started = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - started) * 1000, 2)

            extra = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint,
                "duration_ms": duration_ms,
            }
            if isinstance(result, int) and not isinstance(result, bool):
                extra["result"] = result
            logger.info(TRACE_TYPE, extra=extra)
            return result

        return wrapper

    return decorator
