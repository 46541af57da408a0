"""
consolidation_engines.tracer -- Engine invocation tracer emitting CONSOLIDATION_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine function and emits one structured
    log record per call carrying the engine name and version, a
    deterministic fingerprint of selected arguments, and the duration.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits a log record
    only; never reads or writes storage.

Invariants enforced:
    - The fingerprint is deterministic: dict keys and sets are sorted, the
      hash is SHA-256 truncated to 16 hex characters.
    - Arguments are matched by name whether passed positionally or by
      keyword.  Missing fields are recorded as "null".

Usage:
    from consolidation_engines.tracer import traced_engine

    @traced_engine("scheduler", "1.0", fingerprint_fields=("target",))
    def contribution(adjustment, target):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from consolidation_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int, float, Decimal, UUID)):
        return str(value)
    if isinstance(value, str):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (set, frozenset)):
        return "{" + ",".join(sorted(_canonicalize(v) for v in value)) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """16-hex-character SHA-256 prefix over the named arguments."""
    parts = [f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits CONSOLIDATION_ENGINE_TRACE for pure engine calls.

    Args:
        engine_name: Engine identifier (e.g., "aggregator").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Parameter names included in the input fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "CONSOLIDATION_ENGINE_TRACE",
                extra={
                    "trace_type": "CONSOLIDATION_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
