"""
Module: consolidation_kernel.logging_config
Responsibility: Structured JSON logging for the consolidation core.  One
    JSON object per line, carrying request context (organization, actor,
    report type) bound by the services.
Architecture position: Kernel.  No imports from engines or modules.

Invariants enforced:
    - Every record emitted under the ``consolidation`` namespace is a
      single valid JSON line.
    - Amounts (Decimal) are serialized as strings, never floats.
    - Context fields are request-scoped (ContextVar) and restored on exit
      from ``LogContext.bind``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import fields, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_NAMESPACE = "consolidation"

_CONTEXT_FIELDS = (
    "correlation_id",
    "organization_id",
    "actor_id",
    "request_id",
    "report_type",
)


def _as_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class LogContext:
    """Request-scoped log fields, safe across threads and async tasks."""

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"{_NAMESPACE}_log_{name}", default=None)
        for name in _CONTEXT_FIELDS
    }

    @classmethod
    def _var(cls, name: str) -> ContextVar[str | None]:
        try:
            return cls._vars[name]
        except KeyError:
            raise KeyError(f"Unknown log context field: {name}") from None

    @classmethod
    def set(cls, **values: Any) -> None:
        """Set context fields.  None values are skipped."""
        for name, value in values.items():
            var = cls._var(name)
            if value is not None:
                var.set(_as_text(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **values: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (cls._var(name), cls._var(name).set(_as_text(value)))
            for name, value in values.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(_as_text(v) for v in obj)
    if is_dataclass(obj) and hasattr(obj, "key"):
        # Period and PeriodBucket
        return obj.key
    if is_dataclass(obj):
        return {f.name: getattr(obj, f.name) for f in fields(obj)}
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """
    Formats each record as one JSON line.

    Layout: ``ts``, ``level``, ``logger``, ``message``, then the bound
    LogContext fields, then the record's ``extra`` payload.  For records
    logged with ``exc_info`` the exception type, message, ``code`` and the
    structured attributes of ConsolidationError subclasses are added as
    ``exc_*`` keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                payload.setdefault(key, value)

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            for key, value in vars(exc).items():
                if not key.startswith("_"):
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``consolidation`` namespace, e.g. ``engines.scheduler``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``consolidation`` logger.

    Idempotent: once configured, later calls are no-ops until
    ``reset_logging()``.
    """
    global _installed
    with _lock:
        if _installed is not None:
            return
        _installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        _installed.setFormatter(StructuredFormatter())

        root = logging.getLogger(_NAMESPACE)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_installed)


def reset_logging() -> None:
    """Remove the installed handler and restore defaults.  FOR TESTING ONLY."""
    global _installed
    with _lock:
        root = logging.getLogger(_NAMESPACE)
        if _installed is not None:
            root.removeHandler(_installed)
            _installed = None
        root.setLevel(logging.NOTSET)
        root.propagate = True
