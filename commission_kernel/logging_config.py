"""
Structured JSON logging for the commission kernel.

Each record is written as one JSON object per line.  Its keys come from:

- the record itself: ``ts``, ``level``, ``logger``, ``message``;
- the ambient LogContext: correlation id, commission, actor, operation;
- ``extra={...}`` at the call site.

A workflow error logged with ``exc_info`` adds its ``code`` and structured
attributes as ``exc_*`` keys, so a refused approval can be traced from the
log line alone.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

from commission_kernel.exceptions import CommissionWorkflowError

NAMESPACE = "commission_kernel"

CONTEXT_FIELDS = ("correlation_id", "commission_id", "actor_id", "operation")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"commission_log_{name}", default=None)
    for name in CONTEXT_FIELDS
}


def _var(name: str) -> ContextVar[str | None]:
    try:
        return _context[name]
    except KeyError:
        raise TypeError(f"Unknown log context field: {name!r}") from None


class LogContext:
    """Request-scoped log fields; each thread and task sees its own values."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the named fields.  ``None`` leaves a field unchanged."""
        for name, value in fields.items():
            var = _var(name)
            if value is not None:
                var.set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {name: var.get() for name, var in _context.items()}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the body of a ``with`` block, then restore them."""
        tokens = []
        for name, value in fields.items():
            var = _var(name)
            if value is not None:
                tokens.append((var, var.set(value)))
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from extra=.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message", "asctime", "taskName",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    # UUID, Decimal and anything else render as their string form
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, CommissionWorkflowError):
        fields["exc_code"] = exc.code
        for key, value in vars(exc).items():
            if not key.startswith("_"):
                fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``commission_kernel`` namespace."""
    return logging.getLogger(f"{NAMESPACE}.{name}")


_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install one JSON handler on the ``commission_kernel`` logger.

    Only the first call takes effect; later calls return the handler that
    is already installed.  ``level`` is a number or a level name as written
    in the settings file (``"info"``, ``"WARNING"``).
    """
    global _installed
    with _lock:
        if _installed is not None:
            return _installed

        installed = handler or logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(NAMESPACE)
        kernel_logger.setLevel(level.upper() if isinstance(level, str) else level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(installed)
        _installed = installed
        return installed


def reset_logging() -> None:
    """Remove the handler installed by configure_logging.  Used by tests."""
    global _installed
    with _lock:
        kernel_logger = logging.getLogger(NAMESPACE)
        if _installed is not None:
            kernel_logger.removeHandler(_installed)
            _installed = None
        kernel_logger.setLevel(logging.WARNING)
        kernel_logger.propagate = True
