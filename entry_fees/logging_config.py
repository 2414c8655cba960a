"""
Structured JSON logging for the entry fees engine.

Every record is one JSON line under the ``entry_fees`` logger namespace.
Request-scoped identifiers live in ``LogContext`` and are merged into each
line, so a cancellation logged deep inside the lifecycle service still
carries the batch that triggered it.

Context fields:
    actor_id          who created the payment list
    payment_list_id   list being created or regenerated
    statement_id      statement whose status is changing
    batch_id          one batch run, shared by all of its items
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
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, TextIO
from uuid import UUID

LOGGER_NAMESPACE = "entry_fees"

CONTEXT_FIELDS = ("actor_id", "payment_list_id", "statement_id", "batch_id")

_context: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"{LOGGER_NAMESPACE}_{field}", default=None)
    for field in CONTEXT_FIELDS
}


class LogContext:
    """Identifiers attached to every log line emitted in the current context."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            field: value
            for field, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Set context fields for the duration of a ``with`` block.

        None values leave the current binding alone; nested binds restore
        the outer value on exit.

        Raises:
            TypeError: a field outside CONTEXT_FIELDS.
        """
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")

        tokens = [
            (_context[field], _context[field].set(str(value)))
            for field, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, then error."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        line.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in line
        )

        error = record.exc_info[1] if record.exc_info else None
        if error is not None:
            line["exc_type"] = type(error).__name__
            to_dict = getattr(error, "to_dict", None)
            details = to_dict() if callable(to_dict) else {"message": str(error)}
            for key, value in details.items():
                line[f"exc_{key}"] = value
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.x")`` -> ``entry_fees.services.x``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``entry_fees`` namespace. Idempotent."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        namespace.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging() to run again. Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
