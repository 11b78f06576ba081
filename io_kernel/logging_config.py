"""
Structured logging for the insertion order kernel.

Every record under the ``io_kernel`` logger hierarchy is written as one
JSON object per line:

    {"ts": ..., "level": ..., "logger": ..., "message": "transition_applied",
     "order_id": ..., "actor_id": ..., "from_status": "draft", ...}

Messages are event names; the detail travels in ``extra``.  Fields bound
through ``LogContext`` (correlation, actor, order, bulk job, invoice) are
merged into every record emitted while they are bound, including records
from the pure engines, which never see those ids directly.
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import dataclasses
import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

ROOT_LOGGER_NAME = "io_kernel"

# ---------------------------------------------------------------------------
# Operation context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "order_id", "job_id", "invoice_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"io_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """Operation-scoped identifiers attached to every log record.

    Backed by ``contextvars`` so values follow the current thread or task.
    Unknown names and None values are ignored by ``set`` and ``bind``.
    """

    @staticmethod
    def _known(fields: dict[str, Any]) -> dict[str, str]:
        return {
            name: str(value)
            for name, value in fields.items()
            if value is not None and name in _context_vars
        }

    @classmethod
    def set(cls, **fields: Any) -> None:
        for name, value in cls._known(fields).items():
            _context_vars[name].set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        current = {name: var.get() for name, var in _context_vars.items()}
        return {name: value for name, value in current.items() if value is not None}

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> _BoundContext:
        """Bind fields for the duration of a ``with`` block.

        On exit each field returns to the value it had before, None included.
        """
        return _BoundContext(cls._known(fields))


class _BoundContext:

    def __init__(self, fields: dict[str, str]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _context_vars[name]
            self._tokens.append((var, var.set(value)))
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    """Fallback encoder for the kernel's value types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(v) if not isinstance(v, str) else v for v in value), key=str)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, ``code`` and public attributes of ``exc``, prefixed ``exc_``."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload.update(_exception_fields(exc))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``io_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_setup_done = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``io_kernel`` hierarchy.

    Only the first call has any effect until ``reset_logging()``.  Records
    do not propagate to the root logger, so host logging setup is left
    alone.
    """
    global _setup_done
    with _setup_lock:
        if _setup_done:
            return
        _setup_done = True

        if handler is None:
            handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        handler.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop the kernel's handlers so ``configure_logging`` can run again (tests)."""
    global _setup_done
    with _setup_lock:
        _setup_done = False
        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        for existing in list(kernel_logger.handlers):
            kernel_logger.removeHandler(existing)
        kernel_logger.setLevel(logging.WARNING)
