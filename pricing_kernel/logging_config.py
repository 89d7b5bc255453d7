"""
Structured JSON logging for the pricing kernel.

Every record under the ``pricing_kernel`` logger renders as one JSON line:
the envelope (``ts``, ``level``, ``logger``, ``message``), the calculation
fields bound through ``LogContext``, then any ``extra`` fields. Exceptions
add ``exc_type``, ``exc_message``, ``exc_code`` and the structured attributes
of the kernel's typed errors (``exc_parameter``, ``exc_currency``...).

    with LogContext.bind(calculation_id=calc.calculation_id):
        logger.info("country_priced", extra={"cost": cost.amount})
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, TextIO

_ROOT = "pricing_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "calculation_id",
    "user_id",
    "country_code",
    "rule_id",
)

_fields: ContextVar[Mapping[str, str]] = ContextVar("pricing_log_fields", default={})


class LogContext:
    """Calculation-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def _merged(fields: Mapping[str, str | None]) -> dict[str, str]:
        merged = dict(_fields.get())
        merged.update(
            (k, v) for k, v in fields.items() if v is not None and k in CONTEXT_FIELDS
        )
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set known fields; ``None`` leaves a field as it was."""
        _fields.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_fields.get())

    @classmethod
    def clear(cls) -> None:
        _fields.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore the previous ones."""
        token = _fields.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _fields.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Typed kernel errors expose their details as public attributes.
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_")
        )
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel module, e.g. ``get_logger("domain.rule_engine")``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the pricing_kernel logger; later calls are no-ops."""
    global _handler
    with _lock:
        if _handler is not None:
            return
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        _handler = handler
        _handler.setFormatter(StructuredFormatter())
        root = logging.getLogger(_ROOT)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Remove the installed handler so tests can configure again."""
    global _handler
    with _lock:
        root = logging.getLogger(_ROOT)
        if _handler is not None:
            root.removeHandler(_handler)
            _handler = None
        root.setLevel(logging.NOTSET)
        root.propagate = True
