"""
Structured JSON logging for the POS ledger.

Every record is one JSON line::

    {"ts": ..., "level": "INFO", "logger": "pos_kernel.services.credit",
     "message": "payment_received", "audit": true,
     "scope": {"tenant_id": "shop-1", "entity_id": "c1"},
     "payment_id": "pay-9", "amount": {"amount": "650.00", "currency": "BDT"}}

``scope`` carries the tenant / shift / entity / actor bound by the
service layer through ``LogContext.bind``; tracing ids sit at the top
level.  Events that move money (payments, obligations, drawer movements,
shift open and close, wallet transfers) are flagged ``"audit": true`` so
a shipper can route them to the audit stream.  Money values in ``extra``
are written as amount plus currency.
"""

__all__ = [
    "AUDIT_EVENTS",
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
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from pos_kernel.domain.values import Currency, Money

SCOPE_FIELDS = ("tenant_id", "shift_id", "entity_id", "actor_id")
TRACE_FIELDS = ("correlation_id", "trace_id")

AUDIT_EVENTS: frozenset[str] = frozenset({
    "ledger_entry_recorded",
    "obligation_recorded",
    "payment_received",
    "shift_opened",
    "shift_closed",
    "cash_drop_recorded",
    "cash_add_recorded",
    "wallet_transfer_recorded",
})


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: MappingProxyType = MappingProxyType({})
_current: ContextVar[MappingProxyType] = ContextVar("pos_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    The fields enrich log lines only.  Services always take tenant, shift
    and entity as explicit arguments and never read them back from here.
    """

    FIELDS = SCOPE_FIELDS + TRACE_FIELDS

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> MappingProxyType:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise KeyError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(_current.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context; None leaves a field alone."""
        _current.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_current.get())

    @classmethod
    def clear(cls) -> None:
        _current.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields inside a ``with`` block and restore the previous ones after."""
        token = _current.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _current.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _encode(obj: Any) -> Any:
    if isinstance(obj, Money):
        return {"amount": str(obj.amount), "currency": obj.currency.code}
    if isinstance(obj, Currency):
        return obj.code
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    return str(obj)


def _error_block(exc: BaseException) -> dict[str, Any]:
    """Type, message, error code and the structured fields of a kernel error."""
    block: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        block["code"] = code
    fields = {k: v for k, v in vars(exc).items() if not k.startswith("_") and k != "code"}
    if fields:
        block["fields"] = fields
    return block


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; see the module docstring for the shape."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        if message in AUDIT_EVENTS:
            payload["audit"] = True

        context = LogContext.get_all()
        scope = {k: context[k] for k in SCOPE_FIELDS if k in context}
        if scope:
            payload["scope"] = scope
        payload.update((k, context[k]) for k in TRACE_FIELDS if k in context)

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            error = _error_block(record.exc_info[1])
            error["traceback"] = self.formatException(record.exc_info)
            payload["error"] = error

        return json.dumps(payload, default=_encode)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "pos_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``pos_kernel`` hierarchy, e.g. ``services.shift``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    levels = logging.getLevelNamesMapping()
    try:
        return levels[level.strip().upper()]
    except KeyError:
        raise ValueError(f"Unknown log level {level!r}") from None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``pos_kernel`` logger.

    Only the first call has an effect until ``reset_logging``.  ``level``
    may be a number or a name such as ``"debug"``.
    """
    global _configured
    level_no = _level_number(level)
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level_no)
    root.propagate = False
    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging`` again (tests only)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
