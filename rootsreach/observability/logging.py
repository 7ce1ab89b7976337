"""
Request-scoped logging context.

A request runs inside `request_scope()`, which binds a correlation ID;
authentication later adds the caller with `bind_caller()`. Loggers from
`get_logger()` and calls to `log_operation()` attach that context to every
record as `extra` fields, so handlers with a structured formatter can emit
it without the call sites repeating it.
"""

import contextvars
import logging
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any

_EMPTY: Mapping[str, Any] = MappingProxyType({})

_log_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "rootsreach_log_context", default=_EMPTY
)


@contextmanager
def request_scope(correlation_id: str | None = None) -> Iterator[str]:
    """
    Bind a fresh logging context for the duration of a request.

    Yields:
        The correlation ID in effect (generated when none is given)
    """
    correlation_id = correlation_id or uuid.uuid4().hex
    token = _log_context.set(MappingProxyType({"correlation_id": correlation_id}))
    try:
        yield correlation_id
    finally:
        _log_context.reset(token)


def bind_caller(user_id: str | None, role: str | None, **fields: Any) -> None:
    """Add the authenticated caller to the current context."""
    _log_context.set(
        MappingProxyType({**_log_context.get(), "user_id": user_id, "role": role, **fields})
    )


def get_correlation_id() -> str | None:
    return _log_context.get().get("correlation_id")


def current_context() -> dict[str, Any]:
    return dict(_log_context.get())


class ContextLogger(logging.LoggerAdapter):
    """Adds the current request context to each record; explicit `extra` wins."""

    def process(self, msg: Any, kwargs: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
        kwargs["extra"] = {**current_context(), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    success: bool = True,
    level: int | None = None,
    **fields: Any,
) -> None:
    """
    Log the outcome of a domain operation as one structured record.

    The message reads `"<operation> ok"` or `"<operation> failed"` followed by
    the fields as key=value pairs. Failures default to WARNING, successes to
    INFO.

    Args:
        logger: Logger or adapter to write to
        operation: Short operation name, e.g. "login" or "otp_send"
        success: Outcome of the operation
        level: Explicit log level overriding the default
        **fields: Extra structured fields (account_id, counts, reasons)
    """
    if level is None:
        level = logging.INFO if success else logging.WARNING
    detail = " ".join(f"{key}={value}" for key, value in fields.items())
    message = f"{operation} {'ok' if success else 'failed'}"
    if detail:
        message = f"{message} {detail}"
    logger.log(
        level,
        message,
        extra={**current_context(), "operation": operation, "success": success, **fields},
    )
