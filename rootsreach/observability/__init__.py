"""
Observability components.

Request-scoped logging context (correlation ID and authenticated caller).
"""

from .logging import (ContextLogger, bind_caller, current_context,
                      get_correlation_id, get_logger, log_operation,
                      request_scope)

__all__ = [
    "request_scope",
    "bind_caller",
    "get_correlation_id",
    "current_context",
    "ContextLogger",
    "get_logger",
    "log_operation",
]
