"""Observability package for logging."""

from cardsearch_core.observability.logging import (
    JsonFormatter,
    RequestContext,
    RequestContextFilter,
    StructuredLogger,
    bind_request_context,
    configure_logging,
    current_request_context,
    get_logger,
    reset_request_context,
)

__all__ = [
    "JsonFormatter",
    "RequestContext",
    "RequestContextFilter",
    "StructuredLogger",
    "bind_request_context",
    "configure_logging",
    "current_request_context",
    "get_logger",
    "reset_request_context",
]
