"""
Observability package — structured logging, request context, tracing and error handling.

Provides:
- ``Logger`` / ``logger`` / ``create_logger``: leveled, sanitized, environment-aware logging
- ``sanitize`` / ``scrub_secrets``: secret and PII redaction for arbitrary payloads
- ``ContextProvider``: request, user and client-IP context for log enrichment
- ``RequestTracer``: Flask middleware for request-id propagation & per-request loggers
- ``normalize_error``: maps any raised or rejected value onto one error shape
- ``init_global_error_handler``: deduplicated reporting of uncaught failures
- ``track_error`` / ``track_message``: error-tracker (Sentry) abstraction
"""

from .context import ContextProvider, get_full_context, get_request_context, get_user_context
from .errors import NormalizedError, UnhandledError, normalize_error
from .handler import ErrorHandlerRuntime, handle_client_error, init_global_error_handler
from .log_buffer import LogBuffer, get_log_entries
from .logging import LogEntry, Logger, LoggerHandler, LogLevel, create_logger, logger
from .sanitizer import sanitize, scrub_secrets
from .tracing import RequestTracer, get_request_logger
from .tracking import ErrorSeverity, init_error_tracking, track_error, track_message

__all__ = [
    "Logger",
    "LogLevel",
    "LogEntry",
    "LoggerHandler",
    "logger",
    "create_logger",
    "LogBuffer",
    "get_log_entries",
    "sanitize",
    "scrub_secrets",
    "ContextProvider",
    "get_request_context",
    "get_user_context",
    "get_full_context",
    "RequestTracer",
    "get_request_logger",
    "NormalizedError",
    "UnhandledError",
    "normalize_error",
    "ErrorHandlerRuntime",
    "init_global_error_handler",
    "handle_client_error",
    "ErrorSeverity",
    "init_error_tracking",
    "track_error",
    "track_message",
]
