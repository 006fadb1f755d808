"""
Error-tracking abstraction over Sentry.

Works with or without a configured tracker:

1. Every tracked error / message is written through the structured logger.
2. When ``SENTRY_DSN`` is set and :func:`init_error_tracking` has run,
   it is also forwarded to Sentry with tags, extra context and severity.

Callers never talk to ``sentry_sdk`` directly, so switching tracker only
touches this module.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

import sentry_sdk
from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from ..config import sentry_dsn, sentry_environment
from .logging import logger
from .sanitizer import scrub_secrets

# Returned instead of an event id when no tracker is configured.
NOOP_EVENT_ID = "logged"

_state: Dict[str, bool] = {"enabled": False}


class ErrorSeverity(str, Enum):
    """Severity levels, named as Sentry names them."""

    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"


def is_tracking_enabled() -> bool:
    return _state["enabled"]


def init_error_tracking() -> bool:
    """Initialise Sentry when ``SENTRY_DSN`` is configured.

    Returns:
        ``True`` when events will be forwarded, ``False`` in no-op mode.
    """
    dsn = sentry_dsn()
    if not dsn:
        _state["enabled"] = False
        logger.debug("Error tracking initialized in no-op mode (Sentry not configured)")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=sentry_environment(),
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=_before_send,
    )
    _state["enabled"] = True
    logger.info("Error tracking initialized with Sentry", {"hasDSN": True})
    return True


def reset_error_tracking() -> None:
    """Return to no-op mode (used by tests and on shutdown)."""
    _state["enabled"] = False


def track_error(
    error: Union[BaseException, str],
    *,
    user: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
    extra: Optional[Dict[str, Any]] = None,
    level: Optional[ErrorSeverity] = None,
) -> str:
    """Record *error* in the log and, if configured, in Sentry.

    Args:
        error: Exception (or message, wrapped into one).
        user: ``{"id", "email", "name"}`` to attach to the event.
        tags: Indexed, filterable labels.
        extra: Free-form context.
        level: Event severity.

    Returns:
        The Sentry event id, or ``"logged"`` in no-op mode.
    """
    exc = Exception(error) if isinstance(error, str) else error
    logger.error("Error tracked", exc, {**(tags or {}), **(extra or {})})

    if not _state["enabled"]:
        return NOOP_EVENT_ID

    with sentry_sdk.new_scope() as scope:
        if user:
            scope.set_user(user)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        if level:
            scope.set_level(ErrorSeverity(level).value)
        return sentry_sdk.capture_exception(exc) or ""


def track_message(
    message: str,
    level: ErrorSeverity,
    *,
    user: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """Record a noteworthy non-error event.

    Returns:
        The Sentry event id, or ``"logged"`` in no-op mode.
    """
    level = ErrorSeverity(level)
    metadata = {"message": message, "level": level.value, **(tags or {}), **(extra or {})}

    if level in (ErrorSeverity.ERROR, ErrorSeverity.FATAL):
        logger.error("Message tracked", None, metadata)
    elif level is ErrorSeverity.WARNING:
        logger.warn("Message tracked", metadata)
    else:
        logger.info("Message tracked", metadata)

    if not _state["enabled"]:
        return NOOP_EVENT_ID

    with sentry_sdk.new_scope() as scope:
        if user:
            scope.set_user(user)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        if extra:
            scope.set_context("extra", extra)
        return sentry_sdk.capture_message(message, level=level.value) or ""


def set_error_tracking_user(user: Dict[str, Any]) -> None:
    """Associate subsequent events with *user* (``id`` required)."""
    logger.debug("Error tracking user set", {"userId": user.get("id")})
    if _state["enabled"]:
        sentry_sdk.set_user(user)


def clear_error_tracking_user() -> None:
    logger.debug("Error tracking user cleared")
    if _state["enabled"]:
        sentry_sdk.set_user(None)


# ── Flask integration ────────────────────────────────────────────


def install_flask_error_handler(app: Flask) -> None:
    """Register a Flask error handler that tracks all unhandled exceptions."""

    @app.errorhandler(Exception)
    def _handle_exception(exc: Exception):
        # Let Flask render HTTP exceptions (400, 404, etc.) normally
        if isinstance(exc, HTTPException):
            return exc

        request_logger = getattr(g, "logger", None) or logger
        request_logger.error("Unhandled route exception", exc)
        track_error(exc, tags={"source": "flask"}, level=ErrorSeverity.ERROR)

        return (
            jsonify(
                {
                    "error": "Internal Server Error",
                    "requestId": getattr(g, "request_id", None) or "",
                }
            ),
            500,
        )


# ── Private helpers ──────────────────────────────────────────────


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Dict[str, Any]:
    """Strip secrets from the parts of a Sentry event that carry user data."""
    for key in ("extra", "contexts", "request", "user"):
        if key in event:
            event[key] = scrub_secrets(event[key])
    return event
