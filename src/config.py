"""
Environment-driven configuration for the logging and error-handling core.

Centralises every ``os.environ`` lookup so the rest of the code never
parses environment strings itself.  Values are read on each call rather
than cached at import time, so a process (or a test) that changes the
environment sees the new behaviour immediately.
"""

import os
from typing import Optional

from .constants import ENV_DEVELOPMENT, ENV_PRODUCTION

# Accepted spellings for LOG_LEVEL, mapped to their numeric order.
_LEVEL_NAMES = {"debug": 0, "info": 1, "warn": 2, "error": 3}


def get_environment() -> str:
    """Return ``NODE_ENV`` (empty string when unset)."""
    return os.environ.get("NODE_ENV", "")


def is_production() -> bool:
    return get_environment() == ENV_PRODUCTION


def is_development() -> bool:
    return get_environment() == ENV_DEVELOPMENT


def env_flag(name: str) -> Optional[bool]:
    """
    Parse an explicit boolean environment variable.

    Args:
        name: Variable name.

    Returns:
        ``True`` / ``False`` when the value is ``"true"`` / ``"false"``
        (case-insensitive, surrounding whitespace ignored), ``None`` for
        anything else, including an unset variable.
    """
    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def should_redact_pii() -> bool:
    """
    Decide whether PII fields are redacted from log output.

    ``LOG_SANITIZE_PII`` wins in either direction when explicitly set;
    otherwise PII is redacted only in production.  Secrets are redacted
    unconditionally elsewhere and are not affected by this switch.
    """
    override = env_flag("LOG_SANITIZE_PII")
    if override is not None:
        return override
    return is_production()


def default_log_level() -> int:
    """DEBUG in development, INFO everywhere else."""
    return _LEVEL_NAMES["debug"] if is_development() else _LEVEL_NAMES["info"]


def resolve_log_level() -> int:
    """
    Resolve the minimum log level from ``LOG_LEVEL``.

    An absent, empty or unrecognised value falls back to
    :func:`default_log_level`; it never becomes the active level.
    """
    raw = os.environ.get("LOG_LEVEL", "").strip().lower()
    if raw in _LEVEL_NAMES:
        return _LEVEL_NAMES[raw]
    return default_log_level()


def health_include_memory() -> bool:
    """``HEALTH_INCLUDE_MEMORY=true`` exposes process memory on /api/health."""
    return os.environ.get("HEALTH_INCLUDE_MEMORY", "") == "true"


def sentry_dsn() -> str:
    return os.environ.get("SENTRY_DSN", "")


def sentry_environment() -> str:
    return os.environ.get("SENTRY_ENVIRONMENT", "") or get_environment() or ENV_DEVELOPMENT
