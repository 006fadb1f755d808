"""
Test fixtures and configuration for pytest
"""

import io

import pytest

# ── Environment isolation ────────────────────────────────────────
# Every behaviour switch of the logging core is read from the environment
# on each call, so tests start from a known-empty environment.

_ENV_VARS = (
    "NODE_ENV",
    "LOG_LEVEL",
    "LOG_SANITIZE_PII",
    "HEALTH_INCLUDE_MEMORY",
    "SENTRY_DSN",
    "SENTRY_ENVIRONMENT",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """Auto-use guard: clear config env vars and reset process-wide state."""
    from src.observability.handler import reset_default_runtime
    from src.observability.log_buffer import clear_log_buffer
    from src.observability.tracking import reset_error_tracking

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_log_buffer()
    reset_error_tracking()
    reset_default_runtime()
    yield
    clear_log_buffer()
    reset_error_tracking()
    reset_default_runtime()


@pytest.fixture
def streams():
    """In-memory stdout/stderr pair for a Logger under test."""
    return io.StringIO(), io.StringIO()


@pytest.fixture
def make_logger(streams):
    """Factory for a Logger writing to ``streams`` and a private buffer."""
    from src.observability.log_buffer import LogBuffer
    from src.observability.logging import Logger

    out, err = streams
    buffer = LogBuffer(max_size=50)

    def _make(level=None, context=None):
        return Logger(level, context, buffer=buffer, stdout=out, stderr=err)

    _make.buffer = buffer
    return _make


@pytest.fixture
def production(monkeypatch):
    """Run the test with NODE_ENV=production (JSON output, PII redaction)."""
    monkeypatch.setenv("NODE_ENV", "production")


@pytest.fixture
def admin_session():
    """Session payload for an admin user."""
    return {
        "user": {"id": "user_1", "email": "admin@example.com", "role": "admin"},
        "session": {"id": "sess_1"},
    }
