"""
Request tracing middleware — request-id propagation and per-request loggers.

Provides Flask hooks that:
1. Extract the ``X-Request-ID`` header or generate a new id.
2. Build the request/user context through the active
   :class:`~.context.ContextProvider`.
3. Bind that context into a child logger stored on ``flask.g``.
4. Measure request latency and log one line per request.
"""

import time
from typing import Optional

from flask import Flask, g, has_request_context, request

from .context import get_context_provider
from .logging import Logger
from .logging import logger as default_logger


def get_request_logger() -> Logger:
    """The current request's logger, or the default logger outside a request."""
    if has_request_context():
        bound = getattr(g, "logger", None)
        if bound is not None:
            return bound
    return default_logger


class RequestTracer:
    """Flask middleware: assigns request IDs, binds loggers, measures latency.

    Usage::

        tracer = RequestTracer(app)
    """

    # Header used for request-id propagation
    REQUEST_ID_HEADER = "X-Request-ID"

    def __init__(self, app: Flask, *, logger: Optional[Logger] = None):
        """
        Args:
            app: The Flask application.
            logger: Parent logger for per-request child loggers.
        """
        self.app = app
        self.logger = logger
        self._install(app)

    # ── installation ─────────────────────────────────────────────

    def _install(self, app: Flask) -> None:
        app.before_request(self._before)
        app.after_request(self._after)

    # ── hooks ────────────────────────────────────────────────────

    def _before(self) -> None:
        provider = get_context_provider()
        context = provider.get_full_context(request)
        context["endpoint"] = request.path
        client_ip = provider.get_client_ip() or request.remote_addr
        if client_ip:
            context["ip"] = client_ip

        g.request_id = context["requestId"]
        g.start_time = time.monotonic()
        g.logger = (self.logger or default_logger).child(context)

    def _after(self, response):
        request_id = getattr(g, "request_id", None)
        if request_id is None:
            return response

        duration_ms = (time.monotonic() - g.start_time) * 1000
        response.headers[self.REQUEST_ID_HEADER] = request_id

        log_method = g.logger.warn if response.status_code >= 400 else g.logger.info
        log_method(
            f"{request.method} {request.path} {response.status_code} {duration_ms:.1f}ms",
            {"durationMs": round(duration_ms, 2), "statusCode": response.status_code},
        )
        return response
