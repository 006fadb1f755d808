"""
Web application shell.

Builds the Flask app and wires the logging / error-handling core into it:
request tracing with per-request loggers, a JSON 500 handler backed by the
error tracker, stdlib log forwarding, and the observability endpoints.
Route handlers and authentication live elsewhere and reach this layer only
through the ``get_session`` collaborator.
"""

import logging
import os
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from flask import Flask

from .observability.context import ContextProvider
from .observability.events import ProcessWindow
from .observability.handler import ErrorHandlerRuntime, init_global_error_handler
from .observability.logging import LoggerHandler, create_logger
from .observability.tracing import RequestTracer
from .observability.tracking import init_error_tracking, install_flask_error_handler
from .routes import observability_bp

# Third-party loggers whose records are forwarded into the structured logger.
_FORWARDED_LOGGERS = ("werkzeug", "sentry_sdk.errors")


class AppServer:
    """Flask application with the logging and error-handling core installed."""

    def __init__(
        self,
        *,
        get_session: Optional[Callable[..., Any]] = None,
        health_checks: Optional[Dict[str, Callable[[], bool]]] = None,
        id_factory: Optional[Callable[[int], str]] = None,
    ):
        """Initialise the Flask app.

        Args:
            get_session: ``get_session(headers=...)`` auth collaborator.
                Without it every request is anonymous and admin routes
                answer 401.
            health_checks: Named zero-argument checks reported by
                ``/api/health``.
            id_factory: Request-id generator override.
        """
        load_dotenv()
        self.logger = create_logger({"module": "web_server"})

        self.app = Flask(__name__)
        self.app.secret_key = os.environ.get("FLASK_SECRET_KEY", os.urandom(32).hex())
        self.app.config["HEALTH_CHECKS"] = dict(health_checks or {})
        self.app.extensions["context_provider"] = ContextProvider(
            get_session=get_session, id_factory=id_factory
        )

        RequestTracer(self.app, logger=self.logger)
        install_flask_error_handler(self.app)
        self.app.register_blueprint(observability_bp)
        self._forward_stdlib_logs()

        self.error_runtime = ErrorHandlerRuntime(ProcessWindow(), logger=self.logger)
        self._cleanup_error_handler: Optional[Callable[[], None]] = None

        self.logger.info("AppServer initialized")

    def _forward_stdlib_logs(self) -> None:
        handler = LoggerHandler(self.logger)
        for name in _FORWARDED_LOGGERS:
            std_logger = logging.getLogger(name)
            if not any(isinstance(h, LoggerHandler) for h in std_logger.handlers):
                std_logger.addHandler(handler)
            std_logger.propagate = False

    def start_error_handling(self) -> None:
        """Enable error tracking and install the process-wide error listeners."""
        init_error_tracking()
        cleanup = init_global_error_handler(self.error_runtime)
        if cleanup is not None:
            self._cleanup_error_handler = cleanup

    def stop_error_handling(self) -> None:
        if self._cleanup_error_handler is not None:
            self._cleanup_error_handler()
            self._cleanup_error_handler = None

    def run(self, host: str = None, port: int = None) -> None:
        """Serve until interrupted."""
        host = host or os.environ.get("HOST", "127.0.0.1")
        port = port or int(os.environ.get("PORT", "8080"))
        self.error_runtime.window.href = f"http://{host}:{port}/"

        self.start_error_handling()
        self.logger.info("Starting web server", {"host": host, "port": port})
        try:
            self.app.run(host=host, port=port, threaded=True)
        finally:
            self.stop_error_handling()
