"""
Global handling of uncaught failures.

Two pieces cooperate:

* :meth:`ErrorHandlerRuntime.handle` — normalises any reported value,
  suppresses repeats of the same failure, strips secrets, logs it and
  forwards it to the error tracker.  It never raises: this is the last
  safety net.
* :func:`init_global_error_handler` — attaches ``"error"`` and
  ``"unhandledrejection"`` listeners to the runtime's window exactly once
  and returns a ``cleanup`` callable that detaches them again.

All mutable state (the installed flag, the deduplication set) lives on an
:class:`ErrorHandlerRuntime` rather than in module globals, so tests and
embedded apps can run independent instances.

Usage::

    cleanup = init_global_error_handler()
    ...
    cleanup()
"""

import sys
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from ..constants import MAX_PROCESSED_ERRORS, UNHANDLED_CLIENT_ERROR
from . import tracking
from .errors import normalize_error, safe_str
from .events import ERROR_EVENT, REJECTION_EVENT, EventTarget, ProcessWindow
from .logging import Logger
from .logging import logger as default_logger
from .sanitizer import scrub_secrets
from .tracking import ErrorSeverity


class ProcessedErrors:
    """Insertion-ordered set of fingerprints with FIFO eviction."""

    def __init__(self, capacity: int = MAX_PROCESSED_ERRORS):
        self.capacity = capacity
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: str) -> None:
        """Record *key*; drops the oldest entry once over capacity."""
        self._keys[key] = None
        while len(self._keys) > self.capacity:
            self._keys.popitem(last=False)

    def clear(self) -> None:
        self._keys.clear()


class ErrorHandlerRuntime:
    """State and collaborators for one global error handler.

    Args:
        window: Event target to listen on.  ``None`` means no window is
            available and :func:`init_global_error_handler` does nothing.
        user_agent: Reported with every error when known.
        logger: Logger used for reports (the default logger when omitted).
        tracker: ``track_error``-compatible callable (Sentry abstraction
            when omitted).
        max_processed: Capacity of the deduplication set.
    """

    def __init__(
        self,
        window: Optional[EventTarget] = None,
        *,
        user_agent: Optional[str] = None,
        logger: Optional[Logger] = None,
        tracker: Optional[Callable[..., Any]] = None,
        max_processed: int = MAX_PROCESSED_ERRORS,
    ):
        self.window = window
        self.user_agent = user_agent
        self._logger = logger
        self._tracker = tracker
        self.processed = ProcessedErrors(max_processed)
        self.installed = False
        self._listeners: Optional[tuple] = None
        self._lock = threading.RLock()

    @property
    def logger(self) -> Logger:
        return self._logger or default_logger

    @property
    def tracker(self) -> Callable[..., Any]:
        return self._tracker or tracking.track_error

    def handle(self, error: Any, context: Optional[Dict[str, Any]] = None) -> None:
        """Report *error* once; repeats are dropped silently.  Never raises."""
        try:
            self._handle(error, context)
        except Exception as exc:  # noqa: BLE001
            sys.stderr.write(f"Error handler failed: {exc!r}\n")

    def _handle(self, error: Any, context: Optional[Dict[str, Any]]) -> None:
        normalized = normalize_error(error)
        fingerprint = error_fingerprint(normalized.error)

        with self._lock:
            if fingerprint in self.processed:
                return
            self.processed.add(fingerprint)

        enriched = {
            **(context or {}),
            "errorType": "unhandled",
            "userAgent": self.user_agent,
            "url": getattr(self.window, "href", None),
        }
        scrubbed_context = scrub_secrets(enriched)
        scrubbed_metadata = scrub_secrets(normalized.metadata)

        self.logger.error(
            UNHANDLED_CLIENT_ERROR,
            normalized.error,
            {**scrubbed_metadata, **scrubbed_context},
        )

        try:
            self.tracker(
                normalized.error,
                tags={"errorType": "unhandled", "source": "globalHandler"},
                extra=scrubbed_context,
                level=ErrorSeverity.ERROR,
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warn("Error tracker call failed", {"reason": repr(exc)})


def error_fingerprint(error: BaseException) -> str:
    """``"<message>:<file>:<line>"`` of the innermost frame, ``no-line`` if never raised."""
    message = safe_str(error) or "unknown"
    return f"{message}:{_extract_location(error)}"


def _extract_location(error: BaseException) -> str:
    tb = error.__traceback__
    if tb is None:
        return "no-line"
    while tb.tb_next:
        tb = tb.tb_next
    return f"{tb.tb_frame.f_code.co_filename}:{tb.tb_lineno}"


# ── Lifecycle ────────────────────────────────────────────────────


def init_global_error_handler(
    runtime: Optional[ErrorHandlerRuntime] = None,
) -> Optional[Callable[[], None]]:
    """Attach uncaught-failure listeners to the runtime's window.

    Returns:
        A ``cleanup`` callable, or ``None`` when there is no window or a
        handler is already installed (the existing one is left as is).
    """
    runtime = runtime or get_default_runtime()
    window = runtime.window
    if window is None:
        return None

    def on_rejection(event) -> None:
        event.prevent_default()
        runtime.handle(
            event.reason,
            {"errorType": "unhandledRejection", "future": getattr(event, "future", None)},
        )

    def on_error(event) -> None:
        event.prevent_default()
        raw = event.error if event.error is not None else event.message
        runtime.handle(
            raw,
            {
                "errorType": "uncaughtError",
                "filename": event.filename,
                "lineno": event.lineno,
                "colno": event.colno,
            },
        )

    with runtime._lock:
        if runtime.installed:
            return None
        window.add_event_listener(REJECTION_EVENT, on_rejection)
        window.add_event_listener(ERROR_EVENT, on_error)
        token = (on_rejection, on_error)
        runtime._listeners = token
        runtime.installed = True

    runtime.logger.debug("Global error handler initialized")

    def cleanup() -> None:
        with runtime._lock:
            # Stale cleanups (from an earlier install) must not detach a newer one.
            if not runtime.installed or runtime._listeners is not token:
                return
            window.remove_event_listener(REJECTION_EVENT, on_rejection)
            window.remove_event_listener(ERROR_EVENT, on_error)
            runtime._listeners = None
            runtime.installed = False

    return cleanup


# ── Default runtime ──────────────────────────────────────────────

_default_runtime: Optional[ErrorHandlerRuntime] = None
_default_lock = threading.Lock()


def get_default_runtime() -> ErrorHandlerRuntime:
    """Process-wide runtime bound to the interpreter's own hooks."""
    global _default_runtime
    with _default_lock:
        if _default_runtime is None:
            _default_runtime = ErrorHandlerRuntime(ProcessWindow())
        return _default_runtime


def reset_default_runtime() -> None:
    """Drop the process-wide runtime (testing).  Call its cleanup first."""
    global _default_runtime
    with _default_lock:
        _default_runtime = None


def handle_client_error(error: Any, context: Optional[Dict[str, Any]] = None) -> None:
    """Report *error* through the process-wide runtime."""
    get_default_runtime().handle(error, context)
