"""
Event targets that deliver uncaught failures to registered listeners.

:class:`EventTarget` is a minimal listener registry with DOM-like
semantics (``add_event_listener`` / ``remove_event_listener`` by identity,
``prevent_default``).  :class:`ProcessWindow` is the running interpreter
exposed the same way:

* ``"error"`` listeners receive an :class:`ErrorEvent` for every uncaught
  exception on the main thread (``sys.excepthook``) or any worker thread
  (``threading.excepthook``).
* ``"unhandledrejection"`` listeners receive a :class:`RejectionEvent` for
  asyncio failures nobody awaited, once
  :meth:`ProcessWindow.asyncio_exception_handler` is installed with
  ``loop.set_exception_handler``.

Interpreter hooks are only replaced while at least one ``"error"``
listener is registered, and are restored afterwards.
"""

import sys
import threading
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

ERROR_EVENT = "error"
REJECTION_EVENT = "unhandledrejection"


@dataclass
class ErrorEvent:
    """A synchronous uncaught failure."""

    error: Optional[BaseException] = None
    message: str = ""
    filename: Optional[str] = None
    lineno: Optional[int] = None
    colno: Optional[int] = None
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass
class RejectionEvent:
    """An asynchronous failure that was never awaited or handled."""

    reason: Any = None
    future: Any = None
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


Listener = Callable[[Any], None]


class EventTarget:
    """Listener registry keyed by event type.

    Args:
        href: Location reported alongside errors (a page URL in a browser,
            a service URL or ``None`` on a server).
    """

    def __init__(self, href: Optional[str] = None):
        self.href = href
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        """Register *listener*; registering the same callable twice is a no-op."""
        with self._lock:
            listeners = self._listeners.setdefault(event_type, [])
            if listener in listeners:
                return
            listeners.append(listener)
            first = len(listeners) == 1
        if first:
            self._on_first_listener(event_type)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        """Unregister *listener*; unknown listeners are ignored."""
        with self._lock:
            listeners = self._listeners.get(event_type, [])
            if listener not in listeners:
                return
            listeners.remove(listener)
            last = not listeners
        if last:
            self._on_last_listener(event_type)

    def dispatch_event(self, event_type: str, event: Any) -> bool:
        """Call every listener for *event_type* in registration order.

        A listener that raises is reported on stderr and does not stop the
        others.

        Returns:
            ``False`` if a listener called ``prevent_default()``.
        """
        with self._lock:
            listeners = list(self._listeners.get(event_type, []))
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                traceback.print_exc(file=sys.stderr)
        return not getattr(event, "default_prevented", False)

    def listener_count(self, event_type: Optional[str] = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._listeners.get(event_type, []))
            return sum(len(v) for v in self._listeners.values())

    # Subclass hooks

    def _on_first_listener(self, event_type: str) -> None:
        pass

    def _on_last_listener(self, event_type: str) -> None:
        pass


class ProcessWindow(EventTarget):
    """The current interpreter as an :class:`EventTarget`."""

    def __init__(self, href: Optional[str] = None):
        super().__init__(href)
        self._saved_excepthook = None
        self._saved_threading_excepthook = None

    # ── interpreter hooks ────────────────────────────────────────

    def _on_first_listener(self, event_type: str) -> None:
        if event_type != ERROR_EVENT:
            return
        self._saved_excepthook = sys.excepthook
        self._saved_threading_excepthook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook

    def _on_last_listener(self, event_type: str) -> None:
        if event_type != ERROR_EVENT:
            return
        # Someone may have chained on top of us; only undo our own install.
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._saved_excepthook or sys.__excepthook__
        if threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._saved_threading_excepthook or threading.__excepthook__
        self._saved_excepthook = None
        self._saved_threading_excepthook = None

    def _excepthook(self, exc_type, exc_value, exc_tb) -> None:
        event = _error_event(exc_value, exc_tb)
        if self.dispatch_event(ERROR_EVENT, event):
            (self._saved_excepthook or sys.__excepthook__)(exc_type, exc_value, exc_tb)

    def _threading_excepthook(self, args) -> None:
        if args.exc_type is SystemExit:
            return
        event = _error_event(args.exc_value, args.exc_traceback)
        if self.dispatch_event(ERROR_EVENT, event):
            (self._saved_threading_excepthook or threading.__excepthook__)(args)

    def asyncio_exception_handler(self, loop, context: Dict[str, Any]) -> None:
        """``loop.set_exception_handler`` target forwarding to rejection listeners."""
        exc = context.get("exception")
        event = RejectionEvent(
            reason=exc if exc is not None else context.get("message"),
            future=context.get("future") or context.get("task"),
        )
        if self.listener_count(REJECTION_EVENT) == 0 or self.dispatch_event(REJECTION_EVENT, event):
            loop.default_exception_handler(context)


def _error_event(exc: Optional[BaseException], tb) -> ErrorEvent:
    filename = lineno = None
    if tb is not None:
        while tb.tb_next:
            tb = tb.tb_next
        filename = tb.tb_frame.f_code.co_filename
        lineno = tb.tb_lineno
    return ErrorEvent(
        error=exc,
        message=str(exc) if exc is not None else "",
        filename=filename,
        lineno=lineno,
    )
