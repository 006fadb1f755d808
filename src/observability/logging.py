"""
Structured, environment-aware logging with context enrichment.

Every call produces one log entry with guaranteed keys ``timestamp``,
``level`` and ``message`` and optional ``context``, ``meta`` and
``error`` blocks.  Output format depends on ``NODE_ENV``:

* ``production`` — a single JSON object per line (for log aggregators).
* anything else — a coloured, human-readable block for local development.

Secrets are always redacted before an entry leaves the logger; PII is
redacted in production or when ``LOG_SANITIZE_PII=true`` (see
:mod:`.sanitizer` and :func:`src.config.should_redact_pii`).

Usage::

    from src.observability.logging import logger

    logger.info("User logged in", {"userId": "123"})
    logger.error("Database query failed", exc, {"query": "SELECT ..."})

    request_logger = logger.with_context({"requestId": "abc123"})
    request_logger.info("Processing request")  # includes requestId
"""

import json
import logging
import sys
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Optional, TextIO

from ..config import is_production, resolve_log_level, should_redact_pii
from ..constants import DEV_STACK_LINES, UNKNOWN_ERROR_MESSAGE
from .errors import safe_str
from .log_buffer import LogBuffer, get_log_buffer
from .sanitizer import sanitize


class LogLevel(IntEnum):
    """Log levels in order of severity."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @property
    def label(self) -> str:
        """Lower-case name used in JSON output and ``LOG_LEVEL``."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> Optional["LogLevel"]:
        """Return the level named by *value* (case-insensitive), or ``None``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                return None
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


@dataclass(frozen=True)
class LogEntry:
    """A single structured log event."""

    timestamp: str
    level: LogLevel
    message: str
    context: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level.label,
            "message": self.message,
        }
        if self.context:
            data["context"] = self.context
        if self.meta is not None:
            data["meta"] = self.meta
        if self.error is not None:
            data["error"] = self.error
        return data


# ── JSON Formatter ───────────────────────────────────────────────


class _JsonFormatter:
    """Emit each entry as a single-line JSON object."""

    def format(self, record: Dict[str, Any]) -> str:
        return json.dumps(record, default=str, ensure_ascii=False)


# ── Plain Formatter (dev / console) ─────────────────────────────


class _DevFormatter:
    """Human-readable coloured output for local development."""

    _COLORS = {
        "debug": "\033[90m",  # gray
        "info": "\033[34m",  # blue
        "warn": "\033[33m",  # yellow
        "error": "\033[31m",  # red
    }
    _GRAY = "\033[90m"
    _RESET = "\033[0m"

    def format(self, record: Dict[str, Any]) -> str:
        level = record.get("level", "info")
        color = self._COLORS.get(level, "")
        ts = _parse_timestamp(record.get("timestamp")).astimezone().strftime("%H:%M:%S.%f")[:-3]
        lines = [
            f"{self._GRAY}{ts}{self._RESET} {color}{level.upper():<5}{self._RESET} "
            f"{record.get('message', '')}"
        ]

        context = record.get("context")
        if context:
            lines.append(f"  {self._GRAY}Context:{self._RESET} {_dumps(context)}")

        meta = record.get("meta")
        if meta:
            lines.append(f"  {self._GRAY}Meta:{self._RESET} {_dumps(meta)}")

        error = record.get("error")
        if error:
            lines.append(
                f"  {self._COLORS['error']}Error:{self._RESET} "
                f"{error.get('name')}: {error.get('message')}"
            )
            stack = error.get("stack")
            if isinstance(stack, str) and stack:
                frames = _last_frames(stack, DEV_STACK_LINES)
                if frames:
                    lines.append(f"{self._GRAY}{chr(10).join(frames)}{self._RESET}")

        return "\n".join(lines)


_JSON_FORMATTER = _JsonFormatter()
_DEV_FORMATTER = _DevFormatter()


# ── Logger ───────────────────────────────────────────────────────


class Logger:
    """Leveled logger with sanitized, environment-aware output.

    Args:
        level: Minimum level to emit.  When omitted, ``LOG_LEVEL`` is used if
            it names a valid level, otherwise DEBUG in development and INFO
            elsewhere.
        context: Key/value pairs attached to every entry.
        buffer: Ring buffer receiving emitted entries (process-wide buffer
            by default).
        stdout: Stream for DEBUG/INFO/WARN (``sys.stdout`` at call time
            by default).
        stderr: Stream for ERROR (``sys.stderr`` at call time by default).
    """

    def __init__(
        self,
        level: Optional[LogLevel] = None,
        context: Optional[Mapping] = None,
        *,
        buffer: Optional[LogBuffer] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        parsed = LogLevel.parse(level) if level is not None else None
        self._level = parsed if parsed is not None else LogLevel(resolve_log_level())
        self._context: Dict[str, Any] = dict(context or {})
        self._buffer = buffer if buffer is not None else get_log_buffer()
        self._stdout = stdout
        self._stderr = stderr

    # ── public API ───────────────────────────────────────────────

    def debug(self, message: str, meta: Any = None) -> None:
        self._log(LogLevel.DEBUG, message, *_split_meta(meta))

    def info(self, message: str, meta: Any = None) -> None:
        self._log(LogLevel.INFO, message, *_split_meta(meta))

    def warn(self, message: str, meta: Any = None) -> None:
        self._log(LogLevel.WARN, message, *_split_meta(meta))

    warning = warn

    def error(self, message: str, error: Any = None, meta: Any = None) -> None:
        """Log an error.  *error* may be an exception or any other value."""
        self._log(LogLevel.ERROR, message, error, meta)

    def child(self, context: Mapping) -> "Logger":
        """Return a logger whose context is this logger's merged with *context*.

        The parent is left untouched; on key collisions the child wins.
        """
        return Logger(
            self._level,
            {**self._context, **dict(context or {})},
            buffer=self._buffer,
            stdout=self._stdout,
            stderr=self._stderr,
        )

    def with_context(self, context: Mapping) -> "Logger":
        """Alias for :meth:`child`."""
        return self.child(context)

    def get_level(self) -> LogLevel:
        return self._level

    def set_level(self, level: LogLevel) -> None:
        parsed = LogLevel.parse(level)
        if parsed is None:
            raise ValueError(f"Unknown log level: {level!r}")
        self._level = parsed

    @property
    def context(self) -> Dict[str, Any]:
        """A *copy* of this logger's context."""
        return dict(self._context)

    # ── internals ────────────────────────────────────────────────

    def _log(self, level: LogLevel, message: str, error: Any, meta: Any) -> None:
        if level < self._level:
            return

        try:
            entry = LogEntry(
                timestamp=_now_iso(),
                level=level,
                message=str(message),
                context=dict(self._context) or None,
                meta=_coerce_meta(meta),
                error=_serialize_error(error),
            )
            record = sanitize(entry.to_dict(), redact_pii=should_redact_pii())
            self._push_to_log_buffer(record)
            formatter = _JSON_FORMATTER if is_production() else _DEV_FORMATTER
            line = formatter.format(record)
        except Exception as exc:  # noqa: BLE001
            line = f"{_now_iso()} {level.label.upper()} {message} [log formatting failed: {exc!r}]"

        self._write(level, line)

    def _push_to_log_buffer(self, record: Dict[str, Any]) -> None:
        self._buffer.add(record)

    def _write(self, level: LogLevel, line: str) -> None:
        if level is LogLevel.ERROR:
            stream = self._stderr or sys.stderr
        else:
            stream = self._stdout or sys.stdout
        try:
            stream.write(line + "\n")
            stream.flush()
        except (OSError, ValueError):
            # Closed or broken sink; nothing sensible left to report to.
            pass


# ── stdlib bridge ────────────────────────────────────────────────


class LoggerHandler(logging.Handler):
    """Route stdlib ``logging`` records (werkzeug, sentry_sdk, ...) through a :class:`Logger`.

    Attach to any stdlib logger::

        logging.getLogger("werkzeug").addHandler(LoggerHandler(logger))
    """

    def __init__(self, target: Optional[Logger] = None, level: int = logging.NOTSET):
        super().__init__(level)
        self._target = target

    def emit(self, record: logging.LogRecord) -> None:
        target = self._target or logger
        try:
            message = record.getMessage()
        except Exception:  # noqa: BLE001
            message = str(record.msg)
        meta = {"logger": record.name}

        if record.levelno >= logging.ERROR:
            exc = record.exc_info[1] if record.exc_info else None
            target.error(message, exc, meta)
        elif record.levelno >= logging.WARNING:
            target.warn(message, meta)
        elif record.levelno >= logging.INFO:
            target.info(message, meta)
        else:
            target.debug(message, meta)


# ── Private helpers ──────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def _last_frames(stack: str, count: int) -> list:
    """Lines of the innermost *count* frames of a formatted traceback.

    Frames start at their ``File "..."`` line and keep any source and caret
    lines below it.  The trailing ``ExcType: message`` summary is dropped.
    """
    lines = stack.rstrip().splitlines()
    # Chained tracebacks print the outermost exception last.
    begin = max((i for i, line in enumerate(lines) if line.startswith("Traceback")), default=0)
    starts = [i for i in range(begin, len(lines)) if lines[i].lstrip().startswith('File "')]
    if not starts:
        return []
    frames = lines[starts[-count:][0] :]
    while frames and not frames[-1].startswith(" "):
        frames.pop()
    return frames


def _split_meta(meta: Any):
    """Let ``info("msg", exc)`` record the exception rather than treat it as meta."""
    if isinstance(meta, BaseException):
        return meta, None
    return None, meta


def _coerce_meta(meta: Any) -> Optional[Dict[str, Any]]:
    if meta is None:
        return None
    if isinstance(meta, Mapping):
        return dict(meta)
    return {"value": meta}


def _serialize_error(error: Any) -> Optional[Dict[str, Any]]:
    """Turn whatever was passed as ``error`` into the entry's error block."""
    if error is None:
        return None

    if isinstance(error, BaseException):
        data: Dict[str, Any] = {"name": type(error).__name__, "message": safe_str(error)}
        if error.__traceback__ is not None:
            data["stack"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        code = getattr(error, "code", None)
        if code is not None:
            data["code"] = code
        for key, value in vars(error).items():
            if key.startswith("_") or key in ("name", "message", "stack", "code"):
                continue
            data[key] = value
        return data

    if isinstance(error, str):
        text = error
    elif isinstance(error, (int, float, bool)):
        text = str(error)
    elif isinstance(error, (Mapping, list, tuple)):
        # Scrub before stringifying: the JSON text is opaque to the sanitizer.
        text = _dumps(sanitize(error, redact_pii=should_redact_pii()))
    else:
        text = UNKNOWN_ERROR_MESSAGE
    return {"name": "UnknownError", "message": text}


# ── Default instances ────────────────────────────────────────────

logger = Logger()


def create_logger(context: Optional[Mapping] = None) -> Logger:
    """Create a logger with the environment's default level and *context*."""
    return Logger(None, context)
