"""
In-memory ring buffer of recent log entries for the admin log viewer.

Entries arrive already sanitized from :class:`~.logging.Logger`.  The
buffer is process-local and resets on restart; it is a convenience for
operators, not a log store.
"""

import json
import threading
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

from ..constants import DEFAULT_LOG_PAGE_SIZE, MAX_LOG_BUFFER_SIZE


class LogBuffer:
    """Bounded, insertion-ordered store of log entry dicts.

    Usage::

        buf = LogBuffer()
        buf.add({"timestamp": ..., "level": "info", "message": "hi"})
        entries, total = buf.query(level="info", page=1, limit=20)
    """

    def __init__(self, max_size: int = MAX_LOG_BUFFER_SIZE) -> None:
        self._max_size = max_size
        self._entries: deque[Dict[str, Any]] = deque(maxlen=max_size)
        self._counter = 0
        self._lock = threading.Lock()

    def add(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Append *entry*, assigning ``id`` if absent; evicts the oldest when full."""
        with self._lock:
            self._counter += 1
            stored = dict(entry)
            stored.setdefault("id", f"log_{self._counter}")
            self._entries.append(stored)
        return stored

    def query(
        self,
        *,
        level: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_LOG_PAGE_SIZE,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Filter, sort newest-first and paginate the buffered entries.

        Args:
            level: Keep only entries at exactly this level name.
            search: Case-insensitive substring matched against the message,
                the JSON-encoded context and the JSON-encoded meta.
            page: 1-based page number.
            limit: Page size.

        Returns:
            ``(entries, total)`` where *total* counts all matches.
        """
        with self._lock:
            items = list(self._entries)

        if level:
            items = [e for e in items if e.get("level") == level]

        if search:
            needle = search.lower()
            items = [e for e in items if _matches(e, needle)]

        # Stable sort keeps insertion order for equal timestamps.
        items.sort(key=lambda e: e.get("timestamp", ""), reverse=True)

        total = len(items)
        start = (max(page, 1) - 1) * limit
        return items[start : start + limit], total

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._counter = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size


def _matches(entry: Dict[str, Any], needle: str) -> bool:
    if needle in str(entry.get("message", "")).lower():
        return True
    for key in ("context", "meta"):
        blob = json.dumps(entry.get(key) or {}, default=str, ensure_ascii=False)
        if needle in blob.lower():
            return True
    return False


# ── Process-wide buffer ──────────────────────────────────────────

_default_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Return the process-wide buffer used by the default logger."""
    return _default_buffer


def add_log_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    return _default_buffer.add(entry)


def get_log_entries(
    *,
    level: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_LOG_PAGE_SIZE,
) -> Tuple[List[Dict[str, Any]], int]:
    return _default_buffer.query(level=level, search=search, page=page, limit=limit)


def clear_log_buffer() -> None:
    _default_buffer.clear()


def get_buffer_size() -> int:
    return len(_default_buffer)


def get_max_buffer_size() -> int:
    return _default_buffer.max_size
