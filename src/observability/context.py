"""
Request and user context for log enrichment.

Derives the key/value pairs that make log lines traceable: request id,
method, URL, user agent, client IP and, for authenticated requests, the
user and session ids.  Request ids propagate through the
``X-Request-ID`` header:

1. Generated by :class:`~.tracing.RequestTracer` for incoming requests
   that do not carry one.
2. Echoed back in the response headers.
3. Sent by the client on subsequent calls, so every log line of a
   request chain shares the same id.

Collaborators (header source, session lookup, id generator) are injected
so the provider runs unchanged inside Flask, in workers and in tests.
Failures in a collaborator never escape: the affected part of the
context is simply left empty.
"""

import uuid
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

from flask import current_app, has_app_context, has_request_context, request

from ..constants import CLIENT_IP_HEADERS, REQUEST_ID_HEADER, REQUEST_ID_SIZE, USER_AGENT_HEADER
from .logging import logger

HeaderSource = Callable[[], Mapping]
SessionSource = Callable[..., Any]
IdFactory = Callable[[int], str]


def _new_id(length: int = REQUEST_ID_SIZE) -> str:
    """Generate a random hex ID of *length* characters (max 32)."""
    return uuid.uuid4().hex[:length]


def _flask_headers() -> Mapping:
    """Headers of the active Flask request, or nothing outside a request."""
    if has_request_context():
        return request.headers
    return {}


class ContextProvider:
    """Builds request/user context dicts from injected collaborators.

    Args:
        headers: Zero-argument callable returning the inbound headers.
            Defaults to the active Flask request's headers.
        get_session: ``get_session(headers=...)`` returning
            ``{"user": {"id", "email", ...}, "session": {"id"}}`` or ``None``.
            Without one every request is treated as anonymous.
        id_factory: ``id_factory(size)`` returning a random id.
    """

    def __init__(
        self,
        headers: Optional[HeaderSource] = None,
        get_session: Optional[SessionSource] = None,
        id_factory: Optional[IdFactory] = None,
    ):
        self._headers = headers or _flask_headers
        self._get_session = get_session
        self._id_factory = id_factory or _new_id

    # ── ids ──────────────────────────────────────────────────────

    def generate_request_id(self) -> str:
        return self._id_factory(REQUEST_ID_SIZE)

    def get_request_id(self) -> str:
        """The inbound ``x-request-id`` header, or a freshly generated id."""
        return self._header(REQUEST_ID_HEADER) or self.generate_request_id()

    # ── context builders ─────────────────────────────────────────

    def get_request_context(self, req: Any = None) -> Dict[str, Any]:
        """``{requestId, method?, url?, userAgent?}`` for the current request.

        Args:
            req: Request-like object with ``method`` and ``url``; omitted
                keys are left out of the result.
        """
        context: Dict[str, Any] = {"requestId": self.get_request_id()}
        method = getattr(req, "method", None)
        if method:
            context["method"] = method
        url = getattr(req, "url", None)
        if url:
            context["url"] = url
        user_agent = self._header(USER_AGENT_HEADER)
        if user_agent:
            context["userAgent"] = user_agent
        return context

    def get_session(self) -> Any:
        """The session for the current headers, or ``None`` if anonymous or the lookup fails."""
        if self._get_session is None:
            return None
        try:
            return self._get_session(headers=self._read_headers()) or None
        except Exception as exc:  # noqa: BLE001
            logger.debug("Session lookup failed while building log context", {"reason": repr(exc)})
            return None

    def get_user_context(self) -> Dict[str, Any]:
        """``{userId, sessionId, email}`` when authenticated, ``{}`` otherwise."""
        session = self.get_session()
        if session is None:
            return {}
        user = read_field(session, "user")
        sess = read_field(session, "session")
        context = {
            "userId": read_field(user, "id"),
            "sessionId": read_field(sess, "id"),
            "email": read_field(user, "email"),
        }
        return {k: v for k, v in context.items() if v is not None}

    def get_full_context(self, req: Any = None) -> Dict[str, Any]:
        """Request context merged with user context (user keys win)."""
        return {**self.get_request_context(req), **self.get_user_context()}

    def get_client_ip(self) -> Optional[str]:
        """First non-empty client-IP header, in proxy-priority order.

        ``x-forwarded-for`` may list ``client, proxy1, proxy2``; only the
        first (client) entry is returned.
        """
        for name in CLIENT_IP_HEADERS:
            value = self._header(name)
            if value:
                return value.split(",")[0].strip()
        return None

    # ── helpers ──────────────────────────────────────────────────

    def _read_headers(self) -> Mapping:
        try:
            return self._headers() or {}
        except Exception as exc:  # noqa: BLE001
            logger.debug("Header lookup failed while building log context", {"reason": repr(exc)})
            return {}

    def _header(self, name: str) -> Optional[str]:
        headers = self._read_headers()
        value = headers.get(name)
        if value is None:
            # Plain dicts are case-sensitive; werkzeug Headers are not.
            for key, candidate in headers.items():
                if str(key).lower() == name:
                    value = candidate
                    break
        return value or None


def get_endpoint_path(req: Any) -> str:
    """Path of *req*'s URL without query string; the raw URL if it is not absolute."""
    url = getattr(req, "url", req)
    parts = urlsplit(str(url))
    if not parts.scheme or not parts.netloc:
        return str(url)
    return parts.path or "/"


def read_field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


# ── Module-level helpers (active provider) ───────────────────────

_default_provider = ContextProvider()


def get_context_provider() -> ContextProvider:
    """The provider registered on the current Flask app, else the default one."""
    if has_app_context():
        provider = current_app.extensions.get("context_provider")
        if provider is not None:
            return provider
    return _default_provider


def generate_request_id() -> str:
    return get_context_provider().generate_request_id()


def get_request_id() -> str:
    return get_context_provider().get_request_id()


def get_request_context(req: Any = None) -> Dict[str, Any]:
    return get_context_provider().get_request_context(req)


def get_user_context() -> Dict[str, Any]:
    return get_context_provider().get_user_context()


def get_full_context(req: Any = None) -> Dict[str, Any]:
    return get_context_provider().get_full_context(req)


def get_client_ip() -> Optional[str]:
    return get_context_provider().get_client_ip()
