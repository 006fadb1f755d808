"""
Observability routes — health check, admin log viewer, CSP reports.

Endpoints:
    GET  /api/health         — JSON health status (liveness + readiness)
    GET  /api/v1/admin/logs  — Buffered application logs (admin only)
    POST /api/csp-report     — Browser Content-Security-Policy violation reports
"""

import math
import resource
import sys
import time
from datetime import datetime, timezone
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from ..config import health_include_memory
from ..constants import APP_VERSION, DEFAULT_LOG_PAGE_SIZE, MAX_LOG_PAGE_SIZE
from ..observability.context import get_context_provider, read_field
from ..observability.logging import LogLevel
from ..observability.log_buffer import get_log_entries
from ..observability.tracing import get_request_logger

observability_bp = Blueprint("observability", __name__)

_START_TIME = time.time()


def _error(message: str, status: int, code: str):
    return jsonify({"success": False, "error": {"message": message, "code": code}}), status


def require_admin(view):
    """Reject the request unless the session user has the ``admin`` role."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        session = get_context_provider().get_session()
        if session is None:
            return _error("Authentication required", 401, "UNAUTHORIZED")
        if read_field(read_field(session, "user"), "role") != "admin":
            return _error("Admin access required", 403, "FORBIDDEN")
        return view(*args, **kwargs)

    return wrapper


# ── Health ───────────────────────────────────────────────────────


def _memory_usage() -> dict:
    """Resident-set figures for the current process, in bytes."""
    ru = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is KiB on Linux, bytes on macOS
    max_rss = ru.ru_maxrss if sys.platform == "darwin" else ru.ru_maxrss * 1024
    return {"maxRss": max_rss, "userCpuSeconds": ru.ru_utime, "systemCpuSeconds": ru.ru_stime}


@observability_bp.route("/api/health")
def health():
    """Liveness + readiness probe.

    Returns 200 when every registered check passes, 503 otherwise.
    Checks are zero-argument callables in ``app.config["HEALTH_CHECKS"]``
    returning ``True`` when healthy.
    """
    services = {}
    healthy = True
    for name, check in current_app.config.get("HEALTH_CHECKS", {}).items():
        try:
            ok = bool(check())
            services[name] = {"status": "operational" if ok else "outage"}
        except Exception as e:
            get_request_logger().error("Health check failed", e, {"service": name})
            services[name] = {"status": "outage", "error": str(e)}
            ok = False
        healthy = healthy and ok

    payload = {
        "status": "ok" if healthy else "error",
        "version": APP_VERSION,
        "uptime": int(time.time() - _START_TIME),
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "services": services,
    }
    if health_include_memory():
        payload["memory"] = _memory_usage()

    return jsonify(payload), 200 if healthy else 503


# ── Admin logs ───────────────────────────────────────────────────


@observability_bp.route("/api/v1/admin/logs")
@require_admin
def admin_logs():
    """Paginated, filterable view of the in-memory log buffer."""
    level = request.args.get("level") or None
    if level is not None and LogLevel.parse(level) is None:
        return _error("Invalid log level", 400, "VALIDATION_ERROR")

    search = (request.args.get("search") or "").strip() or None
    if search and len(search) > 200:
        return _error("Search query too long", 400, "VALIDATION_ERROR")

    try:
        page = int(request.args.get("page", 1))
        limit = int(request.args.get("limit", DEFAULT_LOG_PAGE_SIZE))
    except ValueError:
        return _error("page and limit must be integers", 400, "VALIDATION_ERROR")
    if page < 1 or limit < 1 or limit > MAX_LOG_PAGE_SIZE:
        return _error(f"page must be >= 1 and limit between 1 and {MAX_LOG_PAGE_SIZE}", 400, "VALIDATION_ERROR")

    entries, total = get_log_entries(
        level=level.lower() if level else None, search=search, page=page, limit=limit
    )
    return jsonify(
        {
            "success": True,
            "data": entries,
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }
    )


# ── CSP reports ──────────────────────────────────────────────────


@observability_bp.route("/api/csp-report", methods=["POST"])
def csp_report():
    """Log a CSP violation.  Always answers 204, even for malformed bodies."""
    report = request.get_json(force=True, silent=True)
    violation = report.get("csp-report") if isinstance(report, dict) else None

    if isinstance(violation, dict):
        get_request_logger().warn(
            "CSP Violation",
            {
                "type": "csp-violation",
                "documentUri": violation.get("document-uri"),
                "violatedDirective": violation.get("violated-directive"),
                "effectiveDirective": violation.get("effective-directive"),
                "blockedUri": violation.get("blocked-uri"),
                "sourceFile": violation.get("source-file"),
                "lineNumber": violation.get("line-number"),
                "columnNumber": violation.get("column-number"),
                "userAgent": request.headers.get("User-Agent"),
            },
        )

    return "", 204
