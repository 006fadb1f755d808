"""
Centralised constants for the application support layer.

All magic numbers, header names, sentinel strings and default values live
here so they can be imported by any module without circular dependencies.
"""

# ── Version ──────────────────────────────────────────────────────
APP_VERSION = "1.0.0"
SERVICE_NAME = "webapp"

# ── Environment ──────────────────────────────────────────────────
ENV_DEVELOPMENT = "development"
ENV_PRODUCTION = "production"
ENV_TEST = "test"

# ── Redaction markers ────────────────────────────────────────────
REDACTED = "[REDACTED]"
PII_REDACTED = "[PII REDACTED]"
CIRCULAR = "[Circular]"

# ── Logging ──────────────────────────────────────────────────────
# Maximum number of log entries kept in the in-memory admin buffer
MAX_LOG_BUFFER_SIZE = 1000
# Admin log viewer paging
DEFAULT_LOG_PAGE_SIZE = 50
MAX_LOG_PAGE_SIZE = 100
# Stack frames shown under an error in the development formatter
DEV_STACK_LINES = 3

# ── Error handling ───────────────────────────────────────────────
# Capacity of the fingerprint set used to suppress duplicate error reports
MAX_PROCESSED_ERRORS = 100
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"
UNHANDLED_CLIENT_ERROR = "Unhandled client error"

# ── Request context ──────────────────────────────────────────────
REQUEST_ID_HEADER = "x-request-id"
REQUEST_ID_SIZE = 16
USER_AGENT_HEADER = "user-agent"
# Client-IP headers, highest priority first
CLIENT_IP_HEADERS = (
    "x-forwarded-for",  # most common proxy header
    "x-real-ip",  # nginx
    "cf-connecting-ip",  # Cloudflare
    "x-client-ip",  # Apache
    "x-cluster-client-ip",  # Rackspace LB
)
