"""
Recursive redaction of secrets and PII from arbitrary log payloads.

Two classes of field are recognised by *key name*:

* **Secret fields** (passwords, tokens, API keys, ...) are replaced with
  ``[REDACTED]`` in every environment.  Matching is a case-insensitive
  substring test, so ``accessToken``, ``x_api_key``, ``db_password`` and
  ``clientCredentials`` are all caught.
* **PII fields** (email, phone, names, IPs, postal address) are replaced
  with ``[PII REDACTED]`` only when the caller asks for it.  Long stems
  (``email``, ``phone``, ``address``, ...) match as substrings, so
  ``contactEmail`` and ``billing_address`` are caught; short ones such as
  ``ip`` and ``zip`` must match exactly so that ``recipients`` or
  ``description`` are not mistaken for ``ip``.

The walk never mutates its input and never raises.
"""

import dataclasses
import types
from collections.abc import Mapping
from typing import Any, FrozenSet, Optional, Set

from ..constants import CIRCULAR, PII_REDACTED, REDACTED

# Substrings that mark a key as secret (compared lower-cased).
SECRET_FIELDS: FrozenSet[str] = frozenset(
    {
        "password",
        "passwd",
        "token",
        "secret",
        "apikey",
        "api_key",
        "privatekey",
        "private_key",
        "authorization",
        "bearer",
        "credential",
        "sessiontoken",
        "refreshtoken",
        "accesstoken",
        "clientsecret",
        "creditcard",
        "credit_card",
        "ssn",
    }
)

# Exact key names (lower-cased) treated as personally-identifiable.
# Anything containing one of PII_SUBSTRINGS also counts.
PII_FIELDS: FrozenSet[str] = frozenset(
    {
        "email",
        "emailaddress",
        "email_address",
        "phone",
        "phonenumber",
        "phone_number",
        "mobile",
        "firstname",
        "first_name",
        "lastname",
        "last_name",
        "fullname",
        "full_name",
        "ip",
        "ipaddress",
        "ip_address",
        "address",
        "street",
        "postcode",
        "postalcode",
        "postal_code",
        "zipcode",
        "zip_code",
        "zip",
    }
)

# Stems long enough to match inside compound keys (``userEmail``).
PII_SUBSTRINGS: FrozenSet[str] = frozenset(
    {
        "email",
        "phone",
        "address",
        "postcode",
        "postalcode",
        "postal_code",
        "zipcode",
        "zip_code",
        "firstname",
        "first_name",
        "lastname",
        "last_name",
        "fullname",
        "full_name",
    }
)


def is_secret_key(key: Any) -> bool:
    """Return ``True`` when *key* names a secret field."""
    lowered = str(key).lower()
    return any(field in lowered for field in SECRET_FIELDS)


def is_pii_key(key: Any) -> bool:
    """Return ``True`` when *key* names a PII field."""
    lowered = str(key).lower()
    return lowered in PII_FIELDS or any(stem in lowered for stem in PII_SUBSTRINGS)


def sanitize(value: Any, *, redact_pii: bool) -> Any:
    """Return a redacted copy of *value*.

    Args:
        value: Any JSON-like value.  Mappings, lists and tuples are walked;
            dataclasses and plain objects are walked as mappings of their
            attributes; everything else is returned unchanged.
        redact_pii: Also redact PII fields.  Secret fields are redacted
            regardless.

    Returns:
        A new structure for every traversed branch.  A container reached
        a second time through its own descendants is rendered as
        ``[Circular]``.
    """
    return _walk(value, redact_pii, set())


def scrub_secrets(value: Any) -> Any:
    """Secrets-only pass, independent of environment (used for tracker payloads)."""
    return sanitize(value, redact_pii=False)


def object_fields(value: Any) -> Optional[Mapping]:
    """Return the key/value view of a mapping-like *value*, or ``None``.

    Mappings are returned as-is, dataclass instances as their fields and
    plain objects as their public ``__dict__``.  Primitives, sequences,
    exceptions, classes, modules and callables have no field view.
    """
    if isinstance(value, Mapping):
        return value
    if isinstance(value, (str, bytes, int, float, bool, type(None), list, tuple)):
        return None
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name, None) for f in dataclasses.fields(value)}
    if isinstance(value, (BaseException, type, types.ModuleType)) or callable(value):
        return None
    attrs = getattr(value, "__dict__", None)
    if isinstance(attrs, dict):
        return {k: v for k, v in attrs.items() if not k.startswith("_")}
    return None


# ── Private helpers ──────────────────────────────────────────────


def _walk(value: Any, redact_pii: bool, seen: Set[int]) -> Any:
    fields = object_fields(value)
    if fields is None and not isinstance(value, (list, tuple)):
        return value

    marker = id(value)
    if marker in seen:
        return CIRCULAR
    seen.add(marker)
    try:
        if fields is None:
            return [_walk(item, redact_pii, seen) for item in value]

        cleaned = {}
        for key, item in fields.items():
            if is_secret_key(key):
                cleaned[key] = REDACTED
            elif redact_pii and is_pii_key(key):
                cleaned[key] = PII_REDACTED
            else:
                cleaned[key] = _walk(item, redact_pii, seen)
        return cleaned
    finally:
        # Only ancestors count as cycles; shared siblings are fine.
        seen.discard(marker)
