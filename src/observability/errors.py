"""
Normalisation of arbitrary raised / rejected values.

Anything can reach an error boundary: exceptions, bare strings, dicts
shaped like errors, numbers, ``None``, lists.  :func:`normalize_error`
maps every one of them onto a single shape, ``NormalizedError``, so the
handlers downstream never branch on input type again.
"""

import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from ..constants import UNKNOWN_ERROR_MESSAGE
from .sanitizer import object_fields


class UnhandledError(Exception):
    """Exception built for values that were not exceptions to begin with."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ErrorKind(Enum):
    """Input classes recognised by :func:`classify_error`, in match order."""

    IS_ERROR = "error"
    IS_STRING = "string"
    HAS_STRING_MESSAGE = "has_string_message"
    IS_PLAIN_OBJECT = "plain_object"
    IS_PRIMITIVE_OR_ARRAY = "primitive_or_array"


@dataclass
class NormalizedError:
    """Canonical ``(message, error, metadata)`` triple."""

    message: str
    error: BaseException
    metadata: Dict[str, Any] = field(default_factory=dict)


def classify_error(value: Any) -> ErrorKind:
    """Return the first :class:`ErrorKind` that *value* satisfies.

    Mappings, dataclass instances and plain objects with a ``__dict__`` are
    objects; their ``message`` is read as a key or attribute.  Lists and
    tuples are never objects; they fall through to ``IS_PRIMITIVE_OR_ARRAY``.
    """
    if isinstance(value, BaseException):
        return ErrorKind.IS_ERROR
    if isinstance(value, str):
        return ErrorKind.IS_STRING
    fields = object_fields(value)
    if fields is not None:
        if isinstance(fields.get("message"), str):
            return ErrorKind.HAS_STRING_MESSAGE
        return ErrorKind.IS_PLAIN_OBJECT
    return ErrorKind.IS_PRIMITIVE_OR_ARRAY


def normalize_error(value: Any) -> NormalizedError:
    """Normalise *value* into a :class:`NormalizedError`.

    Args:
        value: Whatever was raised, rejected or reported.

    Returns:
        ``message`` is always a ``str``; ``error`` is always an exception
        whose text equals ``message``; ``metadata`` is always a ``dict``.
        An exception input is returned as-is in ``error`` (not copied).
    """
    kind = classify_error(value)

    if kind is ErrorKind.IS_ERROR:
        return NormalizedError(
            message=safe_str(value),
            error=value,
            metadata={
                "name": type(value).__name__,
                "stack": format_stack(value),
                **{
                    k: v
                    for k, v in vars(value).items()
                    if k not in ("name", "message", "stack") and not k.startswith("_")
                },
            },
        )

    if kind is ErrorKind.IS_STRING:
        return NormalizedError(message=value, error=UnhandledError(value), metadata={})

    if kind is ErrorKind.HAS_STRING_MESSAGE:
        fields = dict(object_fields(value))
        return NormalizedError(
            message=fields["message"],
            error=UnhandledError(fields["message"]),
            metadata=fields,
        )

    if kind is ErrorKind.IS_PLAIN_OBJECT:
        return NormalizedError(
            message=UNKNOWN_ERROR_MESSAGE,
            error=UnhandledError(UNKNOWN_ERROR_MESSAGE),
            metadata=dict(object_fields(value)),
        )

    text = display_value(value)
    return NormalizedError(message=text, error=UnhandledError(text), metadata={"originalValue": value})


def format_stack(exc: BaseException):
    """Formatted traceback of *exc*, or ``None`` if it was never raised."""
    if exc.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def safe_str(value: Any) -> str:
    """``str(value)``, or the type name when its ``__str__`` raises."""
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return type(value).__name__


def display_value(value: Any) -> str:
    """Render a primitive or sequence as display text.

    ``None`` is ``"null"``, booleans are lower-case, and sequences are their
    elements joined with ``","`` (a ``None`` element renders empty), so
    ``["x", "y"]`` becomes ``"x,y"`` and ``[]`` becomes ``""``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else display_value(item) for item in value)
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return UNKNOWN_ERROR_MESSAGE
