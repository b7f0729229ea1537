"""Classification of delivery failures into retry categories.

Classification is deterministic and fail-closed: anything not recognised as
a network, rate-limit or validation problem is treated as permanent.
"""

import re
from typing import Any, Optional

from notifier.domain.models import ClassifiedError, ErrorKind

from .models import NotificationError

NETWORK_PATTERNS = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "EHOSTUNREACH",
    "ENETUNREACH",
    "ENOTFOUND",
    "network",
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "socket hang up",
)

RATE_LIMIT_PATTERNS = (
    "rate limit",
    "rate-limit",
    "too many requests",
    "429",
    "throttled",
    "quota exceeded",
)

VALIDATION_PATTERNS = (
    "invalid",
    "validation",
    "malformed",
    "bad request",
    "missing required",
    "format",
    "not valid",
    "unprocessable",
)


def _compile(patterns) -> "re.Pattern[str]":
    return re.compile("|".join(re.escape(p) for p in patterns), re.IGNORECASE)


_PATTERN_KINDS = (
    (_compile(NETWORK_PATTERNS), ErrorKind.TRANSIENT),
    (_compile(RATE_LIMIT_PATTERNS), ErrorKind.RATE_LIMIT),
    (_compile(VALIDATION_PATTERNS), ErrorKind.VALIDATION),
)


def classify(error: Any) -> ClassifiedError:
    """Classify a failure.

    Args:
        error: An error message, an exception, or any object exposing
            ``message`` and/or ``status_code`` (such as a ProviderResult)

    Returns:
        ClassifiedError whose ``transient`` property decides retry eligibility
    """
    message = _message_of(error)
    status_code = _status_code_of(error)

    if isinstance(error, NotificationError):
        kind = ErrorKind.TRANSIENT if error.transient else ErrorKind.PERMANENT
        return ClassifiedError(kind=kind, message=message, status_code=status_code)

    if isinstance(error, (TimeoutError, ConnectionError)):
        return ClassifiedError(kind=ErrorKind.TRANSIENT, message=message, status_code=status_code)

    if status_code is not None:
        kind = _kind_for_status(status_code)
        if kind is not None:
            return ClassifiedError(kind=kind, message=message, status_code=status_code)

    for pattern, kind in _PATTERN_KINDS:
        if pattern.search(message):
            return ClassifiedError(kind=kind, message=message, status_code=status_code)

    return ClassifiedError(kind=ErrorKind.PERMANENT, message=message, status_code=status_code)


def _kind_for_status(status_code: int) -> Optional[ErrorKind]:
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if 500 <= status_code <= 599:
        return ErrorKind.TRANSIENT
    if status_code in (400, 422):
        return ErrorKind.VALIDATION
    if 400 <= status_code <= 499:
        return ErrorKind.PERMANENT
    return None


def _message_of(error: Any) -> str:
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error or "Unknown error"
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__

    message = getattr(error, "message", None) or getattr(error, "error", None)
    return str(message) if message else "Unknown error"


def _status_code_of(error: Any) -> Optional[int]:
    status_code = getattr(error, "status_code", None)
    if status_code is None:
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)
    try:
        return int(status_code) if status_code is not None else None
    except (TypeError, ValueError):
        return None
