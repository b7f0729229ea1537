"""Timestamp utilities for UTC handling.

The delivery log stores every timestamp as a fixed-width ISO 8601 string in
UTC so that string comparison in SQL matches chronological order. These
helpers produce and parse that representation.
"""

from datetime import datetime, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware datetimes are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime in the storage representation.

    Args:
        dt: Datetime to format (naive values are treated as UTC)

    Returns:
        String like ``2024-12-20T10:00:00.000000Z`` or None

    Example:
        >>> from datetime import datetime, timezone
        >>> format_timestamp(datetime(2024, 12, 20, 10, 0, tzinfo=timezone.utc))
        '2024-12-20T10:00:00.000000Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return None
    return dt_utc.strftime(STORAGE_FORMAT)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string to a UTC datetime.

    Accepts the storage representation as well as offsets (``+00:00``),
    a bare ``Z`` suffix, and date-only strings.

    Args:
        iso_string: ISO 8601 formatted datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if empty or unparseable
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        try:
            return ensure_utc(datetime.strptime(cleaned, "%Y-%m-%d"))
        except ValueError:
            return None
