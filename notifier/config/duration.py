"""Duration parsing for interval settings such as ``scheduler.retry_interval``."""

import re

_ISO8601_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)
_HUMAN_PART = re.compile(r"(\d+)([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(duration_str: str) -> int:
    """Parse a duration string to whole seconds.

    Accepts human-readable values (``30s``, ``1m``, ``1h30m``, ``2d``) and
    ISO-8601 durations (``PT30S``, ``PT1M``, ``P1D``).

    Args:
        duration_str: Duration string to parse

    Returns:
        Duration in seconds

    Raises:
        DurationParseError: If the string is empty, malformed, or zero

    Examples:
        >>> parse_duration("1m")
        60
        >>> parse_duration("PT1H30M")
        5400
    """
    cleaned = (duration_str or "").strip()
    if not cleaned:
        raise DurationParseError("Duration string cannot be empty")

    if cleaned.upper().startswith("P"):
        total = _parse_iso8601(cleaned.upper())
    else:
        total = _parse_human_readable(cleaned.lower())

    if total == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total


def _parse_iso8601(value: str) -> int:
    match = _ISO8601_PATTERN.match(value)
    if not match or value in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{value}'. "
            "Expected format like 'PT30S', 'PT1M', 'PT1H30M' or 'P1D'"
        )

    parts = match.groupdict()
    return (
        int(parts["days"] or 0) * 86400
        + int(parts["hours"] or 0) * 3600
        + int(parts["minutes"] or 0) * 60
        + int(float(parts["seconds"] or 0))
    )


def _parse_human_readable(value: str) -> int:
    compact = re.sub(r"\s+", "", value)
    matches = _HUMAN_PART.findall(compact)

    if not matches or "".join(f"{num}{unit}" for num, unit in matches) != compact:
        raise DurationParseError(
            f"Invalid duration format: '{value}'. "
            "Use digits with units s, m, h, d (e.g. '30s', '1m', '1h30m')"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(duration_seconds: int, min_seconds: int, max_seconds: int) -> None:
    """Check that a duration lies within ``[min_seconds, max_seconds]``.

    Raises:
        DurationParseError: If the duration is outside the range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"Interval too short: {duration_seconds}s. Minimum is {min_seconds}s."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"Interval too long: {duration_seconds}s. Maximum is {max_seconds}s."
        )
