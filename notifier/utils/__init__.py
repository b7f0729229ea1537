"""Utility helpers shared across the notification core."""

from .timestamps import (
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "format_timestamp",
    "parse_iso_datetime",
]
