"""Utility functions for time handling."""

from .timestamps import (
    days_ago,
    ensure_utc,
    format_timestamp,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "format_timestamp",
    "days_ago",
]
