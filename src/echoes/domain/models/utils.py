"""Utility functions for domain models."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get the current UTC datetime with timezone awareness."""
    return datetime.now(UTC)


def ordinal_suffix(day: int) -> str:
    """English ordinal suffix for a day of the month (1st, 2nd, 3rd, 11th, 22nd)."""
    if 3 < day < 21:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
