"""Datetime helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns; everything stored is UTC, so naive values are treated as UTC.
"""

from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 string in UTC, or None."""
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_cursor(cursor: Optional[str]) -> Optional[datetime]:
    """Parse a pagination cursor produced by :func:`to_iso`.

    Returns None for missing or malformed cursors so that a bad cursor
    restarts from the first page.
    """
    if not cursor:
        return None
    try:
        parsed = datetime.fromisoformat(cursor.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def is_valid_date(value: str) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(value, str) or len(value) != 10:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True
