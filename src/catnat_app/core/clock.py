"""Time helpers shared by models and services."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(timezone.utc)


def as_date(value: date | datetime | None) -> date:
    """Normalize a date or datetime to a date, defaulting to today (UTC)."""
    if value is None:
        return utc_now().date()
    if isinstance(value, datetime):
        return value.date()
    return value
