"""
Shared helpers for the challenge service: clocks, day boundaries and
timestamp (de)serialization. Keeps the engine modules small and testable.
"""

from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_yyyy_mm_dd(d: date) -> str:
    """Standardize date strings for storage and UI consistency."""
    return d.strftime("%Y-%m-%d")


def parse_day(value: Any) -> Optional[date]:
    """Accept a date, a datetime (Firestore timestamps included) or a YYYY-MM-DD string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def to_iso(dt: datetime) -> str:
    """ISO-8601 in UTC; naive datetimes are assumed to already be UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def parse_iso(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# ============================================================================
# Time-of-day flags (evaluated in the event's own timezone)
# ============================================================================

def is_early_morning(dt: datetime) -> bool:
    return 5 <= dt.hour < 7


def is_late_night(dt: datetime) -> bool:
    return dt.hour >= 22 or dt.hour < 2


def is_weekend(dt: datetime) -> bool:
    return dt.weekday() >= 5  # Saturday or Sunday
