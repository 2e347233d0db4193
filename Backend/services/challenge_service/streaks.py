# services/challenge_service/streaks.py
"""
Daily study streak state machine.

Evaluated once per "user was active" event, on calendar days:
- same day as last activity      -> no change
- exactly one day later          -> streak + 1
- longer gap / first activity    -> streak restarts at 1
- last activity in the future    -> treated as a gap (clock skew)
"""

from __future__ import annotations
from dataclasses import replace
from datetime import date, datetime
from typing import Optional, Union

from .models import DailyStreakRecord, STREAK_HISTORY_LIMIT
from .utils import utc_now


def _as_day(now: Union[date, datetime]) -> date:
    return now.date() if isinstance(now, datetime) else now


def days_since(record: DailyStreakRecord, today: date) -> Optional[int]:
    if record.last_active_date is None:
        return None
    return (today - record.last_active_date).days


def advance_streak(
    record: DailyStreakRecord,
    now: Optional[Union[date, datetime]] = None,
) -> DailyStreakRecord:
    """Return the streak record after activity at `now` (defaults to the UTC clock)."""
    today = _as_day(now if now is not None else utc_now())
    gap = days_since(record, today)

    if gap == 0:
        return record

    if gap == 1:
        current = record.current_streak + 1
    else:
        # No prior activity, a missed day, or a last-active date ahead of us.
        current = 1

    history = (record.streak_history + (today,))[-STREAK_HISTORY_LIMIT:]
    return replace(
        record,
        current_streak=current,
        longest_streak=max(record.longest_streak, current),
        last_active_date=today,
        streak_history=history,
    )


def is_active_today(record: DailyStreakRecord, now: Optional[Union[date, datetime]] = None) -> bool:
    today = _as_day(now if now is not None else utc_now())
    return record.last_active_date == today
