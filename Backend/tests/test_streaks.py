from datetime import date, datetime, timedelta, timezone

from services.challenge_service.models import DailyStreakRecord, STREAK_HISTORY_LIMIT
from services.challenge_service.streaks import advance_streak, is_active_today

DAY_ONE = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)


def test_three_consecutive_days_then_gap():
    record = DailyStreakRecord()
    for offset in range(3):
        record = advance_streak(record, DAY_ONE + timedelta(days=offset))
    assert record.current_streak == 3
    assert record.longest_streak == 3

    record = advance_streak(record, DAY_ONE + timedelta(days=5))
    assert record.current_streak == 1
    assert record.longest_streak == 3


def test_first_activity_starts_streak_at_one():
    record = advance_streak(DailyStreakRecord(), DAY_ONE)
    assert record.current_streak == 1
    assert record.longest_streak == 1
    assert record.last_active_date == date(2024, 1, 1)
    assert record.streak_history == (date(2024, 1, 1),)


def test_same_day_is_a_no_op():
    record = advance_streak(DailyStreakRecord(), DAY_ONE)
    again = advance_streak(record, DAY_ONE + timedelta(hours=10))
    assert again is record


def test_day_boundary_uses_calendar_days_not_24h():
    late = datetime(2024, 1, 1, 23, 50, tzinfo=timezone.utc)
    early_next = datetime(2024, 1, 2, 0, 5, tzinfo=timezone.utc)
    record = advance_streak(advance_streak(DailyStreakRecord(), late), early_next)
    assert record.current_streak == 2


def test_last_active_in_the_future_resets_to_one():
    skewed = DailyStreakRecord(
        current_streak=6,
        longest_streak=9,
        last_active_date=date(2024, 1, 10),
        streak_history=(date(2024, 1, 10),),
    )
    record = advance_streak(skewed, DAY_ONE)
    assert record.current_streak == 1
    assert record.longest_streak == 9
    assert record.last_active_date == date(2024, 1, 1)


def test_history_is_capped_oldest_first():
    start = date(2023, 1, 1)
    history = tuple(start + timedelta(days=i) for i in range(STREAK_HISTORY_LIMIT))
    record = DailyStreakRecord(
        current_streak=STREAK_HISTORY_LIMIT,
        longest_streak=STREAK_HISTORY_LIMIT,
        last_active_date=history[-1],
        streak_history=history,
    )
    record = advance_streak(record, history[-1] + timedelta(days=1))
    assert len(record.streak_history) == STREAK_HISTORY_LIMIT
    assert record.streak_history[0] == start + timedelta(days=1)
    assert record.streak_history[-1] == history[-1] + timedelta(days=1)


def test_record_round_trips_through_document_shape():
    record = advance_streak(DailyStreakRecord(), DAY_ONE)
    assert DailyStreakRecord.from_dict(record.to_dict()) == record
    assert is_active_today(record, DAY_ONE)
    assert not is_active_today(record, DAY_ONE + timedelta(days=1))
