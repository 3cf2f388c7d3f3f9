from datetime import UTC, datetime, timedelta

import pytest

from src.taskloom.core.recurrence import compute_next_run
from src.taskloom.core.schedule_types import DailySchedule, HourlySchedule, IntervalSchedule, WeeklySchedule


def _dt(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.mark.parametrize("minutes", [1, 7, 60, 1440])
def test_interval_adds_minutes(minutes):
    start = _dt(2024, 1, 1, 10, 0, 30)
    assert compute_next_run(IntervalSchedule(minutes=minutes), start) == start + timedelta(minutes=minutes)


def test_daily_after_time_of_day_moves_to_tomorrow():
    out = compute_next_run(DailySchedule(at_hour=9, at_minute=0), _dt(2024, 1, 1, 10, 0))
    assert out == _dt(2024, 1, 2, 9, 0)


def test_daily_before_time_of_day_stays_today():
    out = compute_next_run(DailySchedule(at_hour=9, at_minute=0), _dt(2024, 1, 1, 8, 0))
    assert out == _dt(2024, 1, 1, 9, 0)


def test_daily_exactly_at_occurrence_is_strictly_later():
    out = compute_next_run(DailySchedule(at_hour=9, at_minute=0), _dt(2024, 1, 1, 9, 0))
    assert out == _dt(2024, 1, 2, 9, 0)


def test_weekly_same_day_after_time_moves_a_week():
    # 2024-01-01 is a Monday.
    out = compute_next_run(WeeklySchedule(day=1, at_hour=9, at_minute=0), _dt(2024, 1, 1, 10, 0))
    assert out == _dt(2024, 1, 8, 9, 0)


def test_weekly_same_day_before_time_stays_today():
    out = compute_next_run(WeeklySchedule(day=1, at_hour=9, at_minute=0), _dt(2024, 1, 1, 8, 59))
    assert out == _dt(2024, 1, 1, 9, 0)


def test_weekly_later_weekday_in_same_week():
    out = compute_next_run(WeeklySchedule(day=5, at_hour=17, at_minute=30), _dt(2024, 1, 1, 10, 0))
    assert out == _dt(2024, 1, 5, 17, 30)


def test_weekly_earlier_weekday_wraps_to_next_week():
    # Sunday (0) from a Wednesday.
    out = compute_next_run(WeeklySchedule(day=0, at_hour=8, at_minute=0), _dt(2024, 1, 3, 12, 0))
    assert out == _dt(2024, 1, 7, 8, 0)


def test_hourly_same_minute_advances_an_hour():
    out = compute_next_run(HourlySchedule(at_minute=5), _dt(2024, 1, 1, 10, 5, 30))
    assert out == _dt(2024, 1, 1, 11, 5)


def test_hourly_before_minute_stays_in_hour():
    out = compute_next_run(HourlySchedule(at_minute=5), _dt(2024, 1, 1, 10, 4, 59))
    assert out == _dt(2024, 1, 1, 10, 5)


def test_hourly_crosses_midnight():
    out = compute_next_run(HourlySchedule(at_minute=0), _dt(2024, 12, 31, 23, 0))
    assert out == _dt(2025, 1, 1, 0, 0)


def test_naive_input_is_treated_as_utc():
    out = compute_next_run(DailySchedule(at_hour=9, at_minute=0), datetime(2024, 1, 1, 8, 0))
    assert out == _dt(2024, 1, 1, 9, 0)
    assert out.tzinfo is not None


def test_daily_uses_configured_timezone():
    # 15:00 UTC is 10:00 in New York during winter, past the 09:00 slot.
    out = compute_next_run(
        DailySchedule(at_hour=9, at_minute=0),
        _dt(2024, 1, 1, 15, 0),
        timezone_name="America/New_York",
    )
    assert out == _dt(2024, 1, 2, 14, 0)


def test_daily_inside_spring_forward_gap_still_moves_forward():
    start = _dt(2024, 3, 9, 8, 0)
    out = compute_next_run(DailySchedule(at_hour=2, at_minute=30), start, timezone_name="America/New_York")
    assert out > start
    assert out == _dt(2024, 3, 10, 7, 30)


def test_repeated_calls_always_progress():
    schedule = HourlySchedule(at_minute=15)
    current = _dt(2024, 1, 1, 0, 0)
    seen = []
    for _ in range(5):
        current = compute_next_run(schedule, current)
        seen.append(current)
    assert seen == sorted(set(seen))
    assert seen[-1] == _dt(2024, 1, 1, 4, 15)


def test_unknown_schedule_type_raises():
    with pytest.raises(TypeError):
        compute_next_run(object(), _dt(2024, 1, 1))  # type: ignore[arg-type]
