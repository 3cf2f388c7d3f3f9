"""Next-occurrence math for task schedules.

Interval schedules are absolute (`from + minutes`). Calendar schedules
(hourly/daily/weekly) are evaluated as wall-clock times in one IANA timezone,
UTC unless configured otherwise. Candidates are built with `fold=0`: a time
inside a spring-forward gap maps to the instant zoneinfo assigns it, and a
time inside a fall-back overlap uses its first occurrence. Results are always
aware UTC datetimes strictly after the reference instant.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from .schedule_types import DailySchedule, HourlySchedule, IntervalSchedule, Schedule, WeeklySchedule

DEFAULT_TIMEZONE = "UTC"


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def resolve_zone(timezone_name: str | None) -> ZoneInfo:
    name = str(timezone_name or DEFAULT_TIMEZONE).strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except Exception as exc:
        raise ValueError(f"Unknown timezone `{name}`.") from exc


def _wall_clock(zone: ZoneInfo, day: datetime, hour: int, minute: int) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=zone).astimezone(UTC)


def _weekday_sunday_first(value: datetime) -> int:
    # datetime.weekday() is Monday=0; schedules count Sunday=0.
    return (value.weekday() + 1) % 7


def compute_next_run(
    schedule: Schedule,
    from_dt: datetime,
    *,
    timezone_name: str | None = DEFAULT_TIMEZONE,
) -> datetime:
    """Return the first occurrence of `schedule` strictly after `from_dt`."""
    start = as_utc(from_dt)

    if isinstance(schedule, IntervalSchedule):
        return start + timedelta(minutes=schedule.minutes)

    zone = resolve_zone(timezone_name)
    local = start.astimezone(zone)

    if isinstance(schedule, HourlySchedule):
        base = local.replace(minute=0, second=0, microsecond=0, tzinfo=None)
        for delta in range(0, 4):
            slot = base + timedelta(hours=delta)
            candidate = _wall_clock(zone, slot, slot.hour, schedule.at_minute)
            if candidate > start:
                return candidate
        raise RuntimeError("Hourly next-run search exhausted.")

    if isinstance(schedule, DailySchedule):
        for delta in range(0, 3):
            day = local + timedelta(days=delta)
            candidate = _wall_clock(zone, day, schedule.at_hour, schedule.at_minute)
            if candidate > start:
                return candidate
        raise RuntimeError("Daily next-run search exhausted.")

    if isinstance(schedule, WeeklySchedule):
        for delta in range(0, 15):
            day = local + timedelta(days=delta)
            if _weekday_sunday_first(day) != schedule.day:
                continue
            candidate = _wall_clock(zone, day, schedule.at_hour, schedule.at_minute)
            if candidate > start:
                return candidate
        raise RuntimeError("Weekly next-run search exhausted.")

    raise TypeError(f"Unsupported schedule: {schedule!r}")
