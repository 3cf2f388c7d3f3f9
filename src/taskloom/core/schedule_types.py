"""Recurrence shapes accepted by scheduled tasks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

_DAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


class ScheduleValidationError(ValueError):
    """Raised when a schedule payload is malformed or out of range."""


def _check_range(label: str, value: Any, low: int, high: int | None = None) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ScheduleValidationError(f"{label} must be an integer.")
    if value < low or (high is not None and value > high):
        if high is None:
            raise ScheduleValidationError(f"{label} must be >= {low}.")
        raise ScheduleValidationError(f"{label} must be between {low} and {high}.")


@dataclass(frozen=True, slots=True)
class IntervalSchedule:
    minutes: int

    def __post_init__(self) -> None:
        _check_range("Interval.minutes", self.minutes, 1)


@dataclass(frozen=True, slots=True)
class HourlySchedule:
    at_minute: int

    def __post_init__(self) -> None:
        _check_range("Hourly.at_minute", self.at_minute, 0, 59)


@dataclass(frozen=True, slots=True)
class DailySchedule:
    at_hour: int
    at_minute: int

    def __post_init__(self) -> None:
        _check_range("Daily.at_hour", self.at_hour, 0, 23)
        _check_range("Daily.at_minute", self.at_minute, 0, 59)


@dataclass(frozen=True, slots=True)
class WeeklySchedule:
    """Weekly occurrence; `day` counts from 0 = Sunday to 6 = Saturday."""

    day: int
    at_hour: int
    at_minute: int

    def __post_init__(self) -> None:
        _check_range("Weekly.day", self.day, 0, 6)
        _check_range("Weekly.at_hour", self.at_hour, 0, 23)
        _check_range("Weekly.at_minute", self.at_minute, 0, 59)


Schedule = Union[IntervalSchedule, HourlySchedule, DailySchedule, WeeklySchedule]

_FIELDS_BY_TYPE: dict[str, tuple[type, tuple[str, ...]]] = {
    "interval": (IntervalSchedule, ("minutes",)),
    "hourly": (HourlySchedule, ("at_minute",)),
    "daily": (DailySchedule, ("at_hour", "at_minute")),
    "weekly": (WeeklySchedule, ("day", "at_hour", "at_minute")),
}


def parse_schedule(payload: Any) -> Schedule:
    """Build a schedule from its wire shape, e.g. `{"type": "Daily", "at_hour": 9, "at_minute": 0}`."""
    if isinstance(payload, (IntervalSchedule, HourlySchedule, DailySchedule, WeeklySchedule)):
        return payload
    if not isinstance(payload, dict):
        raise ScheduleValidationError("schedule_type must be a JSON object.")

    raw_type = payload.get("type")
    kind = str(raw_type or "").strip().lower()
    if kind not in _FIELDS_BY_TYPE:
        raise ScheduleValidationError(f"Unknown schedule type `{raw_type}`.")

    cls, fields = _FIELDS_BY_TYPE[kind]
    missing = [name for name in fields if name not in payload]
    if missing:
        raise ScheduleValidationError(f"{cls.__name__} requires: {', '.join(missing)}.")
    return cls(**{name: payload[name] for name in fields})


def schedule_to_dict(schedule: Schedule) -> dict[str, Any]:
    if isinstance(schedule, IntervalSchedule):
        return {"type": "Interval", "minutes": schedule.minutes}
    if isinstance(schedule, HourlySchedule):
        return {"type": "Hourly", "at_minute": schedule.at_minute}
    if isinstance(schedule, DailySchedule):
        return {"type": "Daily", "at_hour": schedule.at_hour, "at_minute": schedule.at_minute}
    if isinstance(schedule, WeeklySchedule):
        return {
            "type": "Weekly",
            "day": schedule.day,
            "at_hour": schedule.at_hour,
            "at_minute": schedule.at_minute,
        }
    raise TypeError(f"Unsupported schedule: {schedule!r}")


def describe_schedule(schedule: Schedule) -> str:
    if isinstance(schedule, IntervalSchedule):
        return f"Every {schedule.minutes} min"
    if isinstance(schedule, HourlySchedule):
        return f"Hourly at :{schedule.at_minute:02d}"
    if isinstance(schedule, DailySchedule):
        return f"Daily at {schedule.at_hour:02d}:{schedule.at_minute:02d}"
    if isinstance(schedule, WeeklySchedule):
        return f"Weekly on {_DAY_LABELS[schedule.day]} at {schedule.at_hour:02d}:{schedule.at_minute:02d}"
    raise TypeError(f"Unsupported schedule: {schedule!r}")
