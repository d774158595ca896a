"""
Calendar model: working days and the slot timeline.

``generate_slots`` is a pure function of the configuration, so the same
configuration always yields the same chronological sequence.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator, List, Optional

from .models import CalendarConfig, Slot

DEFAULT_HOLIDAYS = frozenset(
    {
        (1, 1),
        (1, 12),
        (5, 1),
        (7, 5),
        (11, 1),
    }
)

_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def non_working_reason(config: CalendarConfig, day: date) -> Optional[str]:
    """Return why ``day`` cannot host defenses, or None when it is a working day."""
    if config.day_off is not None and day.weekday() == config.day_off:
        return f"weekly day off ({_DAY_NAMES[config.day_off]})"
    if (day.month, day.day) in config.holidays:
        return "public holiday"
    if day in config.excluded_dates:
        return "excluded date"
    return None


def in_period(config: CalendarConfig, day: date) -> bool:
    return config.start_date <= day <= config.last_date


def working_days(config: CalendarConfig, start_date: Optional[date] = None) -> Iterator[date]:
    day = max(start_date or config.start_date, config.start_date)
    last = config.last_date
    while day <= last:
        if non_working_reason(config, day) is None:
            yield day
        day += timedelta(days=1)


def day_start_times(config: CalendarConfig) -> List[int]:
    """Start minutes of the slots of one working day; empty when a session cannot fit."""
    starts = []
    start = config.working_start
    while start + config.session_duration <= config.working_end:
        starts.append(start)
        start += config.slot_step
    return starts


def generate_slots(config: CalendarConfig, start_date: Optional[date] = None) -> Iterator[Slot]:
    starts = day_start_times(config)
    for day in working_days(config, start_date):
        for start in starts:
            yield Slot(day, start, start + config.session_duration)


def fits_working_hours(config: CalendarConfig, start: int, end: int) -> bool:
    return config.working_start <= start and end <= config.working_end


__all__ = [
    "DEFAULT_HOLIDAYS",
    "non_working_reason",
    "in_period",
    "working_days",
    "day_start_times",
    "generate_slots",
    "fits_working_hours",
]
