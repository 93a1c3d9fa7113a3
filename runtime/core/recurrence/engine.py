"""Recurrence engine: turns a recurrence into concrete due times.

Both entry points are pure functions over naive local datetimes:

- `first_due(recurrence, now)` projects the recurrence onto the current
  calendar and moves to the next cycle when the candidate has already passed,
  so the result is never earlier than `now`.
- `next_due(previous, recurrence)` returns the occurrence after the one that
  just fired, or None for one-shot recurrences (they are removed instead).

Month overflow clamps: day 31 runs on the last day of shorter months, and a
Feb 29 date runs on Feb 28 in common years.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from recurrence.kinds import (
    Daily,
    Hourly,
    Interval,
    Minutely,
    Monthly,
    OneShot,
    Recurrence,
    Weekly,
    Yearly,
)

_FIXED_STEPS: dict[type, timedelta] = {
    Minutely: timedelta(minutes=1),
    Hourly: timedelta(hours=1),
    Daily: timedelta(days=1),
    Weekly: timedelta(weeks=1),
}


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def weekday_offset(current: int, target: int, passed: bool) -> int:
    """Days from `current` weekday to the next `target` weekday (0..7).

    `passed` means the target time of day is already behind us today, which
    pushes a same-day target a full week out.
    """
    if passed:
        return 7 - (current - target) % 7
    return (target - current) % 7


def _clamped(year: int, month: int, day: int, hour: int, minute: int, second: int) -> datetime:
    return datetime(year, month, min(day, days_in_month(year, month)), hour, minute, second)


def _following_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def first_due(recurrence: Recurrence, now: datetime) -> datetime:
    if isinstance(recurrence, Interval):
        return now + timedelta(seconds=recurrence.seconds)

    if isinstance(recurrence, Minutely):
        candidate = now.replace(second=recurrence.second, microsecond=0)
        return candidate if candidate >= now else candidate + timedelta(minutes=1)

    if isinstance(recurrence, Hourly):
        candidate = now.replace(minute=recurrence.minute, second=recurrence.second, microsecond=0)
        return candidate if candidate >= now else candidate + timedelta(hours=1)

    if isinstance(recurrence, Daily):
        candidate = now.replace(hour=recurrence.hour, minute=recurrence.minute, second=recurrence.second, microsecond=0)
        return candidate if candidate >= now else candidate + timedelta(days=1)

    if isinstance(recurrence, Weekly):
        today_at = now.replace(hour=recurrence.hour, minute=recurrence.minute, second=recurrence.second, microsecond=0)
        offset = weekday_offset(now.weekday(), recurrence.weekday, passed=today_at < now)
        return today_at + timedelta(days=offset)

    if isinstance(recurrence, Monthly):
        candidate = _clamped(now.year, now.month, recurrence.day, recurrence.hour, recurrence.minute, recurrence.second)
        if candidate >= now:
            return candidate
        year, month = _following_month(now.year, now.month)
        return _clamped(year, month, recurrence.day, recurrence.hour, recurrence.minute, recurrence.second)

    if isinstance(recurrence, (Yearly, OneShot)):
        # A one-shot date already behind us this year fires next year.
        candidate = _clamped(
            now.year, recurrence.month, recurrence.day, recurrence.hour, recurrence.minute, recurrence.second
        )
        if candidate >= now:
            return candidate
        return _clamped(
            now.year + 1, recurrence.month, recurrence.day, recurrence.hour, recurrence.minute, recurrence.second
        )

    raise TypeError(f"Unsupported recurrence: {recurrence!r}")


def next_due(previous: datetime, recurrence: Recurrence) -> datetime | None:
    if isinstance(recurrence, OneShot):
        return None

    if isinstance(recurrence, Interval):
        return previous + timedelta(seconds=recurrence.seconds)

    step = _FIXED_STEPS.get(type(recurrence))
    if step is not None:
        return previous + step

    if isinstance(recurrence, Monthly):
        year, month = _following_month(previous.year, previous.month)
        return _clamped(year, month, recurrence.day, recurrence.hour, recurrence.minute, recurrence.second)

    if isinstance(recurrence, Yearly):
        return _clamped(
            previous.year + 1, recurrence.month, recurrence.day, recurrence.hour, recurrence.minute, recurrence.second
        )

    raise TypeError(f"Unsupported recurrence: {recurrence!r}")
