"""Recurrence kinds.

A recurrence is a closed union of frozen dataclasses, one per kind, each
carrying only the fields that kind needs. Every instance is validated when it
is constructed, so the engine never sees an out-of-range field.

Weekdays follow `datetime.weekday()`: 0 = Monday ... 6 = Sunday.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from errors import RecurrenceValidationError, SchemaViolation
from recurrence.validation import validate_recurrence_document

# Any leap year works: it gives the largest day count for every month.
_LEAP_REFERENCE_YEAR = 2000


class RecurrenceKind(str, Enum):
    MINUTELY = "minutely"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    INTERVAL = "interval"
    ONE_SHOT = "one_shot"


class _RecurrenceBase:
    kind: ClassVar[RecurrenceKind]

    def __post_init__(self) -> None:
        validate_recurrence_document(self.to_document())

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"kind": self.kind.value}
        doc.update(asdict(self))  # type: ignore[call-overload]
        return doc


class _CalendarDate(_RecurrenceBase):
    """Shared month/day check for kinds pinned to a calendar date."""

    month: int
    day: int

    def __post_init__(self) -> None:
        super().__post_init__()
        max_day = calendar.monthrange(_LEAP_REFERENCE_YEAR, self.month)[1]
        if self.day > max_day:
            raise RecurrenceValidationError(
                kind=self.kind.value,
                violations=[SchemaViolation(path="/day", message=f"month {self.month} has at most {max_day} days")],
            )


@dataclass(frozen=True)
class Minutely(_RecurrenceBase):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.MINUTELY

    second: int = 0


@dataclass(frozen=True)
class Hourly(_RecurrenceBase):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.HOURLY

    minute: int = 0
    second: int = 0


@dataclass(frozen=True)
class Daily(_RecurrenceBase):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.DAILY

    hour: int = 0
    minute: int = 0
    second: int = 0


@dataclass(frozen=True)
class Weekly(_RecurrenceBase):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.WEEKLY

    weekday: int
    hour: int = 0
    minute: int = 0
    second: int = 0


@dataclass(frozen=True)
class Monthly(_RecurrenceBase):
    """Runs on `day` of every month; months shorter than `day` run on their last day."""

    kind: ClassVar[RecurrenceKind] = RecurrenceKind.MONTHLY

    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0


@dataclass(frozen=True)
class Yearly(_CalendarDate):
    """Runs on `month`/`day` every year; Feb 29 runs on Feb 28 in common years."""

    kind: ClassVar[RecurrenceKind] = RecurrenceKind.YEARLY

    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0


@dataclass(frozen=True)
class Interval(_RecurrenceBase):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.INTERVAL

    seconds: float

    def __post_init__(self) -> None:
        super().__post_init__()
        # NaN compares false against every schema bound.
        if not math.isfinite(self.seconds):
            raise RecurrenceValidationError(
                kind=self.kind.value,
                violations=[SchemaViolation(path="/seconds", message=f"{self.seconds!r} is not a finite number")],
            )


@dataclass(frozen=True)
class OneShot(_CalendarDate):
    """Runs once at the next occurrence of `month`/`day` and is then removed."""

    kind: ClassVar[RecurrenceKind] = RecurrenceKind.ONE_SHOT

    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0


Recurrence = Union[Minutely, Hourly, Daily, Weekly, Monthly, Yearly, Interval, OneShot]

RECURRENCE_TYPES: dict[RecurrenceKind, type] = {
    cls.kind: cls for cls in (Minutely, Hourly, Daily, Weekly, Monthly, Yearly, Interval, OneShot)
}


def is_recurrence(value: Any) -> bool:
    return isinstance(value, tuple(RECURRENCE_TYPES.values()))


def recurrence_from_document(document: Any) -> Recurrence:
    """Build a recurrence from a plain mapping such as one loaded from YAML."""
    validate_recurrence_document(document)
    fields = dict(document)
    kind = RecurrenceKind(fields.pop("kind"))
    return RECURRENCE_TYPES[kind](**fields)
