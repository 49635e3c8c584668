# src/cadence/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError

WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
# Index matches date.weekday().

_WEEKDAY_LOOKUP = {name.lower(): name for name in WEEKDAY_NAMES}


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - Only "pending" is ever written by the scheduler itself.
    - The other values are set by task-update operations living outside this package.
    """

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    REASSIGNED = "reassigned"
    REOPENED = "reopened"
    LATE_COMPLETE = "late-complete"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class Frequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _normalize_weekdays(raw: Iterable[Any]) -> frozenset[str]:
    out: set[str] = set()
    for item in raw:
        name = _WEEKDAY_LOOKUP.get(str(item).strip().lower()) if isinstance(item, str) else None
        if name is None:
            raise ValidationError(f"Invalid day in weekdays: {item!r}")
        out.add(name)
    return frozenset(out)


def _normalize_month_days(raw: Iterable[Any]) -> frozenset[int]:
    out: set[int] = set()
    for item in raw:
        # bool is an int subclass; True must not sneak in as day 1.
        if isinstance(item, bool) or not isinstance(item, int) or not 1 <= item <= 31:
            raise ValidationError(f"Invalid date in month_days: {item!r}")
        out.add(item)
    return frozenset(out)


@dataclass(frozen=True, slots=True)
class TaskTemplate:
    """
    Fields copied onto every materialized instance.

    start_at / end_at carry the time-of-day window; start_at's date is also the
    first date the series may produce an instance on.
    """

    title: str
    start_at: datetime
    end_at: datetime
    assignees: tuple[str, ...]
    description: str = ""
    priority: Priority = Priority.MEDIUM
    credit_points: int = 0

    def __post_init__(self) -> None:
        title = (self.title or "").strip()
        if not title:
            raise ValidationError("title is required")
        object.__setattr__(self, "title", title)
        object.__setattr__(self, "description", (self.description or "").strip())

        if not isinstance(self.start_at, datetime) or not isinstance(self.end_at, datetime):
            raise ValidationError("start_at and end_at must be datetimes")
        if self.start_at.tzinfo is None or self.end_at.tzinfo is None:
            raise ValidationError("start_at and end_at must carry a timezone")
        # end_at is kept in start_at's zone.
        object.__setattr__(self, "end_at", self.end_at.astimezone(self.start_at.tzinfo))
        if self.end_at <= self.start_at:
            raise ValidationError("end_at must be after start_at")

        assignees = tuple(a.strip() for a in self.assignees if a and a.strip())
        if not assignees:
            raise ValidationError("at least one assignee is required")
        object.__setattr__(self, "assignees", assignees)

        try:
            object.__setattr__(self, "priority", Priority(str(self.priority).lower()))
        except ValueError:
            raise ValidationError(f"Invalid priority: {self.priority!r}") from None

        if isinstance(self.credit_points, bool) or not isinstance(self.credit_points, int):
            raise ValidationError("credit_points must be an integer")
        if self.credit_points < 0:
            raise ValidationError("credit_points must be >= 0")


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """
    Repetition pattern plus its boundary.

    Validated at construction. Never mutated; an update replaces the whole rule.
    """

    frequency: Frequency
    series_end: datetime
    weekdays: frozenset[str] = frozenset()
    month_days: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        try:
            freq = Frequency(str(self.frequency).strip().lower())
        except ValueError:
            raise ValidationError(
                f"frequency must be one of daily, weekly or monthly, got {self.frequency!r}"
            ) from None
        object.__setattr__(self, "frequency", freq)

        if not isinstance(self.series_end, datetime):
            raise ValidationError("series_end is required and must be a datetime")
        if self.series_end.tzinfo is None:
            raise ValidationError("series_end must carry a timezone")

        if isinstance(self.weekdays, str) or isinstance(self.month_days, str):
            raise ValidationError("weekdays / month_days must be collections, not strings")

        weekdays: frozenset[str] = frozenset()
        month_days: frozenset[int] = frozenset()

        if freq is Frequency.WEEKLY:
            weekdays = _normalize_weekdays(self.weekdays or ())
            if not weekdays:
                raise ValidationError("weekdays must be non-empty when frequency is weekly")
        elif freq is Frequency.MONTHLY:
            month_days = _normalize_month_days(self.month_days or ())
            if not month_days:
                raise ValidationError("month_days must be non-empty when frequency is monthly")

        object.__setattr__(self, "weekdays", weekdays)
        object.__setattr__(self, "month_days", month_days)

    def validate_for(self, template: TaskTemplate) -> None:
        """Cross-check against the template the rule will be attached to."""
        if self.series_end <= template.start_at:
            raise ValidationError("series_end must be after the template start_at")

    def weekday_numbers(self) -> frozenset[int]:
        return frozenset(WEEKDAY_NAMES.index(name) for name in self.weekdays)


@dataclass(slots=True)
class Series:
    id: int
    code: str
    template: TaskTemplate
    rule: RecurrenceRule
    active: bool
    created_at: float
    updated_at: float

    @property
    def frequency(self) -> Frequency:
        return self.rule.frequency

    @property
    def series_end(self) -> datetime:
        return self.rule.series_end

    @property
    def status(self) -> TaskStatus:
        # A series is never completed as a whole; only its instances carry progress.
        return TaskStatus.PENDING


@dataclass(slots=True)
class Instance:
    id: int
    code: str
    series_id: int
    title: str
    description: str
    assignees: tuple[str, ...]
    priority: Priority
    credit_points: int
    start_at: datetime
    end_at: datetime
    status: TaskStatus
    active: bool
    frequency: Frequency
    created_at: float
    updated_at: float

    is_instance: bool = field(default=True, init=False)


@dataclass(slots=True)
class Task:
    """Standalone, non-recurring task. Persisted elsewhere; consumed by the overdue policy."""

    id: int
    title: str
    start_at: datetime
    end_at: datetime
    status: TaskStatus = TaskStatus.PENDING
