# src/cadence/tasks/recurrence.py

from __future__ import annotations

"""
Calendar expansion of a recurrence rule.

Pure functions only: no clock reads, no storage. The materializer feeds in
`now`, the horizon and the holiday set, and gets back candidate occurrences.
"""

from collections.abc import Collection
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from .task_models import Frequency, RecurrenceRule, TaskTemplate

MAX_HOLIDAY_SHIFT_DAYS = 7


@dataclass(slots=True, frozen=True)
class ScanWindow:
    """
    [start, end] is the span that is scanned day by day.

    horizon_end is kept separately: a candidate may be cut by the horizon even
    when series_end lies further out.
    """

    start: datetime
    end: datetime
    horizon_end: datetime


@dataclass(slots=True, frozen=True)
class Candidate:
    day: date
    start_at: datetime
    end_at: datetime
    shifted_from: date | None = None


@dataclass(slots=True)
class Expansion:
    days: list[date]
    steps: int
    capped: bool


def today_midnight(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def scan_window(series_end: datetime, now: datetime, horizon_days: int) -> ScanWindow:
    start = today_midnight(now)
    horizon_end = start + timedelta(days=max(0, int(horizon_days)))
    return ScanWindow(start=start, end=min(series_end, horizon_end), horizon_end=horizon_end)


def month_occurrences(year: int, month: int, month_days: Collection[int]) -> frozenset[date]:
    """
    Dates in (year, month) for each requested day number.

    Each date is built by counting forward from the 1st and is only kept if it
    is still in the same month: day 31 in February produces nothing, it never
    becomes a date in March.
    """
    first = date(year, month, 1)
    out: set[date] = set()
    for day_num in month_days:
        candidate = first + timedelta(days=int(day_num) - 1)
        if candidate.month == month:
            out.add(candidate)
    return frozenset(out)


def matches_pattern(day: date, rule: RecurrenceRule) -> bool:
    if rule.frequency is Frequency.DAILY:
        return True
    if rule.frequency is Frequency.WEEKLY:
        return day.weekday() in rule.weekday_numbers()
    if rule.frequency is Frequency.MONTHLY:
        return day in month_occurrences(day.year, day.month, rule.month_days)
    return False


def expand_days(rule: RecurrenceRule, window: ScanWindow, iteration_cap: int) -> Expansion:
    """
    Walk the window one calendar day per step and collect the days the rule hits.

    The walk stops after `iteration_cap` steps even if the window is not
    exhausted; `capped` tells the caller the result is partial.
    """
    cap = max(1, int(iteration_cap))
    weekday_numbers = rule.weekday_numbers()
    month_cache: dict[tuple[int, int], frozenset[date]] = {}

    days: list[date] = []
    day = window.start.date()
    last = window.end.date()
    steps = 0
    capped = False

    while day <= last:
        if steps >= cap:
            capped = True
            break
        steps += 1

        if rule.frequency is Frequency.DAILY:
            hit = True
        elif rule.frequency is Frequency.WEEKLY:
            hit = day.weekday() in weekday_numbers
        else:
            key = (day.year, day.month)
            if key not in month_cache:
                month_cache[key] = month_occurrences(day.year, day.month, rule.month_days)
            hit = day in month_cache[key]

        if hit:
            days.append(day)
        day += timedelta(days=1)

    return Expansion(days=days, steps=steps, capped=capped)


def compose_times(day: date, template: TaskTemplate, frequency: Frequency) -> tuple[datetime, datetime]:
    """
    Put the template's time-of-day window onto `day`.

    Daily occurrences never leave their calendar date: an end time at or before
    the start time is clamped to the last instant of the day. Weekly and monthly
    occurrences spill over to the next day instead.
    """
    start_at = datetime.combine(day, template.start_at.timetz())
    end_at = datetime.combine(day, template.end_at.timetz())

    if end_at <= start_at:
        if frequency is Frequency.DAILY:
            end_at = datetime.combine(day, time.max.replace(tzinfo=start_at.tzinfo))
        else:
            end_at += timedelta(days=1)

    return start_at, end_at


def shift_off_holidays(day: date, holidays: Collection[date], earliest: date) -> date | None:
    """
    Move `day` back to the closest earlier non-holiday.

    Returns None when no such day exists within MAX_HOLIDAY_SHIFT_DAYS or the
    shift would cross `earliest`.
    """
    shifted = day
    for _ in range(MAX_HOLIDAY_SHIFT_DAYS):
        if shifted not in holidays:
            return shifted
        shifted -= timedelta(days=1)
        if shifted < earliest:
            return None
    return None if shifted in holidays else shifted
