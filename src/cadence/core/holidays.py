# src/cadence/core/holidays.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

logger = logging.getLogger(__name__)


class StaticHolidayCalendar:
    """
    HolidayCalendar backed by a fixed set of dates.

    Used when holidays come from configuration rather than a company directory.
    """

    def __init__(self, days: Iterable[date] = ()) -> None:
        self._days = frozenset(days)

    @classmethod
    def from_iso(cls, raw: Iterable[str]) -> StaticHolidayCalendar:
        days: set[date] = set()
        for item in raw:
            try:
                days.add(date.fromisoformat(item.strip()))
            except ValueError:
                logger.warning("Ignoring malformed holiday date %r", item)
        return cls(days)

    def __len__(self) -> int:
        return len(self._days)

    def holidays_between(self, start: date, end: date) -> set[date]:
        return {d for d in self._days if start <= d <= end}
