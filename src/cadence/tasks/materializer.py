# src/cadence/tasks/materializer.py

from __future__ import annotations

"""
Instance materializer.

Expands a series' rule over the lookahead window and persists one instance
per accepted date:
- computes the scan window [today 00:00, min(series_end, today + horizon)],
- walks it day by day under a hard iteration cap,
- composes start/end from the template's time-of-day,
- skips past, out-of-window and out-of-series candidates,
- looks up (series_id, start_at) before inserting, so reruns never duplicate.

Per-candidate storage failures are logged and skipped; the batch continues.
"""

import logging
from datetime import date, datetime, timedelta

from ..core.errors import DuplicateInstanceError, TransientPersistenceError
from ..core.ports import Clock, HolidayCalendar, SeriesRepo
from .recurrence import (
    MAX_HOLIDAY_SHIFT_DAYS,
    Candidate,
    ScanWindow,
    compose_times,
    expand_days,
    matches_pattern,
    scan_window,
    shift_off_holidays,
)
from .task_models import Frequency, Instance, Series

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 3
DEFAULT_ITERATION_CAP = 100


class InstanceMaterializer:
    def __init__(
        self,
        repo: SeriesRepo,
        clock: Clock,
        *,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        iteration_cap: int = DEFAULT_ITERATION_CAP,
        holidays: HolidayCalendar | None = None,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._horizon_days = max(0, int(horizon_days))
        self._iteration_cap = max(1, int(iteration_cap))
        self._holidays = holidays

    @property
    def horizon_days(self) -> int:
        return self._horizon_days

    def materialize(
        self,
        series: Series,
        now: datetime | None = None,
        horizon_days: int | None = None,
    ) -> list[Instance]:
        """
        Return every instance of `series` inside the window, creating missing ones.

        Pre-existing matches are returned unchanged, so callers must not assume
        the result is all new. Result is ordered by start_at.
        """
        if not series.active:
            logger.debug("Series %s is paused; nothing to materialize", series.id)
            return []

        now = self._clock.now() if now is None else now
        horizon = self._horizon_days if horizon_days is None else max(0, int(horizon_days))
        window = scan_window(series.series_end, now, horizon)

        expansion = expand_days(series.rule, window, self._iteration_cap)
        if expansion.capped:
            logger.warning(
                "Iteration cap hit for series %s after %s steps (window %s..%s); returning partial results",
                series.id,
                expansion.steps,
                window.start.date().isoformat(),
                window.end.date().isoformat(),
            )

        created = 0
        results: dict[int, Instance] = {}
        for cand in self._candidates(series, expansion.days, window, now):
            inst, is_new = self._materialize_one(series, cand)
            if inst is None:
                continue
            created += int(is_new)
            results[inst.id] = inst

        out = sorted(results.values(), key=lambda i: (i.start_at, i.id))
        logger.info(
            "Materialized series %s: %s instances (%s new) horizon=%sd",
            series.id,
            len(out),
            created,
            horizon,
        )
        return out

    # ---- internals ----

    def _holiday_set(self, window: ScanWindow) -> frozenset[date]:
        if self._holidays is None:
            return frozenset()
        start = window.start.date() - timedelta(days=MAX_HOLIDAY_SHIFT_DAYS)
        return frozenset(self._holidays.holidays_between(start, window.end.date()))

    def _candidates(
        self,
        series: Series,
        days: list[date],
        window: ScanWindow,
        now: datetime,
    ) -> list[Candidate]:
        rule = series.rule
        first_day = series.template.start_at.date()
        earliest = max(first_day, window.start.date())
        holidays = self._holiday_set(window)

        out: list[Candidate] = []
        for day in days:
            if day < first_day:
                continue

            target = day
            if day in holidays:
                shifted = shift_off_holidays(day, holidays, earliest)
                if shifted is None:
                    logger.debug("Series %s: cannot shift holiday %s; skipped", series.id, day)
                    continue
                if rule.frequency is not Frequency.DAILY and not matches_pattern(shifted, rule):
                    logger.debug(
                        "Series %s: holiday %s shifted to %s breaks the pattern; skipped",
                        series.id,
                        day,
                        shifted,
                    )
                    continue
                target = shifted

            start_at, end_at = compose_times(target, series.template, rule.frequency)

            if start_at < now:
                continue
            if end_at > series.series_end:
                continue
            if start_at > window.horizon_end:
                continue

            out.append(
                Candidate(
                    day=target,
                    start_at=start_at,
                    end_at=end_at,
                    shifted_from=day if target != day else None,
                )
            )
        return out

    def _materialize_one(self, series: Series, cand: Candidate) -> tuple[Instance | None, bool]:
        try:
            existing = self._repo.find_instance(series.id, cand.start_at)
        except TransientPersistenceError:
            logger.exception("find_instance failed series_id=%s start=%s", series.id, cand.start_at)
            return None, False

        if existing is not None:
            return existing, False

        try:
            inst = self._repo.add_instance(series=series, start_at=cand.start_at, end_at=cand.end_at)
        except DuplicateInstanceError:
            # Another writer got there first; the stored row wins.
            logger.info(
                "Instance already exists series_id=%s start=%s; using stored row",
                series.id,
                cand.start_at.isoformat(),
            )
            try:
                return self._repo.find_instance(series.id, cand.start_at), False
            except TransientPersistenceError:
                logger.exception("find_instance failed series_id=%s start=%s", series.id, cand.start_at)
                return None, False
        except TransientPersistenceError:
            logger.exception("add_instance failed series_id=%s start=%s", series.id, cand.start_at)
            return None, False

        if cand.shifted_from is not None:
            logger.info(
                "Series %s: occurrence on holiday %s shifted to %s",
                series.id,
                cand.shifted_from,
                cand.day,
            )
        return inst, True
