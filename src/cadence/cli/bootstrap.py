# src/cadence/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (clock/store/materializer/controller).
"""

from __future__ import annotations

import logging
from datetime import timedelta

from ..config import get_settings
from ..core.clock import SystemClock, resolve_timezone
from ..core.holidays import StaticHolidayCalendar
from ..core.state import AppState
from ..tasks.materializer import InstanceMaterializer
from ..tasks.series_controller import SeriesController
from ..tasks.task_store import SeriesStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    tz = resolve_timezone(getattr(settings, "timezone", "UTC"))
    clock = SystemClock(tz)
    store = SeriesStore(settings.tasks_db_path, tz=tz)

    holidays = None
    raw_holidays = list(getattr(settings, "holidays", []) or [])
    if raw_holidays:
        holidays = StaticHolidayCalendar.from_iso(raw_holidays)
        logger.info("Holiday calendar loaded: %d dates", len(holidays))

    materializer = InstanceMaterializer(
        store,
        clock,
        horizon_days=int(getattr(settings, "lookahead_days", 3)),
        iteration_cap=int(getattr(settings, "iteration_cap", 100)),
        holidays=holidays,
    )
    controller = SeriesController(
        store,
        materializer,
        overdue_grace=timedelta(hours=int(getattr(settings, "overdue_grace_hours", 24))),
    )

    return AppState(settings=settings, clock=clock, store=store, controller=controller)
