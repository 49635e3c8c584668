# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from cadence.core.state import AppState
from cadence.tasks.materializer import InstanceMaterializer
from cadence.tasks.series_controller import SeriesController
from cadence.tasks.task_store import SeriesStore

from .fakes import UTC, FixedClock, at


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="cadence-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "series.sqlite3",
        timezone="UTC",
        lookahead_days=3,
        iteration_cap=100,
        overdue_grace_hours=24,
        holidays=[],
        worker_enabled=False,
        worker_interval_seconds=0.01,
        console_enabled=False,
    )


@pytest.fixture()
def clock() -> FixedClock:
    # 2025-01-01 is a Wednesday.
    return FixedClock(at(2025, 1, 1))


@pytest.fixture()
def store(settings: SimpleNamespace) -> SeriesStore:
    return SeriesStore(settings.tasks_db_path, tz=UTC)


@pytest.fixture()
def materializer(store: SeriesStore, clock: FixedClock) -> InstanceMaterializer:
    return InstanceMaterializer(store, clock, horizon_days=3, iteration_cap=100)


@pytest.fixture()
def controller(store: SeriesStore, materializer: InstanceMaterializer) -> SeriesController:
    return SeriesController(store, materializer)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    clock: FixedClock,
    store: SeriesStore,
    controller: SeriesController,
) -> AppState:
    """
    AppState wired with a fixed clock.

    NOTE: We keep the real SQLite store here because its uniqueness and
    transaction behaviour is part of what we want to test.
    """
    return AppState(settings=settings, clock=clock, store=store, controller=controller)
