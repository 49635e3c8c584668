# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from cadence.tasks.series_controller import CoverageReport
from cadence.tasks.task_scheduler import (
    run_coverage_pass,
    run_coverage_worker,
    start_coverage_worker_in_background,
)

from .fakes import make_rule, make_template


class FakeController:
    """
    Minimal stand-in for SeriesController.

    Counts sweeps and can stop the worker loop after the first one.
    """

    def __init__(self, stop_event: asyncio.Event | None = None, *, fail: bool = False) -> None:
        self.calls = 0
        self.stop_event = stop_event
        self.fail = fail

    def ensure_coverage(self, now=None) -> CoverageReport:
        self.calls += 1
        if self.stop_event is not None:
            self.stop_event.set()
        if self.fail:
            raise RuntimeError("sweep exploded")
        return CoverageReport(scanned=1, instances=2)


def test_run_coverage_pass_never_raises() -> None:
    report = run_coverage_pass(FakeController(fail=True))  # type: ignore[arg-type]
    assert report.scanned == 0
    assert report.failed == []


def test_run_coverage_pass_with_real_controller(controller, store, clock) -> None:
    series, _ = controller.create_series(make_template(), make_rule())
    clock.advance(days=2)

    report = run_coverage_pass(controller)

    assert report.scanned == 1
    assert report.instances == 3
    assert report.failed == []
    assert len(store.list_instances(series.id)) == 5


@pytest.mark.asyncio
async def test_worker_stops_on_event() -> None:
    stop_event = asyncio.Event()
    fake = FakeController(stop_event)

    await asyncio.wait_for(
        run_coverage_worker(fake, interval_seconds=0.01, stop_event=stop_event),  # type: ignore[arg-type]
        timeout=2.0,
    )

    assert fake.calls == 1


@pytest.mark.asyncio
async def test_worker_can_be_cancelled() -> None:
    fake = FakeController()
    task = asyncio.create_task(run_coverage_worker(fake, interval_seconds=10))  # type: ignore[arg-type]

    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert fake.calls == 1


def test_background_runner_starts_and_stops() -> None:
    fake = FakeController()

    runner = start_coverage_worker_in_background(fake, interval_seconds=0.5)  # type: ignore[arg-type]
    assert runner is not None

    runner.stop()
    runner.join(timeout=5.0)

    assert not runner.thread.is_alive()
