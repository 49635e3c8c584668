# src/cadence/tasks/task_scheduler.py

from __future__ import annotations

"""
Coverage worker.

A small polling loop that keeps the lookahead window filled for every active
series, even when nobody touches them:
- lists active series,
- materializes each one (idempotent, same algorithm as create/resume),
- logs a summary and sleeps.

Request-triggered materialization on create/resume/update stays as is; this
loop only closes the gap between those requests.
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from .series_controller import CoverageReport, SeriesController

logger = logging.getLogger(__name__)


def run_coverage_pass(controller: SeriesController) -> CoverageReport:
    """One sweep. Never raises; failures end up in the log and in report.failed."""
    try:
        report = controller.ensure_coverage()
    except Exception:
        logger.exception("Coverage sweep crashed")
        return CoverageReport()

    if report.failed:
        logger.warning(
            "Coverage sweep: scanned=%s instances=%s failed=%s",
            report.scanned,
            report.instances,
            report.failed,
        )
    else:
        logger.info("Coverage sweep: scanned=%s instances=%s", report.scanned, report.instances)
    return report


async def run_coverage_worker(
        controller: SeriesController,
        *,
        interval_seconds: float = 300.0,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Simple polling worker.

    Every interval_seconds:
    - run_coverage_pass(controller)

    To stop the worker, set stop_event or cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))

    while stop_event is None or not stop_event.is_set():
        run_coverage_pass(controller)

        if stop_event is None:
            await asyncio.sleep(sleep_s)
            continue

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)

    logger.info("Coverage worker stopped.")


@dataclass
class CoverageWorkerRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal coverage worker stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_coverage_worker_in_background(
        controller: SeriesController,
        *,
        interval_seconds: float = 300.0,
) -> CoverageWorkerRunner | None:
    """
    Start the coverage worker in a background thread with its own event loop,
    so the blocking console REPL can run in the main thread.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_coverage_worker(controller, interval_seconds=interval_seconds, stop_event=stop_event)
            )
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="cadence-coverage", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Coverage worker thread did not initialize properly.")
        return None

    logger.info("Coverage worker started (interval=%ss).", interval_seconds)
    return CoverageWorkerRunner(thread=t, loop=loop, stop_event=stop_event)
