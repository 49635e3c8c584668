# src/cadence/tasks/series_controller.py

from __future__ import annotations

"""
Series lifecycle.

State machine over Series.active: Active <-> Paused.
- create: validate, persist as Active, materialize the first batch (one transaction)
- pause: stop future generation; existing instances stay
- resume: reactivate and materialize again (idempotent)
- update: full regeneration (drop all instances, replace rule/template, materialize)
- delete: series and its instances always go together
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..core.errors import NotFoundError, ValidationError
from ..core.ports import AssigneeDirectory, SeriesRepo
from .materializer import InstanceMaterializer
from .overdue import DEFAULT_GRACE, is_overdue
from .task_models import Instance, RecurrenceRule, Series, TaskTemplate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CoverageReport:
    """Outcome of one sweep over all active series."""

    scanned: int = 0
    instances: int = 0
    failed: list[int] = field(default_factory=list)


class SeriesController:
    def __init__(
        self,
        repo: SeriesRepo,
        materializer: InstanceMaterializer,
        *,
        directory: AssigneeDirectory | None = None,
        overdue_grace: timedelta = DEFAULT_GRACE,
    ) -> None:
        self._repo = repo
        self._materializer = materializer
        self._directory = directory
        self._overdue_grace = overdue_grace

    @property
    def overdue_grace(self) -> timedelta:
        return self._overdue_grace

    # ---- validation ----

    def _validate(self, template: TaskTemplate, rule: RecurrenceRule) -> None:
        rule.validate_for(template)
        if self._directory is not None:
            missing = self._directory.missing(template.assignees)
            if missing:
                raise ValidationError(f"Unknown assignees: {', '.join(sorted(missing))}")

    def _require(self, series_id: int) -> Series:
        series = self._repo.get_series(series_id)
        if series is None:
            raise NotFoundError("series", series_id)
        return series

    # ---- lifecycle ----

    def create_series(self, template: TaskTemplate, rule: RecurrenceRule) -> tuple[Series, list[Instance]]:
        self._validate(template, rule)

        with self._repo.transaction():
            series = self._repo.add_series(template=template, rule=rule, active=True)
            instances = self._materializer.materialize(series)

        logger.info(
            "Series %s (%s) created frequency=%s instances=%s",
            series.id,
            series.code,
            series.frequency.value,
            len(instances),
        )
        return series, instances

    def pause_series(self, series_id: int) -> Series:
        series = self._repo.set_series_active(series_id, False)
        if series is None:
            raise NotFoundError("series", series_id)
        logger.info("Series %s paused; no new instances will be generated", series_id)
        return series

    def resume_series(self, series_id: int) -> tuple[Series, list[Instance]]:
        series = self._repo.set_series_active(series_id, True)
        if series is None:
            raise NotFoundError("series", series_id)
        instances = self._materializer.materialize(series)
        logger.info("Series %s resumed; %s instances in window", series_id, len(instances))
        return series, instances

    def update_series(
        self,
        series_id: int,
        template: TaskTemplate,
        rule: RecurrenceRule,
    ) -> tuple[Series, list[Instance]]:
        """
        Replace template and rule, then regenerate every instance.

        Destructive: instances created under the old rule are deleted even if
        they were already worked on. Runs as one transaction, so a failure
        leaves the previous rule and instances in place.
        """
        self._require(series_id)
        self._validate(template, rule)

        with self._repo.transaction():
            dropped = self._repo.delete_instances(series_id)
            series = self._repo.replace_series(series_id, template=template, rule=rule)
            if series is None:
                raise NotFoundError("series", series_id)
            instances = self._materializer.materialize(series)

        logger.info(
            "Series %s regenerated: dropped=%s created=%s frequency=%s",
            series_id,
            dropped,
            len(instances),
            series.frequency.value,
        )
        return series, instances

    def delete_series(self, series_id: int, cascade: bool = True) -> int:
        """Delete the series and all its instances. Returns the number of instances removed."""
        self._require(series_id)
        if not cascade:
            logger.warning(
                "Non-cascading delete requested for series %s; instances are removed anyway",
                series_id,
            )

        with self._repo.transaction():
            dropped = self._repo.delete_instances(series_id)
            self._repo.delete_series(series_id)

        logger.info("Series %s deleted with %s instances", series_id, dropped)
        return dropped

    def delete_instance(self, instance_id: int) -> None:
        if not self._repo.delete_instance(instance_id):
            raise NotFoundError("instance", instance_id)
        logger.info("Instance %s deleted", instance_id)

    # ---- reads ----

    def get_series(self, series_id: int) -> Series:
        return self._require(series_id)

    def list_series(self, *, active_only: bool = False) -> list[Series]:
        return self._repo.list_series(active_only=active_only)

    def list_instances(self, series_id: int) -> list[Instance]:
        self._require(series_id)
        return sorted(self._repo.list_instances(series_id), key=lambda i: (i.start_at, i.id))

    def overdue_instances(self, series_id: int, now: datetime) -> list[Instance]:
        return [i for i in self.list_instances(series_id) if is_overdue(i, now, grace=self._overdue_grace)]

    # ---- background coverage ----

    def ensure_coverage(self, now: datetime | None = None) -> CoverageReport:
        """Materialize every active series. One failing series does not stop the sweep."""
        report = CoverageReport()
        for series in self._repo.list_series(active_only=True):
            report.scanned += 1
            try:
                report.instances += len(self._materializer.materialize(series, now=now))
            except Exception:
                logger.exception("Coverage sweep failed series_id=%s", series.id)
                report.failed.append(series.id)
        return report
