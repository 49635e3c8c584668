# tests/test_task_models.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cadence.core.errors import ValidationError
from cadence.tasks.task_models import (
    Frequency,
    Priority,
    RecurrenceRule,
    TaskStatus,
    TaskTemplate,
)

from .fakes import at, make_rule, make_template


def test_weekly_rule_normalizes_day_names() -> None:
    rule = make_rule("Weekly", weekdays=["monday", " THURSDAY "])
    assert rule.frequency is Frequency.WEEKLY
    assert rule.weekdays == frozenset({"Monday", "Thursday"})
    assert rule.weekday_numbers() == frozenset({0, 3})
    assert rule.month_days == frozenset()


def test_weekly_rule_requires_days() -> None:
    with pytest.raises(ValidationError, match="weekdays must be non-empty"):
        make_rule(Frequency.WEEKLY)


def test_weekly_rule_rejects_unknown_day() -> None:
    with pytest.raises(ValidationError, match="Invalid day"):
        make_rule(Frequency.WEEKLY, weekdays=["Funday"])


def test_monthly_rule_requires_valid_days() -> None:
    with pytest.raises(ValidationError, match="month_days must be non-empty"):
        make_rule(Frequency.MONTHLY)
    with pytest.raises(ValidationError, match="Invalid date"):
        make_rule(Frequency.MONTHLY, month_days=[0])
    with pytest.raises(ValidationError, match="Invalid date"):
        make_rule(Frequency.MONTHLY, month_days=[32])


def test_daily_rule_drops_auxiliary_sets() -> None:
    rule = make_rule(Frequency.DAILY, weekdays=["Monday"], month_days=[3])
    assert rule.weekdays == frozenset()
    assert rule.month_days == frozenset()


def test_unknown_frequency_is_rejected() -> None:
    with pytest.raises(ValidationError, match="frequency must be one of"):
        make_rule("yearly")


def test_rule_is_immutable() -> None:
    rule = make_rule()
    with pytest.raises(AttributeError):
        rule.frequency = Frequency.WEEKLY  # type: ignore[misc]


def test_series_end_must_follow_template_start() -> None:
    template = make_template(at(2025, 1, 10, 9))
    rule = RecurrenceRule(frequency=Frequency.DAILY, series_end=at(2025, 1, 10, 9))
    with pytest.raises(ValidationError, match="series_end must be after"):
        rule.validate_for(template)


def test_template_validation() -> None:
    with pytest.raises(ValidationError, match="title is required"):
        make_template(title="  ")
    with pytest.raises(ValidationError, match="end_at must be after start_at"):
        make_template(at(2025, 1, 1, 10), at(2025, 1, 1, 9))
    with pytest.raises(ValidationError, match="assignee"):
        make_template(assignees=())
    with pytest.raises(ValidationError, match="priority"):
        TaskTemplate(
            title="x",
            start_at=at(2025, 1, 1, 9),
            end_at=at(2025, 1, 1, 10),
            assignees=("a",),
            priority="urgent",  # type: ignore[arg-type]
        )
    with pytest.raises(ValidationError, match="credit_points"):
        TaskTemplate(
            title="x",
            start_at=at(2025, 1, 1, 9),
            end_at=at(2025, 1, 1, 10),
            assignees=("a",),
            credit_points=-1,
        )


def test_template_defaults() -> None:
    tpl = make_template()
    assert tpl.priority is Priority.MEDIUM
    assert tpl.credit_points == 0
    assert tpl.description == ""


def test_status_from_db_falls_back_to_pending() -> None:
    assert TaskStatus.from_db("late-complete") is TaskStatus.LATE_COMPLETE
    assert TaskStatus.from_db(None) is TaskStatus.PENDING
    assert TaskStatus.from_db("garbage") is TaskStatus.PENDING


def test_naive_datetimes_are_rejected() -> None:
    with pytest.raises(ValidationError, match="must carry a timezone"):
        TaskTemplate(
            title="x",
            start_at=datetime(2025, 1, 1, 9),
            end_at=datetime(2025, 1, 1, 10),
            assignees=("a",),
        )
    with pytest.raises(ValidationError, match="series_end must carry a timezone"):
        RecurrenceRule(frequency=Frequency.DAILY, series_end=datetime(2025, 12, 31))


def test_template_end_is_moved_into_start_zone() -> None:
    plus_five = timezone(timedelta(hours=5))
    tpl = make_template(datetime(2025, 1, 2, 2, tzinfo=plus_five), at(2025, 1, 1, 22))
    assert tpl.end_at.utcoffset() == timedelta(hours=5)
    assert tpl.end_at.hour == 3
