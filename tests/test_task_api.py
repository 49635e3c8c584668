# tests/test_task_api.py

from __future__ import annotations

from datetime import timedelta, timezone

import pytest

from cadence.core.errors import NotFoundError, ValidationError
from cadence.tasks.task_api import (
    create_series_from_payload,
    parse_rule,
    parse_template,
    update_series_from_payload,
)
from cadence.tasks.task_models import Frequency, Priority

from .fakes import at


def _payload(**overrides):
    payload = {
        "title": "Stand-up",
        "assignees": ["emp-1"],
        "start_at": "2025-01-01T09:00:00+00:00",
        "end_at": "2025-01-01T10:00:00+00:00",
        "frequency": "daily",
        "series_end": "2025-12-31T00:00:00+00:00",
    }
    payload.update(overrides)
    return payload


def test_parse_template_accepts_camel_case_and_json_strings() -> None:
    tpl = parse_template(
        {
            "title": "Inventory",
            "assignedTo": '["emp-1", "emp-2"]',
            "startDateTime": "2025-01-01T09:00:00+00:00",
            "endDateTime": "2025-01-01T10:00:00+00:00",
            "creditPoints": "3",
            "priority": "high",
        }
    )
    assert tpl.assignees == ("emp-1", "emp-2")
    assert tpl.credit_points == 3
    assert tpl.priority is Priority.HIGH


def test_naive_datetimes_take_the_given_zone() -> None:
    plus_three = timezone(timedelta(hours=3))
    tpl = parse_template(_payload(start_at="2025-01-01T09:00", end_at="2025-01-01T10:00"), tz=plus_three)
    assert tpl.start_at.tzinfo is plus_three
    assert tpl.start_at.hour == 9


def test_bad_fields_raise_validation_errors() -> None:
    with pytest.raises(ValidationError, match="Invalid start_at format"):
        parse_template(_payload(start_at="yesterday"))
    with pytest.raises(ValidationError, match="end_at is required"):
        parse_template(_payload(end_at=""))
    with pytest.raises(ValidationError, match="must be JSON array"):
        parse_template(_payload(assignees="emp-1"))
    with pytest.raises(ValidationError, match="Invalid credit_points"):
        parse_template(_payload(credit_points="many"))


def test_parse_rule_weekly_from_camel_case() -> None:
    payload = _payload(repeatFrequency="weekly", repeatDaysOfWeek='["Monday"]')
    del payload["frequency"]
    tpl = parse_template(payload)

    rule = parse_rule(payload, tpl)

    assert rule.frequency is Frequency.WEEKLY
    assert rule.weekdays == frozenset({"Monday"})


def test_series_end_defaults_to_template_end() -> None:
    payload = _payload()
    del payload["series_end"]
    tpl = parse_template(payload)

    rule = parse_rule(payload, tpl)

    assert rule.series_end == tpl.end_at


def test_parse_rule_checks_series_end_against_start() -> None:
    payload = _payload(series_end="2024-12-31T00:00:00+00:00")
    with pytest.raises(ValidationError, match="series_end must be after"):
        parse_rule(payload, parse_template(payload))


def test_create_and_update_from_payload(state) -> None:
    series, instances = create_series_from_payload(state, _payload())
    assert len(instances) == 3

    updated, regenerated = update_series_from_payload(
        state,
        series.id,
        {"frequency": "monthly", "month_days": [2]},
    )

    assert updated.frequency is Frequency.MONTHLY
    assert updated.template.title == "Stand-up"
    assert updated.series_end == at(2025, 12, 31)
    assert [i.start_at for i in regenerated] == [at(2025, 1, 2, 9)]


def test_update_unknown_series_from_payload(state) -> None:
    with pytest.raises(NotFoundError):
        update_series_from_payload(state, 404, {"title": "x"})
