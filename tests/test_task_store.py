# tests/test_task_store.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from cadence.core.errors import DuplicateInstanceError
from cadence.tasks.task_models import Frequency, Priority, TaskStatus, TaskTemplate
from cadence.tasks.task_store import SeriesStore

from .fakes import UTC, at, make_rule, make_template


def test_series_roundtrip_keeps_rule_and_template(store) -> None:
    template = TaskTemplate(
        title="Inventory",
        description="count the shelves",
        start_at=at(2025, 1, 1, 9),
        end_at=at(2025, 1, 1, 11),
        assignees=("emp-1", "emp-2"),
        priority=Priority.HIGH,
        credit_points=5,
    )
    rule = make_rule(Frequency.MONTHLY, at(2025, 12, 31), month_days=[1, 15])

    created = store.add_series(template=template, rule=rule)
    loaded = store.get_series(created.id)

    assert loaded is not None
    assert loaded.code == created.code
    assert loaded.template == template
    assert loaded.rule == rule
    assert loaded.active is True


def test_codes_come_from_one_sequence(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())
    inst = store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))

    assert series.code == "T1"
    assert inst.code == "T2"


def test_duplicate_start_is_rejected(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())
    store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))

    with pytest.raises(DuplicateInstanceError):
        store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))

    assert len(store.list_instances(series.id)) == 1


def test_same_instant_in_other_timezone_is_a_duplicate(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())
    store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))

    plus_two = timezone(timedelta(hours=2))
    same_instant = at(2025, 1, 1, 9).astimezone(plus_two)
    with pytest.raises(DuplicateInstanceError):
        store.add_instance(series=series, start_at=same_instant, end_at=same_instant + timedelta(hours=1))


def test_find_instance(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())
    inst = store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))

    found = store.find_instance(series.id, at(2025, 1, 1, 9))
    assert found is not None
    assert found.id == inst.id
    assert found.start_at == at(2025, 1, 1, 9)
    assert found.start_at.tzinfo is not None
    assert store.find_instance(series.id, at(2025, 1, 2, 9)) is None


def test_transaction_rolls_back_everything(store) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction():
            series = store.add_series(template=make_template(), rule=make_rule())
            store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))
            raise RuntimeError("abort")

    assert store.count_series() == 0
    assert store.list_series() == []


def test_nested_transaction_joins_outer(store) -> None:
    with store.transaction():
        with store.transaction():
            store.add_series(template=make_template(), rule=make_rule())
        assert store.count_series() == 1
    assert store.count_series() == 1


def test_deleting_series_cascades_to_instances(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())
    store.add_instance(series=series, start_at=at(2025, 1, 1, 9), end_at=at(2025, 1, 1, 10))

    assert store.delete_series(series.id) is True
    assert store.list_instances(series.id) == []
    assert store.delete_series(series.id) is False


def test_set_active_and_replace(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())

    paused = store.set_series_active(series.id, False)
    assert paused is not None and paused.active is False
    assert store.list_series(active_only=True) == []

    replaced = store.replace_series(
        series.id,
        template=make_template(title="Renamed"),
        rule=make_rule(Frequency.WEEKLY, weekdays=["Friday"]),
    )
    assert replaced is not None
    assert replaced.active is False
    assert replaced.code == series.code
    assert replaced.template.title == "Renamed"
    assert replaced.rule.weekdays == frozenset({"Friday"})

    assert store.set_series_active(999, True) is None


def test_instance_status_is_persisted(store) -> None:
    series = store.add_series(template=make_template(), rule=make_rule())
    inst = store.add_instance(
        series=series,
        start_at=at(2025, 1, 1, 9),
        end_at=at(2025, 1, 1, 10),
        status=TaskStatus.COMPLETED,
    )

    loaded = store.get_instance(inst.id)
    assert loaded is not None
    assert loaded.status is TaskStatus.COMPLETED


def test_store_reopens_existing_database(tmp_path) -> None:
    path = tmp_path / "series.sqlite3"
    first = SeriesStore(path, tz=UTC)
    series = first.add_series(template=make_template(), rule=make_rule())

    second = SeriesStore(path, tz=UTC)
    assert second.count_series() == 1
    assert second.get_series(series.id) is not None
    # the code sequence continues across reopen
    assert second.add_series(template=make_template(), rule=make_rule()).code == "T2"


def test_series_keeps_fixed_offset_zone_across_reload(store) -> None:
    plus_five = timezone(timedelta(hours=5))
    series = store.add_series(
        template=make_template(datetime(2025, 1, 2, 2, tzinfo=plus_five)),
        rule=make_rule(Frequency.WEEKLY, weekdays=["Thursday"]),
    )

    loaded = store.get_series(series.id)

    assert loaded is not None
    assert loaded.template == series.template
    assert loaded.template.start_at.utcoffset() == timedelta(hours=5)
    assert (loaded.template.start_at.weekday(), loaded.template.start_at.hour) == (3, 2)

    # instances still come back in the store zone
    inst = store.add_instance(
        series=loaded,
        start_at=loaded.template.start_at,
        end_at=loaded.template.end_at,
    )
    assert inst.start_at == at(2025, 1, 1, 21)
    assert inst.start_at.tzinfo is UTC


def test_series_keeps_named_zone_across_reload(store) -> None:
    try:
        berlin = ZoneInfo("Europe/Berlin")
    except ZoneInfoNotFoundError:
        pytest.skip("tz database not available")

    series = store.add_series(
        template=make_template(datetime(2025, 7, 2, 8, tzinfo=berlin)),
        rule=make_rule(),
    )

    loaded = store.get_series(series.id)

    assert loaded is not None
    assert loaded.template.start_at.tzinfo == berlin
    assert loaded.template.start_at.hour == 8
