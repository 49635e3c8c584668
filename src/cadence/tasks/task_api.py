# src/cadence/tasks/task_api.py

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone, tzinfo
from typing import Any

from ..core.errors import ValidationError
from ..core.state import AppState
from .task_models import Instance, RecurrenceRule, Series, TaskTemplate

logger = logging.getLogger(__name__)

# Accepted payload keys: snake_case first, then the camelCase names used by web clients.
_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("title",),
    "description": ("description",),
    "assignees": ("assignees", "assignedTo"),
    "start_at": ("start_at", "startDateTime"),
    "end_at": ("end_at", "endDateTime"),
    "priority": ("priority",),
    "credit_points": ("credit_points", "creditPoints"),
    "frequency": ("frequency", "repeatFrequency"),
    "weekdays": ("weekdays", "repeatDaysOfWeek"),
    "month_days": ("month_days", "repeatDatesOfMonth"),
    "series_end": ("series_end", "recurringEndDate"),
}


def _get(payload: Mapping[str, Any], key: str, default: Any = None) -> Any:
    for name in _ALIASES.get(key, (key,)):
        if name in payload and payload[name] is not None:
            return payload[name]
    return default


def _parse_datetime(raw: Any, field: str, tz: tzinfo) -> datetime:
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, str) and raw.strip():
        try:
            dt = datetime.fromisoformat(raw.strip())
        except ValueError:
            raise ValidationError(f"Invalid {field} format") from None
    else:
        raise ValidationError(f"{field} is required")
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=tz)


def _parse_list(raw: Any, field: str) -> list[Any]:
    """Accept a real list or a JSON-encoded array (form posts send the latter)."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        return list(raw)
    if isinstance(raw, str):
        try:
            val = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError(f"Invalid {field} format - must be JSON array") from None
        if isinstance(val, list):
            return val
    raise ValidationError(f"Invalid {field} format - must be JSON array")


def _parse_int(raw: Any, field: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid {field}: {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {raw!r}") from None


def parse_template(payload: Mapping[str, Any], *, tz: tzinfo = timezone.utc) -> TaskTemplate:
    return TaskTemplate(
        title=str(_get(payload, "title", "") or ""),
        description=str(_get(payload, "description", "") or ""),
        assignees=tuple(str(a) for a in _parse_list(_get(payload, "assignees"), "assignees")),
        start_at=_parse_datetime(_get(payload, "start_at"), "start_at", tz),
        end_at=_parse_datetime(_get(payload, "end_at"), "end_at", tz),
        priority=str(_get(payload, "priority", "medium")),
        credit_points=_parse_int(_get(payload, "credit_points"), "credit_points", 0),
    )


def parse_rule(
    payload: Mapping[str, Any],
    template: TaskTemplate,
    *,
    tz: tzinfo = timezone.utc,
) -> RecurrenceRule:
    """
    Build a rule from a payload and check it against its template.

    series_end falls back to the template's end_at, so a payload without an
    explicit end date describes a series that ends with its own first window.
    """
    raw_end = _get(payload, "series_end")
    series_end = template.end_at if raw_end is None else _parse_datetime(raw_end, "series_end", tz)

    rule = RecurrenceRule(
        frequency=str(_get(payload, "frequency", "") or ""),
        series_end=series_end,
        weekdays=frozenset(_parse_list(_get(payload, "weekdays"), "weekdays")),
        month_days=frozenset(_parse_list(_get(payload, "month_days"), "month_days")),
    )
    rule.validate_for(template)
    return rule


def _tz(state: AppState) -> tzinfo:
    return getattr(state.clock, "tz", timezone.utc)


def create_series_from_payload(
    state: AppState, payload: Mapping[str, Any]
) -> tuple[Series, list[Instance]]:
    """
    Convenience helper: validate a loose payload and create the series.
    Uses state.controller (already constructed in bootstrap).
    """
    tz = _tz(state)
    template = parse_template(payload, tz=tz)
    rule = parse_rule(payload, template, tz=tz)
    return state.controller.create_series(template, rule)


def update_series_from_payload(
    state: AppState, series_id: int, payload: Mapping[str, Any]
) -> tuple[Series, list[Instance]]:
    """
    Payload fields that are absent keep their current values; the result still
    goes through full regeneration.
    """
    current = state.controller.get_series(series_id)
    tz = _tz(state)

    merged: dict[str, Any] = {
        "title": current.template.title,
        "description": current.template.description,
        "assignees": list(current.template.assignees),
        "start_at": current.template.start_at,
        "end_at": current.template.end_at,
        "priority": current.template.priority.value,
        "credit_points": current.template.credit_points,
        "frequency": current.rule.frequency.value,
        "weekdays": sorted(current.rule.weekdays),
        "month_days": sorted(current.rule.month_days),
        "series_end": current.rule.series_end,
    }
    for key in _ALIASES:
        val = _get(payload, key)
        if val is not None:
            merged[key] = val

    template = parse_template(merged, tz=tz)
    rule = parse_rule(merged, template, tz=tz)
    logger.debug("Updating series %s from payload keys=%s", series_id, sorted(payload))
    return state.controller.update_series(series_id, template, rule)
