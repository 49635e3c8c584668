# src/cadence/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import cast

from ..core.errors import NotFoundError, ValidationError
from ..core.state import AppState
from ..tasks.overdue import DEFAULT_GRACE, is_overdue
from ..tasks.task_api import create_series_from_payload
from ..tasks.task_models import Instance, Series
from ..tasks.task_scheduler import run_coverage_pass

CommandEmitter = Callable[[str], None]
CommandHandler4 = Callable[[AppState, list[str], str | None, str | None], str]
CommandHandler5 = Callable[
    [AppState, list[str], str | None, str | None, CommandEmitter | None], str
]
CommandHandler = CommandHandler4 | CommandHandler5

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /series, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        room_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 5

        try:
            if nparams >= 5:
                h5 = cast(CommandHandler5, handler)
                return h5(state, args, user_id, room_id, emit)

            h4 = cast(CommandHandler4, handler)
            return h4(state, args, user_id, room_id)
        except NotFoundError as e:
            return f"Not found: {e}"
        except ValidationError as e:
            return f"Invalid input: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M")


def _series_line(s: Series) -> str:
    state_txt = "active" if s.active else "paused"
    extra = ""
    if s.rule.weekdays:
        extra = " on " + ",".join(sorted(s.rule.weekdays))
    elif s.rule.month_days:
        extra = " on days " + ",".join(str(d) for d in sorted(s.rule.month_days))
    return (
        f"#{s.id} {s.code} [{state_txt}] {s.template.title} - "
        f"{s.frequency.value}{extra} until {_fmt(s.series_end)}"
    )


def _instance_line(i: Instance, now: datetime | None = None, grace: timedelta = DEFAULT_GRACE) -> str:
    flag = " OVERDUE" if now is not None and is_overdue(i, now, grace=grace) else ""
    return f"#{i.id} {i.code} {_fmt(i.start_at)} -> {_fmt(i.end_at)} [{i.status.value}]{flag}"


def _series_id(args: list[str]) -> int:
    if not args:
        raise ValidationError("series id is required")
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        raise ValidationError(f"series id must be a number, got {args[0]!r}") from None


def cmd_help(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    return registry.build_help()


def cmd_status(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    all_series = state.controller.list_series()
    active = sum(1 for s in all_series if s.active)
    settings = state.settings
    return (
        "Status:\n"
        f"  Now: {_fmt(state.clock.now())} ({getattr(settings, 'timezone', 'UTC')})\n"
        f"  Series: {len(all_series)} ({active} active, {len(all_series) - active} paused)\n"
        f"  Lookahead: {getattr(settings, 'lookahead_days', 3)} days, "
        f"iteration cap {getattr(settings, 'iteration_cap', 100)}\n"
        f"  Worker: {'ON' if getattr(settings, 'worker_enabled', False) else 'OFF'}"
    )


def cmd_series(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    active_only = bool(args) and args[0].lower() == "active"
    items = state.controller.list_series(active_only=active_only)
    if not items:
        return "No series."
    return "\n".join(_series_line(s) for s in items)


def cmd_new(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /new {"title": ..., "assignees": [...], "start_at": ..., "end_at": ...,
          "frequency": "weekly", "weekdays": ["Monday"], "series_end": ...}
    """
    raw = " ".join(args).strip()
    if not raw:
        return "Usage: /new <json payload>"
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        return f"Invalid JSON: {e.msg}"
    if not isinstance(payload, dict):
        return "Invalid JSON: expected an object"

    series, instances = create_series_from_payload(state, payload)
    return f"Created {_series_line(series)}\n  {len(instances)} instance(s) in window"


def cmd_instances(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    sid = _series_id(args)
    items = state.controller.list_instances(sid)
    if not items:
        return f"Series #{sid} has no instances."
    now = state.clock.now()
    grace = state.controller.overdue_grace
    return "\n".join(_instance_line(i, now, grace) for i in items)


def cmd_pause(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    series = state.controller.pause_series(_series_id(args))
    return f"Paused {_series_line(series)}"


def cmd_resume(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    series, instances = state.controller.resume_series(_series_id(args))
    return f"Resumed {_series_line(series)}\n  {len(instances)} instance(s) in window"


def cmd_delete(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    sid = _series_id(args)
    dropped = state.controller.delete_series(sid, cascade=True)
    return f"Deleted series #{sid} and {dropped} instance(s)."


def cmd_overdue(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    sid = _series_id(args)
    now = state.clock.now()
    items = state.controller.overdue_instances(sid, now)
    if not items:
        return f"Series #{sid} has no overdue instances."
    return "\n".join(_instance_line(i) for i in items)


def cmd_sweep(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    if emit:
        emit("[SWEEP] Materializing all active series...")
    report = run_coverage_pass(state.controller)
    failed = f", failed: {report.failed}" if report.failed else ""
    return f"Sweep done: {report.scanned} series, {report.instances} instance(s) in window{failed}"


registry.register("help", cmd_help, "Show this help", aliases=["h", "?"])
registry.register("status", cmd_status, "Show scheduler status")
registry.register("series", cmd_series, "List series (/series active for active only)", aliases=["ls"])
registry.register("new", cmd_new, "Create a series from a JSON payload")
registry.register("instances", cmd_instances, "List instances of a series: /instances <id>")
registry.register("pause", cmd_pause, "Pause a series: /pause <id>")
registry.register("resume", cmd_resume, "Resume a series and fill its window: /resume <id>")
registry.register("delete", cmd_delete, "Delete a series with all its instances: /delete <id>", aliases=["rm"])
registry.register("overdue", cmd_overdue, "List overdue instances of a series: /overdue <id>")
registry.register("sweep", cmd_sweep, "Run one coverage sweep now")
