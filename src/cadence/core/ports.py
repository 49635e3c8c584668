# src/cadence/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage and the external collaborators (clock, holiday calendar,
assignee directory) swappable and makes testing easier.
"""

from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Any, Protocol


class Clock(Protocol):
    """Source of the current time. Always returns timezone-aware datetimes."""
    def now(self) -> datetime: ...


class HolidayCalendar(Protocol):
    """Company holiday lookup (external collaborator)."""
    def holidays_between(self, start: date, end: date) -> set[date]: ...


class AssigneeDirectory(Protocol):
    """
    Assignee validation (external collaborator).

    Returns the subset of `assignees` that are unknown; an empty result means all valid.
    """
    def missing(self, assignees: Iterable[str]) -> list[str]: ...


class SeriesRepo(Protocol):
    # Transactions: calls made inside the block share one unit of work.
    def transaction(self) -> AbstractContextManager[Any]: ...

    # Series API
    def add_series(self, *, template: Any, rule: Any, active: bool = True) -> Any: ...
    def get_series(self, series_id: int) -> Any | None: ...
    def list_series(self, *, active_only: bool = False) -> list[Any]: ...
    def set_series_active(self, series_id: int, active: bool) -> Any | None: ...
    def replace_series(self, series_id: int, *, template: Any, rule: Any) -> Any | None: ...
    def delete_series(self, series_id: int) -> bool: ...

    # Instance API (materializer)
    def find_instance(self, series_id: int, start_at: datetime) -> Any | None: ...
    def add_instance(
            self,
            *,
            series: Any,
            start_at: datetime,
            end_at: datetime,
            status: Any = None,  # TaskStatus (kept as Any to avoid import coupling)
    ) -> Any: ...
    def list_instances(self, series_id: int) -> list[Any]: ...
    def delete_instances(self, series_id: int) -> int: ...
    def delete_instance(self, instance_id: int) -> bool: ...
