# src/cadence/core/errors.py

"""
Exception taxonomy shared by the series subsystem.

Only ValidationError and NotFoundError are meant to reach callers.
DuplicateInstanceError and TransientPersistenceError are raised by storage
adapters and absorbed by the materializer.
"""

from __future__ import annotations


class CadenceError(Exception):
    """Base class for all cadence errors."""


class ValidationError(CadenceError, ValueError):
    """Malformed rule or template. Raised before anything is persisted."""


class NotFoundError(CadenceError, LookupError):
    """Referenced series or instance does not exist."""

    def __init__(self, kind: str, ident: object) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class DuplicateInstanceError(CadenceError):
    """Storage rejected an instance because (series_id, start_at) already exists."""

    def __init__(self, series_id: int, start_ts: float) -> None:
        super().__init__(f"instance already exists series_id={series_id} start_ts={start_ts}")
        self.series_id = series_id
        self.start_ts = start_ts


class TransientPersistenceError(CadenceError):
    """A single write failed; the batch it belongs to may continue."""
