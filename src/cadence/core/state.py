# src/cadence/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..tasks.series_controller import SeriesController
from ..tasks.task_store import SeriesStore
from .ports import Clock


@dataclass
class AppState:
    # Settings are kept on the state so commands can read them without global config reads.
    settings: Any

    clock: Clock
    store: SeriesStore
    controller: SeriesController

    # Serializes console commands against each other.
    lock: threading.Lock = field(default_factory=threading.Lock)
