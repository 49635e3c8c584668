# src/cadence/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every value has a sane default so the CLI runs with an empty environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "CADENCE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Scheduling ----
    timezone: str
    lookahead_days: int
    iteration_cap: int
    overdue_grace_hours: int
    holidays: list[str]

    # ---- Background worker ----
    worker_enabled: bool
    worker_interval_seconds: float

    # ---- Connectors ----
    console_enabled: bool

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "cadence") or "cadence"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/cadence"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "series.sqlite3")

        timezone = _env(_k("TIMEZONE"), "UTC") or "UTC"
        lookahead_days = max(0, _env_int(_k("LOOKAHEAD_DAYS"), 3))
        iteration_cap = max(1, _env_int(_k("ITERATION_CAP"), 100))
        overdue_grace_hours = max(0, _env_int(_k("OVERDUE_GRACE_HOURS"), 24))
        holidays = _env_list(_k("HOLIDAYS"), [])

        worker_enabled = _env_bool(_k("WORKER_ENABLED"), True)
        worker_interval_seconds = max(0.5, _env_float(_k("WORKER_INTERVAL_SECONDS"), 300.0))

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            timezone=timezone,
            lookahead_days=lookahead_days,
            iteration_cap=iteration_cap,
            overdue_grace_hours=overdue_grace_hours,
            holidays=holidays,
            worker_enabled=worker_enabled,
            worker_interval_seconds=worker_interval_seconds,
            console_enabled=console_enabled,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
