# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Use:
- .env (local, gitignored)

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "CADENCE_APP_NAME": "App display name (default: cadence).",
    "CADENCE_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "CADENCE_DATA_DIR": "Local data directory (default: .local/cadence).",
    "CADENCE_TASKS_DB_PATH": "SeriesStore SQLite path (default: <data_dir>/series.sqlite3).",
    # Scheduling
    "CADENCE_TIMEZONE": "IANA zone used for calendar days and stored datetimes (default: UTC).",
    "CADENCE_LOOKAHEAD_DAYS": "Days ahead that instances are materialized for (default: 3).",
    "CADENCE_ITERATION_CAP": "Max calendar days scanned per materialization (default: 100).",
    "CADENCE_OVERDUE_GRACE_HOURS": "Grace after end before a task counts as overdue (default: 24).",
    "CADENCE_HOLIDAYS": "Comma/space separated ISO dates; occurrences on them shift to the day before.",
    # Background worker
    "CADENCE_WORKER_ENABLED": "Run the periodic coverage worker (true/false, default: true).",
    "CADENCE_WORKER_INTERVAL_SECONDS": "Seconds between coverage sweeps (default: 300).",
    # Connectors
    "CADENCE_CONSOLE_ENABLED": "Enable console REPL (true/false, default: true).",
}
