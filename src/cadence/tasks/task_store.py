# src/cadence/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.errors import DuplicateInstanceError, TransientPersistenceError
from .task_models import (
    Frequency,
    Instance,
    Priority,
    RecurrenceRule,
    Series,
    TaskStatus,
    TaskTemplate,
)

logger = logging.getLogger(__name__)

_CODE_SEQUENCE = "taskid"


class SeriesStore:
    """
    SQLite store for series and their instances.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Uniqueness of (series_id, start_ts) is enforced by a UNIQUE index; a
    violation surfaces as DuplicateInstanceError.

    Thread-safety:
    - each method opens its own SQLite connection
    - inside `transaction()` the calling thread reuses one connection until the block ends
    """

    def __init__(self, db_path: str | Path = "series.sqlite3", *, tz: tzinfo = timezone.utc) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._tz = tz
        self._local = threading.local()
        self._ensure_schema()
        logger.info("SeriesStore ready db=%s series=%s", self._db_path, self.count_series())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    @contextlib.contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Join the thread's open transaction, or run in a short-lived one."""
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[SeriesStore]:
        """
        Group several store calls into one unit of work.

        Nested blocks join the outermost one. Any exception escaping the
        outermost block rolls everything back.
        """
        if getattr(self._local, "conn", None) is not None:
            yield self
            return

        conn = self._get_conn()
        self._local.conn = conn
        try:
            yield self
            conn.commit()
        except BaseException:
            conn.rollback()
            logger.warning("SeriesStore transaction rolled back db=%s", self._db_path)
            raise
        finally:
            self._local.conn = None
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS series (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL DEFAULT '',
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    assignees TEXT NOT NULL DEFAULT '[]',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    credit_points INTEGER NOT NULL DEFAULT 0,
                    start_ts REAL NOT NULL,
                    end_ts REAL NOT NULL,
                    frequency TEXT NOT NULL,
                    weekdays TEXT NOT NULL DEFAULT '[]',
                    month_days TEXT NOT NULL DEFAULT '[]',
                    series_end_ts REAL NOT NULL,
                    zone TEXT NOT NULL DEFAULT '',
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS instances (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL DEFAULT '',
                    series_id INTEGER NOT NULL REFERENCES series(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    assignees TEXT NOT NULL DEFAULT '[]',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    credit_points INTEGER NOT NULL DEFAULT 0,
                    start_ts REAL NOT NULL,
                    end_ts REAL NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    active INTEGER NOT NULL DEFAULT 1,
                    frequency TEXT NOT NULL DEFAULT 'daily',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS counters (
                    name TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            # Migrations (safe): add missing columns.
            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("SeriesStore migration: added column %s.%s", table, name)

            add_col("series", "code", "TEXT NOT NULL DEFAULT ''")
            add_col("series", "priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("series", "credit_points", "INTEGER NOT NULL DEFAULT 0")
            add_col("series", "zone", "TEXT NOT NULL DEFAULT ''")
            add_col("instances", "code", "TEXT NOT NULL DEFAULT ''")
            add_col("instances", "priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("instances", "credit_points", "INTEGER NOT NULL DEFAULT 0")
            add_col("instances", "frequency", "TEXT NOT NULL DEFAULT 'daily'")

            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_instances_series_start "
                "ON instances(series_id, start_ts)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_series_active ON series(active)")

    # ---- conversions ----

    def _ts(self, dt: datetime) -> float:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=self._tz)
        return float(dt.timestamp())

    def _dt(self, ts: float, tz: tzinfo | None = None) -> datetime:
        return datetime.fromtimestamp(float(ts), tz=tz or self._tz)

    @staticmethod
    def _zone_key(dt: datetime) -> str:
        """Name of dt's zone: an IANA key, or a fixed offset in seconds."""
        key = getattr(dt.tzinfo, "key", None)
        if key:
            return str(key)
        offset = dt.utcoffset() or timedelta(0)
        return f"offset:{int(offset.total_seconds())}"

    def _zone_from_key(self, key: str | None) -> tzinfo:
        if not key:
            return self._tz
        if key.startswith("offset:"):
            try:
                return timezone(timedelta(seconds=int(key[len("offset:"):])))
            except ValueError:
                logger.warning("Corrupt zone column, using store zone: %r", key)
                return self._tz
        try:
            return ZoneInfo(key)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown zone %r, using store zone", key)
            return self._tz

    @staticmethod
    def _list_to_str(items: Any) -> str:
        return json.dumps(sorted(items) if items else [], ensure_ascii=False)

    @staticmethod
    def _str_to_list(s: str | None) -> list[Any]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Corrupt JSON list column, reading as empty: %r", s)
            return []
        return val if isinstance(val, list) else []

    def _row_to_series(self, row: sqlite3.Row) -> Series:
        # Template times are rehydrated in the zone they were written in.
        zone = self._zone_from_key(row["zone"])
        template = TaskTemplate(
            title=str(row["title"]),
            description=str(row["description"] or ""),
            assignees=tuple(str(a) for a in self._str_to_list(row["assignees"])),
            start_at=self._dt(row["start_ts"], zone),
            end_at=self._dt(row["end_ts"], zone),
            priority=Priority(row["priority"] or "medium"),
            credit_points=int(row["credit_points"] or 0),
        )
        rule = RecurrenceRule(
            frequency=Frequency(row["frequency"]),
            series_end=self._dt(row["series_end_ts"], zone),
            weekdays=frozenset(self._str_to_list(row["weekdays"])),
            month_days=frozenset(int(d) for d in self._str_to_list(row["month_days"])),
        )
        return Series(
            id=int(row["id"]),
            code=str(row["code"] or ""),
            template=template,
            rule=rule,
            active=bool(row["active"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    def _row_to_instance(self, row: sqlite3.Row) -> Instance:
        return Instance(
            id=int(row["id"]),
            code=str(row["code"] or ""),
            series_id=int(row["series_id"]),
            title=str(row["title"]),
            description=str(row["description"] or ""),
            assignees=tuple(str(a) for a in self._str_to_list(row["assignees"])),
            priority=Priority(row["priority"] or "medium"),
            credit_points=int(row["credit_points"] or 0),
            start_at=self._dt(row["start_ts"]),
            end_at=self._dt(row["end_ts"]),
            status=TaskStatus.from_db(row["status"]),
            active=bool(row["active"]),
            frequency=Frequency(row["frequency"] or "daily"),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _next_code(conn: sqlite3.Connection, name: str = _CODE_SEQUENCE) -> str:
        conn.execute(
            """
            INSERT INTO counters(name, seq) VALUES (?, 1)
            ON CONFLICT(name) DO UPDATE SET seq = seq + 1
            """,
            (name,),
        )
        (seq,) = conn.execute("SELECT seq FROM counters WHERE name = ?", (name,)).fetchone()
        return f"T{int(seq)}"

    # ---- series API ----

    def count_series(self) -> int:
        with self._connection() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM series").fetchone()
            return int(n)

    def add_series(self, *, template: TaskTemplate, rule: RecurrenceRule, active: bool = True) -> Series:
        now = time.time()
        with self._connection() as conn:
            code = self._next_code(conn)
            cur = conn.execute(
                """
                INSERT INTO series(
                    code, title, description, assignees, priority, credit_points,
                    start_ts, end_ts,
                    frequency, weekdays, month_days, series_end_ts, zone,
                    active, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    code,
                    template.title,
                    template.description,
                    json.dumps(list(template.assignees), ensure_ascii=False),
                    template.priority.value,
                    template.credit_points,
                    self._ts(template.start_at),
                    self._ts(template.end_at),
                    rule.frequency.value,
                    self._list_to_str(rule.weekdays),
                    self._list_to_str(rule.month_days),
                    self._ts(rule.series_end),
                    self._zone_key(template.start_at),
                    1 if active else 0,
                    now,
                    now,
                ),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for series insert")
            series_id = int(rowid)

        logger.debug(
            "Series added id=%s code=%s frequency=%s active=%s",
            series_id,
            code,
            rule.frequency.value,
            active,
        )
        return Series(
            id=series_id,
            code=code,
            template=template,
            rule=rule,
            active=active,
            created_at=now,
            updated_at=now,
        )

    def get_series(self, series_id: int) -> Series | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM series WHERE id = ?", (int(series_id),)).fetchone()
            return self._row_to_series(row) if row else None

    def list_series(self, *, active_only: bool = False) -> list[Series]:
        sql = "SELECT * FROM series"
        if active_only:
            sql += " WHERE active = 1"
        sql += " ORDER BY id ASC"
        with self._connection() as conn:
            return [self._row_to_series(r) for r in conn.execute(sql).fetchall()]

    def set_series_active(self, series_id: int, active: bool) -> Series | None:
        with self._connection() as conn:
            cur = conn.execute(
                "UPDATE series SET active = ?, updated_at = ? WHERE id = ?",
                (1 if active else 0, time.time(), int(series_id)),
            )
            if cur.rowcount != 1:
                return None
        return self.get_series(series_id)

    def replace_series(
        self,
        series_id: int,
        *,
        template: TaskTemplate,
        rule: RecurrenceRule,
    ) -> Series | None:
        """Overwrite template and rule as a whole. `active` and `code` are kept."""
        with self._connection() as conn:
            cur = conn.execute(
                """
                UPDATE series
                SET title = ?, description = ?, assignees = ?, priority = ?, credit_points = ?,
                    start_ts = ?, end_ts = ?,
                    frequency = ?, weekdays = ?, month_days = ?, series_end_ts = ?, zone = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    template.title,
                    template.description,
                    json.dumps(list(template.assignees), ensure_ascii=False),
                    template.priority.value,
                    template.credit_points,
                    self._ts(template.start_at),
                    self._ts(template.end_at),
                    rule.frequency.value,
                    self._list_to_str(rule.weekdays),
                    self._list_to_str(rule.month_days),
                    self._ts(rule.series_end),
                    self._zone_key(template.start_at),
                    time.time(),
                    int(series_id),
                ),
            )
            if cur.rowcount != 1:
                return None
        return self.get_series(series_id)

    def delete_series(self, series_id: int) -> bool:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM series WHERE id = ?", (int(series_id),))
            return cur.rowcount == 1

    # ---- instance API ----

    def find_instance(self, series_id: int, start_at: datetime) -> Instance | None:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT * FROM instances WHERE series_id = ? AND start_ts = ?",
                    (int(series_id), self._ts(start_at)),
                ).fetchone()
        except sqlite3.Error as e:
            raise TransientPersistenceError(f"instance lookup failed: {e}") from e
        return self._row_to_instance(row) if row else None

    def get_instance(self, instance_id: int) -> Instance | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM instances WHERE id = ?", (int(instance_id),)).fetchone()
            return self._row_to_instance(row) if row else None

    def add_instance(
        self,
        *,
        series: Series,
        start_at: datetime,
        end_at: datetime,
        status: TaskStatus = TaskStatus.PENDING,
    ) -> Instance:
        """
        Insert one occurrence copied from the series template.

        Raises:
        - DuplicateInstanceError if (series_id, start_at) is already taken
        - TransientPersistenceError for any other storage failure
        """
        now = time.time()
        tpl = series.template
        start_ts = self._ts(start_at)
        try:
            with self._connection() as conn:
                code = self._next_code(conn)
                cur = conn.execute(
                    """
                    INSERT INTO instances(
                        code, series_id, title, description, assignees, priority, credit_points,
                        start_ts, end_ts, status, active, frequency, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        code,
                        int(series.id),
                        tpl.title,
                        tpl.description,
                        json.dumps(list(tpl.assignees), ensure_ascii=False),
                        tpl.priority.value,
                        tpl.credit_points,
                        start_ts,
                        self._ts(end_at),
                        status.value,
                        1 if series.active else 0,
                        series.frequency.value,
                        now,
                        now,
                    ),
                )
                rowid = cur.lastrowid
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise DuplicateInstanceError(series.id, start_ts) from e
            raise TransientPersistenceError(f"instance insert rejected: {e}") from e
        except sqlite3.Error as e:
            raise TransientPersistenceError(f"instance insert failed: {e}") from e

        if rowid is None:
            raise TransientPersistenceError("SQLite did not return lastrowid for instance insert")

        logger.debug(
            "Instance added id=%s code=%s series_id=%s start=%s",
            rowid,
            code,
            series.id,
            start_at.isoformat(),
        )
        return Instance(
            id=int(rowid),
            code=code,
            series_id=series.id,
            title=tpl.title,
            description=tpl.description,
            assignees=tpl.assignees,
            priority=tpl.priority,
            credit_points=tpl.credit_points,
            start_at=self._dt(start_ts),
            end_at=self._dt(self._ts(end_at)),
            status=status,
            active=series.active,
            frequency=series.frequency,
            created_at=now,
            updated_at=now,
        )

    def list_instances(self, series_id: int) -> list[Instance]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM instances WHERE series_id = ? ORDER BY start_ts ASC, id ASC",
                (int(series_id),),
            ).fetchall()
            return [self._row_to_instance(r) for r in rows]

    def delete_instances(self, series_id: int) -> int:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM instances WHERE series_id = ?", (int(series_id),))
            return int(cur.rowcount)

    def delete_instance(self, instance_id: int) -> bool:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM instances WHERE id = ?", (int(instance_id),))
            return cur.rowcount == 1
