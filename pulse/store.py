"""Database connection, schema and record reads for Delivery Pulse."""

import logging
import sqlite3
import threading
from collections.abc import Iterable, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pulse import paths, safe_sql
from pulse.errors import MissingColumnError, StoreError, missing_column_from_message
from pulse.observability.metrics import db_latency, db_queries

log = logging.getLogger(__name__)

SCHEMA = """
-- Projects
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    project_code TEXT,
    organisation_id TEXT,
    slug TEXT,
    reference TEXT,
    status TEXT,

    client_name TEXT,
    programme_name TEXT,
    region TEXT,
    department TEXT,
    delivery_type TEXT,
    start_date TEXT,
    finish_date TEXT,

    deleted_at TEXT,
    created_at TEXT
);

-- Organisation membership (portfolio visibility)
CREATE TABLE IF NOT EXISTS organisation_members (
    organisation_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    role TEXT,
    removed_at TEXT,
    created_at TEXT,
    PRIMARY KEY (organisation_id, user_id)
);

-- Project membership (owner resolution)
CREATE TABLE IF NOT EXISTS project_members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL REFERENCES projects(id),
    user_id TEXT NOT NULL,
    role TEXT,
    created_at TEXT,
    removed_at TEXT
);

CREATE TABLE IF NOT EXISTS profiles (
    user_id TEXT PRIMARY KEY,
    full_name TEXT,
    email TEXT
);

-- Governance artifacts (charters, reports, registers)
CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id),
    artifact_key TEXT,
    type TEXT,
    title TEXT,
    owner_email TEXT,
    due_date TEXT,
    phase TEXT,
    approval_status TEXT,
    status TEXT,
    is_current INTEGER DEFAULT 1,
    content_json TEXT,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT
);

CREATE TABLE IF NOT EXISTS schedule_milestones (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id),
    milestone_name TEXT,
    start_date TEXT,
    end_date TEXT,
    status TEXT,
    progress_pct REAL,
    critical_path_flag INTEGER DEFAULT 0,
    source_artifact_id TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS wbs_items (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id),
    name TEXT,
    description TEXT,
    status TEXT,
    due_date TEXT,
    owner TEXT,
    source_artifact_id TEXT,
    source_row_id TEXT,
    parent_id TEXT,
    sort_order INTEGER,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS raid_items (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id),
    public_id TEXT,
    item_no INTEGER,
    type TEXT,
    title TEXT,
    description TEXT,
    status TEXT,
    priority TEXT,
    due_date TEXT,
    owner_label TEXT,
    ai_status TEXT,
    source_artifact_id TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS change_requests (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id),
    seq INTEGER,
    title TEXT,
    status TEXT,
    delivery_status TEXT,
    decision_status TEXT,
    review_by TEXT,
    artifact_id TEXT,
    created_at TEXT,
    updated_at TEXT
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_project_members_project ON project_members(project_id);
CREATE INDEX IF NOT EXISTS idx_artifacts_project ON artifacts(project_id);
CREATE INDEX IF NOT EXISTS idx_milestones_project ON schedule_milestones(project_id);
CREATE INDEX IF NOT EXISTS idx_wbs_project_due ON wbs_items(project_id, due_date);
CREATE INDEX IF NOT EXISTS idx_raid_project_due ON raid_items(project_id, due_date);
CREATE INDEX IF NOT EXISTS idx_changes_project ON change_requests(project_id);
"""


def init_db(db_path: Path | None = None) -> Path:
    """Initialize database with schema. Returns the database path."""
    target = Path(db_path) if db_path else paths.db_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    with get_connection(target) as conn:
        conn.executescript(SCHEMA)
    log.info("Database initialized at %s", target)
    return target


@contextmanager
def get_connection(db_path: Path | None = None):
    """Get database connection with auto-commit/rollback."""
    conn = sqlite3.connect(db_path or paths.db_path(), timeout=30.0)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except (sqlite3.Error, ValueError, OSError) as e:
        conn.rollback()
        log.debug("Database error: %s", e)
        raise
    finally:
        conn.close()


class RecordStore:
    """
    Filtered, sorted, limited reads over the governance tables.

    Every requested column (selected, filtered or sorted on) is checked
    against the table's actual columns first, so schema drift surfaces as
    MissingColumnError before the query runs. Driver errors that still
    describe a missing column are mapped to the same error; anything else
    becomes StoreError.
    """

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path else paths.db_path()
        self._columns: dict[str, frozenset[str]] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"RecordStore({str(self.db_path)!r})"

    def columns(self, table: str) -> frozenset[str]:
        """Column names of *table*, cached per store."""
        with self._lock:
            cached = self._columns.get(table)
        if cached is not None:
            return cached
        rows = self._execute(table, safe_sql.pragma_table_info(table), [])
        cols = frozenset(row["name"] for row in rows)
        if not cols:
            raise StoreError(f"no such table: {table}")
        with self._lock:
            self._columns[table] = cols
        return cols

    def select(
        self,
        table: str,
        columns: Sequence[str],
        *,
        where: Mapping[str, Any] | None = None,
        where_in: Mapping[str, Iterable[Any]] | None = None,
        is_null: Sequence[str] = (),
        not_null: Sequence[str] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows as plain dicts.

        ``order_by`` terms are column names, prefixed with ``-`` for
        descending. An empty ``where_in`` value list matches nothing and
        returns ``[]`` without touching the database.
        """
        in_values = {col: list(vals) for col, vals in (where_in or {}).items()}
        if any(not vals for vals in in_values.values()):
            return []

        referenced = [*columns, *(where or {}), *in_values, *is_null, *not_null]
        referenced += [term.lstrip("-") for term in order_by]
        self._require_columns(table, referenced)

        clause, params = _build_where(where, in_values, is_null, not_null)
        sql = safe_sql.select(
            table,
            safe_sql.column_list(list(columns)),
            where=clause or None,
            order_by=safe_sql.order_clause(order_by) if order_by else None,
            suffix=safe_sql.limit_suffix(limit),
        )
        return [dict(row) for row in self._execute(table, sql, params)]

    def first(self, table: str, columns: Sequence[str], **kwargs) -> dict[str, Any] | None:
        """First matching row or None."""
        kwargs["limit"] = 1
        rows = self.select(table, columns, **kwargs)
        return rows[0] if rows else None

    def count(
        self,
        table: str,
        *,
        where: Mapping[str, Any] | None = None,
        where_in: Mapping[str, Iterable[Any]] | None = None,
        is_null: Sequence[str] = (),
        not_null: Sequence[str] = (),
    ) -> int:
        in_values = {col: list(vals) for col, vals in (where_in or {}).items()}
        if any(not vals for vals in in_values.values()):
            return 0
        self._require_columns(table, [*(where or {}), *in_values, *is_null, *not_null])
        clause, params = _build_where(where, in_values, is_null, not_null)
        sql = safe_sql.select(table, "COUNT(*) AS c", where=clause or None)
        rows = self._execute(table, sql, params)
        return int(rows[0]["c"]) if rows else 0

    def insert(self, table: str, row: Mapping[str, Any]) -> None:
        cols = list(row)
        self._require_columns(table, cols)
        sql = safe_sql.insert(table, cols)
        try:
            with get_connection(self.db_path) as conn:
                conn.execute(sql, [row[c] for c in cols])
        except sqlite3.Error as exc:
            raise StoreError(f"insert into {table} failed: {exc}") from exc

    # ------------------------------------------------------------------

    def _require_columns(self, table: str, names: Iterable[str]) -> None:
        available = self.columns(table)
        for name in names:
            if name not in available:
                raise MissingColumnError(table, name)

    def _execute(self, table: str, sql: str, params: list[Any]) -> list[sqlite3.Row]:
        db_queries.inc()
        with db_latency.time():
            try:
                with get_connection(self.db_path) as conn:
                    return conn.execute(sql, params).fetchall()
            except sqlite3.OperationalError as exc:
                column = missing_column_from_message(str(exc))
                if column:
                    raise MissingColumnError(table, column) from exc
                raise StoreError(f"{table}: {exc}") from exc
            except sqlite3.Error as exc:
                raise StoreError(f"{table}: {exc}") from exc


def _build_where(
    where: Mapping[str, Any] | None,
    where_in: Mapping[str, list[Any]],
    is_null: Sequence[str],
    not_null: Sequence[str],
) -> tuple[str, list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []
    for col, value in (where or {}).items():
        conditions.append(safe_sql.eq_clause(col))
        params.append(value)
    for col, values in where_in.items():
        conditions.append(safe_sql.in_clause(col, len(values)))
        params.extend(values)
    conditions.extend(safe_sql.null_clause(col) for col in is_null)
    conditions.extend(safe_sql.null_clause(col, is_null=False) for col in not_null)
    return safe_sql.where_and(conditions), params
