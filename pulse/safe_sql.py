"""
Centralized SQL construction with validated identifiers.

All dynamic SQL assembly lives here. Table and column names are validated
against _SAFE_IDENTIFIER_RE before interpolation. Values are always passed
as parameterized ? and never interpolated.

SQLite does not support parameterized identifiers (? works only for values,
not table/column names), so every f-string in this file is a
validated-identifier interpolation.
"""

# ruff: noqa: S608

from __future__ import annotations

import re

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate(name: str) -> str:
    """Validate that *name* is a safe SQL identifier.

    Returns the name unchanged if valid; raises ValueError otherwise.
    """
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


# ────────────────────────────────────────────────────────────
# PRAGMA helpers
# ────────────────────────────────────────────────────────────


def pragma_table_info(table: str) -> str:
    """PRAGMA table_info for a validated table name."""
    return f"PRAGMA table_info([{_validate(table)}])"


# ────────────────────────────────────────────────────────────
# SELECT
# ────────────────────────────────────────────────────────────


def column_list(columns: list[str] | tuple[str, ...]) -> str:
    """Comma-joined validated column names."""
    if not columns:
        raise ValueError("SELECT needs at least one column")
    return ", ".join(_validate(c) for c in columns)


def select(
    table: str,
    columns: str = "*",
    where: str | None = None,
    order_by: str | None = None,
    suffix: str = "",
) -> str:
    """Build SELECT with validated table name.

    *columns* is a raw column expression (e.g. ``"*"`` or ``"id, name"``).
    *where* is a raw WHERE clause without the keyword (e.g. ``"id = ?"``)
    and must use ``?`` for all values.
    """
    sql = f"SELECT {columns} FROM {_validate(table)}"
    if where:
        sql += f" WHERE {where}"
    if order_by:
        sql += f" ORDER BY {order_by}"
    if suffix:
        sql += f" {suffix}"
    return sql


def insert(table: str, columns: list[str]) -> str:
    """Build INSERT with validated table+column names."""
    _validate(table)
    for col in columns:
        _validate(col)
    cols = ",".join(columns)
    placeholders = ",".join(["?" for _ in columns])
    return f"INSERT INTO {table} ({cols}) VALUES ({placeholders})"


# ────────────────────────────────────────────────────────────
# Helpers: IN-list placeholders, WHERE builders
# ────────────────────────────────────────────────────────────


def in_placeholders(count: int) -> str:
    """Return ``?,?,?`` for use in ``IN (...)`` clauses."""
    if count <= 0:
        raise ValueError(f"IN clause needs at least 1 placeholder, got {count}")
    return ",".join("?" for _ in range(count))


def where_and(conditions: list[str]) -> str:
    """Join conditions with AND. Returns empty string if no conditions."""
    if not conditions:
        return ""
    return " AND ".join(conditions)


def eq_clause(column: str) -> str:
    return f"{_validate(column)} = ?"


def in_clause(column: str, count: int) -> str:
    """Build ``column IN (?,?,...)``."""
    return f"{_validate(column)} IN ({in_placeholders(count)})"


def null_clause(column: str, is_null: bool = True) -> str:
    return f"{_validate(column)} IS {'NULL' if is_null else 'NOT NULL'}"


def order_clause(terms: list[str] | tuple[str, ...]) -> str:
    """Build ORDER BY terms from ``"col"`` / ``"-col"`` (descending) specs."""
    parts = []
    for term in terms:
        if term.startswith("-"):
            parts.append(f"{_validate(term[1:])} DESC")
        else:
            parts.append(f"{_validate(term)} ASC")
    return ", ".join(parts)


def limit_suffix(limit: int | None) -> str:
    if limit is None:
        return ""
    if not isinstance(limit, int) or limit < 1:
        raise ValueError(f"Invalid LIMIT: {limit!r}")
    return f"LIMIT {limit}"
