"""
Tests for domain queries: optional-column fallback and per-domain degradation.
"""

import asyncio
import sqlite3

import pytest

from pulse.errors import MissingColumnError
from pulse.models import ItemKind
from pulse.observability.metrics import domain_failures, schema_fallbacks
from pulse.queries import DUE_QUERIES, DomainQuery, fetch_rows, load_domains, load_rows
from pulse.store import RecordStore
from tests.fixtures.fixture_db import ALPHA_ID, BETA_ID


class CountingStore:
    """Wraps a RecordStore and counts select calls."""

    def __init__(self, store):
        self.store = store
        self.selects = []

    def select(self, table, columns, **kwargs):
        self.selects.append((table, tuple(columns)))
        return self.store.select(table, columns, **kwargs)

    def columns(self, table):
        return self.store.columns(table)


@pytest.fixture
def drifted_store(tmp_path):
    """Milestones without source_artifact_id, artifacts without is_current."""
    db_path = tmp_path / "drifted.db"
    conn = sqlite3.connect(str(db_path))
    conn.executescript(
        """
        CREATE TABLE schedule_milestones (
            id TEXT, project_id TEXT, milestone_name TEXT, start_date TEXT,
            end_date TEXT, status TEXT, progress_pct REAL, critical_path_flag INTEGER
        );
        CREATE TABLE artifacts (
            id TEXT, project_id TEXT, title TEXT, artifact_key TEXT, type TEXT,
            owner_email TEXT, due_date TEXT, phase TEXT, approval_status TEXT,
            status TEXT, content_json TEXT, updated_at TEXT, deleted_at TEXT
        );
        """
    )
    conn.execute(
        "INSERT INTO schedule_milestones (id, project_id, milestone_name, end_date, status, critical_path_flag) "
        "VALUES ('ms-1', 'p-1', 'Design sign-off', '2026-03-05', 'planned', 1)"
    )
    conn.execute(
        "INSERT INTO artifacts (id, project_id, title, content_json) "
        "VALUES ('art-1', 'p-1', 'Charter', '{\"due_date\": \"2026-03-04\"}')"
    )
    conn.commit()
    conn.close()
    return RecordStore(db_path)


class TestWithout:
    def test_drops_columns_everywhere(self):
        query = DomainQuery(
            name="t",
            table="t",
            columns=("id", "a", "b"),
            optional=frozenset({"b", "c", "d"}),
            where=(("c", 1), ("id", 2)),
            is_null=("d",),
            order_by=("-b", "id"),
        )
        stripped = query.without(frozenset({"b", "c", "d"}))
        assert stripped.columns == ("id", "a")
        assert stripped.where == (("id", 2),)
        assert stripped.is_null == ()
        assert stripped.order_by == ("id",)
        assert stripped.optional == frozenset()

    def test_keeps_columns_not_dropped(self):
        query = DomainQuery(
            name="t", table="t", columns=("id", "b", "c"), optional=frozenset({"b", "c"}), order_by=("-c",)
        )
        stripped = query.without(frozenset({"b"}))
        assert stripped.columns == ("id", "c")
        assert stripped.order_by == ("-c",)
        assert stripped.optional == frozenset({"c"})


class TestFetchRows:
    def test_full_schema_single_read(self, store):
        counting = CountingStore(store)
        rows = fetch_rows(counting, DUE_QUERIES[ItemKind.RAID], [ALPHA_ID], 100)
        assert len(counting.selects) == 1
        assert {r["id"] for r in rows} == {"raid-vendor", "raid-login", "raid-budget"}

    def test_retries_once_without_optional_columns(self, legacy_store):
        counting = CountingStore(legacy_store)
        before = schema_fallbacks.value
        rows = fetch_rows(counting, DUE_QUERIES[ItemKind.RAID], [ALPHA_ID], 100)
        assert len(counting.selects) == 2
        assert "priority" not in counting.selects[1][1]
        assert schema_fallbacks.value == before + 1
        assert {r["id"] for r in rows} == {"raid-vendor", "raid-login", "raid-budget"}

    def test_retry_keeps_optional_columns_that_exist(self, drifted_store):
        counting = CountingStore(drifted_store)
        rows = fetch_rows(counting, DUE_QUERIES[ItemKind.MILESTONE], ["p-1"], 100)
        assert len(counting.selects) == 2
        assert "source_artifact_id" not in counting.selects[1][1]
        assert "critical_path_flag" in counting.selects[1][1]
        assert rows[0]["critical_path_flag"] == 1

    def test_missing_filter_column_keeps_document_body(self, drifted_store):
        rows = fetch_rows(drifted_store, DUE_QUERIES[ItemKind.ARTIFACT], ["p-1"], 100)
        assert [r["id"] for r in rows] == ["art-1"]
        assert "content_json" in rows[0]
        assert "is_current" not in rows[0]

    def test_required_column_missing_is_not_retried(self, store):
        query = DomainQuery(name="x", table="projects", columns=("id", "nonexistent"))
        counting = CountingStore(store)
        with pytest.raises(MissingColumnError):
            fetch_rows(counting, query, [ALPHA_ID], None)
        assert len(counting.selects) == 1

    def test_second_failure_propagates(self, store):
        query = DomainQuery(
            name="x", table="projects", columns=("id", "ghost_a", "ghost_b"), optional=frozenset({"ghost_a"})
        )
        counting = CountingStore(store)
        with pytest.raises(MissingColumnError):
            fetch_rows(counting, query, [ALPHA_ID], None)
        assert len(counting.selects) == 2


class TestLoadDomains:
    def test_loads_every_domain_for_all_projects(self, store):
        result = asyncio.run(load_domains(store, DUE_QUERIES, [ALPHA_ID, BETA_ID], lambda _: 1000))
        assert set(result) == set(DUE_QUERIES)
        assert all(d.failure is None for d in result.values())
        wbs_projects = {r["project_id"] for r in result[ItemKind.WORK_ITEM].rows}
        assert wbs_projects == {ALPHA_ID, BETA_ID}

    def test_query_filters_applied(self, store):
        result = asyncio.run(load_domains(store, DUE_QUERIES, [ALPHA_ID], lambda _: 1000))
        artifact_ids = {r["id"] for r in result[ItemKind.ARTIFACT].rows}
        assert "art-old" not in artifact_ids
        assert "art-deleted" not in artifact_ids
        wbs_ids = {r["id"] for r in result[ItemKind.WORK_ITEM].rows}
        assert "wbs-backlog" not in wbs_ids

    def test_missing_table_degrades_only_that_domain(self, legacy_store):
        before = domain_failures.value
        result = asyncio.run(load_domains(legacy_store, DUE_QUERIES, [ALPHA_ID], lambda _: 1000))
        change = result[ItemKind.CHANGE]
        assert change.rows == []
        assert change.failure is not None
        assert change.failure.domain == "changes"
        assert "change_requests" in change.failure.error
        assert result[ItemKind.RAID].failure is None
        assert result[ItemKind.RAID].rows
        assert domain_failures.value == before + 1

    def test_load_rows_empty_project_list(self, store):
        domain = asyncio.run(load_rows(store, DUE_QUERIES[ItemKind.MILESTONE], [], 10))
        assert domain.rows == []
        assert domain.failure is None
