"""
Tests for due-item aggregation in project and portfolio scope.

Uses fixture DB (determinism guard).
"""

import asyncio
from datetime import UTC, datetime

import pytest

from pulse.access import OrganisationAccess
from pulse.aggregator import (
    NO_PROJECTS_MESSAGE,
    NO_PROJECTS_SUMMARY,
    NO_REMINDER_MESSAGE,
    REMIND_MESSAGE,
    build_portfolio_digest,
    build_project_digest,
    count_items,
    extract_overdue_items,
    finalize,
    sort_key,
)
from pulse.config import DigestSettings
from pulse.models import DueItem, ItemKind, ProjectMeta
from pulse.owners import load_project_meta
from pulse.queries import DomainRows
from tests.fixtures.fixture_db import ALPHA_ID, BETA_ID, PM_USER

ALPHA_TITLES = [
    "Build API",
    "Extend scope",
    "Design sign-off",
    "Project Charter",
    "Vendor delay",
    "RISK_REGISTER",
    "Budget holds",
    "Build complete",
]


def project_digest(store, project_id, now, window_days=None, settings=None):
    meta = load_project_meta(store, project_id)
    return asyncio.run(build_project_digest(store, meta, window_days, now, settings))


def portfolio_digest(store, now, window_days=None, settings=None):
    projects = OrganisationAccess(store, PM_USER).visible_projects(PM_USER)
    return asyncio.run(build_portfolio_digest(store, projects, window_days, now, settings))


class TestProjectDigest:
    def test_items_sorted_by_due_date(self, store, now):
        digest = project_digest(store, ALPHA_ID, now)
        assert [i.title for i in digest.items] == ALPHA_TITLES

    def test_counts(self, store, now):
        digest = project_digest(store, ALPHA_ID, now)
        assert digest.counts == {
            "total": 8,
            "milestone": 2,
            "work_item": 1,
            "raid": 2,
            "artifact": 2,
            "change": 1,
        }

    def test_summary_and_message(self, store, now):
        digest = project_digest(store, ALPHA_ID, now)
        assert digest.summary == "Found 8 due items in the next 14 days."
        assert digest.recommended_message == REMIND_MESSAGE
        assert digest.window_days == 14
        assert digest.degraded == []

    def test_empty_window_wording(self, store, now):
        digest = project_digest(store, ALPHA_ID, now, window_days=1)
        assert digest.items == []
        assert digest.summary == "No due items found in the next 1 day."
        assert digest.recommended_message == NO_REMINDER_MESSAGE

    @pytest.mark.parametrize("requested,effective", [(0, 1), (-5, 1), (500, 90), ("21", 21), (7.8, 7)])
    def test_window_clamped(self, store, now, requested, effective):
        assert project_digest(store, ALPHA_ID, now, window_days=requested).window_days == effective

    def test_wide_window_includes_later_items(self, store, now):
        titles = {i.title for i in project_digest(store, ALPHA_ID, now, window_days=90).items}
        assert {"Closure Report", "Deploy"} <= titles

    def test_every_item_carries_project_attributes(self, store, now):
        for item in project_digest(store, ALPHA_ID, now).items:
            assert item.attributes["project_id"] == ALPHA_ID
            assert item.attributes["project_human_id"] == "100011"
            assert item.record_id

    def test_cap_applies_before_counts(self, store, now):
        settings = DigestSettings(project_item_cap=3)
        digest = project_digest(store, ALPHA_ID, now, settings=settings)
        assert [i.title for i in digest.items] == ALPHA_TITLES[:3]
        assert digest.counts["total"] == 3

    def test_to_dict_shape(self, store, now):
        data = project_digest(store, ALPHA_ID, now).to_dict()
        assert data["scope"] == "project"
        assert data["project"]["id"] == ALPHA_ID
        assert "project_count" not in data
        first = data["due_items"][0]
        assert first["item_kind"] == "work_item"
        assert first["due_at"] == "2026-03-04T00:00:00.000Z"
        assert first["link"] == "/projects/100011/wbs?item=1.2"

    def test_degraded_domain_reported(self, legacy_store, now):
        digest = project_digest(legacy_store, ALPHA_ID, now)
        assert [f.domain for f in digest.degraded] == ["changes"]
        assert digest.counts["change"] == 0
        assert digest.counts["raid"] == 2
        assert digest.counts["total"] == 7


class TestPortfolioDigest:
    def test_merges_visible_projects(self, store, now):
        digest = portfolio_digest(store, now)
        assert digest.counts["total"] == 11
        assert digest.project_count == 2
        assert digest.summary == "Found 11 due items in the next 14 days across 2 projects."
        assert digest.items[0].title == "Migrate data"

    def test_same_day_ties_break_on_project_name(self, store, now):
        titles = [i.title for i in portfolio_digest(store, now).items]
        assert titles.index("Budget holds") + 1 == titles.index("Firewall rules")

    def test_closed_and_foreign_projects_excluded(self, store, now):
        titles = {i.title for i in portfolio_digest(store, now).items}
        assert "Archive files" not in titles
        assert "Supplier exit" not in titles

    @pytest.mark.parametrize("project_id", [ALPHA_ID, BETA_ID])
    def test_project_items_identical_in_both_scopes(self, store, now, project_id):
        single = project_digest(store, project_id, now)
        bulk = portfolio_digest(store, now)
        from_bulk = [i for i in bulk.items if i.attributes["project_id"] == project_id]
        assert [i.to_dict() for i in from_bulk] == [i.to_dict() for i in single.items]

    def test_portfolio_cap(self, store, now):
        digest = portfolio_digest(store, now, settings=DigestSettings(portfolio_item_cap=4))
        assert len(digest.items) == 4
        assert digest.counts["total"] == 4

    def test_no_projects(self, store, now):
        digest = asyncio.run(build_portfolio_digest(store, [], 14, now))
        assert digest.items == []
        assert digest.summary == NO_PROJECTS_SUMMARY
        assert digest.recommended_message == NO_PROJECTS_MESSAGE
        assert digest.to_dict()["project_count"] == 0

    def test_degraded_domain_in_portfolio(self, legacy_store, now):
        digest = portfolio_digest(legacy_store, now)
        assert [f.domain for f in digest.degraded] == ["changes"]
        assert digest.counts["total"] == 10


def _item(title, due, project="Alpha", kind=ItemKind.WORK_ITEM, link=None):
    return DueItem(
        item_kind=kind,
        title=title,
        due_at=due,
        link=link,
        attributes={"project_name": project, "record_id": title},
    )


class TestOrdering:
    def test_undated_last(self):
        items = [_item("b", None), _item("a", datetime(2026, 3, 5, tzinfo=UTC))]
        assert [i.title for i in sorted(items, key=sort_key)] == ["a", "b"]

    def test_tie_breaks(self):
        due = datetime(2026, 3, 5, tzinfo=UTC)
        items = [
            _item("zeta", due, project="beta"),
            _item("Alpha task", due, project="Alpha", kind=ItemKind.RAID),
            _item("alpha task", due, project="Alpha", kind=ItemKind.MILESTONE),
        ]
        ordered = [i.title for i in sorted(items, key=sort_key)]
        assert ordered == ["alpha task", "Alpha task", "zeta"]

    def test_finalize_normalizes_links(self):
        [item] = finalize([_item("x", None, link="/projects/P1/RAID?item=R-1")], cap=5)
        assert item.link == "/projects/P1/raid?item=R-1"

    def test_count_items_zero_fills(self):
        assert count_items([]) == {
            "total": 0,
            "milestone": 0,
            "work_item": 0,
            "raid": 0,
            "artifact": 0,
            "change": 0,
        }


class TestOverdueScan:
    META = ProjectMeta(canonical_id="p-1", name="Overdue Project")

    def test_open_items_in_lookback(self, now):
        rows = {
            ItemKind.RAID: DomainRows(
                "raid",
                [
                    {"id": "r-late", "project_id": "p-1", "title": "Late issue", "status": "open", "due_date": "2026-02-27"},
                    {"id": "r-ancient", "project_id": "p-1", "title": "Ancient", "status": "open", "due_date": "2025-06-01"},
                    {"id": "r-closed", "project_id": "p-1", "title": "Closed", "status": "closed", "due_date": "2026-02-27"},
                ],
            ),
            ItemKind.MILESTONE: DomainRows(
                "milestones",
                [
                    {"id": "m-done", "project_id": "p-1", "milestone_name": "Done", "end_date": "2026-02-27", "status": "Completed"},
                    {"id": "m-late", "project_id": "p-1", "milestone_name": "Slipped", "end_date": "2026-02-28", "status": "in_progress"},
                ],
            ),
            ItemKind.ARTIFACT: DomainRows(
                "artifacts",
                [{"id": "a-late", "project_id": "p-1", "title": "Old doc", "due_date": "2026-02-27"}],
            ),
        }
        items = extract_overdue_items(rows, {"p-1": self.META}, now, 30)
        assert sorted(i.title for i in items) == ["Late issue", "Slipped"]

    def test_today_not_overdue(self, now):
        rows = {
            ItemKind.WORK_ITEM: DomainRows(
                "work_items", [{"id": "w", "project_id": "p-1", "name": "Due today", "due_date": "2026-03-02"}]
            )
        }
        assert extract_overdue_items(rows, {"p-1": self.META}, now, 30) == []

    def test_pending_change_limited_to_lookback(self, now):
        rows = {
            ItemKind.CHANGE: DomainRows(
                "changes",
                [
                    {"id": "c-recent", "project_id": "p-1", "title": "Recent", "delivery_status": "review", "updated_at": "2026-02-25T10:00:00Z"},
                    {"id": "c-stale", "project_id": "p-1", "title": "Stale", "delivery_status": "review", "updated_at": "2026-01-16T10:00:00Z"},
                ],
            )
        }
        items = extract_overdue_items(rows, {"p-1": self.META}, now, 30)
        assert [i.title for i in items] == ["Recent"]
