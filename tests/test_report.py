"""
Tests for the delivery report builder.

Uses fixture DB (determinism guard). Scenario tests seed their own small
projects into an empty schema.
"""

import asyncio
from datetime import date

import pytest

from pulse.config import DigestSettings
from pulse.owners import load_project_meta
from pulse.report import (
    NO_BLOCKERS,
    NO_COMPLETED,
    NO_DECISIONS,
    NO_FOCUS,
    NO_HOTSPOTS,
    Period,
    build_delivery_report,
    load_previous_summary,
    load_project_dimensions,
)
from pulse.severity import Rag
from pulse.store import RecordStore
from tests.fixtures.fixture_db import ALPHA_ID, create_empty_db, day, stamp

SCENARIO_ID = "7a8b9c0d-1e2f-4a3b-8c4d-5e6f7a8b9c0d"


def report_for(store, project_id, now, **kwargs):
    meta = load_project_meta(store, project_id)
    return asyncio.run(build_delivery_report(store, meta, now=now, **kwargs))


@pytest.fixture
def scenario_store(tmp_path):
    db_path = tmp_path / "scenario.db"
    create_empty_db(db_path).close()
    store = RecordStore(db_path)
    store.insert("projects", {"id": SCENARIO_ID, "title": "Scenario Project", "project_code": "300001"})
    return store


class TestPeriod:
    def test_default_is_last_seven_days(self, now):
        period = Period.default(now)
        assert period.start == date(2026, 2, 24)
        assert period.end == date(2026, 3, 2)

    def test_end_day_inclusive(self, now):
        period = Period(date(2026, 3, 1), date(2026, 3, 2))
        assert period.contains(period.end_at)
        assert period.end_at.hour == 23
        assert not period.contains(None)


class TestAlphaReport:
    @pytest.fixture
    def report(self, store, now):
        return report_for(store, ALPHA_ID, now)

    def test_amber_with_blocker_and_critical_milestone(self, report):
        assert report.severity.rag is Rag.AMBER
        assert report.severity.overdue_count == 0
        assert report.severity.critical_soon_count == 1
        assert report.severity.blocker_count == 1
        assert report.summary.headline == "1 open blocker and 1 critical-path milestone due soon need attention."

    def test_completed_this_period(self, report):
        assert [line.text for line in report.completed] == [
            "Milestone completed: Kickoff",
            "Work item completed: Write tests",
            "Change closed/implemented: Swap vendor",
            "RAID closed: Login failures on staging",
        ]
        assert report.metrics == {
            "milestones_done": 1,
            "work_items_done": 1,
            "changes_closed": 1,
            "raid_closed": 1,
        }

    def test_next_period_focus(self, report):
        assert [line.text for line in report.next_focus] == [
            "Work item: Build API (due 04/03/2026)",
            "Change request: Extend scope (due 05/03/2026)",
            "Milestone: Design sign-off (due 05/03/2026)",
            "Artifact: Project Charter (due 07/03/2026)",
            "RAID item: Vendor delay (due 08/03/2026)",
        ]
        assert report.next_focus[0].link == "/projects/100011/wbs?item=1.2"

    def test_decisions(self, report):
        [line] = report.decisions
        assert line.text == "Approved change #8: Swap vendor"
        assert line.link == "/projects/100011/change?id=cr-vendor"

    def test_blockers(self, report):
        [line] = report.blockers
        assert line.text == "Risk: Vendor delay | Priority: high | Due: 08/03/2026 | Owner: Lee Park"
        assert line.link == "/projects/100011/raid?item=R-001"

    def test_resources(self, report):
        assert [line.text for line in report.resources] == [
            "Open work items due soon: 1",
            "Owners with due-soon items: Sam Reid",
        ]

    def test_narrative(self, report):
        paragraphs = report.summary.narrative.split("\n\n")
        assert paragraphs[0] == (
            "This report covers 24/02/2026 to 02/03/2026. "
            "Overall delivery health is Amber: delivery is at risk and needs attention."
        )
        assert "Key decisions this period: Approved change #8: Swap vendor." in paragraphs
        assert "1 open blocker needs resolution: Vendor delay." in paragraphs
        assert paragraphs[-1] == (
            "Looking ahead, 5 items are due in the next 7 days, "
            "including 1 milestone, 1 work item and 1 RAID item."
        )

    def test_lists_and_meta(self, report):
        data = report.to_dict()
        assert data["version"] == 1
        assert data["period"] == {"from": "2026-02-24", "to": "2026-03-02"}
        assert {m["id"] for m in data["lists"]["milestones"]} == {"ms-design", "ms-kickoff", "ms-build"}
        assert {r["id"] for r in data["lists"]["raid"]} == {"raid-vendor", "raid-budget"}
        meta = data["meta"]
        assert meta["generated_at"] == "2026-03-02T09:30:00.000Z"
        assert meta["window_days"] == 7
        assert meta["period_uk"] == {"from": "24/02/2026", "to": "02/03/2026"}
        assert meta["due_counts"]["total"] == 5
        assert meta["severity"]["rag"] == "amber"
        assert meta["degraded"] == []
        assert meta["dimensions"] == {
            "client_name": "Northwind",
            "region": "UK",
            "status": "active",
            "start_date": "2026-01-05",
        }
        assert meta["previous"] is None
        assert set(meta["milestone_map"]) == {"ms-design", "ms-kickoff", "ms-build"}

    def test_lines_without_link_omit_key(self, report):
        data = report.to_dict()
        assert data["completed_this_period"][0] == {"text": "Milestone completed: Kickoff"}


class TestReportOptions:
    def test_previous_snapshot(self, store, now):
        report = report_for(store, ALPHA_ID, now, artifact_id="art-weekly")
        previous = report.meta["previous"]
        assert previous["artifact_id"] == "art-weekly"
        assert previous["rag"] == "amber"
        assert previous["headline"] == "2 open blockers need resolution."
        assert previous["period"] == {"from": "2026-02-17", "to": "2026-02-23"}

    def test_previous_snapshot_of_other_project_ignored(self, store, now):
        assert load_previous_summary(store, ALPHA_ID, "art-lessons") is None

    def test_period_with_nothing_completed(self, store, now):
        report = report_for(store, ALPHA_ID, now, period=Period(date(2026, 1, 1), date(2026, 1, 31)))
        assert [line.text for line in report.completed] == [NO_COMPLETED]
        assert [line.text for line in report.decisions] == [NO_DECISIONS]

    def test_window_days_clamped(self, store, now):
        assert report_for(store, ALPHA_ID, now, window_days=0).meta["window_days"] == 1
        assert report_for(store, ALPHA_ID, now, window_days=365).meta["window_days"] == 90

    def test_caps_from_settings(self, store, now):
        settings = DigestSettings(completed_milestone_cap=1, completed_work_item_cap=1, next_focus_cap=2)
        report = report_for(store, ALPHA_ID, now, settings=settings)
        assert len(report.next_focus) == 2

    def test_dimensions_only_for_present_columns(self, tmp_path):
        import sqlite3

        db = tmp_path / "dims.db"
        conn = sqlite3.connect(str(db))
        conn.execute("CREATE TABLE projects (id TEXT, title TEXT, region TEXT)")
        conn.execute("INSERT INTO projects VALUES ('p-1', 'P', 'EMEA')")
        conn.commit()
        conn.close()
        assert load_project_dimensions(RecordStore(db), "p-1") == {"region": "EMEA"}

    def test_degraded_schema_still_reports(self, legacy_store, now):
        report = report_for(legacy_store, ALPHA_ID, now)
        assert {f["domain"] for f in report.meta["degraded"]} == {"changes"}
        assert [line.text for line in report.decisions] == [NO_DECISIONS]
        # no priority column: the vendor risk is a blocker by due date alone
        assert [line.text for line in report.blockers] == ["Risk: Vendor delay | Due: 08/03/2026 | Owner: Lee Park"]


class TestScenarios:
    def test_overdue_issue_makes_report_red(self, scenario_store, now):
        scenario_store.insert(
            "raid_items",
            {
                "id": "raid-fw",
                "project_id": SCENARIO_ID,
                "type": "issue",
                "title": "Firewall rules",
                "status": "open",
                "due_date": day(now, -3),
            },
        )
        scenario_store.insert(
            "wbs_items",
            {"id": "wbs-1", "project_id": SCENARIO_ID, "name": "Build API", "status": "open", "due_date": day(now, 2)},
        )
        report = report_for(scenario_store, SCENARIO_ID, now)
        assert report.severity.rag is Rag.RED
        assert report.severity.overdue_count == 1
        assert report.summary.headline == "1 overdue item requires immediate action to protect delivery."
        assert (
            "Attention required: 1 overdue item (Firewall rules). Recommend escalating to the project "
            "sponsor within 48 hours and agreeing recovery dates. 1 open blocker needs resolution: Firewall rules."
        ) in report.summary.narrative
        assert report.summary.narrative.endswith(
            "Looking ahead, 1 item is due in the next 7 days, including 1 work item."
        )

    def test_pending_change_without_review_date_counts_once(self, scenario_store, now):
        scenario_store.insert(
            "change_requests",
            {
                "id": "cr-1",
                "project_id": SCENARIO_ID,
                "seq": 3,
                "title": "Scope change",
                "delivery_status": "review",
                "updated_at": stamp(now, -5),
            },
        )
        report = report_for(scenario_store, SCENARIO_ID, now)
        assert report.severity.rag is Rag.RED
        assert report.severity.overdue_count == 1
        assert report.meta["due_counts"]["change"] == 1
        assert [line.text for line in report.next_focus] == [NO_FOCUS]

    def test_change_pending_beyond_lookback_is_not_overdue(self, scenario_store, now):
        scenario_store.insert(
            "change_requests",
            {
                "id": "cr-old",
                "project_id": SCENARIO_ID,
                "seq": 4,
                "title": "Old scope change",
                "delivery_status": "review",
                "updated_at": stamp(now, -45),
            },
        )
        report = report_for(scenario_store, SCENARIO_ID, now)
        assert report.severity.rag is Rag.GREEN
        assert report.severity.overdue_count == 0
        assert report.meta["due_counts"]["change"] == 0

    def test_critical_milestone_survives_missing_link_column(self, tmp_path, now):
        db_path = tmp_path / "drift.db"
        conn = create_empty_db(db_path)
        conn.executescript(
            """
            DROP TABLE schedule_milestones;
            CREATE TABLE schedule_milestones (
                id TEXT PRIMARY KEY,
                project_id TEXT,
                milestone_name TEXT,
                start_date TEXT,
                end_date TEXT,
                status TEXT,
                progress_pct REAL,
                critical_path_flag INTEGER,
                updated_at TEXT
            );
            """
        )
        conn.commit()
        conn.close()
        store = RecordStore(db_path)
        store.insert("projects", {"id": SCENARIO_ID, "title": "Scenario Project", "project_code": "300001"})
        store.insert(
            "schedule_milestones",
            {
                "id": "ms-gate",
                "project_id": SCENARIO_ID,
                "milestone_name": "Gate review",
                "end_date": day(now, 3),
                "status": "planned",
                "critical_path_flag": 1,
            },
        )
        report = report_for(store, SCENARIO_ID, now)
        assert report.severity.rag is Rag.AMBER
        assert report.severity.critical_soon_count == 1
        assert report.meta["degraded"] == []

    def test_empty_project_is_green(self, scenario_store, now):
        report = report_for(scenario_store, SCENARIO_ID, now)
        assert report.severity.rag is Rag.GREEN
        assert report.summary.headline == "Delivery on track with no overdue items or open blockers."
        assert [line.text for line in report.completed] == [NO_COMPLETED]
        assert [line.text for line in report.next_focus] == [NO_FOCUS]
        assert [line.text for line in report.decisions] == [NO_DECISIONS]
        assert [line.text for line in report.blockers] == [NO_BLOCKERS]
        assert [line.text for line in report.resources] == [NO_HOTSPOTS]
        assert report.summary.narrative.endswith("Looking ahead, no items are due in the next 7 days.")
        assert report.meta["dimensions"] == {}
