"""
Delivery Report Builder

Composes a period delivery report for one project: what was completed in
the period, what is due next, decisions taken, open blockers, resource
hotspots, list snapshots, and an executive summary with a RAG status.

All reads run concurrently; a failed domain read leaves that section empty
and is recorded in ``meta.degraded`` rather than failing the report.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from pulse import config, links
from pulse.aggregator import (
    PROJECT_SCOPE,
    clamp_window_days,
    digest_from_rows,
    extract_overdue_items,
    failures,
    load_due_rows,
)
from pulse.config import DigestSettings
from pulse.dates import (
    TimeWindow,
    end_of_utc_day,
    format_uk_date,
    iso_z,
    parse_due,
    start_of_utc_day,
    utc_now,
)
from pulse.errors import StoreError
from pulse.models import DueItem, ItemKind, ProjectMeta, ReportLine
from pulse.narrative import ExecutiveSummary, NarrativeBuilder, NarrativeInputs
from pulse.observability.metrics import report_duration, timed
from pulse.queries import (
    REPORT_CHANGES,
    REPORT_MILESTONES,
    REPORT_RAID,
    REPORT_ROW_LIMIT,
    REPORT_WORK_ITEMS,
    DomainRows,
    load_domains,
)
from pulse.records import ChangeRecord, MilestoneRecord, RaidRecord, WorkItemRecord, json_object
from pulse.severity import SeverityClassification, classify_items
from pulse.store import RecordStore

logger = logging.getLogger(__name__)

REPORT_VERSION = 1

NO_COMPLETED = "No completed items detected for the selected period."
NO_FOCUS = "No due-soon items detected for next period focus."
NO_DECISIONS = "No key decisions detected in this period."
NO_BLOCKERS = "No operational blockers detected."
NO_HOTSPOTS = "No resource hotspots detected from due-soon workload."

DIMENSION_COLUMNS = (
    "client_name",
    "programme_name",
    "region",
    "department",
    "delivery_type",
    "status",
    "start_date",
    "finish_date",
)

_DECISION_VERBS = {"approved": "Approved", "rejected": "Rejected"}

_PERIOD_QUERIES = {
    "milestones": REPORT_MILESTONES,
    "work_items": REPORT_WORK_ITEMS,
    "raid": REPORT_RAID,
    "changes": REPORT_CHANGES,
}


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min, tzinfo=UTC)

    @property
    def end_at(self) -> datetime:
        # inclusive of the whole final day
        return end_of_utc_day(datetime.combine(self.end, time.min, tzinfo=UTC))

    def contains(self, t: datetime | None) -> bool:
        return t is not None and self.start_at <= t <= self.end_at

    @classmethod
    def default(cls, now: datetime | None = None) -> "Period":
        today = start_of_utc_day(now).date()
        return cls(start=today - timedelta(days=config.DEFAULT_REPORT_PERIOD_DAYS - 1), end=today)


@dataclass
class DeliveryReport:
    period: Period
    summary: ExecutiveSummary
    severity: SeverityClassification
    project: ProjectMeta
    completed: list[ReportLine] = field(default_factory=list)
    next_focus: list[ReportLine] = field(default_factory=list)
    resources: list[ReportLine] = field(default_factory=list)
    decisions: list[ReportLine] = field(default_factory=list)
    blockers: list[ReportLine] = field(default_factory=list)
    lists: dict[str, list[dict]] = field(default_factory=dict)
    metrics: dict[str, int] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        def lines(items: list[ReportLine]) -> list[dict]:
            return [line.to_dict() for line in items]

        return {
            "version": REPORT_VERSION,
            "project": self.project.to_dict(),
            "period": {"from": self.period.start.isoformat(), "to": self.period.end.isoformat()},
            "executive_summary": self.summary.to_dict(),
            "completed_this_period": lines(self.completed),
            "next_period_focus": lines(self.next_focus),
            "resource_summary": lines(self.resources),
            "key_decisions": lines(self.decisions),
            "operational_blockers": lines(self.blockers),
            "lists": self.lists,
            "metrics": self.metrics,
            "meta": self.meta,
        }


@dataclass(frozen=True)
class Blocker:
    title: str
    line: ReportLine


# ---------------------------------------------------------------------------
# Section builders (pure)
# ---------------------------------------------------------------------------


def _completion_time(record_updated: Any, fallback: datetime | None) -> datetime | None:
    return parse_due(record_updated) or fallback


def completed_milestones(records: list[MilestoneRecord], period: Period) -> list[MilestoneRecord]:
    return [m for m in records if m.is_done and period.contains(m.due_at)]


def completed_work_items(records: list[WorkItemRecord], period: Period) -> list[WorkItemRecord]:
    return [
        w for w in records if w.is_done and period.contains(_completion_time(w.updated_at, w.due_at))
    ]


def closed_raid(records: list[RaidRecord], period: Period) -> list[RaidRecord]:
    return [
        r
        for r in records
        if r.status == "closed" and period.contains(_completion_time(r.updated_at, r.due_at))
    ]


def closed_changes(records: list[ChangeRecord], period: Period) -> list[ChangeRecord]:
    return [c for c in records if c.is_closed and period.contains(c.updated)]


def decision_lines(
    records: list[ChangeRecord], period: Period, meta: ProjectMeta, cap: int
) -> list[ReportLine]:
    out = []
    for change in records:
        action = _DECISION_VERBS.get(change.decision_status)
        if not action or not period.contains(change.updated):
            continue
        ref = f" {change.reference}" if change.reference else ""
        out.append(
            ReportLine(
                text=f"{action} change{ref}: {change.title or 'Untitled change'}",
                link=links.normalize_link(links.change_link(meta.human_code, change.id)),
            )
        )
        if len(out) >= cap:
            break
    return out


def find_blockers(
    records: list[RaidRecord],
    meta: ProjectMeta,
    now: datetime | None = None,
    settings: DigestSettings | None = None,
) -> list[Blocker]:
    """Open issues, dependencies and risks that are high priority or due soon."""
    settings = settings or config.get_settings()
    horizon = start_of_utc_day(now) + timedelta(days=settings.blocker_lookahead_days)
    out: list[Blocker] = []
    for raid in records:
        if raid.is_closed or raid.raid_type not in config.BLOCKER_RAID_TYPES:
            continue
        due_at = raid.due_at
        high = raid.priority in config.HIGH_PRIORITIES
        if not high and not (due_at is not None and due_at <= horizon):
            continue
        title = raid.display_title
        bits = [f"{raid.raid_type.capitalize()}: {title}"]
        if raid.priority:
            bits.append(f"Priority: {raid.priority}")
        if due_at is not None:
            bits.append(f"Due: {format_uk_date(due_at)}")
        if raid.owner_label:
            bits.append(f"Owner: {raid.owner_label}")
        link = links.normalize_link(links.raid_link(meta.human_code, raid.public_id))
        out.append(Blocker(title=title, line=ReportLine(text=" | ".join(bits), link=link)))
        if len(out) >= settings.blocker_cap:
            break
    return out


def resource_lines(due_soon: list[DueItem], cap: int) -> list[ReportLine]:
    work_items = [i for i in due_soon if i.item_kind is ItemKind.WORK_ITEM]
    if not work_items:
        return [ReportLine(NO_HOTSPOTS)]
    lines = [ReportLine(f"Open work items due soon: {len(work_items)}")]
    owners: list[str] = []
    for item in work_items:
        if item.owner_name and item.owner_name not in owners:
            owners.append(item.owner_name)
    if owners:
        lines.append(ReportLine(f"Owners with due-soon items: {', '.join(owners[:cap])}"))
    return lines


def completed_lines(
    milestones: list[MilestoneRecord],
    work_items: list[WorkItemRecord],
    changes: list[ChangeRecord],
    raid: list[RaidRecord],
    settings: DigestSettings,
) -> list[ReportLine]:
    lines = [
        ReportLine(f"Milestone completed: {m.name or 'Milestone'}")
        for m in milestones[: settings.completed_milestone_cap]
    ]
    lines += [
        ReportLine(f"Work item completed: {w.name or 'WBS item'}")
        for w in work_items[: settings.completed_work_item_cap]
    ]
    lines += [
        ReportLine(f"Change closed/implemented: {c.title or 'Change request'}")
        for c in changes[: settings.completed_change_cap]
    ]
    lines += [
        ReportLine(f"RAID closed: {r.display_title}") for r in raid[: settings.completed_raid_cap]
    ]
    return lines or [ReportLine(NO_COMPLETED)]


def focus_lines(due_soon: list[DueItem], cap: int) -> list[ReportLine]:
    lines = []
    for item in due_soon[:cap]:
        due = f" (due {format_uk_date(item.due_at)})" if item.due_at else ""
        label = item.item_kind.label
        lines.append(ReportLine(f"{label[0].upper()}{label[1:]}: {item.title}{due}", item.link))
    return lines or [ReportLine(NO_FOCUS)]


def _milestone_row(m: MilestoneRecord) -> dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "due_at": iso_z(m.due_at),
        "status": m.status or None,
        "critical": m.critical,
        "progress": m.progress_pct,
    }


def _change_row(c: ChangeRecord) -> dict[str, Any]:
    return {
        "id": c.id,
        "seq": c.seq,
        "title": c.title,
        "status": c.status or None,
        "delivery_status": c.delivery_status or None,
        "decision_status": c.decision_status or None,
        "updated_at": iso_z(c.updated),
    }


def _raid_row(r: RaidRecord) -> dict[str, Any]:
    return {
        "id": r.id,
        "public_id": r.public_id,
        "type": r.raid_type or None,
        "title": r.display_title,
        "status": r.status or None,
        "priority": r.priority or None,
        "due_at": iso_z(r.due_at),
        "owner": r.owner_label,
    }


# ---------------------------------------------------------------------------
# Supplementary reads
# ---------------------------------------------------------------------------


def load_project_dimensions(store: RecordStore, project_id: str) -> dict[str, Any]:
    """Descriptive project columns, limited to those this deployment has."""
    try:
        available = store.columns("projects")
        cols = [c for c in DIMENSION_COLUMNS if c in available]
        if not cols:
            return {}
        row = store.first("projects", cols, where={"id": project_id})
    except StoreError as exc:
        logger.warning("Project dimensions unavailable: %s", exc)
        return {}
    return {k: v for k, v in (row or {}).items() if v not in (None, "")}


def load_previous_summary(
    store: RecordStore, project_id: str, artifact_id: str | None
) -> dict[str, Any] | None:
    """RAG, headline and period of the report snapshot held by *artifact_id*."""
    if not artifact_id:
        return None
    try:
        row = store.first(
            "artifacts",
            ["id", "content_json", "updated_at"],
            where={"id": artifact_id, "project_id": project_id},
        )
    except StoreError as exc:
        logger.warning("Previous report unavailable: %s", exc)
        return None
    if not row:
        return None
    content = json_object(row.get("content_json"))
    summary = content.get("executive_summary")
    summary = summary if isinstance(summary, dict) else {}
    period = content.get("period") if isinstance(content.get("period"), dict) else {}
    return {
        "artifact_id": str(row["id"]),
        "rag": summary.get("rag"),
        "headline": summary.get("headline"),
        "period": {"from": period.get("from"), "to": period.get("to")},
        "updated_at": row.get("updated_at"),
    }


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def _dedupe(primary: list[DueItem], extra: list[DueItem]) -> list[DueItem]:
    seen = {(i.item_kind, i.record_id) for i in primary}
    return primary + [i for i in extra if (i.item_kind, i.record_id) not in seen]


@timed(report_duration)
async def build_delivery_report(
    store: RecordStore,
    meta: ProjectMeta,
    period: Period | None = None,
    window_days: Any = None,
    artifact_id: str | None = None,
    now: datetime | None = None,
    settings: DigestSettings | None = None,
) -> DeliveryReport:
    """Build the delivery report for *meta*'s project over *period*."""
    settings = settings or config.get_settings()
    now = now or utc_now()
    period = period or Period.default(now)
    days = clamp_window_days(window_days, config.DEFAULT_REPORT_WINDOW_DAYS)
    window = TimeWindow.for_days(days, now)
    pid = meta.canonical_id

    async with asyncio.TaskGroup() as tg:
        due_task = tg.create_task(load_due_rows(store, [pid], PROJECT_SCOPE, settings))
        period_task = tg.create_task(
            load_domains(store, _PERIOD_QUERIES, [pid], lambda _: REPORT_ROW_LIMIT)
        )
        dims_task = tg.create_task(asyncio.to_thread(load_project_dimensions, store, pid))
        prev_task = tg.create_task(
            asyncio.to_thread(load_previous_summary, store, pid, artifact_id)
        )
    due_rows = due_task.result()
    period_rows: dict[str, DomainRows] = period_task.result()

    metas = {pid: meta}
    digest = digest_from_rows(due_rows, metas, window, PROJECT_SCOPE, settings)
    due_soon = digest.items
    scanned_overdue = extract_overdue_items(due_rows, metas, now, settings.overdue_lookback_days)
    considered = _dedupe(due_soon, scanned_overdue)

    milestones = [MilestoneRecord.from_row(r) for r in period_rows["milestones"].rows]
    work_items = [WorkItemRecord.from_row(r) for r in period_rows["work_items"].rows]
    raid = [RaidRecord.from_row(r) for r in period_rows["raid"].rows]
    changes = [ChangeRecord.from_row(r) for r in period_rows["changes"].rows]

    done_milestones = completed_milestones(milestones, period)
    done_work_items = completed_work_items(work_items, period)
    done_raid = closed_raid(raid, period)
    done_changes = closed_changes(changes, period)
    decisions = decision_lines(changes, period, meta, settings.decision_cap)
    blockers = find_blockers(raid, meta, now, settings)

    severity = classify_items(considered, blockers, now)
    today = start_of_utc_day(now)
    overdue = [i for i in considered if i.due_at is not None and i.due_at < today]
    upcoming = [i for i in due_soon if i.due_at is not None and i.due_at >= today]

    summary = NarrativeBuilder().build(
        NarrativeInputs(
            rag=severity.rag,
            period_from=period.start,
            period_to=period.end,
            window_days=days,
            overdue=overdue,
            due_soon=upcoming,
            blocker_titles=[b.title for b in blockers],
            critical_soon_count=severity.critical_soon_count,
            completed_milestones=[m.name or "Milestone" for m in done_milestones],
            work_items_done=len(done_work_items),
            changes_closed=len(done_changes),
            raid_closed=len(done_raid),
            decisions=[line.text for line in decisions],
        )
    )

    open_raid = [r for r in raid if not r.is_closed]
    cap = settings.report_list_cap
    report = DeliveryReport(
        period=period,
        summary=summary,
        severity=severity,
        project=meta,
        completed=completed_lines(
            done_milestones, done_work_items, done_changes, done_raid, settings
        ),
        next_focus=focus_lines(upcoming, settings.next_focus_cap),
        resources=resource_lines(upcoming, settings.resource_owner_cap),
        decisions=decisions or [ReportLine(NO_DECISIONS)],
        blockers=[b.line for b in blockers] or [ReportLine(NO_BLOCKERS)],
        lists={
            "milestones": [_milestone_row(m) for m in milestones[:cap]],
            "changes": [_change_row(c) for c in changes[:cap]],
            "raid": [_raid_row(r) for r in open_raid[:cap]],
        },
        metrics={
            "milestones_done": len(done_milestones),
            "work_items_done": len(done_work_items),
            "changes_closed": len(done_changes),
            "raid_closed": len(done_raid),
        },
        meta={
            "generated_at": iso_z(now),
            "window_days": days,
            "period_uk": {
                "from": format_uk_date(period.start_at),
                "to": format_uk_date(period.end_at),
            },
            "severity": severity.to_dict(),
            "due_counts": digest.counts,
            "degraded": [f.to_dict() for f in failures(due_rows) + failures(period_rows)],
            "dimensions": dims_task.result(),
            "previous": prev_task.result(),
            "milestone_map": {m.id: _milestone_row(m) for m in milestones},
        },
    )
    logger.info(
        "Delivery report built",
        extra={"project_id": pid, "rag": severity.rag.value, "window_days": days},
    )
    return report
