"""
Per-domain due extractors.

Each extractor turns one domain's raw rows for a single project into due
items inside a time window. They are pure: no I/O, no clock reads, and the
same rows, window and project meta always give the same items. The
aggregator runs them per project in both project and portfolio scope.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pulse import links
from pulse.dates import TimeWindow
from pulse.models import DueItem, ItemKind, ProjectMeta
from pulse.records import (
    ArtifactRecord,
    ChangeRecord,
    MilestoneRecord,
    RaidRecord,
    WorkItemRecord,
)

Row = Mapping[str, Any]
Extractor = Callable[[Iterable[Row], TimeWindow, ProjectMeta], list[DueItem]]


def extract_artifacts(rows: Iterable[Row], window: TimeWindow, meta: ProjectMeta) -> list[DueItem]:
    """Artifacts with a due date in the window. No status is excluded."""
    items = []
    for record in map(ArtifactRecord.from_row, rows):
        due_at = record.due_at
        if not window.contains(due_at):
            continue
        items.append(
            DueItem(
                item_kind=ItemKind.ARTIFACT,
                title=record.title or record.artifact_key or "Artifact",
                due_at=due_at,
                status=record.approval_status or record.status,
                owner_email=record.owner_email,
                link=links.artifact_link(meta.human_code, record.id),
                attributes={
                    **meta.item_attributes(),
                    "record_id": record.id,
                    "artifact_id": record.id,
                    "artifact_key": record.artifact_key,
                    "phase": record.phase,
                },
            )
        )
    return items


def extract_milestones(rows: Iterable[Row], window: TimeWindow, meta: ProjectMeta) -> list[DueItem]:
    """Milestones ending (or, lacking an end, starting) in the window."""
    items = []
    for record in map(MilestoneRecord.from_row, rows):
        due_at = record.due_at
        if not window.contains(due_at):
            continue
        if record.source_artifact_id:
            link = links.artifact_link(meta.human_code, record.source_artifact_id)
        else:
            link = links.schedule_link(meta.human_code, record.id)
        items.append(
            DueItem(
                item_kind=ItemKind.MILESTONE,
                title=record.name or "Milestone",
                due_at=due_at,
                status=record.status or None,
                owner_name=meta.owner_name,
                owner_email=meta.owner_email,
                link=link,
                attributes={
                    **meta.item_attributes(),
                    "record_id": record.id,
                    "milestone_id": record.id,
                    "critical": record.critical,
                    "progress": record.progress_pct,
                    "source_artifact_id": record.source_artifact_id,
                },
            )
        )
    return items


def extract_work_items(rows: Iterable[Row], window: TimeWindow, meta: ProjectMeta) -> list[DueItem]:
    """Open work-breakdown items due in the window."""
    items = []
    for record in map(WorkItemRecord.from_row, rows):
        if record.is_done:
            continue
        due_at = record.due_at
        if not window.contains(due_at):
            continue
        if record.source_artifact_id:
            link = links.artifact_link(meta.human_code, record.source_artifact_id)
        else:
            link = links.wbs_link(meta.human_code, record.focus_id)
        items.append(
            DueItem(
                item_kind=ItemKind.WORK_ITEM,
                title=record.name or "WBS item",
                due_at=due_at,
                status=record.status or None,
                owner_name=record.owner,
                link=link,
                attributes={
                    **meta.item_attributes(),
                    "record_id": record.id,
                    "wbs_item_id": record.id,
                    "source_row_id": record.source_row_id,
                    "parent_id": record.parent_id,
                    "source_artifact_id": record.source_artifact_id,
                },
            )
        )
    return items


def extract_raid(rows: Iterable[Row], window: TimeWindow, meta: ProjectMeta) -> list[DueItem]:
    """Open RAID entries due in the window."""
    items = []
    for record in map(RaidRecord.from_row, rows):
        if record.is_closed:
            continue
        due_at = record.due_at
        if not window.contains(due_at):
            continue
        items.append(
            DueItem(
                item_kind=ItemKind.RAID,
                title=record.display_title,
                due_at=due_at,
                status=record.status or None,
                owner_name=record.owner_label,
                link=links.raid_link(meta.human_code, record.public_id),
                attributes={
                    **meta.item_attributes(),
                    "record_id": record.id,
                    "raid_id": record.id,
                    "public_id": record.public_id,
                    "item_no": record.item_no,
                    "raid_type": record.raid_type or None,
                    "priority": record.priority or None,
                    "ai_status": record.ai_status,
                    "source_artifact_id": record.source_artifact_id,
                },
            )
        )
    return items


def extract_changes(
    rows: Iterable[Row],
    window: TimeWindow,
    meta: ProjectMeta,
    pending_days: int | None = None,
) -> list[DueItem]:
    """Change requests awaiting a decision.

    A change is due because it is in review, not because of a calendar
    date: the review-by date places it in the window when set; otherwise
    its last update stands in, and a change updated up to *pending_days*
    before the window start (default: the window's length) is still pending.
    """
    items = []
    if pending_days is None:
        pending_days = window.days
    pending_window = window.extended_back(pending_days)
    for record in map(ChangeRecord.from_row, rows):
        if not record.in_review:
            continue
        due_at = record.review_due_at
        if due_at is not None:
            due_source = "review_by"
            if not window.contains(due_at):
                continue
        else:
            due_at = record.updated
            due_source = "updated_at"
            if not pending_window.contains(due_at):
                continue
        items.append(
            DueItem(
                item_kind=ItemKind.CHANGE,
                title=record.title or "Change request (review)",
                due_at=due_at,
                status=record.decision_status or record.delivery_status or record.status or "review",
                owner_name=meta.owner_name,
                owner_email=meta.owner_email,
                link=links.change_link(meta.human_code, record.id),
                attributes={
                    **meta.item_attributes(),
                    "record_id": record.id,
                    "change_id": record.id,
                    "seq": record.seq,
                    "review_by": record.review_by,
                    "due_source": due_source,
                    "delivery_status": record.delivery_status or None,
                    "decision_status": record.decision_status or None,
                    "source_artifact_id": record.artifact_id,
                },
            )
        )
    return items


EXTRACTORS: dict[ItemKind, Extractor] = {
    ItemKind.ARTIFACT: extract_artifacts,
    ItemKind.MILESTONE: extract_milestones,
    ItemKind.WORK_ITEM: extract_work_items,
    ItemKind.RAID: extract_raid,
    ItemKind.CHANGE: extract_changes,
}
