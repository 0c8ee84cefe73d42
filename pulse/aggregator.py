"""
Due-item aggregation for one project or a whole portfolio.

Project scope reads each domain for a single project. Portfolio scope reads
each domain once for every project (``project_id IN (...)``), partitions the
rows by project in memory and runs the same extractor per project, so a
project's items are identical in both scopes. Both scopes then merge, sort,
truncate and normalize links.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any

from pulse import config
from pulse.config import DigestSettings
from pulse.dates import TimeWindow, clamp_int, start_of_utc_day
from pulse.extractors import EXTRACTORS, Extractor, extract_changes
from pulse.links import normalize_link
from pulse.models import KIND_ORDER, DomainFailure, DueItem, ItemKind, ProjectMeta
from pulse.observability.metrics import digest_duration, timed
from pulse.owners import aload_portfolio_meta
from pulse.queries import DUE_QUERIES, DomainRows, load_domains
from pulse.store import RecordStore
from pulse.wording import plural

logger = logging.getLogger(__name__)

PROJECT_SCOPE = "project"
PORTFOLIO_SCOPE = "portfolio"

_PROJECT_LIMITS = {
    ItemKind.ARTIFACT: "project_artifact_limit",
    ItemKind.MILESTONE: "project_milestone_limit",
    ItemKind.WORK_ITEM: "project_work_item_limit",
    ItemKind.RAID: "project_raid_limit",
    ItemKind.CHANGE: "project_change_limit",
}
_BULK_LIMITS = {
    ItemKind.ARTIFACT: "bulk_artifact_limit",
    ItemKind.MILESTONE: "bulk_milestone_limit",
    ItemKind.WORK_ITEM: "bulk_work_item_limit",
    ItemKind.RAID: "bulk_raid_limit",
    ItemKind.CHANGE: "bulk_change_limit",
}

REMIND_MESSAGE = "Review the due list and notify owners for items due soon."
NO_REMINDER_MESSAGE = "No reminders needed."
NO_PROJECTS_SUMMARY = "No projects available for this user."
NO_PROJECTS_MESSAGE = "Create a project to start tracking due items."


def clamp_window_days(value: Any, default: int) -> int:
    return clamp_int(value, config.MIN_WINDOW_DAYS, config.MAX_WINDOW_DAYS, default)


@dataclass
class DueDigest:
    scope: str
    window_days: int
    items: list[DueItem]
    summary: str
    recommended_message: str
    degraded: list[DomainFailure] = field(default_factory=list)
    project: ProjectMeta | None = None
    project_count: int = 0

    @property
    def counts(self) -> dict[str, int]:
        return count_items(self.items)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "scope": self.scope,
            "summary": self.summary,
            "window_days": self.window_days,
            "counts": self.counts,
            "due_items": [item.to_dict() for item in self.items],
            "recommended_message": self.recommended_message,
            "degraded": [f.to_dict() for f in self.degraded],
        }
        if self.project is not None:
            out["project"] = self.project.to_dict()
        else:
            out["project_count"] = self.project_count
        return out


def count_items(items: list[DueItem]) -> dict[str, int]:
    counts = {"total": len(items)}
    for kind in KIND_ORDER:
        counts[kind.value] = 0
    for item in items:
        counts[item.item_kind.value] += 1
    return counts


def sort_key(item: DueItem) -> tuple:
    """Due date ascending with undated last, then project, kind and title."""
    due = item.due_at
    return (
        due is None,
        due.timestamp() if due is not None else 0.0,
        item.project_name.casefold(),
        item.item_kind.value,
        item.title.casefold(),
        item.title,
    )


def finalize(items: list[DueItem], cap: int) -> list[DueItem]:
    """Sort, truncate to *cap* and normalize every link."""
    ordered = sorted(items, key=sort_key)[:cap]
    return [item.with_link(normalize_link(item.link)) for item in ordered]


def partition_by_project(rows: list[Mapping[str, Any]]) -> dict[str, list[Mapping[str, Any]]]:
    grouped: dict[str, list[Mapping[str, Any]]] = defaultdict(list)
    for row in rows:
        pid = row.get("project_id")
        if pid:
            grouped[str(pid)].append(row)
    return grouped


def extract_due_items(
    rows_by_kind: Mapping[ItemKind, DomainRows],
    metas: Mapping[str, ProjectMeta],
    window: TimeWindow,
    kinds: tuple[ItemKind, ...] = KIND_ORDER,
    extractors: Mapping[ItemKind, Extractor] = EXTRACTORS,
) -> list[DueItem]:
    """Run each kind's extractor over its rows, one project partition at a time."""
    items: list[DueItem] = []
    for kind in kinds:
        domain = rows_by_kind.get(kind)
        if domain is None:
            continue
        extractor = extractors[kind]
        for project_id, rows in partition_by_project(domain.rows).items():
            meta = metas.get(project_id)
            if meta is None:
                continue
            items.extend(extractor(rows, window, meta))
    return items


def extract_overdue_items(
    rows_by_kind: Mapping[ItemKind, DomainRows],
    metas: Mapping[str, ProjectMeta],
    now: datetime | None = None,
    lookback_days: int | None = None,
) -> list[DueItem]:
    """Open items whose due date passed within the look-back period.

    Artifacts carry no closed state and are left out; completed milestones
    are dropped. Changes without a review-by date count only when last
    updated inside the look-back period itself.
    """
    days = lookback_days or config.get_settings().overdue_lookback_days
    window = TimeWindow.trailing(start_of_utc_day(now), days)
    kinds = (ItemKind.MILESTONE, ItemKind.WORK_ITEM, ItemKind.RAID, ItemKind.CHANGE)
    extractors = {**EXTRACTORS, ItemKind.CHANGE: partial(extract_changes, pending_days=0)}
    items = extract_due_items(rows_by_kind, metas, window, kinds, extractors)
    done = config.MILESTONE_DONE_STATUSES
    return [
        item
        for item in items
        if not (item.item_kind is ItemKind.MILESTONE and (item.status or "") in done)
    ]


async def load_due_rows(
    store: RecordStore,
    project_ids: list[str],
    scope: str,
    settings: DigestSettings | None = None,
) -> dict[ItemKind, DomainRows]:
    settings = settings or config.get_settings()
    limits = _BULK_LIMITS if scope == PORTFOLIO_SCOPE else _PROJECT_LIMITS
    return await load_domains(
        store, DUE_QUERIES, project_ids, lambda kind: getattr(settings, limits[kind])
    )


def failures(rows_by_kind: Mapping[Any, DomainRows]) -> list[DomainFailure]:
    return [d.failure for d in rows_by_kind.values() if d.failure is not None]


def _summary(count: int, window_days: int, project_count: int | None = None) -> str:
    if count == 0:
        return f"No due items found in the next {plural(window_days, 'day')}."
    text = f"Found {plural(count, 'due item')} in the next {plural(window_days, 'day')}"
    if project_count is not None:
        text += f" across {plural(project_count, 'project')}"
    return text + "."


def _recommended(items: list[DueItem]) -> str:
    return REMIND_MESSAGE if items else NO_REMINDER_MESSAGE


def digest_from_rows(
    rows_by_kind: Mapping[ItemKind, DomainRows],
    metas: Mapping[str, ProjectMeta],
    window: TimeWindow,
    scope: str,
    settings: DigestSettings | None = None,
) -> DueDigest:
    settings = settings or config.get_settings()
    cap = settings.portfolio_item_cap if scope == PORTFOLIO_SCOPE else settings.project_item_cap
    items = finalize(extract_due_items(rows_by_kind, metas, window), cap)
    if scope == PORTFOLIO_SCOPE:
        summary = _summary(len(items), window.days, project_count=len(metas))
        project = None
    else:
        summary = _summary(len(items), window.days)
        project = next(iter(metas.values()), None)
    return DueDigest(
        scope=scope,
        window_days=window.days,
        items=items,
        summary=summary,
        recommended_message=_recommended(items),
        degraded=failures(rows_by_kind),
        project=project,
        project_count=len(metas),
    )


@timed(digest_duration)
async def build_project_digest(
    store: RecordStore,
    meta: ProjectMeta,
    window_days: Any = None,
    now: datetime | None = None,
    settings: DigestSettings | None = None,
) -> DueDigest:
    """Due items for one project in the next *window_days* days."""
    days = clamp_window_days(window_days, config.DEFAULT_DIGEST_WINDOW_DAYS)
    window = TimeWindow.for_days(days, now)
    rows = await load_due_rows(store, [meta.canonical_id], PROJECT_SCOPE, settings)
    digest = digest_from_rows(rows, {meta.canonical_id: meta}, window, PROJECT_SCOPE, settings)
    logger.info(
        "Project digest built",
        extra={"project_id": meta.canonical_id, "items": len(digest.items), "window_days": days},
    )
    return digest


@timed(digest_duration)
async def build_portfolio_digest(
    store: RecordStore,
    projects: list[Mapping[str, Any]],
    window_days: Any = None,
    now: datetime | None = None,
    settings: DigestSettings | None = None,
) -> DueDigest:
    """Due items across every given project row (``id``, ``title``, ``project_code``)."""
    days = clamp_window_days(window_days, config.DEFAULT_DIGEST_WINDOW_DAYS)
    if not projects:
        return DueDigest(
            scope=PORTFOLIO_SCOPE,
            window_days=days,
            items=[],
            summary=NO_PROJECTS_SUMMARY,
            recommended_message=NO_PROJECTS_MESSAGE,
        )
    window = TimeWindow.for_days(days, now)
    project_ids = [str(p["id"]) for p in projects if p.get("id")]
    async with asyncio.TaskGroup() as tg:
        meta_task = tg.create_task(aload_portfolio_meta(store, projects))
        rows_task = tg.create_task(load_due_rows(store, project_ids, PORTFOLIO_SCOPE, settings))
    metas = meta_task.result()
    rows = rows_task.result()
    digest = digest_from_rows(rows, metas, window, PORTFOLIO_SCOPE, settings)
    logger.info(
        "Portfolio digest built",
        extra={"projects": len(metas), "items": len(digest.items), "window_days": days},
    )
    return digest
