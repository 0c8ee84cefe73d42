"""
Portfolio dashboard statistics.

Headline counts across every visible project, returned alongside portfolio
digests. Each count is an independent read; a failing read reports 0 and is
logged rather than failing the digest.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from pulse import config
from pulse.config import DigestSettings
from pulse.dates import start_of_utc_day, utc_now
from pulse.errors import StoreError
from pulse.observability.metrics import domain_failures
from pulse.records import ChangeRecord, MilestoneRecord
from pulse.store import RecordStore

logger = logging.getLogger(__name__)

LESSONS_ARTIFACT_TYPE = "lessons_learned"

StatFn = Callable[[RecordStore, list[str], datetime, DigestSettings], int]


def _milestones_due(store: RecordStore, ids: list[str], now: datetime, settings: DigestSettings) -> int:
    start = start_of_utc_day(now)
    end = start + timedelta(days=settings.stats_milestone_days)
    rows = store.select(
        "schedule_milestones",
        ("project_id", "start_date", "end_date", "status"),
        where_in={"project_id": ids},
        limit=settings.bulk_milestone_limit,
    )
    records = map(MilestoneRecord.from_row, rows)
    return sum(
        1 for m in records if not m.is_done and m.due_at is not None and start <= m.due_at <= end
    )


def _status_count(table: str, statuses: frozenset[str]) -> StatFn:
    def count(store: RecordStore, ids: list[str], now: datetime, settings: DigestSettings) -> int:
        variants = sorted({s for status in statuses for s in (status, status.title(), status.upper())})
        return store.count(table, where_in={"project_id": ids, "status": variants})

    return count


def _changes_closed(store: RecordStore, ids: list[str], now: datetime, settings: DigestSettings) -> int:
    rows = store.select(
        "change_requests",
        ("project_id", "status", "delivery_status"),
        where_in={"project_id": ids},
        limit=settings.bulk_change_limit,
    )
    return sum(1 for c in map(ChangeRecord.from_row, rows) if c.is_closed)


def _lessons(store: RecordStore, ids: list[str], now: datetime, settings: DigestSettings) -> int:
    return store.count("artifacts", where={"type": LESSONS_ARTIFACT_TYPE}, where_in={"project_id": ids})


STATS: dict[str, StatFn] = {
    "milestones_due_30d": _milestones_due,
    "work_items_done": _status_count("wbs_items", config.WORK_ITEM_DONE_STATUSES),
    "milestones_done": _status_count("schedule_milestones", config.MILESTONE_DONE_STATUSES),
    "raid_closed": _status_count("raid_items", frozenset({"closed"})),
    "changes_closed": _changes_closed,
    "lessons_learned": _lessons,
}


async def _safe_stat(
    name: str, fn: StatFn, store: RecordStore, ids: list[str], now: datetime, settings: DigestSettings
) -> int:
    try:
        return await asyncio.to_thread(fn, store, ids, now, settings)
    except StoreError as exc:
        domain_failures.inc()
        logger.warning("Portfolio stat %s unavailable: %s", name, exc, extra={"stat": name})
        return 0


async def portfolio_stats(
    store: RecordStore,
    project_ids: list[str],
    now: datetime | None = None,
    settings: DigestSettings | None = None,
) -> dict[str, int]:
    settings = settings or config.get_settings()
    now = now or utc_now()
    if not project_ids:
        return {"projects": 0, **{name: 0 for name in STATS}}
    async with asyncio.TaskGroup() as tg:
        tasks = {
            name: tg.create_task(_safe_stat(name, fn, store, project_ids, now, settings))
            for name, fn in STATS.items()
        }
    return {"projects": len(project_ids), **{name: task.result() for name, task in tasks.items()}}
