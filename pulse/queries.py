"""
Domain queries over the record store.

Each DomainQuery describes one read (table, columns, filters, order) plus
which of its columns are optional across deployments. fetch_rows retries a
query exactly once, without the optional columns the table lacks, when the
store reports one missing. load_domains runs several reads concurrently,
one worker thread each, and records a failure per domain instead of
failing the whole batch.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pulse.errors import MissingColumnError, StoreError
from pulse.models import DomainFailure, ItemKind
from pulse.observability.metrics import domain_failures, schema_fallbacks
from pulse.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainQuery:
    name: str
    table: str
    columns: tuple[str, ...]
    optional: frozenset[str] = frozenset()
    where: tuple[tuple[str, Any], ...] = ()
    is_null: tuple[str, ...] = ()
    not_null: tuple[str, ...] = ()
    order_by: tuple[str, ...] = ()

    def without(self, dropped: frozenset[str]) -> "DomainQuery":
        """This query with the *dropped* columns removed from every clause."""
        keep = lambda col: col.lstrip("-") not in dropped  # noqa: E731
        return DomainQuery(
            name=self.name,
            table=self.table,
            optional=self.optional - dropped,
            columns=tuple(filter(keep, self.columns)),
            where=tuple((col, val) for col, val in self.where if keep(col)),
            is_null=tuple(filter(keep, self.is_null)),
            not_null=tuple(filter(keep, self.not_null)),
            order_by=tuple(filter(keep, self.order_by)),
        )

    def read(self, store: RecordStore, project_ids: list[str], limit: int | None) -> list[dict]:
        return store.select(
            self.table,
            self.columns,
            where=dict(self.where),
            where_in={"project_id": project_ids},
            is_null=self.is_null,
            not_null=self.not_null,
            order_by=self.order_by,
            limit=limit,
        )


@dataclass
class DomainRows:
    """Rows for one domain, or the failure that left it empty."""

    name: str
    rows: list[dict] = field(default_factory=list)
    failure: DomainFailure | None = None


# ---------------------------------------------------------------------------
# Due-item reads (one per extractor)
# ---------------------------------------------------------------------------

DUE_QUERIES: dict[ItemKind, DomainQuery] = {
    ItemKind.ARTIFACT: DomainQuery(
        name="artifacts",
        table="artifacts",
        columns=(
            "id",
            "project_id",
            "title",
            "artifact_key",
            "type",
            "owner_email",
            "due_date",
            "phase",
            "approval_status",
            "status",
            "content_json",
            "updated_at",
        ),
        optional=frozenset(
            {"type", "phase", "approval_status", "content_json", "is_current", "deleted_at"}
        ),
        where=(("is_current", 1),),
        is_null=("deleted_at",),
        order_by=("-updated_at",),
    ),
    ItemKind.MILESTONE: DomainQuery(
        name="milestones",
        table="schedule_milestones",
        columns=(
            "id",
            "project_id",
            "milestone_name",
            "start_date",
            "end_date",
            "status",
            "progress_pct",
            "critical_path_flag",
            "source_artifact_id",
        ),
        optional=frozenset({"progress_pct", "critical_path_flag", "source_artifact_id"}),
        order_by=("end_date",),
    ),
    ItemKind.WORK_ITEM: DomainQuery(
        name="work_items",
        table="wbs_items",
        columns=(
            "id",
            "project_id",
            "name",
            "status",
            "due_date",
            "owner",
            "source_artifact_id",
            "source_row_id",
            "parent_id",
        ),
        optional=frozenset({"source_artifact_id", "source_row_id", "parent_id"}),
        not_null=("due_date",),
        order_by=("due_date",),
    ),
    ItemKind.RAID: DomainQuery(
        name="raid",
        table="raid_items",
        columns=(
            "id",
            "project_id",
            "public_id",
            "item_no",
            "type",
            "title",
            "description",
            "status",
            "priority",
            "due_date",
            "owner_label",
            "ai_status",
            "source_artifact_id",
        ),
        optional=frozenset({"item_no", "priority", "ai_status", "source_artifact_id"}),
        not_null=("due_date",),
        order_by=("due_date",),
    ),
    ItemKind.CHANGE: DomainQuery(
        name="changes",
        table="change_requests",
        columns=(
            "id",
            "project_id",
            "seq",
            "title",
            "status",
            "delivery_status",
            "decision_status",
            "review_by",
            "artifact_id",
            "updated_at",
        ),
        optional=frozenset({"seq", "decision_status", "review_by", "artifact_id"}),
        order_by=("-updated_at",),
    ),
}

# ---------------------------------------------------------------------------
# Period reads for the delivery report
# ---------------------------------------------------------------------------

REPORT_MILESTONES = DomainQuery(
    name="milestones",
    table="schedule_milestones",
    columns=DUE_QUERIES[ItemKind.MILESTONE].columns,
    optional=DUE_QUERIES[ItemKind.MILESTONE].optional,
    order_by=("end_date",),
)

REPORT_WORK_ITEMS = DomainQuery(
    name="work_items",
    table="wbs_items",
    columns=("id", "project_id", "name", "status", "due_date", "owner", "updated_at"),
    optional=frozenset({"updated_at"}),
    order_by=("-updated_at",),
)

REPORT_RAID = DomainQuery(
    name="raid",
    table="raid_items",
    columns=(*DUE_QUERIES[ItemKind.RAID].columns, "updated_at"),
    optional=DUE_QUERIES[ItemKind.RAID].optional | {"updated_at"},
    order_by=("-updated_at",),
)

REPORT_CHANGES = DomainQuery(
    name="changes",
    table="change_requests",
    columns=DUE_QUERIES[ItemKind.CHANGE].columns,
    optional=DUE_QUERIES[ItemKind.CHANGE].optional,
    order_by=("-updated_at",),
)

REPORT_ROW_LIMIT = 2000


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def fetch_rows(
    store: RecordStore, query: DomainQuery, project_ids: list[str], limit: int | None
) -> list[dict]:
    """Run *query*, retrying once on schema drift.

    The retry drops only the optional columns the table lacks; optional
    columns that exist are still read.
    """
    try:
        return query.read(store, project_ids, limit)
    except MissingColumnError as exc:
        if exc.column not in query.optional:
            raise
        available = store.columns(query.table)
        missing = frozenset(c for c in query.optional if c not in available) | {exc.column}
        schema_fallbacks.inc()
        logger.info(
            "Retrying %s without missing columns (%s)",
            query.name,
            ", ".join(sorted(missing)),
            extra={"domain": query.name},
        )
        return query.without(missing).read(store, project_ids, limit)


async def load_rows(
    store: RecordStore, query: DomainQuery, project_ids: list[str], limit: int | None
) -> DomainRows:
    """Fetch one domain in a worker thread; a store failure leaves it empty."""
    try:
        rows = await asyncio.to_thread(fetch_rows, store, query, project_ids, limit)
    except StoreError as exc:
        domain_failures.inc()
        logger.warning(
            "Domain query %s failed: %s", query.name, exc, extra={"domain": query.name}
        )
        return DomainRows(query.name, [], DomainFailure(query.name, str(exc)))
    return DomainRows(query.name, rows)


async def load_domains(
    store: RecordStore,
    queries: Mapping[Any, DomainQuery],
    project_ids: list[str],
    limit_for: Callable[[Any], int | None],
) -> dict[Any, DomainRows]:
    """Fetch every query concurrently and join before returning."""
    async with asyncio.TaskGroup() as tg:
        tasks = {
            key: tg.create_task(load_rows(store, query, project_ids, limit_for(key)))
            for key, query in queries.items()
        }
    return {key: task.result() for key, task in tasks.items()}
