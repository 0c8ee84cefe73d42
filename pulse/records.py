"""
Typed records for the five governance domains.

Store rows arrive as loose dicts whose columns vary between deployments.
Each record's from_row normalizes a row once (trimmed strings, lower-cased
status vocabularies, parsed JSON, tolerant of absent keys) so extractors
and the report builder work with one shape per domain.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pulse import config
from pulse.dates import parse_due

logger = logging.getLogger(__name__)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lower(value: Any) -> str:
    return (_text(value) or "").lower()


def json_object(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable content_json")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _float(value: Any) -> float | None:
    try:
        return float(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


def _int(value: Any) -> int | None:
    try:
        return int(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    return bool(value)


@dataclass(frozen=True)
class ArtifactRecord:
    id: str
    project_id: str | None
    title: str | None = None
    artifact_key: str | None = None
    artifact_type: str | None = None
    owner_email: str | None = None
    due_date: Any = None
    phase: str | None = None
    approval_status: str | None = None
    status: str | None = None
    content: dict[str, Any] = field(default_factory=dict)
    updated_at: Any = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ArtifactRecord:
        return cls(
            id=str(row.get("id") or ""),
            project_id=_text(row.get("project_id")),
            title=_text(row.get("title")),
            artifact_key=_text(row.get("artifact_key")),
            artifact_type=_lower(row.get("type")) or None,
            owner_email=_text(row.get("owner_email")),
            due_date=row.get("due_date"),
            phase=_text(row.get("phase")),
            approval_status=_text(row.get("approval_status")),
            status=_text(row.get("status")),
            content=json_object(row.get("content_json")),
            updated_at=row.get("updated_at"),
        )

    @property
    def due_at(self) -> datetime | None:
        """Column first, then the document body, then the document meta."""
        meta = self.content.get("meta")
        meta = meta if isinstance(meta, dict) else {}
        for candidate in (
            self.due_date,
            self.content.get("due_date"),
            self.content.get("dueDate"),
            meta.get("due_date"),
            meta.get("dueDate"),
        ):
            parsed = parse_due(candidate)
            if parsed is not None:
                return parsed
        return None


@dataclass(frozen=True)
class MilestoneRecord:
    id: str
    project_id: str | None
    name: str | None = None
    start_date: Any = None
    end_date: Any = None
    status: str = ""
    progress_pct: float | None = None
    critical: bool = False
    source_artifact_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> MilestoneRecord:
        return cls(
            id=str(row.get("id") or ""),
            project_id=_text(row.get("project_id")),
            name=_text(row.get("milestone_name")),
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
            status=_lower(row.get("status")),
            progress_pct=_float(row.get("progress_pct")),
            critical=_flag(row.get("critical_path_flag")),
            source_artifact_id=_text(row.get("source_artifact_id")),
        )

    @property
    def due_at(self) -> datetime | None:
        return parse_due(self.end_date) or parse_due(self.start_date)

    @property
    def is_done(self) -> bool:
        return self.status in config.MILESTONE_DONE_STATUSES


@dataclass(frozen=True)
class WorkItemRecord:
    id: str
    project_id: str | None
    name: str | None = None
    description: str | None = None
    status: str = ""
    due_date: Any = None
    owner: str | None = None
    source_artifact_id: str | None = None
    source_row_id: str | None = None
    parent_id: str | None = None
    updated_at: Any = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> WorkItemRecord:
        return cls(
            id=str(row.get("id") or ""),
            project_id=_text(row.get("project_id")),
            name=_text(row.get("name")),
            description=_text(row.get("description")),
            status=_lower(row.get("status")),
            due_date=row.get("due_date"),
            owner=_text(row.get("owner")),
            source_artifact_id=_text(row.get("source_artifact_id")),
            source_row_id=_text(row.get("source_row_id")),
            parent_id=_text(row.get("parent_id")),
            updated_at=row.get("updated_at"),
        )

    @property
    def due_at(self) -> datetime | None:
        return parse_due(self.due_date)

    @property
    def is_done(self) -> bool:
        return self.status in config.WORK_ITEM_DONE_STATUSES

    @property
    def focus_id(self) -> str:
        return self.source_row_id or self.id


@dataclass(frozen=True)
class RaidRecord:
    id: str
    project_id: str | None
    public_id: str | None = None
    item_no: int | None = None
    raid_type: str = ""
    title: str | None = None
    description: str | None = None
    status: str = ""
    priority: str = ""
    due_date: Any = None
    owner_label: str | None = None
    ai_status: str | None = None
    source_artifact_id: str | None = None
    updated_at: Any = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> RaidRecord:
        return cls(
            id=str(row.get("id") or ""),
            project_id=_text(row.get("project_id")),
            public_id=_text(row.get("public_id")),
            item_no=_int(row.get("item_no")),
            raid_type=_lower(row.get("type")),
            title=_text(row.get("title")),
            description=_text(row.get("description")),
            status=_lower(row.get("status")),
            priority=_lower(row.get("priority")),
            due_date=row.get("due_date"),
            owner_label=_text(row.get("owner_label")),
            ai_status=_text(row.get("ai_status")),
            source_artifact_id=_text(row.get("source_artifact_id")),
            updated_at=row.get("updated_at"),
        )

    @property
    def due_at(self) -> datetime | None:
        return parse_due(self.due_date)

    @property
    def is_closed(self) -> bool:
        return self.status in config.RAID_CLOSED_STATUSES

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        if self.description:
            return self.description[:100]
        return f"{self.raid_type or 'RAID'} item"


@dataclass(frozen=True)
class ChangeRecord:
    id: str
    project_id: str | None
    seq: int | None = None
    title: str | None = None
    status: str = ""
    delivery_status: str = ""
    decision_status: str = ""
    review_by: Any = None
    updated_at: Any = None
    artifact_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ChangeRecord:
        return cls(
            id=str(row.get("id") or ""),
            project_id=_text(row.get("project_id")),
            seq=_int(row.get("seq")),
            title=_text(row.get("title")),
            status=_lower(row.get("status")),
            delivery_status=_lower(row.get("delivery_status")),
            decision_status=_lower(row.get("decision_status")),
            review_by=row.get("review_by"),
            updated_at=row.get("updated_at"),
            artifact_id=_text(row.get("artifact_id")),
        )

    @property
    def in_review(self) -> bool:
        return self.delivery_status == "review" or self.decision_status == "submitted"

    @property
    def is_closed(self) -> bool:
        closed = config.CHANGE_CLOSED_STATUSES
        return self.status in closed or self.delivery_status in closed

    @property
    def review_due_at(self) -> datetime | None:
        return parse_due(self.review_by)

    @property
    def updated(self) -> datetime | None:
        return parse_due(self.updated_at)

    @property
    def reference(self) -> str:
        return f"#{self.seq}" if self.seq is not None else ""
