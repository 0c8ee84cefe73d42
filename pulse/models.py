"""
Value types shared by the extractors, aggregator and report builder.

All of these are built per request and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from pulse.dates import iso_z


class ItemKind(StrEnum):
    """Which governance domain a due item came from."""

    ARTIFACT = "artifact"
    MILESTONE = "milestone"
    WORK_ITEM = "work_item"
    RAID = "raid"
    CHANGE = "change"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self][0]

    @property
    def plural_label(self) -> str:
        return _KIND_LABELS[self][1]


_KIND_LABELS = {
    ItemKind.ARTIFACT: ("artifact", "artifacts"),
    ItemKind.MILESTONE: ("milestone", "milestones"),
    ItemKind.WORK_ITEM: ("work item", "work items"),
    ItemKind.RAID: ("RAID item", "RAID items"),
    ItemKind.CHANGE: ("change request", "change requests"),
}

# Fixed order for counts and tie-breaks
KIND_ORDER = (
    ItemKind.MILESTONE,
    ItemKind.WORK_ITEM,
    ItemKind.RAID,
    ItemKind.ARTIFACT,
    ItemKind.CHANGE,
)


@dataclass(frozen=True)
class ProjectMeta:
    """Identity and ownership of one project, as attached to its due items."""

    canonical_id: str
    name: str
    project_code: str | None = None
    owner_user_id: str | None = None
    owner_name: str | None = None
    owner_email: str | None = None

    @property
    def human_code(self) -> str:
        """Organisation-assigned code when there is one, else the canonical id."""
        return self.project_code or self.canonical_id

    def item_attributes(self) -> dict[str, Any]:
        return {
            "project_id": self.canonical_id,
            "project_code": self.project_code,
            "project_name": self.name,
            "project_human_id": self.human_code,
            "project_manager_user_id": self.owner_user_id,
            "project_manager_name": self.owner_name,
            "project_manager_email": self.owner_email,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.canonical_id,
            "name": self.name,
            "project_code": self.project_code,
            "human_code": self.human_code,
            "owner": {
                "user_id": self.owner_user_id,
                "name": self.owner_name,
                "email": self.owner_email,
            },
        }


@dataclass(frozen=True)
class DueItem:
    """One governance record that needs attention inside a time window."""

    item_kind: ItemKind
    title: str
    due_at: datetime | None
    status: str | None = None
    owner_name: str | None = None
    owner_email: str | None = None
    link: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> str | None:
        return self.attributes.get("record_id")

    @property
    def project_name(self) -> str:
        return str(self.attributes.get("project_name") or "")

    def with_link(self, link: str | None) -> DueItem:
        return replace(self, link=link)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_kind": self.item_kind.value,
            "title": self.title,
            "due_at": iso_z(self.due_at),
            "status": self.status,
            "owner_name": self.owner_name,
            "owner_email": self.owner_email,
            "link": self.link,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class DomainFailure:
    """A domain whose query failed and was degraded to no items."""

    domain: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"domain": self.domain, "error": self.error}


@dataclass(frozen=True)
class ReportLine:
    """A single bullet in a report section."""

    text: str
    link: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"text": self.text}
        if self.link:
            out["link"] = self.link
        return out
