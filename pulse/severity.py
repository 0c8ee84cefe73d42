"""
RAG classification of delivery health.

Red when anything is overdue, amber when nothing is overdue but there are
critical-path milestones due soon or open blockers, green otherwise.
"""

from collections.abc import Iterable, Sized
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pulse.dates import start_of_utc_day
from pulse.models import DueItem, ItemKind


class Rag(StrEnum):
    RED = "red"
    AMBER = "amber"
    GREEN = "green"


@dataclass(frozen=True)
class SeverityClassification:
    rag: Rag
    overdue_count: int
    critical_soon_count: int
    blocker_count: int

    def to_dict(self) -> dict:
        return {
            "rag": self.rag.value,
            "overdue_count": self.overdue_count,
            "critical_soon_count": self.critical_soon_count,
            "blocker_count": self.blocker_count,
        }


def classify(overdue_count: int, critical_soon_count: int, blocker_count: int) -> Rag:
    if overdue_count > 0:
        return Rag.RED
    if critical_soon_count > 0 or blocker_count > 0:
        return Rag.AMBER
    return Rag.GREEN


def overdue(items: Iterable[DueItem], now: datetime | None = None) -> list[DueItem]:
    """Items due before the start of today (UTC)."""
    today = start_of_utc_day(now)
    return [item for item in items if item.due_at is not None and item.due_at < today]


def critical_soon(items: Iterable[DueItem]) -> list[DueItem]:
    """Milestones on the critical path."""
    return [
        item
        for item in items
        if item.item_kind is ItemKind.MILESTONE and bool(item.attributes.get("critical"))
    ]


def classify_items(
    items: Iterable[DueItem], blockers: Sized, now: datetime | None = None
) -> SeverityClassification:
    items = list(items)
    overdue_count = len(overdue(items, now))
    critical_count = len(critical_soon(items))
    blocker_count = len(blockers)
    return SeverityClassification(
        rag=classify(overdue_count, critical_count, blocker_count),
        overdue_count=overdue_count,
        critical_soon_count=critical_count,
        blocker_count=blocker_count,
    )
