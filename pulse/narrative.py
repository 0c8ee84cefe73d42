"""
Narrative Synthesizer

Writes the executive summary of a delivery report: a one-line headline and
a short multi-paragraph narrative. Template-driven and deterministic; the
same inputs always give the same text, and every count phrase agrees in
number ("1 item", "2 items").
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from pulse.models import KIND_ORDER, DueItem
from pulse.severity import Rag
from pulse.wording import join_phrases, named_list, plural, verb

logger = logging.getLogger(__name__)

_HEALTH_PHRASES = {
    Rag.GREEN: "Green: delivery is on track",
    Rag.AMBER: "Amber: delivery is at risk and needs attention",
    Rag.RED: "Red: delivery is off track",
}


@dataclass
class NarrativeInputs:
    rag: Rag
    period_from: date
    period_to: date
    window_days: int
    overdue: list[DueItem] = field(default_factory=list)
    due_soon: list[DueItem] = field(default_factory=list)
    blocker_titles: list[str] = field(default_factory=list)
    critical_soon_count: int = 0
    completed_milestones: list[str] = field(default_factory=list)
    work_items_done: int = 0
    changes_closed: int = 0
    raid_closed: int = 0
    decisions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExecutiveSummary:
    rag: Rag
    headline: str
    narrative: str

    def to_dict(self) -> dict:
        return {"rag": self.rag.value, "headline": self.headline, "narrative": self.narrative}


class NarrativeBuilder:
    """Builds headlines and narratives from report inputs."""

    def build(self, inputs: NarrativeInputs) -> ExecutiveSummary:
        return ExecutiveSummary(
            rag=inputs.rag,
            headline=self.build_headline(inputs),
            narrative=self.build_narrative(inputs),
        )

    def build_headline(self, inputs: NarrativeInputs) -> str:
        if inputs.rag is Rag.RED:
            n = len(inputs.overdue)
            return (
                f"{plural(n, 'overdue item')} {verb(n, 'requires', 'require')} "
                "immediate action to protect delivery."
            )

        if inputs.rag is Rag.AMBER:
            b = len(inputs.blocker_titles)
            c = inputs.critical_soon_count
            if b and c:
                return (
                    f"{plural(b, 'open blocker')} and {plural(c, 'critical-path milestone')} "
                    "due soon need attention."
                )
            if b:
                return f"{plural(b, 'open blocker')} {verb(b, 'needs', 'need')} resolution to keep delivery on track."
            if c:
                return (
                    f"{plural(c, 'critical-path milestone')} {verb(c, 'is', 'are')} due soon; "
                    "delivery needs close attention."
                )
            return "Delivery needs attention."

        m = len(inputs.completed_milestones)
        w = inputs.work_items_done
        if m and w:
            return f"Delivery on track: {plural(m, 'milestone')} and {plural(w, 'work item')} completed this period."
        if m:
            return f"Delivery on track: {plural(m, 'milestone')} completed this period."
        if w:
            return f"Delivery on track: {plural(w, 'work item')} completed this period."
        return "Delivery on track with no overdue items or open blockers."

    def build_narrative(self, inputs: NarrativeInputs) -> str:
        """
        Paragraphs, in order:
        1. period and overall health
        2. achievements
        3. key decisions (only when there are any)
        4. attention and escalation (only when red with overdue items, or blockers)
        5. forward look
        """
        paragraphs = [
            self._period_paragraph(inputs),
            self._achievements_paragraph(inputs),
            self._decisions_paragraph(inputs),
            self._attention_paragraph(inputs),
            self._outlook_paragraph(inputs),
        ]
        return "\n\n".join(p for p in paragraphs if p)

    # ------------------------------------------------------------------

    def _period_paragraph(self, inputs: NarrativeInputs) -> str:
        start = inputs.period_from.strftime("%d/%m/%Y")
        end = inputs.period_to.strftime("%d/%m/%Y")
        return (
            f"This report covers {start} to {end}. "
            f"Overall delivery health is {_HEALTH_PHRASES[inputs.rag]}."
        )

    def _achievements_paragraph(self, inputs: NarrativeInputs) -> str:
        others = []
        if inputs.work_items_done:
            others.append(f"{plural(inputs.work_items_done, 'work item')} completed")
        if inputs.changes_closed:
            others.append(f"{plural(inputs.changes_closed, 'change request')} closed")
        if inputs.raid_closed:
            others.append(f"{plural(inputs.raid_closed, 'RAID item')} closed")

        milestones = inputs.completed_milestones
        if milestones:
            text = f"Milestones completed this period: {named_list(milestones, 3)}."
            if others:
                text += f" Alongside this, {join_phrases(others)}."
            return text
        if others:
            return f"Progress this period: {join_phrases(others)}."
        return "No milestones, work items, change requests or RAID items were completed this period."

    def _decisions_paragraph(self, inputs: NarrativeInputs) -> str:
        if not inputs.decisions:
            return ""
        shown = "; ".join(inputs.decisions[:3])
        extra = len(inputs.decisions) - 3
        suffix = f" (+{extra} more)" if extra > 0 else ""
        return f"Key decisions this period: {shown}{suffix}."

    def _attention_paragraph(self, inputs: NarrativeInputs) -> str:
        sentences = []
        if inputs.rag is Rag.RED and inputs.overdue:
            n = len(inputs.overdue)
            titles = [item.title for item in inputs.overdue]
            sentences.append(
                f"Attention required: {plural(n, 'overdue item')} ({named_list(titles, 3)}). "
                "Recommend escalating to the project sponsor within 48 hours "
                "and agreeing recovery dates."
            )
        if inputs.blocker_titles:
            b = len(inputs.blocker_titles)
            sentences.append(
                f"{plural(b, 'open blocker')} {verb(b, 'needs', 'need')} resolution: "
                f"{named_list(inputs.blocker_titles, 2)}."
            )
        return " ".join(sentences)

    def _outlook_paragraph(self, inputs: NarrativeInputs) -> str:
        days = plural(inputs.window_days, "day")
        n = len(inputs.due_soon)
        if not n:
            return f"Looking ahead, no items are due in the next {days}."

        by_kind = Counter(item.item_kind for item in inputs.due_soon)
        ranked = sorted(by_kind.items(), key=lambda kv: (-kv[1], KIND_ORDER.index(kv[0])))
        phrases = [plural(count, kind.label, kind.plural_label) for kind, count in ranked[:3]]
        return (
            f"Looking ahead, {plural(n, 'item')} {verb(n, 'is', 'are')} due in the next {days}, "
            f"including {join_phrases(phrases)}."
        )
