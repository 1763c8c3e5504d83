"""Progress rules and course content sequencing.

Pure functions with no database access. The progress service feeds them
counts and rows; the training router uses the sequencing helpers to tell
a learner which item of a course they may open next.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Literal

ProgressStatus = Literal["not_started", "in_progress", "completed"]
ItemKind = Literal["learning_block", "assessment"]

NOT_STARTED: ProgressStatus = "not_started"
IN_PROGRESS: ProgressStatus = "in_progress"
COMPLETED: ProgressStatus = "completed"


def completion_percentage(completed: int, total: int) -> float:
    """Share of completed children, 0..100, rounded to two decimals."""
    if total <= 0:
        return 0.0
    return round(completed / total * 100, 2)


def status_for(percentage: float) -> ProgressStatus:
    if percentage >= 100:
        return COMPLETED
    if percentage > 0:
        return IN_PROGRESS
    return NOT_STARTED


@dataclass(frozen=True, slots=True)
class ContentItem:
    """One entry in a course's linear content sequence.

    unit_order is the position of the unit within the course; course-level
    assessments use a unit_order past every unit so they sort last.
    item_order is the block order within its unit (assessments of a unit
    follow its blocks).
    """

    kind: ItemKind
    id: int
    title: str
    unit_id: int | None
    unit_order: int
    item_order: int
    status: ProgressStatus = NOT_STARTED
    accessible: bool = False

    @property
    def completed(self) -> bool:
        return self.status == COMPLETED

    @property
    def sort_key(self) -> tuple[int, int, int, int]:
        kind_rank = 0 if self.kind == "learning_block" else 1
        return (self.unit_order, kind_rank, self.item_order, self.id)


def linearize(items: Iterable[ContentItem]) -> list[ContentItem]:
    """Sort items by unit order, then blocks before assessments, then item order."""
    return sorted(items, key=lambda item: item.sort_key)


def is_accessible(sequence: Sequence[ContentItem], index: int) -> bool:
    """Index 0 is always open; any later item opens once its predecessor is done.

    "Done" means a completed learning block or an assessment with a passing
    attempt, which is what a COMPLETED status carries.
    """
    if index < 0 or index >= len(sequence):
        raise IndexError(index)
    if index == 0:
        return True
    return sequence[index - 1].completed


def with_accessibility(items: Iterable[ContentItem]) -> list[ContentItem]:
    """Linearize and stamp each item with its accessibility flag."""
    sequence = linearize(items)
    return [
        replace(item, accessible=is_accessible(sequence, i))
        for i, item in enumerate(sequence)
    ]
