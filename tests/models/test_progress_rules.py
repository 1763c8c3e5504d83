from __future__ import annotations

import pytest

from app.models.progress import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ContentItem,
    completion_percentage,
    is_accessible,
    linearize,
    status_for,
    with_accessibility,
)


@pytest.mark.parametrize(
    "completed,total,expected",
    [(0, 4, 0.0), (1, 3, 33.33), (2, 3, 66.67), (3, 3, 100.0), (0, 0, 0.0)],
)
def test_completion_percentage(completed: int, total: int, expected: float) -> None:
    assert completion_percentage(completed, total) == expected


@pytest.mark.parametrize(
    "pct,status",
    [(0, NOT_STARTED), (0.01, IN_PROGRESS), (99.99, IN_PROGRESS), (100, COMPLETED)],
)
def test_status_for(pct: float, status: str) -> None:
    assert status_for(pct) == status


def _block(id: int, unit_order: int, order: int, status: str = NOT_STARTED) -> ContentItem:
    return ContentItem(
        kind="learning_block",
        id=id,
        title=f"Block {id}",
        unit_id=unit_order,
        unit_order=unit_order,
        item_order=order,
        status=status,  # type: ignore[arg-type]
    )


def _assessment(id: int, unit_order: int, status: str = NOT_STARTED) -> ContentItem:
    return ContentItem(
        kind="assessment",
        id=id,
        title=f"Quiz {id}",
        unit_id=None,
        unit_order=unit_order,
        item_order=0,
        status=status,  # type: ignore[arg-type]
    )


def test_linearize_orders_units_then_blocks_before_assessments() -> None:
    items = [_assessment(9, 1), _block(3, 2, 1), _block(2, 1, 2), _block(1, 1, 1)]
    assert [(i.kind, i.id) for i in linearize(items)] == [
        ("learning_block", 1),
        ("learning_block", 2),
        ("assessment", 9),
        ("learning_block", 3),
    ]


def test_first_item_is_always_accessible() -> None:
    assert is_accessible([_block(1, 1, 1)], 0) is True


def test_item_opens_after_predecessor_completes() -> None:
    seq = [_block(1, 1, 1, COMPLETED), _block(2, 1, 2), _block(3, 1, 3)]
    assert is_accessible(seq, 1) is True
    assert is_accessible(seq, 2) is False


def test_failed_assessment_keeps_next_item_locked() -> None:
    seq = with_accessibility(
        [_block(1, 1, 1, COMPLETED), _assessment(5, 1, IN_PROGRESS), _block(2, 2, 1)]
    )
    assert [i.accessible for i in seq] == [True, True, False]


def test_is_accessible_rejects_out_of_range() -> None:
    with pytest.raises(IndexError):
        is_accessible([], 0)
