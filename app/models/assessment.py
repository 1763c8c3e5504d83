from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class QuestionKey:
    id: int
    correct_answer: str


@dataclass(frozen=True, slots=True)
class AttemptScore:
    correct: int
    total: int
    score: int  # 0..100
    passed: bool


def _normalize(answer: Any) -> str:
    return str(answer).strip().casefold()


def score_attempt(
    questions: Sequence[QuestionKey],
    answers: Mapping[str, Any] | None,
    passing_score: int | None,
) -> AttemptScore:
    """Grade submitted answers against the answer key.

    answers maps question id (as a string, the way JSON object keys arrive)
    to the submitted answer. Unanswered questions count as wrong. An
    assessment without questions scores 0; without a passing score every
    attempt passes.
    """
    answers = answers or {}
    correct = sum(
        1
        for q in questions
        if str(q.id) in answers
        and answers[str(q.id)] is not None
        and _normalize(answers[str(q.id)]) == _normalize(q.correct_answer)
    )
    total = len(questions)
    # round half up, in integers to avoid float artifacts
    score = (200 * correct + total) // (2 * total) if total else 0
    passed = True if passing_score is None else score >= passing_score
    return AttemptScore(correct=correct, total=total, score=score, passed=passed)
