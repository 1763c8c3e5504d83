from __future__ import annotations

import pytest

from app.models.assessment import QuestionKey, score_attempt

QUESTIONS = [
    QuestionKey(id=1, correct_answer="Paris"),
    QuestionKey(id=2, correct_answer="4"),
    QuestionKey(id=3, correct_answer="blue"),
]


def test_all_correct_scores_100() -> None:
    result = score_attempt(QUESTIONS, {"1": "Paris", "2": "4", "3": "blue"}, 70)
    assert (result.correct, result.total, result.score, result.passed) == (3, 3, 100, True)


def test_answers_compare_trimmed_and_case_insensitive() -> None:
    result = score_attempt(QUESTIONS, {"1": "  paris ", "2": 4, "3": "BLUE"}, 70)
    assert result.correct == 3


def test_missing_and_null_answers_count_as_wrong() -> None:
    result = score_attempt(QUESTIONS, {"1": "Paris", "2": None}, 50)
    assert result.correct == 1
    assert result.score == 33
    assert result.passed is False


@pytest.mark.parametrize(
    "correct,total,expected",
    [(2, 3, 67), (1, 8, 13), (3, 8, 38), (0, 5, 0), (1, 2, 50)],
)
def test_score_rounds_half_up(correct: int, total: int, expected: int) -> None:
    questions = [QuestionKey(id=i, correct_answer="a") for i in range(1, total + 1)]
    answers = {str(i): "a" for i in range(1, correct + 1)}
    assert score_attempt(questions, answers, None).score == expected


def test_pass_is_inclusive_of_threshold() -> None:
    result = score_attempt(QUESTIONS, {"1": "Paris", "2": "4"}, 67)
    assert result.score == 67
    assert result.passed is True


def test_no_passing_score_always_passes() -> None:
    result = score_attempt(QUESTIONS, {}, None)
    assert result.score == 0
    assert result.passed is True


def test_assessment_without_questions_scores_zero() -> None:
    result = score_attempt([], {"1": "x"}, 50)
    assert (result.correct, result.total, result.score, result.passed) == (0, 0, 0, False)


def test_none_answers_mapping_is_empty() -> None:
    assert score_attempt(QUESTIONS, None, 10).correct == 0
