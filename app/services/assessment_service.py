"""Assessments, their questions, and scored attempts.

An assessment hangs off any combination of training area, module, course
and unit (at least one). Attempts are graded here from the stored answer
key; clients never send a score.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.core.metrics import ASSESSMENT_ATTEMPTS
from app.core.timeutil import utcnow
from app.db.engine import Base
from app.db.tables import (
    AssessmentAttemptRow,
    AssessmentRow,
    CourseRow,
    ModuleRow,
    QuestionRow,
    TrainingAreaRow,
    UnitRow,
    UserRow,
)
from app.models.assessment import QuestionKey, score_attempt
from app.repos.crud import CrudRepo
from app.services import gamification_service, notification_service
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)

PARENT_KEYS: dict[str, type[Base]] = {
    "training_area_id": TrainingAreaRow,
    "module_id": ModuleRow,
    "course_id": CourseRow,
    "unit_id": UnitRow,
}

_PARENT_LABELS = {
    TrainingAreaRow: "Training area",
    ModuleRow: "Module",
    CourseRow: "Course",
    UnitRow: "Unit",
}


async def _require_parents(session: AsyncSession, values: dict[str, Any]) -> None:
    for key, row_type in PARENT_KEYS.items():
        parent_id = values.get(key)
        if parent_id is not None and await CrudRepo(session, row_type).get(parent_id) is None:
            raise NotFoundError(f"{_PARENT_LABELS[row_type]} not found")


def _normalize_template(values: dict[str, Any]) -> None:
    if "certificate_template" in values and values["certificate_template"] is not None:
        values["certificate_template"] = values["certificate_template"].strip() or None


# ---------------------------------------------------------------------------
# Assessments
# ---------------------------------------------------------------------------


async def get_assessment(session: AsyncSession, assessment_id: int) -> AssessmentRow:
    assessment = await CrudRepo(session, AssessmentRow).get(assessment_id)
    if assessment is None:
        raise NotFoundError("Assessment not found")
    return assessment


async def list_assessments(
    session: AsyncSession, *, limit: int | None = None, offset: int = 0
) -> list[AssessmentRow]:
    return await CrudRepo(session, AssessmentRow).find_all(limit=limit, offset=offset)


async def assessments_by_parent(
    session: AsyncSession, key: str, parent_id: int
) -> list[AssessmentRow]:
    """Assessments attached to one training area, module, course or unit."""
    row_type = PARENT_KEYS[key]
    if await CrudRepo(session, row_type).get(parent_id) is None:
        raise NotFoundError(f"{_PARENT_LABELS[row_type]} not found")
    return await CrudRepo(session, AssessmentRow).find_all(
        getattr(AssessmentRow, key) == parent_id
    )


async def create_assessment(
    session: AsyncSession, values: dict[str, Any]
) -> AssessmentRow:
    if all(values.get(key) is None for key in PARENT_KEYS):
        raise BadRequestError(
            "Validation failed",
            [
                "At least one of trainingAreaId, moduleId, courseId or unitId "
                "is required"
            ],
        )
    await _require_parents(session, values)
    _normalize_template(values)
    assessment = await CrudRepo(session, AssessmentRow).add(**values)
    logger.info("Created assessment id=%d", assessment.id)
    return assessment


async def update_assessment(
    session: AsyncSession, assessment_id: int, changes: dict[str, Any]
) -> AssessmentRow:
    assessment = await get_assessment(session, assessment_id)
    await _require_parents(session, changes)
    _normalize_template(changes)
    return await CrudRepo(session, AssessmentRow).update(assessment, changes)


async def delete_assessment(session: AsyncSession, assessment_id: int) -> None:
    await get_assessment(session, assessment_id)
    await CrudRepo(session, AssessmentRow).delete_by_id(assessment_id)
    logger.info("Deleted assessment id=%d", assessment_id)


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


async def get_question(session: AsyncSession, question_id: int) -> QuestionRow:
    question = await CrudRepo(session, QuestionRow).get(question_id)
    if question is None:
        raise NotFoundError("Question not found")
    return question


async def list_questions(
    session: AsyncSession, *, limit: int | None = None, offset: int = 0
) -> list[QuestionRow]:
    return await CrudRepo(session, QuestionRow).find_all(limit=limit, offset=offset)


async def questions_for_assessment(
    session: AsyncSession, assessment_id: int
) -> list[QuestionRow]:
    await get_assessment(session, assessment_id)
    return await CrudRepo(session, QuestionRow).find_all(
        QuestionRow.assessment_id == assessment_id,
        order_by=[QuestionRow.order, QuestionRow.id],
    )


async def create_question(session: AsyncSession, values: dict[str, Any]) -> QuestionRow:
    await get_assessment(session, values["assessment_id"])
    question = await CrudRepo(session, QuestionRow).add(**values)
    logger.info(
        "Created question id=%d for assessment=%d", question.id, question.assessment_id
    )
    return question


async def update_question(
    session: AsyncSession, question_id: int, changes: dict[str, Any]
) -> QuestionRow:
    question = await get_question(session, question_id)
    if changes.get("assessment_id") is not None:
        await get_assessment(session, changes["assessment_id"])
    return await CrudRepo(session, QuestionRow).update(question, changes)


async def delete_question(session: AsyncSession, question_id: int) -> None:
    await get_question(session, question_id)
    await CrudRepo(session, QuestionRow).delete_by_id(question_id)


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------


async def _training_area_of(
    session: AsyncSession, assessment: AssessmentRow
) -> int | None:
    """The training area an assessment certifies, walking up from its parents."""
    if assessment.training_area_id is not None:
        return assessment.training_area_id
    module_id = assessment.module_id
    if module_id is None and assessment.course_id is not None:
        course = await session.get(CourseRow, assessment.course_id)
        module_id = course.module_id if course is not None else None
    if module_id is not None:
        module = await session.get(ModuleRow, module_id)
        return module.training_area_id if module is not None else None
    return None


async def _reward_pass(
    session: AsyncSession, user_id: int, assessment: AssessmentRow, score: int
) -> None:
    """XP and certificate for the first passing attempt; later passes earn nothing."""
    earlier_passes = await CrudRepo(session, AssessmentAttemptRow).count(
        AssessmentAttemptRow.user_id == user_id,
        AssessmentAttemptRow.assessment_id == assessment.id,
        AssessmentAttemptRow.passed.is_(True),
    )
    if earlier_passes:
        return

    await gamification_service.award_xp(session, user_id, assessment.xp_points)
    await notification_service.notify(
        session,
        user_id,
        type="assessment_passed",
        title="Assessment passed",
        message=f'You passed "{assessment.title}" with a score of {score}%.',
        meta={"assessmentId": assessment.id, "score": score},
    )

    if not assessment.has_certificate:
        return
    training_area_id = await _training_area_of(session, assessment)
    if training_area_id is None:
        logger.warning(
            "Assessment id=%d grants a certificate but has no training area",
            assessment.id,
        )
        return
    certificate, created = await gamification_service.issue_certificate(
        session, user_id, training_area_id, assessment.course_id
    )
    if created:
        await notification_service.notify(
            session,
            user_id,
            type="certificate_issued",
            title="Certificate issued",
            message=f"Certificate {certificate.certificate_number} has been issued.",
            meta={"certificateId": certificate.id},
        )


async def create_attempt(
    session: AsyncSession,
    user_id: int,
    assessment_id: int,
    answers: dict[str, Any] | None,
) -> AssessmentAttemptRow:
    if await CrudRepo(session, UserRow).get(user_id) is None:
        raise NotFoundError("User not found")
    assessment = await get_assessment(session, assessment_id)

    attempts = CrudRepo(session, AssessmentAttemptRow)
    used = await attempts.count(
        AssessmentAttemptRow.user_id == user_id,
        AssessmentAttemptRow.assessment_id == assessment_id,
    )
    if used >= assessment.max_retakes:
        raise ConflictError("Maximum number of attempts exceeded")

    questions = await CrudRepo(session, QuestionRow).find_all(
        QuestionRow.assessment_id == assessment_id
    )
    result = score_attempt(
        [QuestionKey(q.id, q.correct_answer) for q in questions],
        answers,
        assessment.passing_score,
    )

    if result.passed:
        await _reward_pass(session, user_id, assessment, result.score)

    attempt = await attempts.add(
        user_id=user_id,
        assessment_id=assessment_id,
        score=result.score,
        passed=result.passed,
        answers=answers,
        completed_at=utcnow(),
    )
    ASSESSMENT_ATTEMPTS.labels(outcome="passed" if result.passed else "failed").inc()
    logger.info(
        "Attempt id=%d user=%d assessment=%d score=%d passed=%s",
        attempt.id,
        user_id,
        assessment_id,
        result.score,
        result.passed,
    )
    reports_changed(session)
    return attempt


async def get_attempt(session: AsyncSession, attempt_id: int) -> AssessmentAttemptRow:
    attempt = await CrudRepo(session, AssessmentAttemptRow).get(attempt_id)
    if attempt is None:
        raise NotFoundError("Assessment attempt not found")
    return attempt


async def list_attempts(
    session: AsyncSession,
    *where: Any,
    limit: int | None = None,
    offset: int = 0,
) -> list[AssessmentAttemptRow]:
    return await CrudRepo(session, AssessmentAttemptRow).find_all(
        *where,
        order_by=[AssessmentAttemptRow.started_at.desc(), AssessmentAttemptRow.id.desc()],
        limit=limit,
        offset=offset,
    )


async def attempts_for_user(
    session: AsyncSession, user_id: int
) -> list[AssessmentAttemptRow]:
    return await list_attempts(session, AssessmentAttemptRow.user_id == user_id)


async def attempts_for_assessment(
    session: AsyncSession, assessment_id: int
) -> list[AssessmentAttemptRow]:
    await get_assessment(session, assessment_id)
    return await list_attempts(
        session, AssessmentAttemptRow.assessment_id == assessment_id
    )


async def attempts_for_user_and_assessment(
    session: AsyncSession, user_id: int, assessment_id: int
) -> list[AssessmentAttemptRow]:
    return await list_attempts(
        session,
        AssessmentAttemptRow.user_id == user_id,
        AssessmentAttemptRow.assessment_id == assessment_id,
    )


async def best_score(
    session: AsyncSession, user_id: int, assessment_id: int
) -> dict[str, Any]:
    attempts = await attempts_for_user_and_assessment(session, user_id, assessment_id)
    if not attempts:
        raise NotFoundError("No attempts found for this user and assessment")
    best = max(attempts, key=lambda a: (a.score, a.passed))
    return {
        "bestScore": best.score,
        "passed": any(a.passed for a in attempts),
        "attempts": len(attempts),
    }


async def update_attempt(
    session: AsyncSession, attempt_id: int, changes: dict[str, Any]
) -> AssessmentAttemptRow:
    attempt = await get_attempt(session, attempt_id)
    attempt = await CrudRepo(session, AssessmentAttemptRow).update(attempt, changes)
    reports_changed(session)
    return attempt


async def delete_attempt(session: AsyncSession, attempt_id: int) -> None:
    await get_attempt(session, attempt_id)
    await CrudRepo(session, AssessmentAttemptRow).delete_by_id(attempt_id)
    reports_changed(session)
