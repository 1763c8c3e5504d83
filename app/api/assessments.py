"""Assessment endpoints under /api/assessments.

Assessments and questions are readable without signing in; learners never
see a question's correct answer unless the assessment shows answers.
Attempts are scored on the server from the stored answer key.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, status
from pydantic import Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.crud_routes import partial_changes
from app.api.dependencies import (
    AdminUser,
    CurrentUser,
    DbSession,
    OptionalUser,
    StaffUser,
    ensure_can_act_for,
)
from app.api.schemas import (
    CamelModel,
    Envelope,
    Message,
    NonEmptyStr,
    PagedEnvelope,
    Pagination,
    dump,
    ok,
    paged,
    pagination,
)
from app.db.tables import AssessmentAttemptRow, AssessmentRow, QuestionRow
from app.models.principal import Principal
from app.services import assessment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assessments", tags=["assessments"])

Page = Annotated[Pagination, Depends(pagination)]
Percent = Annotated[int, Field(ge=0, le=100)]
NonNegative = Annotated[int, Field(ge=0)]
QuestionType = Literal["mcq", "true_false"]
Placement = Literal["start", "middle", "end"]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class AssessmentIn(CamelModel):
    training_area_id: int | None = None
    module_id: int | None = None
    unit_id: int | None = None
    course_id: int | None = None
    title: NonEmptyStr
    description: str | None = None
    placement: Placement = "end"
    is_graded: bool = True
    show_correct_answers: bool = False
    passing_score: Percent | None = None
    has_time_limit: bool = False
    time_limit: NonNegative | None = None
    max_retakes: NonNegative = 3
    has_certificate: bool = False
    certificate_template: str | None = None
    xp_points: NonNegative = 50


class AssessmentUpdate(CamelModel):
    training_area_id: int | None = None
    module_id: int | None = None
    unit_id: int | None = None
    course_id: int | None = None
    title: NonEmptyStr | None = None
    description: str | None = None
    placement: Placement | None = None
    is_graded: bool | None = None
    show_correct_answers: bool | None = None
    passing_score: Percent | None = None
    has_time_limit: bool | None = None
    time_limit: NonNegative | None = None
    max_retakes: NonNegative | None = None
    has_certificate: bool | None = None
    certificate_template: str | None = None
    xp_points: NonNegative | None = None


class AssessmentOut(CamelModel):
    id: int
    training_area_id: int | None = None
    module_id: int | None = None
    unit_id: int | None = None
    course_id: int | None = None
    title: str
    description: str | None = None
    placement: str
    is_graded: bool
    show_correct_answers: bool
    passing_score: int | None = None
    has_time_limit: bool
    time_limit: int | None = None
    max_retakes: int
    has_certificate: bool
    certificate_template: str | None = None
    xp_points: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class QuestionIn(CamelModel):
    assessment_id: int
    question_text: NonEmptyStr
    question_type: QuestionType = "mcq"
    options: list[str] | None = None
    correct_answer: NonEmptyStr
    order: NonNegative = 1


class QuestionUpdate(CamelModel):
    assessment_id: int | None = None
    question_text: NonEmptyStr | None = None
    question_type: QuestionType | None = None
    options: list[str] | None = None
    correct_answer: NonEmptyStr | None = None
    order: NonNegative | None = None


class QuestionOut(CamelModel):
    id: int
    assessment_id: int
    question_text: str
    question_type: str
    options: list[str] | None = None
    correct_answer: str | None = None
    order: int


class AttemptIn(CamelModel):
    user_id: int
    assessment_id: int
    answers: dict[str, Any] = Field(default_factory=dict)

    @field_validator("answers", mode="before")
    @classmethod
    def stringify_keys(cls, value: Any) -> Any:
        # question ids may arrive as ints from non-JSON clients
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value


class AttemptUpdate(CamelModel):
    score: Percent | None = None
    passed: bool | None = None
    answers: dict[str, Any] | None = None
    completed_at: datetime | None = None


class AttemptOut(CamelModel):
    id: int
    user_id: int
    assessment_id: int
    score: int
    passed: bool
    answers: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class BestScoreOut(CamelModel):
    best_score: int
    passed: bool
    attempts: int


def _questions_out(
    rows: list[QuestionRow], assessment_reveals: dict[int, bool], viewer: Principal | None
) -> list[QuestionOut]:
    """Drop correct answers for anyone but staff, unless the assessment shows them."""
    staff = viewer is not None and viewer.is_staff()
    out = []
    for row in rows:
        question = QuestionOut.model_validate(row)
        if not staff and not assessment_reveals.get(row.assessment_id, False):
            question.correct_answer = None
        out.append(question)
    return out


async def _reveal_map(session: AsyncSession, rows: list[QuestionRow]) -> dict[int, bool]:
    reveal: dict[int, bool] = {}
    for assessment_id in {r.assessment_id for r in rows}:
        assessment = await assessment_service.get_assessment(session, assessment_id)
        reveal[assessment_id] = assessment.show_correct_answers
    return reveal


# ---------------------------------------------------------------------------
# Assessments
# ---------------------------------------------------------------------------


@router.get("/assessments", response_model=PagedEnvelope[list[AssessmentOut]])
async def list_assessments(session: DbSession, page: Page) -> dict:
    rows = await assessment_service.list_assessments(
        session, limit=page.limit, offset=page.offset
    )
    return paged("Assessments retrieved successfully", dump(AssessmentOut, rows), page)


@router.get(
    "/assessments/training-areas/{training_area_id}",
    response_model=Envelope[list[AssessmentOut]],
)
async def assessments_by_training_area(training_area_id: int, session: DbSession) -> dict:
    rows = await assessment_service.assessments_by_parent(
        session, "training_area_id", training_area_id
    )
    return ok("Assessments retrieved successfully", dump(AssessmentOut, rows))


@router.get(
    "/assessments/modules/{module_id}", response_model=Envelope[list[AssessmentOut]]
)
async def assessments_by_module(module_id: int, session: DbSession) -> dict:
    rows = await assessment_service.assessments_by_parent(session, "module_id", module_id)
    return ok("Assessments retrieved successfully", dump(AssessmentOut, rows))


@router.get(
    "/assessments/courses/{course_id}", response_model=Envelope[list[AssessmentOut]]
)
async def assessments_by_course(course_id: int, session: DbSession) -> dict:
    rows = await assessment_service.assessments_by_parent(session, "course_id", course_id)
    return ok("Assessments retrieved successfully", dump(AssessmentOut, rows))


@router.get("/assessments/units/{unit_id}", response_model=Envelope[list[AssessmentOut]])
async def assessments_by_unit(unit_id: int, session: DbSession) -> dict:
    rows = await assessment_service.assessments_by_parent(session, "unit_id", unit_id)
    return ok("Assessments retrieved successfully", dump(AssessmentOut, rows))


@router.get("/assessments/{assessment_id}", response_model=Envelope[AssessmentOut])
async def get_assessment(assessment_id: int, session: DbSession) -> dict:
    assessment = await assessment_service.get_assessment(session, assessment_id)
    return ok("Assessment retrieved successfully", dump(AssessmentOut, assessment))


@router.post(
    "/assessments",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[AssessmentOut],
)
async def create_assessment(
    payload: AssessmentIn, session: DbSession, _admin: AdminUser
) -> dict:
    assessment = await assessment_service.create_assessment(session, payload.model_dump())
    return ok("Assessment created successfully", dump(AssessmentOut, assessment))


@router.put("/assessments/{assessment_id}", response_model=Envelope[AssessmentOut])
async def update_assessment(
    assessment_id: int, payload: AssessmentUpdate, session: DbSession, _admin: AdminUser
) -> dict:
    assessment = await assessment_service.update_assessment(
        session, assessment_id, partial_changes(AssessmentRow, payload)
    )
    return ok("Assessment updated successfully", dump(AssessmentOut, assessment))


@router.delete("/assessments/{assessment_id}", response_model=Message)
async def delete_assessment(
    assessment_id: int, session: DbSession, _admin: AdminUser
) -> dict:
    await assessment_service.delete_assessment(session, assessment_id)
    return {"success": True, "message": "Assessment deleted successfully"}


@router.get(
    "/assessments/{assessment_id}/questions",
    response_model=Envelope[list[QuestionOut]],
    response_model_exclude_none=True,
)
async def questions_for_assessment(
    assessment_id: int, session: DbSession, viewer: OptionalUser
) -> dict:
    rows = await assessment_service.questions_for_assessment(session, assessment_id)
    questions = _questions_out(rows, await _reveal_map(session, rows), viewer)
    return ok("Questions retrieved successfully", questions)


@router.get(
    "/assessments/{assessment_id}/attempts",
    response_model=Envelope[list[AttemptOut]],
)
async def attempts_for_assessment(
    assessment_id: int, session: DbSession, _staff: StaffUser
) -> dict:
    rows = await assessment_service.attempts_for_assessment(session, assessment_id)
    return ok("Assessment attempts retrieved successfully", dump(AttemptOut, rows))


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


@router.get(
    "/questions",
    response_model=PagedEnvelope[list[QuestionOut]],
    response_model_exclude_none=True,
)
async def list_questions(session: DbSession, page: Page, viewer: OptionalUser) -> dict:
    rows = await assessment_service.list_questions(
        session, limit=page.limit, offset=page.offset
    )
    questions = _questions_out(rows, await _reveal_map(session, rows), viewer)
    return paged("Questions retrieved successfully", questions, page)


@router.get(
    "/questions/{question_id}",
    response_model=Envelope[QuestionOut],
    response_model_exclude_none=True,
)
async def get_question(question_id: int, session: DbSession, viewer: OptionalUser) -> dict:
    row = await assessment_service.get_question(session, question_id)
    [question] = _questions_out([row], await _reveal_map(session, [row]), viewer)
    return ok("Question retrieved successfully", question)


@router.post(
    "/questions", status_code=status.HTTP_201_CREATED, response_model=Envelope[QuestionOut]
)
async def create_question(payload: QuestionIn, session: DbSession, _admin: AdminUser) -> dict:
    question = await assessment_service.create_question(session, payload.model_dump())
    return ok("Question created successfully", dump(QuestionOut, question))


@router.put("/questions/{question_id}", response_model=Envelope[QuestionOut])
async def update_question(
    question_id: int, payload: QuestionUpdate, session: DbSession, _admin: AdminUser
) -> dict:
    question = await assessment_service.update_question(
        session, question_id, partial_changes(QuestionRow, payload)
    )
    return ok("Question updated successfully", dump(QuestionOut, question))


@router.delete("/questions/{question_id}", response_model=Message)
async def delete_question(question_id: int, session: DbSession, _admin: AdminUser) -> dict:
    await assessment_service.delete_question(session, question_id)
    return {"success": True, "message": "Question deleted successfully"}


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------


@router.get("/assessment-attempts", response_model=PagedEnvelope[list[AttemptOut]])
async def list_attempts(session: DbSession, page: Page, _admin: AdminUser) -> dict:
    rows = await assessment_service.list_attempts(
        session, limit=page.limit, offset=page.offset
    )
    return paged("Assessment attempts retrieved successfully", dump(AttemptOut, rows), page)


@router.get("/assessment-attempts/{attempt_id}", response_model=Envelope[AttemptOut])
async def get_attempt(attempt_id: int, session: DbSession, principal: CurrentUser) -> dict:
    attempt = await assessment_service.get_attempt(session, attempt_id)
    ensure_can_act_for(principal, attempt.user_id)
    return ok("Assessment attempt retrieved successfully", dump(AttemptOut, attempt))


@router.post(
    "/assessment-attempts",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[AttemptOut],
)
async def create_attempt(
    payload: AttemptIn, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, payload.user_id)
    attempt = await assessment_service.create_attempt(
        session, payload.user_id, payload.assessment_id, payload.answers
    )
    return ok("Assessment attempt created successfully", dump(AttemptOut, attempt))


@router.put("/assessment-attempts/{attempt_id}", response_model=Envelope[AttemptOut])
async def update_attempt(
    attempt_id: int, payload: AttemptUpdate, session: DbSession, _admin: AdminUser
) -> dict:
    attempt = await assessment_service.update_attempt(
        session, attempt_id, partial_changes(AssessmentAttemptRow, payload)
    )
    return ok("Assessment attempt updated successfully", dump(AttemptOut, attempt))


@router.delete("/assessment-attempts/{attempt_id}", response_model=Message)
async def delete_attempt(attempt_id: int, session: DbSession, _admin: AdminUser) -> dict:
    await assessment_service.delete_attempt(session, attempt_id)
    return {"success": True, "message": "Assessment attempt deleted successfully"}


@router.get(
    "/users/{user_id}/assessment-attempts", response_model=Envelope[list[AttemptOut]]
)
async def attempts_for_user(user_id: int, session: DbSession, principal: CurrentUser) -> dict:
    ensure_can_act_for(principal, user_id)
    rows = await assessment_service.attempts_for_user(session, user_id)
    return ok("User assessment attempts retrieved successfully", dump(AttemptOut, rows))


@router.get(
    "/users/{user_id}/assessments/{assessment_id}/attempts",
    response_model=Envelope[list[AttemptOut]],
)
async def attempts_for_user_and_assessment(
    user_id: int, assessment_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    rows = await assessment_service.attempts_for_user_and_assessment(
        session, user_id, assessment_id
    )
    return ok("Assessment attempts retrieved successfully", dump(AttemptOut, rows))


@router.get(
    "/users/{user_id}/assessments/{assessment_id}/best-score",
    response_model=Envelope[BestScoreOut],
)
async def best_score(
    user_id: int, assessment_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    result = await assessment_service.best_score(session, user_id, assessment_id)
    return ok("Best score retrieved successfully", result)
