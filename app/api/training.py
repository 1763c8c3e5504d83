"""Training hierarchy endpoints under /api/training.

Reads are public so the catalogue can be browsed before sign-in; writes
are admin-only. The course content sequence and certificates require a
signed-in user.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Query
from pydantic import Field

from app.api.crud_routes import register_crud
from app.api.dependencies import CurrentUser, DbSession, ensure_can_act_for
from app.api.schemas import CamelModel, Envelope, NonEmptyStr, dump, ok
from app.db.tables import (
    CourseRow,
    CourseUnitRow,
    LearningBlockRow,
    ModuleRow,
    TrainingAreaRow,
    UnitRoleAssignmentRow,
    UnitRow,
)
from app.services import training_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/training", tags=["training"])

BlockType = Literal["video", "image", "text", "interactive"]
NonNegative = Annotated[int, Field(ge=0)]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class TrainingAreaIn(CamelModel):
    name: NonEmptyStr
    description: str | None = None
    image_url: str | None = None


class TrainingAreaUpdate(CamelModel):
    name: NonEmptyStr | None = None
    description: str | None = None
    image_url: str | None = None


class TrainingAreaOut(CamelModel):
    id: int
    name: str
    description: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ModuleIn(TrainingAreaIn):
    training_area_id: int


class ModuleUpdate(TrainingAreaUpdate):
    training_area_id: int | None = None


class ModuleOut(TrainingAreaOut):
    training_area_id: int


class CourseIn(TrainingAreaIn):
    module_id: int
    internal_note: str | None = None
    duration: NonNegative | None = None
    show_duration: bool = True
    level: NonEmptyStr = "beginner"
    show_level: bool = True


class CourseUpdate(TrainingAreaUpdate):
    module_id: int | None = None
    internal_note: str | None = None
    duration: NonNegative | None = None
    show_duration: bool | None = None
    level: NonEmptyStr | None = None
    show_level: bool | None = None


class CourseOut(TrainingAreaOut):
    module_id: int
    internal_note: str | None = None
    duration: int | None = None
    show_duration: bool
    level: str
    show_level: bool


class UnitIn(CamelModel):
    name: NonEmptyStr
    description: str | None = None
    internal_note: str | None = None
    order: NonNegative = 1
    duration: NonNegative = 30
    show_duration: bool = True
    xp_points: NonNegative = 100


class UnitUpdate(CamelModel):
    name: NonEmptyStr | None = None
    description: str | None = None
    internal_note: str | None = None
    order: NonNegative | None = None
    duration: NonNegative | None = None
    show_duration: bool | None = None
    xp_points: NonNegative | None = None


class UnitOut(CamelModel):
    id: int
    name: str
    description: str | None = None
    internal_note: str | None = None
    order: int
    duration: int
    show_duration: bool
    xp_points: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CourseUnitIn(CamelModel):
    course_id: int
    unit_id: int
    order: NonNegative = 1


class CourseUnitUpdate(CamelModel):
    course_id: int | None = None
    unit_id: int | None = None
    order: NonNegative | None = None


class CourseUnitOut(CamelModel):
    id: int
    course_id: int
    unit_id: int
    order: int


class LearningBlockIn(CamelModel):
    unit_id: int
    type: BlockType
    title: NonEmptyStr
    content: str | None = None
    video_url: str | None = None
    image_url: str | None = None
    interactive_data: Any = None
    order: NonNegative = 1
    xp_points: NonNegative = 10


class LearningBlockUpdate(CamelModel):
    unit_id: int | None = None
    type: BlockType | None = None
    title: NonEmptyStr | None = None
    content: str | None = None
    video_url: str | None = None
    image_url: str | None = None
    interactive_data: Any = None
    order: NonNegative | None = None
    xp_points: NonNegative | None = None


class LearningBlockOut(CamelModel):
    id: int
    unit_id: int
    type: str
    title: str
    content: str | None = None
    video_url: str | None = None
    image_url: str | None = None
    interactive_data: Any = None
    order: int
    xp_points: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UnitRoleAssignmentIn(CamelModel):
    unit_id: int
    role_category_id: int | None = None
    role_id: int | None = None
    seniority_level_id: int | None = None
    asset_id: int | None = None


class UnitRoleAssignmentUpdate(CamelModel):
    unit_id: int | None = None
    role_category_id: int | None = None
    role_id: int | None = None
    seniority_level_id: int | None = None
    asset_id: int | None = None


class UnitRoleAssignmentOut(UnitRoleAssignmentIn):
    id: int
    created_at: datetime | None = None


class ContentItemOut(CamelModel):
    kind: str
    id: int
    title: str
    unit_id: int | None = None
    status: str
    accessible: bool


class CertificateOut(CamelModel):
    id: int
    user_id: int
    training_area_id: int | None = None
    course_id: int | None = None
    certificate_number: str
    issue_date: datetime
    expiry_date: datetime | None = None
    status: str


# ---------------------------------------------------------------------------
# Child listings and course views (declared before the generic routes)
# ---------------------------------------------------------------------------


@router.get(
    "/modules/training-area/{training_area_id}",
    response_model=Envelope[list[ModuleOut]],
)
async def modules_by_training_area(training_area_id: int, session: DbSession) -> dict:
    rows = await training_service.modules_by_training_area(session, training_area_id)
    return ok("Modules retrieved successfully", dump(ModuleOut, rows))


@router.get("/courses/published", response_model=Envelope[list[CourseOut]])
async def published_courses(session: DbSession) -> dict:
    rows = await training_service.published_courses(session)
    return ok("Published courses retrieved successfully", dump(CourseOut, rows))


@router.get("/courses/module/{module_id}", response_model=Envelope[list[CourseOut]])
async def courses_by_module(module_id: int, session: DbSession) -> dict:
    rows = await training_service.courses_by_module(session, module_id)
    return ok("Courses retrieved successfully", dump(CourseOut, rows))


@router.get(
    "/courses/{course_id}/content", response_model=Envelope[list[ContentItemOut]]
)
async def course_content(
    course_id: int,
    session: DbSession,
    principal: CurrentUser,
    user_id: Annotated[int | None, Query(alias="userId")] = None,
) -> dict:
    """The learner's linear path through a course, with unlock state."""
    target = principal.id if user_id is None else user_id
    ensure_can_act_for(principal, target)
    items = await training_service.course_content(session, course_id, target)
    return ok("Course content retrieved successfully", dump(ContentItemOut, items))


@router.get(
    "/course-units/course/{course_id}", response_model=Envelope[list[CourseUnitOut]]
)
async def course_units_by_course(course_id: int, session: DbSession) -> dict:
    rows = await training_service.course_units_by_course(session, course_id)
    return ok("Course units retrieved successfully", dump(CourseUnitOut, rows))


@router.get(
    "/learning-blocks/unit/{unit_id}", response_model=Envelope[list[LearningBlockOut]]
)
async def learning_blocks_by_unit(unit_id: int, session: DbSession) -> dict:
    rows = await training_service.learning_blocks_by_unit(session, unit_id)
    return ok("Learning blocks retrieved successfully", dump(LearningBlockOut, rows))


@router.get(
    "/unit-role-assignments/unit/{unit_id}",
    response_model=Envelope[list[UnitRoleAssignmentOut]],
)
async def role_assignments_by_unit(unit_id: int, session: DbSession) -> dict:
    rows = await training_service.role_assignments_by_unit(session, unit_id)
    return ok(
        "Unit role assignments retrieved successfully",
        dump(UnitRoleAssignmentOut, rows),
    )


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


@router.get(
    "/certificates/training-area/{training_area_id}/user/{user_id}",
    response_model=Envelope[list[CertificateOut]],
)
async def certificates_for_training_area(
    training_area_id: int, user_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    rows = await training_service.certificates_for_training_area(
        session, training_area_id, user_id
    )
    return ok("Certificates retrieved successfully", dump(CertificateOut, rows))


@router.get("/certificates/{certificate_id}", response_model=Envelope[CertificateOut])
async def get_certificate(
    certificate_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    certificate = await training_service.get_certificate(session, certificate_id)
    ensure_can_act_for(principal, certificate.user_id)
    return ok("Certificate retrieved successfully", dump(CertificateOut, certificate))


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

register_crud(
    router,
    training_service,
    "training-areas",
    TrainingAreaRow,
    TrainingAreaIn,
    TrainingAreaUpdate,
    TrainingAreaOut,
    "Training areas",
)
register_crud(
    router,
    training_service,
    "modules",
    ModuleRow,
    ModuleIn,
    ModuleUpdate,
    ModuleOut,
    "Modules",
)
register_crud(
    router,
    training_service,
    "courses",
    CourseRow,
    CourseIn,
    CourseUpdate,
    CourseOut,
    "Courses",
)
register_crud(
    router, training_service, "units", UnitRow, UnitIn, UnitUpdate, UnitOut, "Units"
)
register_crud(
    router,
    training_service,
    "course-units",
    CourseUnitRow,
    CourseUnitIn,
    CourseUnitUpdate,
    CourseUnitOut,
    "Course units",
)
register_crud(
    router,
    training_service,
    "learning-blocks",
    LearningBlockRow,
    LearningBlockIn,
    LearningBlockUpdate,
    LearningBlockOut,
    "Learning blocks",
)
register_crud(
    router,
    training_service,
    "unit-role-assignments",
    UnitRoleAssignmentRow,
    UnitRoleAssignmentIn,
    UnitRoleAssignmentUpdate,
    UnitRoleAssignmentOut,
    "Unit role assignments",
)
