"""Training hierarchy: training areas, modules, courses, units, learning blocks.

Training area -> module -> course -> course unit -> unit -> learning block,
plus the unit role assignments that target units at learner profiles.
Deletes rely on the ON DELETE rules declared in app.db.tables.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.db.engine import Base
from app.db.tables import (
    AssessmentAttemptRow,
    AssessmentRow,
    AssetRow,
    CertificateRow,
    CourseRow,
    CourseUnitRow,
    LearningBlockRow,
    ModuleRow,
    RoleCategoryRow,
    RoleRow,
    SeniorityLevelRow,
    TrainingAreaRow,
    UnitRoleAssignmentRow,
    UnitRow,
    UserLearningBlockProgressRow,
)
from app.models.progress import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ContentItem,
    ProgressStatus,
    with_accessibility,
)
from app.repos.crud import CrudRepo
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)

LABELS: dict[type[Base], str] = {
    TrainingAreaRow: "Training area",
    ModuleRow: "Module",
    CourseRow: "Course",
    UnitRow: "Unit",
    CourseUnitRow: "Course unit",
    LearningBlockRow: "Learning block",
    UnitRoleAssignmentRow: "Unit role assignment",
    RoleCategoryRow: "Role category",
    RoleRow: "Role",
    SeniorityLevelRow: "Seniority level",
    AssetRow: "Asset",
    CertificateRow: "Certificate",
}

# Foreign keys checked before insert/update: column -> referenced row type.
PARENTS: dict[type[Base], dict[str, type[Base]]] = {
    ModuleRow: {"training_area_id": TrainingAreaRow},
    CourseRow: {"module_id": ModuleRow},
    CourseUnitRow: {"course_id": CourseRow, "unit_id": UnitRow},
    LearningBlockRow: {"unit_id": UnitRow},
    UnitRoleAssignmentRow: {
        "unit_id": UnitRow,
        "role_category_id": RoleCategoryRow,
        "role_id": RoleRow,
        "seniority_level_id": SeniorityLevelRow,
        "asset_id": AssetRow,
    },
}

_ASSIGNMENT_KEYS = (
    "unit_id",
    "role_category_id",
    "role_id",
    "seniority_level_id",
    "asset_id",
)


async def require(session: AsyncSession, row_type: type[Base], row_id: int) -> Any:
    row = await CrudRepo(session, row_type).get(row_id)
    if row is None:
        raise NotFoundError(f"{LABELS[row_type]} not found")
    return row


async def _check_parents(
    session: AsyncSession, row_type: type[Base], values: dict[str, Any]
) -> None:
    for column, parent_type in PARENTS.get(row_type, {}).items():
        if values.get(column) is not None:
            await require(session, parent_type, values[column])


async def _check_duplicates(
    session: AsyncSession,
    row_type: type[Base],
    values: dict[str, Any],
    exclude_id: int | None = None,
) -> None:
    where: list[Any] = []
    if row_type is CourseUnitRow:
        where = [
            CourseUnitRow.course_id == values["course_id"],
            CourseUnitRow.unit_id == values["unit_id"],
        ]
        message = "Course unit relationship already exists"
    elif row_type is UnitRoleAssignmentRow:
        for key in _ASSIGNMENT_KEYS:
            column = getattr(UnitRoleAssignmentRow, key)
            value = values.get(key)
            where.append(column.is_(None) if value is None else column == value)
        message = "Unit role assignment already exists"
    else:
        return

    if exclude_id is not None:
        where.append(row_type.id != exclude_id)  # type: ignore[attr-defined]
    if await CrudRepo(session, row_type).exists(*where):
        raise ConflictError(message)


# ---------------------------------------------------------------------------
# Generic CRUD
# ---------------------------------------------------------------------------


async def create(
    session: AsyncSession, row_type: type[Base], values: dict[str, Any]
) -> Any:
    await _check_parents(session, row_type, values)
    await _check_duplicates(session, row_type, values)
    row = await CrudRepo(session, row_type).add(**values)
    reports_changed(session)
    logger.info("Created %s id=%d", LABELS[row_type].lower(), row.id)
    return row


async def list_all(
    session: AsyncSession,
    row_type: type[Base],
    *,
    limit: int | None = None,
    offset: int = 0,
) -> list[Any]:
    return await CrudRepo(session, row_type).find_all(limit=limit, offset=offset)


async def update(
    session: AsyncSession, row_type: type[Base], row_id: int, changes: dict[str, Any]
) -> Any:
    row = await require(session, row_type, row_id)
    await _check_parents(session, row_type, changes)
    if row_type in (CourseUnitRow, UnitRoleAssignmentRow):
        merged = {
            key: changes.get(key, getattr(row, key))
            for key in PARENTS[row_type]
        }
        await _check_duplicates(session, row_type, merged, exclude_id=row_id)
    row = await CrudRepo(session, row_type).update(row, changes)
    reports_changed(session)
    return row


async def delete(session: AsyncSession, row_type: type[Base], row_id: int) -> None:
    await require(session, row_type, row_id)
    await CrudRepo(session, row_type).delete_by_id(row_id)
    reports_changed(session)
    logger.info("Deleted %s id=%d", LABELS[row_type].lower(), row_id)


# ---------------------------------------------------------------------------
# Child listings
# ---------------------------------------------------------------------------


async def modules_by_training_area(
    session: AsyncSession, training_area_id: int
) -> list[ModuleRow]:
    await require(session, TrainingAreaRow, training_area_id)
    return await CrudRepo(session, ModuleRow).find_all(
        ModuleRow.training_area_id == training_area_id
    )


async def courses_by_module(session: AsyncSession, module_id: int) -> list[CourseRow]:
    await require(session, ModuleRow, module_id)
    return await CrudRepo(session, CourseRow).find_all(CourseRow.module_id == module_id)


async def course_units_by_course(
    session: AsyncSession, course_id: int
) -> list[CourseUnitRow]:
    await require(session, CourseRow, course_id)
    return await CrudRepo(session, CourseUnitRow).find_all(
        CourseUnitRow.course_id == course_id,
        order_by=[CourseUnitRow.order, CourseUnitRow.id],
    )


async def learning_blocks_by_unit(
    session: AsyncSession, unit_id: int
) -> list[LearningBlockRow]:
    await require(session, UnitRow, unit_id)
    return await CrudRepo(session, LearningBlockRow).find_all(
        LearningBlockRow.unit_id == unit_id,
        order_by=[LearningBlockRow.order, LearningBlockRow.id],
    )


async def role_assignments_by_unit(
    session: AsyncSession, unit_id: int
) -> list[UnitRoleAssignmentRow]:
    await require(session, UnitRow, unit_id)
    return await CrudRepo(session, UnitRoleAssignmentRow).find_all(
        UnitRoleAssignmentRow.unit_id == unit_id
    )


async def published_courses(session: AsyncSession) -> list[CourseRow]:
    """Courses that have at least one unit attached."""
    return await CrudRepo(session, CourseRow).find_all(
        CourseRow.id.in_(select(CourseUnitRow.course_id))
    )


# ---------------------------------------------------------------------------
# Course content sequence
# ---------------------------------------------------------------------------


async def _block_statuses(
    session: AsyncSession, user_id: int, block_ids: list[int]
) -> dict[int, str]:
    rows = await CrudRepo(session, UserLearningBlockProgressRow).find_all(
        UserLearningBlockProgressRow.user_id == user_id,
        UserLearningBlockProgressRow.learning_block_id.in_(block_ids),
    )
    return {r.learning_block_id: r.status for r in rows}


async def _assessment_statuses(
    session: AsyncSession, user_id: int, assessment_ids: list[int]
) -> dict[int, ProgressStatus]:
    attempts = await CrudRepo(session, AssessmentAttemptRow).find_all(
        AssessmentAttemptRow.user_id == user_id,
        AssessmentAttemptRow.assessment_id.in_(assessment_ids),
    )
    statuses: dict[int, ProgressStatus] = {}
    for attempt in attempts:
        if attempt.passed:
            statuses[attempt.assessment_id] = COMPLETED
        else:
            statuses.setdefault(attempt.assessment_id, IN_PROGRESS)
    return statuses


async def course_content(
    session: AsyncSession, course_id: int, user_id: int
) -> list[ContentItem]:
    """The course's blocks and assessments in learner order, with unlock state.

    Units follow their course-unit order; within a unit the blocks come
    first (by block order) and then the unit's assessments. Course-level
    assessments close the sequence.
    """
    course_units = await course_units_by_course(session, course_id)
    position: dict[int, int] = {}
    for index, course_unit in enumerate(course_units):
        position.setdefault(course_unit.unit_id, index)
    unit_ids = list(position)

    blocks = await CrudRepo(session, LearningBlockRow).find_all(
        LearningBlockRow.unit_id.in_(unit_ids)
    )
    unit_assessments = await CrudRepo(session, AssessmentRow).find_all(
        AssessmentRow.unit_id.in_(unit_ids)
    )
    course_assessments = await CrudRepo(session, AssessmentRow).find_all(
        AssessmentRow.course_id == course_id, AssessmentRow.unit_id.is_(None)
    )

    block_status = await _block_statuses(session, user_id, [b.id for b in blocks])
    assessment_status = await _assessment_statuses(
        session, user_id, [a.id for a in unit_assessments + course_assessments]
    )

    items = [
        ContentItem(
            kind="learning_block",
            id=b.id,
            title=b.title,
            unit_id=b.unit_id,
            unit_order=position[b.unit_id],
            item_order=b.order,
            status=block_status.get(b.id, NOT_STARTED),  # type: ignore[arg-type]
        )
        for b in blocks
    ]
    items += [
        ContentItem(
            kind="assessment",
            id=a.id,
            title=a.title,
            unit_id=a.unit_id,
            unit_order=(
                position[a.unit_id] if a.unit_id is not None else len(course_units)
            ),
            item_order=0,
            status=assessment_status.get(a.id, NOT_STARTED),
        )
        for a in unit_assessments + course_assessments
    ]
    return with_accessibility(items)


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


async def certificates_for_training_area(
    session: AsyncSession, training_area_id: int, user_id: int
) -> list[CertificateRow]:
    return await CrudRepo(session, CertificateRow).find_all(
        CertificateRow.training_area_id == training_area_id,
        CertificateRow.user_id == user_id,
        order_by=[CertificateRow.issue_date.desc(), CertificateRow.id.desc()],
    )


async def get_certificate(session: AsyncSession, certificate_id: int) -> CertificateRow:
    return await require(session, CertificateRow, certificate_id)
