"""Learner progress across the training hierarchy.

Completing a learning block is the only write learners make. It cascades
upward: course unit (completed blocks / blocks), then, when that course
unit completes, its course (completed course units / course units), then
module (completed courses / courses), then training area (completed
modules / modules). Each level's status follows ``status_for``.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, NotFoundError
from app.core.metrics import LEARNING_BLOCK_COMPLETIONS
from app.core.timeutil import utcnow
from app.db.engine import Base
from app.db.tables import (
    CourseRow,
    CourseUnitRow,
    LearningBlockRow,
    ModuleRow,
    TrainingAreaRow,
    UnitRoleAssignmentRow,
    UnitRow,
    UserCourseProgressRow,
    UserCourseUnitProgressRow,
    UserLearningBlockProgressRow,
    UserModuleProgressRow,
    UserRow,
    UserTrainingAreaProgressRow,
)
from app.models.progress import COMPLETED, completion_percentage, status_for
from app.repos.crud import CrudRepo
from app.services import gamification_service
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)

# URL level name -> (progress table, entity column)
LEVELS: dict[str, tuple[type[Base], str]] = {
    "learning-blocks": (UserLearningBlockProgressRow, "learning_block_id"),
    "course-units": (UserCourseUnitProgressRow, "course_unit_id"),
    "courses": (UserCourseProgressRow, "course_id"),
    "modules": (UserModuleProgressRow, "module_id"),
    "training-areas": (UserTrainingAreaProgressRow, "training_area_id"),
}

_AGGREGATE_TABLES = (
    UserCourseUnitProgressRow,
    UserCourseProgressRow,
    UserModuleProgressRow,
    UserTrainingAreaProgressRow,
)


async def _require_user(session: AsyncSession, user_id: int) -> UserRow:
    user = await CrudRepo(session, UserRow).get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _count(session: AsyncSession, stmt: Any) -> int:
    return int((await session.execute(stmt)).scalar_one())


async def _save_level(
    session: AsyncSession,
    row_type: type[Base],
    key: str,
    user_id: int,
    entity_id: int,
    completed: int,
    total: int,
) -> str:
    """Upsert one aggregate progress row and return its new status."""
    percentage = completion_percentage(completed, total)
    status = status_for(percentage)
    now = utcnow()

    repo = CrudRepo(session, row_type)
    row = await repo.find_one(
        row_type.user_id == user_id,  # type: ignore[attr-defined]
        getattr(row_type, key) == entity_id,
    )
    if row is None:
        await repo.add(
            user_id=user_id,
            **{key: entity_id},
            status=status,
            completion_percentage=percentage,
            started_at=now,
            completed_at=now if status == COMPLETED else None,
        )
        return status

    changes: dict[str, Any] = {"status": status, "completion_percentage": percentage}
    if row.started_at is None:
        changes["started_at"] = now
    if status == COMPLETED and row.status != COMPLETED:
        changes["completed_at"] = now
    elif status != COMPLETED:
        changes["completed_at"] = None
    await repo.update(row, changes)
    return status


async def _refresh_training_area(
    session: AsyncSession, user_id: int, training_area_id: int
) -> None:
    total = await _count(
        session,
        select(func.count())
        .select_from(ModuleRow)
        .where(ModuleRow.training_area_id == training_area_id),
    )
    completed = await _count(
        session,
        select(func.count())
        .select_from(UserModuleProgressRow)
        .join(ModuleRow, ModuleRow.id == UserModuleProgressRow.module_id)
        .where(
            UserModuleProgressRow.user_id == user_id,
            UserModuleProgressRow.status == COMPLETED,
            ModuleRow.training_area_id == training_area_id,
        ),
    )
    await _save_level(
        session,
        UserTrainingAreaProgressRow,
        "training_area_id",
        user_id,
        training_area_id,
        completed,
        total,
    )


async def _refresh_module(
    session: AsyncSession, user_id: int, module_id: int, cascade: bool = True
) -> None:
    total = await _count(
        session,
        select(func.count()).select_from(CourseRow).where(CourseRow.module_id == module_id),
    )
    completed = await _count(
        session,
        select(func.count())
        .select_from(UserCourseProgressRow)
        .join(CourseRow, CourseRow.id == UserCourseProgressRow.course_id)
        .where(
            UserCourseProgressRow.user_id == user_id,
            UserCourseProgressRow.status == COMPLETED,
            CourseRow.module_id == module_id,
        ),
    )
    status = await _save_level(
        session, UserModuleProgressRow, "module_id", user_id, module_id, completed, total
    )
    if cascade and status == COMPLETED:
        module = await session.get(ModuleRow, module_id)
        if module is not None:
            await _refresh_training_area(session, user_id, module.training_area_id)


async def _refresh_course(
    session: AsyncSession, user_id: int, course_id: int, cascade: bool = True
) -> None:
    total = await _count(
        session,
        select(func.count())
        .select_from(CourseUnitRow)
        .where(CourseUnitRow.course_id == course_id),
    )
    completed = await _count(
        session,
        select(func.count())
        .select_from(UserCourseUnitProgressRow)
        .join(CourseUnitRow, CourseUnitRow.id == UserCourseUnitProgressRow.course_unit_id)
        .where(
            UserCourseUnitProgressRow.user_id == user_id,
            UserCourseUnitProgressRow.status == COMPLETED,
            CourseUnitRow.course_id == course_id,
        ),
    )
    status = await _save_level(
        session, UserCourseProgressRow, "course_id", user_id, course_id, completed, total
    )
    if cascade and status == COMPLETED:
        course = await session.get(CourseRow, course_id)
        if course is not None:
            await _refresh_module(session, user_id, course.module_id)


async def _refresh_course_unit(
    session: AsyncSession, user_id: int, course_unit: CourseUnitRow, cascade: bool = True
) -> None:
    total = await _count(
        session,
        select(func.count())
        .select_from(LearningBlockRow)
        .where(LearningBlockRow.unit_id == course_unit.unit_id),
    )
    completed = await _count(
        session,
        select(func.count())
        .select_from(UserLearningBlockProgressRow)
        .join(
            LearningBlockRow,
            LearningBlockRow.id == UserLearningBlockProgressRow.learning_block_id,
        )
        .where(
            UserLearningBlockProgressRow.user_id == user_id,
            UserLearningBlockProgressRow.status == COMPLETED,
            LearningBlockRow.unit_id == course_unit.unit_id,
        ),
    )
    status = await _save_level(
        session,
        UserCourseUnitProgressRow,
        "course_unit_id",
        user_id,
        course_unit.id,
        completed,
        total,
    )
    if cascade and status == COMPLETED:
        await _refresh_course(session, user_id, course_unit.course_id)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def complete_learning_block(
    session: AsyncSession, user_id: int, learning_block_id: int
) -> UserLearningBlockProgressRow:
    """Mark a block completed and cascade the aggregates.

    Completing an already-completed block changes nothing and earns no XP.
    """
    await _require_user(session, user_id)
    block = await CrudRepo(session, LearningBlockRow).get(learning_block_id)
    if block is None:
        raise NotFoundError("Learning block not found")

    course_units = await CrudRepo(session, CourseUnitRow).find_all(
        CourseUnitRow.unit_id == block.unit_id
    )
    if not course_units:
        raise BadRequestError("Learning block not found in any course")

    blocks = CrudRepo(session, UserLearningBlockProgressRow)
    progress = await blocks.find_one(
        UserLearningBlockProgressRow.user_id == user_id,
        UserLearningBlockProgressRow.learning_block_id == learning_block_id,
    )
    if progress is not None and progress.status == COMPLETED:
        logger.debug("Block %d already completed by user=%d", learning_block_id, user_id)
        return progress

    now = utcnow()
    if progress is None:
        progress = await blocks.add(
            user_id=user_id,
            learning_block_id=learning_block_id,
            status=COMPLETED,
            started_at=now,
            completed_at=now,
        )
    else:
        progress = await blocks.update(
            progress,
            {
                "status": COMPLETED,
                "started_at": progress.started_at or now,
                "completed_at": now,
            },
        )

    for course_unit in course_units:
        await _refresh_course_unit(session, user_id, course_unit)

    await gamification_service.award_xp(session, user_id, block.xp_points)
    LEARNING_BLOCK_COMPLETIONS.inc()
    logger.info("User=%d completed learning block=%d", user_id, learning_block_id)
    reports_changed(session)
    return progress


async def reset_user_progress(session: AsyncSession, user_id: int) -> dict[str, int]:
    await _require_user(session, user_id)
    deleted: dict[str, int] = {}
    for level, (row_type, _key) in LEVELS.items():
        deleted[level] = await CrudRepo(session, row_type).delete(
            row_type.user_id == user_id  # type: ignore[attr-defined]
        )
    logger.info("Reset progress for user=%d: %s", user_id, deleted)
    reports_changed(session)
    return deleted


async def recalculate_user_progress(
    session: AsyncSession, user_id: int
) -> dict[str, int]:
    """Rebuild every aggregate level from the user's block progress."""
    await _require_user(session, user_id)
    for row_type in _AGGREGATE_TABLES:
        await CrudRepo(session, row_type).delete(
            row_type.user_id == user_id  # type: ignore[attr-defined]
        )

    touched_units = select(distinct(LearningBlockRow.unit_id)).join(
        UserLearningBlockProgressRow,
        UserLearningBlockProgressRow.learning_block_id == LearningBlockRow.id,
    ).where(
        UserLearningBlockProgressRow.user_id == user_id,
        UserLearningBlockProgressRow.status == COMPLETED,
    )
    course_units = await CrudRepo(session, CourseUnitRow).find_all(
        CourseUnitRow.unit_id.in_(touched_units)
    )
    for course_unit in course_units:
        await _refresh_course_unit(session, user_id, course_unit, cascade=False)

    course_ids = sorted({cu.course_id for cu in course_units})
    for course_id in course_ids:
        await _refresh_course(session, user_id, course_id, cascade=False)

    courses = await CrudRepo(session, CourseRow).find_all(CourseRow.id.in_(course_ids))
    module_ids = sorted({c.module_id for c in courses})
    for module_id in module_ids:
        await _refresh_module(session, user_id, module_id, cascade=False)

    modules = await CrudRepo(session, ModuleRow).find_all(ModuleRow.id.in_(module_ids))
    area_ids = sorted({m.training_area_id for m in modules})
    for area_id in area_ids:
        await _refresh_training_area(session, user_id, area_id)

    summary = {
        "courseUnits": len(course_units),
        "courses": len(course_ids),
        "modules": len(module_ids),
        "trainingAreas": len(area_ids),
    }
    logger.info("Recalculated progress for user=%d: %s", user_id, summary)
    reports_changed(session)
    return summary


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def progress_for(
    session: AsyncSession, level: str, user_id: int, entity_id: int | None = None
) -> list[Any]:
    row_type, key = LEVELS[level]
    where = [row_type.user_id == user_id]  # type: ignore[attr-defined]
    if entity_id is not None:
        where.append(getattr(row_type, key) == entity_id)
    return await CrudRepo(session, row_type).find_all(*where)


async def user_progress(session: AsyncSession, user_id: int) -> dict[str, list[Any]]:
    return {level: await progress_for(session, level, user_id) for level in LEVELS}


def _state(progress: Any) -> dict[str, Any]:
    if progress is None:
        return {"status": "not_started", "completionPercentage": 0.0}
    return {
        "status": progress.status,
        "completionPercentage": float(progress.completion_percentage),
        "startedAt": progress.started_at,
        "completedAt": progress.completed_at,
    }


async def detailed_progress(session: AsyncSession, user_id: int) -> dict[str, Any]:
    """Every training area, module and course with the user's progress, if any."""
    areas = await session.execute(
        select(TrainingAreaRow, UserTrainingAreaProgressRow)
        .outerjoin(
            UserTrainingAreaProgressRow,
            (UserTrainingAreaProgressRow.training_area_id == TrainingAreaRow.id)
            & (UserTrainingAreaProgressRow.user_id == user_id),
        )
        .order_by(TrainingAreaRow.id)
    )
    modules = await session.execute(
        select(ModuleRow, UserModuleProgressRow, TrainingAreaRow.name)
        .join(TrainingAreaRow, TrainingAreaRow.id == ModuleRow.training_area_id)
        .outerjoin(
            UserModuleProgressRow,
            (UserModuleProgressRow.module_id == ModuleRow.id)
            & (UserModuleProgressRow.user_id == user_id),
        )
        .order_by(ModuleRow.id)
    )
    courses = await session.execute(
        select(CourseRow, UserCourseProgressRow, ModuleRow.name)
        .join(ModuleRow, ModuleRow.id == CourseRow.module_id)
        .outerjoin(
            UserCourseProgressRow,
            (UserCourseProgressRow.course_id == CourseRow.id)
            & (UserCourseProgressRow.user_id == user_id),
        )
        .order_by(CourseRow.id)
    )
    return {
        "trainingAreas": [
            {"id": area.id, "name": area.name, **_state(progress)}
            for area, progress in areas.all()
        ],
        "modules": [
            {
                "id": module.id,
                "name": module.name,
                "trainingAreaId": module.training_area_id,
                "trainingAreaName": area_name,
                **_state(progress),
            }
            for module, progress, area_name in modules.all()
        ],
        "courses": [
            {
                "id": course.id,
                "name": course.name,
                "moduleId": course.module_id,
                "moduleName": module_name,
                **_state(progress),
            }
            for course, progress, module_name in courses.all()
        ],
    }


async def learning_path_completion(
    session: AsyncSession,
    user_id: int,
    *,
    asset_id: int | None = None,
    role_category_id: int | None = None,
    role_id: int | None = None,
    seniority_level_id: int | None = None,
) -> dict[str, Any]:
    """Completion of the units assigned to a learner profile.

    An assignment matches when each given filter equals its column or the
    column is NULL (the assignment does not restrict that dimension).
    """
    await _require_user(session, user_id)
    where = []
    for column, value in (
        (UnitRoleAssignmentRow.asset_id, asset_id),
        (UnitRoleAssignmentRow.role_category_id, role_category_id),
        (UnitRoleAssignmentRow.role_id, role_id),
        (UnitRoleAssignmentRow.seniority_level_id, seniority_level_id),
    ):
        if value is not None:
            where.append((column == value) | column.is_(None))

    units = await CrudRepo(session, UnitRow).find_all(
        UnitRow.id.in_(select(UnitRoleAssignmentRow.unit_id).where(*where)),
        order_by=[UnitRow.order, UnitRow.id],
    )

    block_counts = dict(
        (
            await session.execute(
                select(LearningBlockRow.unit_id, func.count())
                .where(LearningBlockRow.unit_id.in_([u.id for u in units]))
                .group_by(LearningBlockRow.unit_id)
            )
        ).all()
    )
    completed_counts = dict(
        (
            await session.execute(
                select(LearningBlockRow.unit_id, func.count())
                .join(
                    UserLearningBlockProgressRow,
                    UserLearningBlockProgressRow.learning_block_id
                    == LearningBlockRow.id,
                )
                .where(
                    UserLearningBlockProgressRow.user_id == user_id,
                    UserLearningBlockProgressRow.status == COMPLETED,
                    LearningBlockRow.unit_id.in_([u.id for u in units]),
                )
                .group_by(LearningBlockRow.unit_id)
            )
        ).all()
    )

    unit_rows = []
    for unit in units:
        total = block_counts.get(unit.id, 0)
        done = completed_counts.get(unit.id, 0)
        percentage = completion_percentage(done, total)
        unit_rows.append(
            {
                "unitId": unit.id,
                "unitName": unit.name,
                "totalBlocks": total,
                "completedBlocks": done,
                "completionPercentage": percentage,
                "status": status_for(percentage),
            }
        )

    completed_units = sum(1 for u in unit_rows if u["status"] == COMPLETED)
    return {
        "userId": user_id,
        "totalUnits": len(unit_rows),
        "completedUnits": completed_units,
        "completionPercentage": completion_percentage(completed_units, len(unit_rows)),
        "units": unit_rows,
    }
