"""Learner progress endpoints under /api/progress.

Every route takes the learner's id; learners may only read or write their
own progress, staff may act on anyone's.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter
from pydantic import Field

from app.api.dependencies import AdminUser, CurrentUser, DbSession, ensure_can_act_for
from app.api.schemas import CamelModel, Envelope, dump, ok
from app.services import progress_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])

PositiveId = Annotated[int, Field(gt=0)]


class CompleteBlockIn(CamelModel):
    user_id: PositiveId
    learning_block_id: PositiveId


class LearningPathIn(CamelModel):
    user_id: PositiveId
    asset_id: PositiveId | None = None
    role_category_id: PositiveId | None = None
    role_id: PositiveId | None = None
    seniority_level_id: PositiveId | None = None


class BlockProgressOut(CamelModel):
    id: int
    user_id: int
    learning_block_id: int
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None


class _LevelProgressOut(CamelModel):
    id: int
    user_id: int
    status: str
    completion_percentage: float
    started_at: datetime | None = None
    completed_at: datetime | None = None


class CourseUnitProgressOut(_LevelProgressOut):
    course_unit_id: int


class CourseProgressOut(_LevelProgressOut):
    course_id: int


class ModuleProgressOut(_LevelProgressOut):
    module_id: int


class TrainingAreaProgressOut(_LevelProgressOut):
    training_area_id: int


class UserProgressOut(CamelModel):
    learning_blocks: list[BlockProgressOut]
    course_units: list[CourseUnitProgressOut]
    courses: list[CourseProgressOut]
    modules: list[ModuleProgressOut]
    training_areas: list[TrainingAreaProgressOut]


OUT_MODELS: dict[str, type[CamelModel]] = {
    "learning-blocks": BlockProgressOut,
    "course-units": CourseUnitProgressOut,
    "courses": CourseProgressOut,
    "modules": ModuleProgressOut,
    "training-areas": TrainingAreaProgressOut,
}


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("/learning-blocks/complete", response_model=Envelope[BlockProgressOut])
async def complete_learning_block(
    payload: CompleteBlockIn, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, payload.user_id)
    progress = await progress_service.complete_learning_block(
        session, payload.user_id, payload.learning_block_id
    )
    return ok("Learning block completed successfully", dump(BlockProgressOut, progress))


@router.post("/learning-path-completion", response_model=Envelope[dict[str, Any]])
async def learning_path_completion(
    payload: LearningPathIn, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, payload.user_id)
    result = await progress_service.learning_path_completion(
        session,
        payload.user_id,
        asset_id=payload.asset_id,
        role_category_id=payload.role_category_id,
        role_id=payload.role_id,
        seniority_level_id=payload.seniority_level_id,
    )
    return ok("Learning path completion retrieved successfully", result)


@router.delete("/user/{user_id}/reset", response_model=Envelope[dict[str, int]])
async def reset_user_progress(user_id: int, session: DbSession, _admin: AdminUser) -> dict:
    deleted = await progress_service.reset_user_progress(session, user_id)
    return ok("User progress reset successfully", deleted)


@router.post("/user/{user_id}/recalculate", response_model=Envelope[dict[str, int]])
async def recalculate_user_progress(
    user_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    summary = await progress_service.recalculate_user_progress(session, user_id)
    return ok("User progress recalculated successfully", summary)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/user/{user_id}", response_model=Envelope[UserProgressOut])
async def user_progress(user_id: int, session: DbSession, principal: CurrentUser) -> dict:
    ensure_can_act_for(principal, user_id)
    levels = await progress_service.user_progress(session, user_id)
    data = {
        level.replace("-", "_"): dump(OUT_MODELS[level], rows)
        for level, rows in levels.items()
    }
    return ok("User progress retrieved successfully", data)


@router.get("/user/{user_id}/detailed", response_model=Envelope[dict[str, Any]])
async def detailed_progress(
    user_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    data = await progress_service.detailed_progress(session, user_id)
    return ok("Detailed user progress retrieved successfully", data)


def _register_level(level: str, label: str) -> None:
    out_model = OUT_MODELS[level]
    name = level.replace("-", "_")

    async def level_progress(
        user_id: int,
        session: DbSession,
        principal: CurrentUser,
        entity_id: int | None = None,
    ) -> dict:
        ensure_can_act_for(principal, user_id)
        rows = await progress_service.progress_for(session, level, user_id, entity_id)
        return ok(f"{label} progress retrieved successfully", dump(out_model, rows))

    router.add_api_route(
        f"/{level}/{{user_id}}",
        level_progress,
        methods=["GET"],
        response_model=Envelope[list[out_model]],  # type: ignore[valid-type]
        name=f"{name}_progress",
    )
    router.add_api_route(
        f"/{level}/{{user_id}}/{{entity_id}}",
        level_progress,
        methods=["GET"],
        response_model=Envelope[list[out_model]],  # type: ignore[valid-type]
        name=f"{name}_progress_by_entity",
    )


_register_level("learning-blocks", "Learning block")
_register_level("course-units", "Course-unit")
_register_level("courses", "Course")
_register_level("modules", "Module")
_register_level("training-areas", "Training area")
