from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, status

from app.api.dependencies import CurrentUser, DbSession, StaffUser, ensure_can_act_for
from app.api.schemas import CamelModel, Envelope, Message, dump, ok
from app.services import enrollment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/enrollments", tags=["enrollments"])


class EnrollmentIn(CamelModel):
    user_id: int
    course_id: int
    enrollment_source: Literal["manual", "assigned", "auto"] = "manual"


class EnrollmentOut(CamelModel):
    id: int
    user_id: int
    course_id: int
    enrolled_at: datetime | None = None
    enrollment_source: str


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Envelope[EnrollmentOut])
async def enroll(payload: EnrollmentIn, session: DbSession, principal: CurrentUser) -> dict:
    ensure_can_act_for(principal, payload.user_id)
    enrollment = await enrollment_service.enroll(
        session, payload.user_id, payload.course_id, payload.enrollment_source
    )
    return ok("Enrolled successfully", dump(EnrollmentOut, enrollment))


@router.get("/user/{user_id}", response_model=Envelope[list[EnrollmentOut]])
async def enrollments_for_user(
    user_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    rows = await enrollment_service.for_user(session, user_id)
    return ok("Enrollments retrieved successfully", dump(EnrollmentOut, rows))


@router.get("/course/{course_id}", response_model=Envelope[list[EnrollmentOut]])
async def enrollments_for_course(
    course_id: int, session: DbSession, _staff: StaffUser
) -> dict:
    rows = await enrollment_service.for_course(session, course_id)
    return ok("Enrollments retrieved successfully", dump(EnrollmentOut, rows))


@router.delete("/user/{user_id}/course/{course_id}", response_model=Message)
async def unenroll(
    user_id: int, course_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    await enrollment_service.unenroll(session, user_id, course_id)
    return {"success": True, "message": "Unenrolled successfully"}
