from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.db.tables import CourseEnrollmentRow, CourseRow, UserRow
from app.repos.crud import CrudRepo
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)


async def enroll(
    session: AsyncSession, user_id: int, course_id: int, source: str = "manual"
) -> CourseEnrollmentRow:
    if await CrudRepo(session, UserRow).get(user_id) is None:
        raise NotFoundError("User not found")
    if await CrudRepo(session, CourseRow).get(course_id) is None:
        raise NotFoundError("Course not found")

    enrollments = CrudRepo(session, CourseEnrollmentRow)
    if await enrollments.exists(
        CourseEnrollmentRow.user_id == user_id, CourseEnrollmentRow.course_id == course_id
    ):
        raise ConflictError("User is already enrolled in this course")

    enrollment = await enrollments.add(
        user_id=user_id, course_id=course_id, enrollment_source=source
    )
    reports_changed(session)
    logger.info("Enrolled user=%d in course=%d (%s)", user_id, course_id, source)
    return enrollment


async def for_user(session: AsyncSession, user_id: int) -> list[CourseEnrollmentRow]:
    return await CrudRepo(session, CourseEnrollmentRow).find_all(
        CourseEnrollmentRow.user_id == user_id
    )


async def for_course(session: AsyncSession, course_id: int) -> list[CourseEnrollmentRow]:
    return await CrudRepo(session, CourseEnrollmentRow).find_all(
        CourseEnrollmentRow.course_id == course_id
    )


async def unenroll(session: AsyncSession, user_id: int, course_id: int) -> None:
    removed = await CrudRepo(session, CourseEnrollmentRow).delete(
        CourseEnrollmentRow.user_id == user_id, CourseEnrollmentRow.course_id == course_id
    )
    if not removed:
        raise NotFoundError("Enrollment not found")
    reports_changed(session)
    logger.info("Unenrolled user=%d from course=%d", user_id, course_id)
