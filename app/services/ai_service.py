"""Proxy to the external AI backend, plus the learner context it is fed.

The AI backend owns bot configuration and the chat model; this API only
relays requests and enriches them with a training context that carries
no personal data (no names, emails or phone numbers).
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from typing import Any

import httpx
from fastapi import status
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import SETTINGS
from app.core.errors import AppError, NotFoundError
from app.core.metrics import AI_PROXY_REQUESTS
from app.db.tables import (
    CertificateRow,
    CourseRow,
    CourseUnitRow,
    ModuleRow,
    TrainingAreaRow,
    UserCourseProgressRow,
    UserCourseUnitProgressRow,
    UserRow,
)
from app.models.progress import COMPLETED, IN_PROGRESS, NOT_STARTED

logger = logging.getLogger(__name__)


class AIBackendUnavailable(AppError):
    def __init__(self) -> None:
        super().__init__("AI backend unavailable", status.HTTP_502_BAD_GATEWAY)


class AIBackend:
    """Thin httpx wrapper around the AI backend's HTTP API.

    A fresh ``AsyncClient`` is opened per call; streamed chats keep theirs
    open until the relay generator finishes. ``transport`` lets tests swap
    in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        )

    async def bot_config(self, bot_id: str) -> Any:
        async with self._client() as client:
            try:
                response = await client.get(f"/api/admin/bot/{bot_id}")
            except httpx.HTTPError as e:
                logger.warning("AI backend unreachable for bot=%s: %s", bot_id, e)
                AI_PROXY_REQUESTS.labels(endpoint="bot", result="error").inc()
                raise AIBackendUnavailable() from e
        if response.status_code >= 400:
            logger.warning(
                "AI backend returned %d for bot=%s", response.status_code, bot_id
            )
            AI_PROXY_REQUESTS.labels(endpoint="bot", result="error").inc()
            raise AIBackendUnavailable()
        AI_PROXY_REQUESTS.labels(endpoint="bot", result="ok").inc()
        return response.json()

    async def open_chat(
        self, bot_id: str, body: dict[str, Any], endpoint: str
    ) -> AsyncIterator[str]:
        """Start a streamed chat and return an iterator over its text chunks.

        The upstream status is checked before returning so callers can still
        answer with an error envelope instead of a broken stream.
        """
        client = self._client()
        request = client.build_request(
            "POST", f"/agent/chatbot/{bot_id}/chat", json=body
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.warning("AI backend unreachable for chat bot=%s: %s", bot_id, e)
            AI_PROXY_REQUESTS.labels(endpoint=endpoint, result="error").inc()
            raise AIBackendUnavailable() from e

        if response.status_code >= 400:
            await response.aclose()
            await client.aclose()
            logger.warning(
                "AI backend returned %d for chat bot=%s", response.status_code, bot_id
            )
            AI_PROXY_REQUESTS.labels(endpoint=endpoint, result="error").inc()
            raise AIBackendUnavailable()

        AI_PROXY_REQUESTS.labels(endpoint=endpoint, result="ok").inc()
        return _relay(client, response)


async def _relay(
    client: httpx.AsyncClient, response: httpx.Response
) -> AsyncIterator[str]:
    try:
        async for chunk in response.aiter_text():
            if chunk:
                yield chunk
    finally:
        await response.aclose()
        await client.aclose()


def get_ai_backend() -> AIBackend:
    """FastAPI dependency; overridden in tests."""
    return AIBackend(SETTINGS.ai_backend_url, SETTINGS.ai_timeout_seconds)


def new_session_id() -> str:
    return f"session-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


def chat_body(
    message: str,
    *,
    system_prompt: str,
    bot_name: str,
    session_id: str | None,
    training_context: dict[str, Any] | None,
) -> dict[str, Any]:
    return {
        "message": message,
        "sessionId": session_id or new_session_id(),
        "systemPrompt": system_prompt,
        "botName": bot_name,
        "trainingContext": training_context,
    }


# ---------------------------------------------------------------------------
# Training context
# ---------------------------------------------------------------------------


async def training_context(session: AsyncSession, user_id: int) -> dict[str, Any]:
    """Courses, certificates and overall counts for one learner, free of PII."""
    if await session.get(UserRow, user_id) is None:
        raise NotFoundError("User not found")

    courses = (
        await session.execute(
            select(
                CourseRow,
                TrainingAreaRow.name,
                UserCourseProgressRow.status,
                UserCourseProgressRow.completion_percentage,
            )
            .join(ModuleRow, ModuleRow.id == CourseRow.module_id)
            .join(TrainingAreaRow, TrainingAreaRow.id == ModuleRow.training_area_id)
            .outerjoin(
                UserCourseProgressRow,
                and_(
                    UserCourseProgressRow.course_id == CourseRow.id,
                    UserCourseProgressRow.user_id == user_id,
                ),
            )
            .order_by(CourseRow.id)
        )
    ).all()

    unit_rows = (
        await session.execute(
            select(CourseUnitRow.course_id, UserCourseUnitProgressRow.status).outerjoin(
                UserCourseUnitProgressRow,
                and_(
                    UserCourseUnitProgressRow.course_unit_id == CourseUnitRow.id,
                    UserCourseUnitProgressRow.user_id == user_id,
                ),
            )
        )
    ).all()
    units_total: dict[int, int] = {}
    units_completed: dict[int, int] = {}
    for course_id, unit_status in unit_rows:
        units_total[course_id] = units_total.get(course_id, 0) + 1
        if unit_status == COMPLETED:
            units_completed[course_id] = units_completed.get(course_id, 0) + 1

    certificates = (
        await session.execute(
            select(CertificateRow, TrainingAreaRow.name)
            .outerjoin(TrainingAreaRow, TrainingAreaRow.id == CertificateRow.training_area_id)
            .where(CertificateRow.user_id == user_id)
            .order_by(CertificateRow.issue_date)
        )
    ).all()

    frontend = SETTINGS.frontend_url
    course_list = [
        {
            "id": course.id,
            "name": course.name,
            "description": course.description,
            "imageUrl": course.image_url,
            "level": course.level,
            "duration": course.duration,
            "showDuration": course.show_duration,
            "showLevel": course.show_level,
            "status": progress_status or NOT_STARTED,
            "completionPercentage": float(percentage or 0),
            "unitsTotal": units_total.get(course.id, 0),
            "unitsCompleted": units_completed.get(course.id, 0),
            "courseUrl": f"{frontend}/user/courses/{course.id}",
            "trainingAreaName": area_name,
        }
        for course, area_name, progress_status, percentage in courses
    ]
    return {
        "userId": user_id,
        "frontendUrl": frontend,
        "courses": course_list,
        "certificates": [
            {
                "id": cert.id,
                "trainingAreaName": area_name,
                "certificateNumber": cert.certificate_number,
                "issueDate": cert.issue_date.isoformat() if cert.issue_date else None,
                "expiryDate": cert.expiry_date.isoformat() if cert.expiry_date else None,
                "status": cert.status,
            }
            for cert, area_name in certificates
        ],
        "overallProgress": {
            "totalCourses": len(course_list),
            "completedCourses": sum(1 for c in course_list if c["status"] == COMPLETED),
            "inProgressCourses": sum(
                1 for c in course_list if c["status"] == IN_PROGRESS
            ),
        },
    }


async def context_or_none(session: AsyncSession, user_id: int) -> dict[str, Any] | None:
    """Training context for a chat call; a failure here must not block the chat."""
    try:
        return await training_context(session, user_id)
    except Exception:
        logger.exception("Could not build training context for user=%d", user_id)
        return None
