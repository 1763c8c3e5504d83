"""Notification endpoints; every read and write is scoped to the caller."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import AdminUser, CurrentUser, DbSession
from app.api.schemas import (
    CamelModel,
    Envelope,
    Message,
    NonEmptyStr,
    PagedEnvelope,
    Pagination,
    ok,
    paged,
    pagination,
)
from app.services import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class NotificationIn(CamelModel):
    user_id: int
    type: NonEmptyStr
    title: NonEmptyStr
    message: NonEmptyStr
    metadata: dict[str, Any] | None = None


class NotificationOut(CamelModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    read: bool
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> NotificationOut:
        return cls(
            id=row.id,
            user_id=row.user_id,
            type=row.type,
            title=row.title,
            message=row.message,
            read=row.read,
            metadata=row.meta,
            created_at=row.created_at,
        )


@router.get("", response_model=PagedEnvelope[list[NotificationOut]])
async def list_notifications(
    session: DbSession,
    principal: CurrentUser,
    page: Annotated[Pagination, Depends(pagination)],
    unread_only: Annotated[bool, Query(alias="unreadOnly")] = False,
) -> dict:
    rows = await notification_service.list_for_user(
        session,
        principal.id,
        unread_only=unread_only,
        limit=page.limit,
        offset=page.offset,
    )
    return paged(
        "Notifications retrieved successfully",
        [NotificationOut.from_row(r) for r in rows],
        page,
    )


@router.post(
    "", status_code=status.HTTP_201_CREATED, response_model=Envelope[NotificationOut]
)
async def create_notification(
    payload: NotificationIn, session: DbSession, _admin: AdminUser
) -> dict:
    row = await notification_service.notify(
        session,
        payload.user_id,
        type=payload.type,
        title=payload.title,
        message=payload.message,
        meta=payload.metadata,
    )
    return ok("Notification created successfully", NotificationOut.from_row(row))


@router.put("/read-all", response_model=Envelope[dict[str, int]])
async def mark_all_read(session: DbSession, principal: CurrentUser) -> dict:
    updated = await notification_service.mark_all_read(session, principal.id)
    return ok("Notifications marked as read", {"updated": updated})


@router.put("/{notification_id}/read", response_model=Envelope[NotificationOut])
async def mark_read(
    notification_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    row = await notification_service.mark_read(session, notification_id, principal.id)
    return ok("Notification marked as read", NotificationOut.from_row(row))


@router.delete("/{notification_id}", response_model=Message)
async def delete_notification(
    notification_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    await notification_service.delete(session, notification_id, principal.id)
    return {"success": True, "message": "Notification deleted successfully"}
