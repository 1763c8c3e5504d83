"""In-app notifications (unread by default)."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.db.tables import NotificationRow
from app.repos.crud import CrudRepo

logger = logging.getLogger(__name__)


async def notify(
    session: AsyncSession,
    user_id: int,
    *,
    type: str,
    title: str,
    message: str,
    meta: dict[str, Any] | None = None,
) -> NotificationRow:
    notification = await CrudRepo(session, NotificationRow).add(
        user_id=user_id, type=type, title=title, message=message, meta=meta
    )
    logger.debug("Notified user=%d type=%s", user_id, type)
    return notification


async def list_for_user(
    session: AsyncSession,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int | None = None,
    offset: int = 0,
) -> list[NotificationRow]:
    where = [NotificationRow.user_id == user_id]
    if unread_only:
        where.append(NotificationRow.read.is_(False))
    return await CrudRepo(session, NotificationRow).find_all(
        *where,
        order_by=[NotificationRow.created_at.desc(), NotificationRow.id.desc()],
        limit=limit,
        offset=offset,
    )


async def get_owned(
    session: AsyncSession, notification_id: int, user_id: int
) -> NotificationRow:
    """A notification belonging to *user_id*; other users' ids read as missing."""
    notification = await CrudRepo(session, NotificationRow).find_one(
        NotificationRow.id == notification_id, NotificationRow.user_id == user_id
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification


async def mark_read(
    session: AsyncSession, notification_id: int, user_id: int
) -> NotificationRow:
    notification = await get_owned(session, notification_id, user_id)
    return await CrudRepo(session, NotificationRow).update(notification, {"read": True})


async def mark_all_read(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        update(NotificationRow)
        .where(NotificationRow.user_id == user_id, NotificationRow.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def delete(session: AsyncSession, notification_id: int, user_id: int) -> None:
    await get_owned(session, notification_id, user_id)
    await CrudRepo(session, NotificationRow).delete_by_id(notification_id)
