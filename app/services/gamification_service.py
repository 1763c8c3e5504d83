"""XP, badges, certificates and the leaderboard."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.core.timeutil import utcnow
from app.db.tables import BadgeRow, CertificateRow, UserBadgeRow, UserRow
from app.repos.crud import CrudRepo
from app.services import notification_service
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)

CERTIFICATE_VALIDITY = timedelta(days=730)


async def award_xp(session: AsyncSession, user_id: int, points: int) -> None:
    """Add *points* to the user's XP in a single UPDATE."""
    if points <= 0:
        return
    await session.execute(
        update(UserRow)
        .where(UserRow.id == user_id)
        .values(xp=UserRow.xp + points)
        .execution_options(synchronize_session=False)
    )
    user = await session.get(UserRow, user_id)
    if user is not None:
        await session.refresh(user, ["xp"])
    reports_changed(session)
    logger.info("Awarded %d XP to user=%d", points, user_id)


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


async def issue_certificate(
    session: AsyncSession,
    user_id: int,
    training_area_id: int,
    course_id: int | None = None,
) -> tuple[CertificateRow, bool]:
    """Issue the training-area certificate once per user.

    Returns (certificate, created). A second pass returns the existing one.
    """
    certificates = CrudRepo(session, CertificateRow)
    existing = await certificates.find_one(
        CertificateRow.user_id == user_id,
        CertificateRow.training_area_id == training_area_id,
    )
    if existing is not None:
        return existing, False

    now = utcnow()
    certificate = await certificates.add(
        user_id=user_id,
        training_area_id=training_area_id,
        course_id=course_id,
        certificate_number=(
            f"TA-{training_area_id}-{user_id}-{int(now.timestamp() * 1000)}"
        ),
        issue_date=now,
        expiry_date=now + CERTIFICATE_VALIDITY,
        status="active",
    )
    logger.info(
        "Issued certificate %s to user=%d", certificate.certificate_number, user_id
    )
    return certificate, True


async def certificates_for_user(
    session: AsyncSession, user_id: int
) -> list[CertificateRow]:
    return await CrudRepo(session, CertificateRow).find_all(
        CertificateRow.user_id == user_id,
        order_by=[CertificateRow.issue_date.desc(), CertificateRow.id.desc()],
    )


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


async def get_badge(session: AsyncSession, badge_id: int) -> BadgeRow:
    badge = await CrudRepo(session, BadgeRow).get(badge_id)
    if badge is None:
        raise NotFoundError("Badge not found")
    return badge


async def list_badges(
    session: AsyncSession, *, limit: int | None = None, offset: int = 0
) -> list[BadgeRow]:
    return await CrudRepo(session, BadgeRow).find_all(limit=limit, offset=offset)


async def create_badge(session: AsyncSession, values: dict[str, Any]) -> BadgeRow:
    badge = await CrudRepo(session, BadgeRow).add(**values)
    logger.info("Created badge id=%d", badge.id)
    return badge


async def update_badge(
    session: AsyncSession, badge_id: int, changes: dict[str, Any]
) -> BadgeRow:
    badge = await get_badge(session, badge_id)
    return await CrudRepo(session, BadgeRow).update(badge, changes)


async def delete_badge(session: AsyncSession, badge_id: int) -> None:
    await get_badge(session, badge_id)
    await CrudRepo(session, BadgeRow).delete_by_id(badge_id)


async def award_badge(
    session: AsyncSession, user_id: int, badge_id: int
) -> UserBadgeRow:
    if await CrudRepo(session, UserRow).get(user_id) is None:
        raise NotFoundError("User not found")
    badge = await get_badge(session, badge_id)

    user_badges = CrudRepo(session, UserBadgeRow)
    if await user_badges.exists(
        UserBadgeRow.user_id == user_id, UserBadgeRow.badge_id == badge_id
    ):
        raise ConflictError("User already has this badge")

    earned = await user_badges.add(user_id=user_id, badge_id=badge_id)
    await award_xp(session, user_id, badge.xp_points)
    await notification_service.notify(
        session,
        user_id,
        type="badge_earned",
        title="Badge earned",
        message=f'You earned the "{badge.name}" badge.',
        meta={"badgeId": badge.id},
    )
    return earned


async def badges_for_user(
    session: AsyncSession, user_id: int
) -> list[tuple[UserBadgeRow, BadgeRow]]:
    earned = await CrudRepo(session, UserBadgeRow).find_all(
        UserBadgeRow.user_id == user_id,
        order_by=[UserBadgeRow.earned_at.desc(), UserBadgeRow.id.desc()],
    )
    badges = {
        b.id: b
        for b in await CrudRepo(session, BadgeRow).find_all(
            BadgeRow.id.in_([e.badge_id for e in earned])
        )
    }
    return [(e, badges[e.badge_id]) for e in earned]


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------


async def leaderboard(session: AsyncSession, limit: int = 10) -> list[UserRow]:
    """Learners ranked by XP; ties go to the earlier account."""
    return await CrudRepo(session, UserRow).find_all(
        UserRow.user_type == "user",
        order_by=[UserRow.xp.desc(), UserRow.id],
        limit=limit,
    )
