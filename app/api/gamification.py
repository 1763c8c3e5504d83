from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from app.api.crud_routes import partial_changes
from app.api.dependencies import AdminUser, CurrentUser, DbSession, ensure_can_act_for
from app.api.schemas import (
    CamelModel,
    Envelope,
    Message,
    NonEmptyStr,
    PagedEnvelope,
    Pagination,
    dump,
    ok,
    paged,
    pagination,
)
from app.api.training import CertificateOut
from app.db.tables import BadgeRow
from app.services import gamification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gamification", tags=["gamification"])

NonNegative = Annotated[int, Field(ge=0)]


class BadgeIn(CamelModel):
    name: NonEmptyStr
    description: str | None = None
    image_url: str | None = None
    xp_points: NonNegative = 100
    type: NonEmptyStr


class BadgeUpdate(CamelModel):
    name: NonEmptyStr | None = None
    description: str | None = None
    image_url: str | None = None
    xp_points: NonNegative | None = None
    type: NonEmptyStr | None = None


class BadgeOut(CamelModel):
    id: int
    name: str
    description: str | None = None
    image_url: str | None = None
    xp_points: int
    type: str
    created_at: datetime | None = None


class AwardBadgeIn(CamelModel):
    badge_id: int


class UserBadgeOut(CamelModel):
    id: int
    user_id: int
    badge_id: int
    earned_at: datetime | None = None
    badge: BadgeOut | None = None


class LeaderboardEntry(CamelModel):
    rank: int
    user_id: int
    first_name: str
    last_name: str
    xp: int


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


@router.get("/badges", response_model=PagedEnvelope[list[BadgeOut]])
async def list_badges(
    session: DbSession, page: Annotated[Pagination, Depends(pagination)]
) -> dict:
    rows = await gamification_service.list_badges(
        session, limit=page.limit, offset=page.offset
    )
    return paged("Badges retrieved successfully", dump(BadgeOut, rows), page)


@router.get("/badges/{badge_id}", response_model=Envelope[BadgeOut])
async def get_badge(badge_id: int, session: DbSession) -> dict:
    badge = await gamification_service.get_badge(session, badge_id)
    return ok("Badge retrieved successfully", dump(BadgeOut, badge))


@router.post(
    "/badges", status_code=status.HTTP_201_CREATED, response_model=Envelope[BadgeOut]
)
async def create_badge(payload: BadgeIn, session: DbSession, _admin: AdminUser) -> dict:
    badge = await gamification_service.create_badge(session, payload.model_dump())
    return ok("Badge created successfully", dump(BadgeOut, badge))


@router.put("/badges/{badge_id}", response_model=Envelope[BadgeOut])
async def update_badge(
    badge_id: int, payload: BadgeUpdate, session: DbSession, _admin: AdminUser
) -> dict:
    badge = await gamification_service.update_badge(
        session, badge_id, partial_changes(BadgeRow, payload)
    )
    return ok("Badge updated successfully", dump(BadgeOut, badge))


@router.delete("/badges/{badge_id}", response_model=Message)
async def delete_badge(badge_id: int, session: DbSession, _admin: AdminUser) -> dict:
    await gamification_service.delete_badge(session, badge_id)
    return {"success": True, "message": "Badge deleted successfully"}


# ---------------------------------------------------------------------------
# Per-user
# ---------------------------------------------------------------------------


@router.post(
    "/users/{user_id}/badges",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[UserBadgeOut],
)
async def award_badge(
    user_id: int, payload: AwardBadgeIn, session: DbSession, _admin: AdminUser
) -> dict:
    earned = await gamification_service.award_badge(session, user_id, payload.badge_id)
    badge = await gamification_service.get_badge(session, earned.badge_id)
    out = UserBadgeOut.model_validate(earned)
    out.badge = BadgeOut.model_validate(badge)
    return ok("Badge awarded successfully", out)


@router.get("/users/{user_id}/badges", response_model=Envelope[list[UserBadgeOut]])
async def user_badges(user_id: int, session: DbSession, principal: CurrentUser) -> dict:
    ensure_can_act_for(principal, user_id)
    pairs = await gamification_service.badges_for_user(session, user_id)
    data = []
    for earned, badge in pairs:
        out = UserBadgeOut.model_validate(earned)
        out.badge = BadgeOut.model_validate(badge)
        data.append(out)
    return ok("User badges retrieved successfully", data)


@router.get(
    "/users/{user_id}/certificates", response_model=Envelope[list[CertificateOut]]
)
async def user_certificates(
    user_id: int, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    rows = await gamification_service.certificates_for_user(session, user_id)
    return ok("Certificates retrieved successfully", dump(CertificateOut, rows))


@router.get("/leaderboard", response_model=Envelope[list[LeaderboardEntry]])
async def leaderboard(
    session: DbSession, limit: Annotated[int, Query(ge=1, le=100)] = 10
) -> dict:
    users = await gamification_service.leaderboard(session, limit)
    data = [
        LeaderboardEntry(
            rank=rank,
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            xp=user.xp,
        )
        for rank, user in enumerate(users, start=1)
    ]
    return ok("Leaderboard retrieved successfully", data)
