"""User accounts and their sub-admin / learner profiles.

Also owns the two one-time token flows: invitations (sub-admins invite
frontliners) and password resets.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import SETTINGS
from app.core.errors import AppError, BadRequestError, ConflictError, NotFoundError
from app.core.timeutil import as_utc, utcnow
from app.db.tables import (
    InvitationRow,
    NormalUserRow,
    PasswordResetRow,
    SubAdminRow,
    UserRow,
)
from app.repos.crud import CrudRepo
from app.services import auth_service, token_service
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)

PASSWORD_RESET_TTL = timedelta(hours=1)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _sub_organizations(value: str | list[str] | None) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    cleaned = [v.strip() for v in value if v and v.strip()]
    return cleaned or None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def get_user(session: AsyncSession, user_id: int) -> UserRow:
    user = await CrudRepo(session, UserRow).get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def create_user(session: AsyncSession, data: dict[str, Any]) -> UserRow:
    users = CrudRepo(session, UserRow)
    email = normalize_email(data["email"])
    if await users.exists(UserRow.email == email):
        logger.warning("Rejected duplicate email=%s", email)
        raise ConflictError("User with this email already exists")

    user = await users.add(
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
        email=email,
        organization=data["organization"].strip(),
        sub_organization=_sub_organizations(data.get("sub_organization")),
        asset=data["asset"].strip(),
        sub_asset=data["sub_asset"].strip(),
        user_type=data["user_type"],
        password_hash=auth_service.hash_password(data["password"]),
    )
    reports_changed(session)
    logger.info("Created user id=%d type=%s", user.id, user.user_type)
    return user


async def list_users(
    session: AsyncSession, *, limit: int | None = None, offset: int = 0
) -> list[UserRow]:
    return await CrudRepo(session, UserRow).find_all(limit=limit, offset=offset)


async def get_profiles(
    session: AsyncSession, user_id: int
) -> tuple[SubAdminRow | None, NormalUserRow | None]:
    sub_admin = await CrudRepo(session, SubAdminRow).get(user_id)
    normal_user = await CrudRepo(session, NormalUserRow).get(user_id)
    return sub_admin, normal_user


async def update_user(
    session: AsyncSession, user_id: int, changes: dict[str, Any]
) -> UserRow:
    """Partial update: only keys present in ``changes`` are written."""
    users = CrudRepo(session, UserRow)
    user = await get_user(session, user_id)

    if "email" in changes and changes["email"] is not None:
        email = normalize_email(changes["email"])
        if email != user.email and await users.exists(
            UserRow.email == email, UserRow.id != user_id
        ):
            raise ConflictError("Email is already taken by another user")
        changes["email"] = email

    if "sub_organization" in changes:
        changes["sub_organization"] = _sub_organizations(changes["sub_organization"])

    for key in ("first_name", "last_name", "organization", "asset", "sub_asset"):
        if key in changes:
            if changes[key] is None:
                raise BadRequestError(
                    "Validation failed", [f"{key} must be a non-empty string"]
                )
            changes[key] = changes[key].strip()

    user = await users.update(user, changes)
    reports_changed(session)
    return user


async def delete_user(session: AsyncSession, user_id: int) -> None:
    await get_user(session, user_id)
    if not await CrudRepo(session, UserRow).delete_by_id(user_id):
        raise AppError("Failed to delete user")
    reports_changed(session)
    logger.info("Deleted user id=%d", user_id)


# ---------------------------------------------------------------------------
# Sub-admins
# ---------------------------------------------------------------------------


async def _require_unregistered_sub_admin(
    session: AsyncSession, user_id: int
) -> UserRow:
    user = await get_user(session, user_id)
    if user.user_type != "sub_admin":
        raise BadRequestError("User is not a sub-admin")
    if await CrudRepo(session, SubAdminRow).get(user_id) is not None:
        raise ConflictError("Sub-admin registration is already completed")
    return user


async def get_sub_admin_registration_details(
    session: AsyncSession, user_id: int
) -> UserRow:
    return await _require_unregistered_sub_admin(session, user_id)


async def complete_sub_admin_registration(
    session: AsyncSession, user_id: int, data: dict[str, Any]
) -> UserRow:
    """Set the sub-admin's password and create their profile.

    Both writes share the request transaction, so a failed profile insert
    leaves the old password in place.
    """
    user = await _require_unregistered_sub_admin(session, user_id)
    sub_admins = CrudRepo(session, SubAdminRow)
    eid = data["eid"].strip()
    if await sub_admins.exists(SubAdminRow.eid == eid):
        raise ConflictError("EID is already taken by another sub-admin")

    await CrudRepo(session, UserRow).update(
        user, {"password_hash": auth_service.hash_password(data["password"])}
    )
    await sub_admins.add(
        user_id=user_id,
        job_title=data["job_title"].strip(),
        total_frontliners=data.get("total_frontliners"),
        eid=eid,
        phone_number=data["phone_number"].strip(),
    )
    reports_changed(session)
    logger.info("Completed sub-admin registration user=%d", user_id)
    return user


async def update_sub_admin(
    session: AsyncSession, user_id: int, changes: dict[str, Any]
) -> SubAdminRow:
    sub_admins = CrudRepo(session, SubAdminRow)
    profile = await sub_admins.get(user_id)
    if profile is None:
        raise NotFoundError("Sub-admin not found for this user")

    if changes.get("eid"):
        changes["eid"] = changes["eid"].strip()
        if changes["eid"] != profile.eid and await sub_admins.exists(
            SubAdminRow.eid == changes["eid"]
        ):
            raise ConflictError("EID is already taken by another sub-admin")

    updated = await sub_admins.update(profile, changes)
    await _touch(session, user_id)
    return updated


# ---------------------------------------------------------------------------
# Normal users (frontliners)
# ---------------------------------------------------------------------------


async def register_normal_user(
    session: AsyncSession, user_id: int, data: dict[str, Any]
) -> NormalUserRow:
    await get_user(session, user_id)
    normal_users = CrudRepo(session, NormalUserRow)
    if await normal_users.get(user_id) is not None:
        raise ConflictError("User is already registered as a normal user")

    eid = data["eid"].strip()
    if await normal_users.exists(NormalUserRow.eid == eid):
        raise ConflictError("EID is already taken by another normal user")

    profile = await normal_users.add(
        user_id=user_id,
        role_category=data["role_category"].strip(),
        role=data["role"].strip(),
        seniority=data["seniority"].strip(),
        eid=eid,
        phone_number=data["phone_number"].strip(),
        existing=bool(data.get("existing", False)),
        initial_assessment=bool(data.get("initial_assessment", False)),
    )
    await _touch(session, user_id)
    logger.info("Registered normal user user=%d", user_id)
    return profile


async def update_normal_user(
    session: AsyncSession, user_id: int, changes: dict[str, Any]
) -> NormalUserRow:
    normal_users = CrudRepo(session, NormalUserRow)
    profile = await normal_users.get(user_id)
    if profile is None:
        raise NotFoundError("Normal user not found for this user")

    if changes.get("eid"):
        changes["eid"] = changes["eid"].strip()
        if changes["eid"] != profile.eid and await normal_users.exists(
            NormalUserRow.eid == changes["eid"]
        ):
            raise ConflictError("EID is already taken by another normal user")

    updated = await normal_users.update(profile, changes)
    await _touch(session, user_id)
    return updated


async def _touch(session: AsyncSession, user_id: int) -> None:
    """Bump the user's updated_at after a profile write."""
    user = await CrudRepo(session, UserRow).get(user_id)
    if user is not None:
        await CrudRepo(session, UserRow).update(user, {"updated_at": utcnow()})
    reports_changed(session)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


async def create_invitation(
    session: AsyncSession, created_by: int, invitation_type: str
) -> str:
    """Create an invitation and return the join link carrying the raw token."""
    if await CrudRepo(session, SubAdminRow).get(created_by) is None:
        raise NotFoundError("Sub-admin not found")

    token = token_service.new_opaque_token()
    await CrudRepo(session, InvitationRow).add(
        created_by=created_by,
        type=invitation_type,
        token_hash=token_service.hash_opaque_token(token),
    )
    logger.info("Invitation created by sub-admin=%d type=%s", created_by, invitation_type)
    return f"{SETTINGS.frontend_url}/join?token={token}"


async def get_invitation_context(session: AsyncSession, token: str) -> UserRow:
    """Return the inviting sub-admin's user row (organization context)."""
    invitation = await CrudRepo(session, InvitationRow).find_one(
        InvitationRow.token_hash == token_service.hash_opaque_token(token)
    )
    if invitation is None:
        raise NotFoundError("Invalid or expired invitation token")
    return await get_user(session, invitation.created_by)


async def list_invitations_by_creator(
    session: AsyncSession, created_by: int
) -> list[InvitationRow]:
    return await CrudRepo(session, InvitationRow).find_all(
        InvitationRow.created_by == created_by,
        order_by=[InvitationRow.created_at.desc(), InvitationRow.id.desc()],
    )


async def delete_invitation(
    session: AsyncSession, token: str, created_by: int | None = None
) -> None:
    """Delete by raw token; with *created_by*, only that sub-admin's invitation."""
    conditions = [InvitationRow.token_hash == token_service.hash_opaque_token(token)]
    if created_by is not None:
        conditions.append(InvitationRow.created_by == created_by)
    deleted = await CrudRepo(session, InvitationRow).delete(*conditions)
    if not deleted:
        raise NotFoundError("Invitation not found")


# ---------------------------------------------------------------------------
# Password resets
# ---------------------------------------------------------------------------


async def request_password_reset(session: AsyncSession, email: str) -> str | None:
    """Create a reset token for a known email; None when the email is unknown.

    Callers must not reveal which case happened.
    """
    user = await CrudRepo(session, UserRow).find_one(
        UserRow.email == normalize_email(email)
    )
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None

    token = token_service.new_opaque_token()
    await CrudRepo(session, PasswordResetRow).add(
        user_id=user.id,
        token_hash=token_service.hash_opaque_token(token),
        expires_at=utcnow() + PASSWORD_RESET_TTL,
    )
    logger.info(
        "Password reset link for user=%d: %s/reset-password?token=%s",
        user.id,
        SETTINGS.frontend_url,
        token,
    )
    return token


async def _valid_reset(
    session: AsyncSession, token: str
) -> tuple[PasswordResetRow, UserRow]:
    reset = await CrudRepo(session, PasswordResetRow).find_one(
        PasswordResetRow.token_hash == token_service.hash_opaque_token(token)
    )
    if reset is None or reset.used or as_utc(reset.expires_at) <= utcnow():
        raise BadRequestError("Invalid or expired password reset token")
    return reset, await get_user(session, reset.user_id)


async def verify_password_reset(session: AsyncSession, token: str) -> UserRow:
    _, user = await _valid_reset(session, token)
    return user


async def reset_password(session: AsyncSession, token: str, password: str) -> None:
    reset, user = await _valid_reset(session, token)
    await CrudRepo(session, UserRow).update(
        user, {"password_hash": auth_service.hash_password(password)}
    )
    await CrudRepo(session, PasswordResetRow).update(reset, {"used": True})
    logger.info("Password reset completed for user=%d", user.id)
