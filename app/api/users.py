"""Identity endpoints under /api/users.

Covers login, account CRUD, the sub-admin and frontliner profile
extensions, invitations and password resets. Static paths are declared
before ``/{user_id}`` so they are matched first.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator

from app.api.dependencies import (
    AdminUser,
    CurrentUser,
    DbSession,
    OptionalUser,
    StaffUser,
    ensure_can_act_for,
    ensure_self_or_admin,
)
from app.api.ratelimit import require_rate_limit
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
from app.db.tables import NormalUserRow, SubAdminRow, UserRow
from app.services import auth_service, users_service
from app.services.auth_service import MIN_PASSWORD_LENGTH
from app.services.rate_limiter import LOGIN_LIMIT, PASSWORD_RESET_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

UserType = Literal["admin", "sub_admin", "user"]
Password = Annotated[str, Field(min_length=MIN_PASSWORD_LENGTH)]


def _check_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("must be a valid email address")
    return value


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class LoginIn(CamelModel):
    email: NonEmptyStr
    password: NonEmptyStr


class UserCreateIn(CamelModel):
    first_name: NonEmptyStr
    last_name: NonEmptyStr
    email: str
    password: Password
    organization: NonEmptyStr
    sub_organization: list[str] | str | None = None
    asset: NonEmptyStr
    sub_asset: NonEmptyStr
    user_type: UserType = "user"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _check_email(v)


class UserUpdateIn(CamelModel):
    first_name: NonEmptyStr | None = None
    last_name: NonEmptyStr | None = None
    email: str | None = None
    organization: NonEmptyStr | None = None
    sub_organization: list[str] | str | None = None
    asset: NonEmptyStr | None = None
    sub_asset: NonEmptyStr | None = None
    user_type: UserType | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return None if v is None else _check_email(v)


class UserOut(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str
    organization: str
    sub_organization: list[str] | None = None
    asset: str
    sub_asset: str
    user_type: str
    xp: int
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SubAdminOut(CamelModel):
    job_title: str
    total_frontliners: int | None = None
    eid: str
    phone_number: str


class NormalUserOut(CamelModel):
    role_category: str
    role: str
    seniority: str
    eid: str
    phone_number: str
    existing: bool
    initial_assessment: bool


class UserDetailOut(UserOut):
    sub_admin_details: SubAdminOut | None = None
    normal_user_details: NormalUserOut | None = None


class LoginNormalUserOut(CamelModel):
    existing: bool
    initial_assessment: bool


class LoginUserOut(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str
    user_type: str
    normal_user_details: LoginNormalUserOut | None = None


class AuthOut(CamelModel):
    success: bool = True
    message: str
    token: str
    user: LoginUserOut


class SubAdminRegistrationIn(CamelModel):
    password: Password
    job_title: NonEmptyStr
    eid: NonEmptyStr
    phone_number: NonEmptyStr
    total_frontliners: int | None = Field(default=None, ge=0)


class SubAdminUpdateIn(CamelModel):
    job_title: NonEmptyStr | None = None
    eid: NonEmptyStr | None = None
    phone_number: NonEmptyStr | None = None
    total_frontliners: int | None = Field(default=None, ge=0)


class RegistrationContextOut(CamelModel):
    first_name: str
    last_name: str
    email: str
    organization: str
    sub_organization: list[str] | None = None
    asset: str
    sub_asset: str


class NormalUserIn(CamelModel):
    role_category: NonEmptyStr
    role: NonEmptyStr
    seniority: NonEmptyStr
    eid: NonEmptyStr
    phone_number: NonEmptyStr
    existing: bool = False
    initial_assessment: bool = False


class NormalUserUpdateIn(CamelModel):
    role_category: NonEmptyStr | None = None
    role: NonEmptyStr | None = None
    seniority: NonEmptyStr | None = None
    eid: NonEmptyStr | None = None
    phone_number: NonEmptyStr | None = None
    existing: bool | None = None
    initial_assessment: bool | None = None


class InvitationIn(CamelModel):
    type: Literal["new_joiner", "existing_joiner"]
    created_by: int


class InvitationLinkOut(CamelModel):
    invitation_link: str


class InvitationOut(CamelModel):
    id: int
    type: str
    created_by: int
    created_at: datetime | None = None


class InvitationContextOut(CamelModel):
    organization: str
    sub_organization: list[str] | None = None
    asset: str
    sub_asset: str


class InvitationVerifyOut(CamelModel):
    sub_admin: InvitationContextOut


class InvitationListOut(CamelModel):
    invitations: list[InvitationOut]


class PasswordResetRequestIn(CamelModel):
    email: NonEmptyStr


class PasswordResetVerifyOut(CamelModel):
    email: str
    first_name: str
    last_name: str


class PasswordResetIn(CamelModel):
    token: NonEmptyStr
    password: Password


def _auth_response(
    message: str, user: UserRow, normal_user: NormalUserRow | None = None
) -> AuthOut:
    details = None
    if normal_user is not None:
        details = LoginNormalUserOut(
            existing=normal_user.existing,
            initial_assessment=normal_user.initial_assessment,
        )
    return AuthOut(
        message=message,
        token=auth_service.issue_token(user),
        user=LoginUserOut(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            user_type=user.user_type,
            normal_user_details=details,
        ),
    )


def _detail(
    user: UserRow, sub_admin: SubAdminRow | None, normal_user: NormalUserRow | None
) -> UserDetailOut:
    out = UserDetailOut.model_validate(user)
    out.sub_admin_details = dump(SubAdminOut, sub_admin)
    out.normal_user_details = dump(NormalUserOut, normal_user)
    return out


# ========================== Login ===========================================


@router.post(
    "/login",
    response_model=AuthOut,
    dependencies=[Depends(require_rate_limit("login", LOGIN_LIMIT))],
)
async def login(payload: LoginIn, session: DbSession) -> AuthOut:
    user = await auth_service.authenticate_user(session, payload.email, payload.password)
    if user is None:
        logger.warning("Login failed email=%s", payload.email.strip().lower())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    _, normal_user = await users_service.get_profiles(session, user.id)
    logger.info("Login succeeded user=%d", user.id)
    return _auth_response("Login successful", user, normal_user)


# ========================== Invitations =====================================


@router.post(
    "/invitations",
    response_model=Envelope[InvitationLinkOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    payload: InvitationIn, session: DbSession, principal: StaffUser
) -> dict:
    ensure_self_or_admin(principal, payload.created_by)
    link = await users_service.create_invitation(
        session, payload.created_by, payload.type
    )
    return ok(
        "Invitation created successfully", InvitationLinkOut(invitation_link=link)
    )


@router.get(
    "/invitations/verify/{token}", response_model=Envelope[InvitationVerifyOut]
)
async def verify_invitation(token: str, session: DbSession) -> dict:
    inviter = await users_service.get_invitation_context(session, token)
    return ok(
        "Invitation verified successfully",
        InvitationVerifyOut(sub_admin=InvitationContextOut.model_validate(inviter)),
    )


@router.get(
    "/invitations/creator/{created_by}", response_model=Envelope[InvitationListOut]
)
async def list_invitations(
    created_by: int, session: DbSession, principal: StaffUser
) -> dict:
    ensure_self_or_admin(principal, created_by)
    rows = await users_service.list_invitations_by_creator(session, created_by)
    return ok(
        "Invitations retrieved successfully",
        InvitationListOut(invitations=dump(InvitationOut, rows)),
    )


@router.delete("/invitations/token/{token}", response_model=Message)
async def delete_invitation(
    token: str, session: DbSession, principal: StaffUser
) -> dict:
    owner = None if principal.is_admin() else principal.id
    await users_service.delete_invitation(session, token, created_by=owner)
    return {"success": True, "message": "Invitation deleted successfully"}


# ========================== Password reset ==================================


@router.post(
    "/password-reset/request",
    response_model=Message,
    dependencies=[Depends(require_rate_limit("password_reset", PASSWORD_RESET_LIMIT))],
)
async def request_password_reset(
    payload: PasswordResetRequestIn, session: DbSession
) -> dict:
    await users_service.request_password_reset(session, payload.email)
    # Same answer whether or not the account exists.
    return {
        "success": True,
        "message": "If an account with this email exists, "
        "a password reset link has been sent.",
    }


@router.get(
    "/password-reset/verify/{token}", response_model=Envelope[PasswordResetVerifyOut]
)
async def verify_password_reset(token: str, session: DbSession) -> dict:
    user = await users_service.verify_password_reset(session, token)
    return ok("Token is valid", PasswordResetVerifyOut.model_validate(user))


@router.post("/password-reset/reset", response_model=Message)
async def reset_password(payload: PasswordResetIn, session: DbSession) -> dict:
    await users_service.reset_password(session, payload.token, payload.password)
    return {"success": True, "message": "Password has been reset successfully"}


# ========================== Sub-admin onboarding ============================


@router.get(
    "/sub-admins/registration/{user_id}",
    response_model=Envelope[RegistrationContextOut],
)
async def sub_admin_registration_details(user_id: int, session: DbSession) -> dict:
    user = await users_service.get_sub_admin_registration_details(session, user_id)
    return ok(
        "Registration details retrieved successfully",
        RegistrationContextOut.model_validate(user),
    )


@router.post("/sub-admins/register/{user_id}", response_model=AuthOut)
async def complete_sub_admin_registration(
    user_id: int, payload: SubAdminRegistrationIn, session: DbSession
) -> AuthOut:
    user = await users_service.complete_sub_admin_registration(
        session, user_id, payload.model_dump()
    )
    return _auth_response("Sub-admin registration completed successfully", user)


# ========================== Users ===========================================


@router.post("", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateIn, session: DbSession, principal: OptionalUser
) -> AuthOut:
    # Self sign-up creates learners; staff accounts are provisioned by an admin.
    if payload.user_type != "user" and (principal is None or not principal.is_admin()):
        logger.warning("Rejected %s account creation without admin", payload.user_type)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    user = await users_service.create_user(session, payload.model_dump())
    return _auth_response("User created and logged in successfully", user)


@router.get("", response_model=PagedEnvelope[list[UserOut]])
async def list_users(
    session: DbSession,
    _staff: StaffUser,
    page: Annotated[Pagination, Depends(pagination)],
) -> dict:
    users = await users_service.list_users(session, limit=page.limit, offset=page.offset)
    return paged("Users retrieved successfully", dump(UserOut, users), page)


@router.get("/me", response_model=Envelope[UserDetailOut])
async def get_me(session: DbSession, principal: CurrentUser) -> dict:
    user = await users_service.get_user(session, principal.id)
    sub_admin, normal_user = await users_service.get_profiles(session, user.id)
    return ok("User retrieved successfully", _detail(user, sub_admin, normal_user))


@router.get("/{user_id}", response_model=Envelope[UserDetailOut])
async def get_user(user_id: int, session: DbSession, principal: CurrentUser) -> dict:
    ensure_can_act_for(principal, user_id)
    user = await users_service.get_user(session, user_id)
    sub_admin, normal_user = await users_service.get_profiles(session, user_id)
    return ok("User retrieved successfully", _detail(user, sub_admin, normal_user))


@router.put("/{user_id}", response_model=Envelope[UserOut])
async def update_user(
    user_id: int, payload: UserUpdateIn, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    if not principal.is_admin() and principal.id != user_id:
        # Sub-admins manage learners, not other staff accounts.
        target = await users_service.get_user(session, user_id)
        if target.user_type != "user":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
    # subOrganization is the only field that may be cleared with null.
    changes = {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k == "sub_organization"
    }
    if "user_type" in changes and not principal.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    user = await users_service.update_user(session, user_id, changes)
    return ok("User updated successfully", dump(UserOut, user))


@router.delete("/{user_id}", response_model=Message)
async def delete_user(user_id: int, session: DbSession, _admin: AdminUser) -> dict:
    await users_service.delete_user(session, user_id)
    return {"success": True, "message": "User deleted successfully"}


@router.put("/{user_id}/sub-admin", response_model=Envelope[SubAdminOut])
async def update_sub_admin(
    user_id: int, payload: SubAdminUpdateIn, session: DbSession, principal: StaffUser
) -> dict:
    ensure_self_or_admin(principal, user_id)
    profile = await users_service.update_sub_admin(
        session, user_id, payload.model_dump(exclude_unset=True, exclude_none=True)
    )
    return ok("Sub-admin updated successfully", dump(SubAdminOut, profile))


@router.post(
    "/{user_id}/register-normal-user",
    response_model=Envelope[NormalUserOut],
    status_code=status.HTTP_201_CREATED,
)
async def register_normal_user(
    user_id: int, payload: NormalUserIn, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    profile = await users_service.register_normal_user(
        session, user_id, payload.model_dump()
    )
    return ok("Normal user registered successfully", dump(NormalUserOut, profile))


@router.put("/{user_id}/normal-user", response_model=Envelope[NormalUserOut])
async def update_normal_user(
    user_id: int, payload: NormalUserUpdateIn, session: DbSession, principal: CurrentUser
) -> dict:
    ensure_can_act_for(principal, user_id)
    profile = await users_service.update_normal_user(
        session, user_id, payload.model_dump(exclude_unset=True, exclude_none=True)
    )
    return ok("Normal user updated successfully", dump(NormalUserOut, profile))
