from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.engine import get_async_session
from app.models.principal import Principal
from app.services import token_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login")

DbSession = Annotated[AsyncSession, Depends(get_async_session)]


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    if not str(claims["sub"]).isdigit():
        logger.warning("Token with non-numeric subject rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = Principal(
        user_id=str(claims["sub"]),
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


CurrentUser = Annotated[Principal, Depends(require_user)]


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(principal: CurrentUser) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "sub_admin"}))
    """

    def _guard(principal: CurrentUser) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


AdminUser = Annotated[Principal, Depends(require_role("admin"))]
StaffUser = Annotated[Principal, Depends(require_any_role({"admin", "sub_admin"}))]
AnyRoleUser = Annotated[
    Principal, Depends(require_any_role({"admin", "sub_admin", "user"}))
]


def ensure_can_act_for(principal: Principal, user_id: int) -> None:
    """Learners may only touch their own records; staff may touch anyone's."""
    if not principal.can_act_for(user_id):
        logger.warning(
            "Access denied: user=%s acting for user=%s", principal.user_id, user_id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )


def ensure_self_or_admin(principal: Principal, user_id: int) -> None:
    """Admins may act for anyone; everyone else only for themselves.

    Used where sub-admins own the records (invitations, their profile) and
    must not reach another sub-admin's.
    """
    if not (principal.is_admin() or principal.id == user_id):
        logger.warning(
            "Access denied: user=%s acting for user=%s", principal.user_id, user_id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )


_optional_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login", auto_error=False)


def optional_user(
    raw_token: Annotated[str | None, Depends(_optional_scheme)],
) -> Principal | None:
    """Like require_user, but anonymous requests yield None instead of 401.

    A token that is present but invalid is still rejected.
    """
    if raw_token is None:
        return None
    return require_user(raw_token)


OptionalUser = Annotated[Principal | None, Depends(optional_user)]
