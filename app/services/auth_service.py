from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutil import utcnow
from app.db.tables import UserRow
from app.repos.crud import CrudRepo
from app.services import token_service

logger = logging.getLogger(__name__)

# Argon2 hash strings encode parameters + salt
_ph = PasswordHasher()

MIN_PASSWORD_LENGTH = 6


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("password must be non-empty")
    return _ph.hash(plain_password)


# verify_password() must catch Argon2 exceptions and return False
def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return _ph.verify(password_hash, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


async def authenticate_user(
    session: AsyncSession, email: str, password: str
) -> UserRow | None:
    """Check credentials; on success stamp last_login and return the user."""
    users = CrudRepo(session, UserRow)
    user = await users.find_one(UserRow.email == email.strip().lower())
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None

    values: dict[str, object] = {"last_login": utcnow()}
    # Upgrade the stored hash when the hasher parameters have changed.
    if _ph.check_needs_rehash(user.password_hash):
        values["password_hash"] = _ph.hash(password)
        logger.info("Rehashed password for user=%s", user.id)

    return await users.update(user, values)


def issue_token(user: UserRow) -> str:
    """Access token for *user*; the role claim is the account's userType."""
    return token_service.create_access_token(
        sub=str(user.id), roles=[user.user_type], email=user.email
    )
