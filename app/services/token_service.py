"""JWT access token creation and validation (ES256).

Login, registration and sub-admin onboarding issue tokens here;
app.api.dependencies validates them with the same key and claim schema.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------
# Dev/test: ephemeral EC key pair generated on import, so tokens do not
# survive a restart. TODO: load the signing key from JWT_PRIVATE_KEY_PEM
# before running more than one API instance.
_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "training-platform"
AUDIENCE = "training-platform"
ACCESS_TOKEN_TTL_MIN = 60


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    email: str | None = None,
) -> str:
    """Build and sign a JWT access token.

    Claims: sub, iss, aud, exp, iat, jti, roles and (optionally) email.
    """
    now = datetime.now(UTC)
    payload: dict[str, object] = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["user"],
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 and validates exp, iss and aud.
    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )


# ---------------------------------------------------------------------------
# Opaque one-time tokens (invitations, password resets)
# ---------------------------------------------------------------------------
# The raw token goes to the user in a link; only its SHA-256 is stored.


def new_opaque_token() -> str:
    return secrets.token_urlsafe(32)


def hash_opaque_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
