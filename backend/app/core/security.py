"""JWT access token encoding/decoding for the request principal."""

import uuid
from datetime import datetime, timedelta, timezone

import jwt

from app.config import settings


def create_access_token(
    user_id: uuid.UUID,
    laboratory_id: uuid.UUID | None = None,
    *,
    is_global_admin: bool = False,
    roles: list[str] | None = None,
    permissions: list[str] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token carrying the principal claims.

    Token issuance belongs to the identity provider; this exists for local
    development and tests.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=settings.JWT_EXPIRY_HOURS))
    payload = {
        "sub": str(user_id),
        "laboratory_id": str(laboratory_id) if laboratory_id else None,
        "is_global_admin": is_global_admin,
        "roles": roles or [],
        "permissions": permissions or [],
        "iat": now,
        "exp": expire,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and validate a JWT access token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
    )
