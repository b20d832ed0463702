"""Session token signing and verification."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from clinic_api.core.config import settings

ALGORITHM = "HS256"


def create_session_token(user_id: UUID, role: str, token_version: int) -> str:
    """Sign a session token for a user with the current key."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "token_version": token_version,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Verify a session token against each accepted key in turn.

    Raises:
        jwt.InvalidTokenError: no key verifies it, or it has expired
    """
    error: jwt.InvalidTokenError = jwt.InvalidTokenError("No signing key configured")
    for key in settings.jwt_secrets:
        try:
            return jwt.decode(token, key, algorithms=[ALGORITHM])
        except jwt.InvalidTokenError as e:
            error = e
    raise error
