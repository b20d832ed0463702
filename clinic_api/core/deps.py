"""Request dependencies: database session, reminder scheduler, caller identity."""

from typing import Iterator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clinic_api.core.security import decode_session_token
from clinic_api.db.enums import Role
from clinic_api.db.models import User
from clinic_api.db.session import SessionLocal
from clinic_api.schemas.auth import UserSession


# Session token: cookie for the web client, header for API callers
COOKIE_NAME = "clinic_session"
TOKEN_HEADER = "x-auth-token"

# Mutations must carry this header (cross-site forms cannot set it)
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Iterator[Session]:
    """One session per request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_reminder_scheduler(request: Request):
    """The process-wide reminder scheduler created at startup."""
    return request.app.state.reminder_scheduler


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _read_token(request: Request) -> str:
    token = request.cookies.get(COOKIE_NAME) or request.headers.get(TOKEN_HEADER)
    if not token:
        raise _unauthorized("Authentication required")
    return token


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Resolve the caller's account from their session token.

    The token must verify, name an existing active account, and carry that
    account's current token_version (bumped to revoke every session).
    """
    try:
        claims = decode_session_token(_read_token(request))
        user_id = UUID(claims["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise _unauthorized("Invalid or expired session")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Account not found or disabled")
    if claims.get("token_version") != user.token_version:
        raise _unauthorized("Session has been revoked")
    return user


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """Caller identity and role; the dependency most routes use."""
    user = get_current_user(request, db)

    # A role outside the enum is a data problem, report it as forbidden
    if not Role.has_value(user.role):
        raise HTTPException(status_code=403, detail=f"Account has unknown role '{user.role}'")

    return UserSession(
        user_id=user.id,
        role=Role(user.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles: list[Role]):
    """
    Build a dependency that admits only the given roles.

    Usage:
        session: UserSession = Depends(require_roles([Role.CLIENT]))
    """
    def check_role(request: Request, db: Session = Depends(get_db)) -> UserSession:
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"This action is not available to {session.role.value} accounts",
            )
        return session
    return check_role


def require_csrf_header(request: Request) -> None:
    """Reject state-changing requests that lack the CSRF header (403)."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"{CSRF_HEADER}: {CSRF_HEADER_VALUE} header required",
        )
