"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from clinic_api.db.enums import Role


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    role: str
    token_version: int


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency; carries everything
    the services need for ownership checks.
    """
    user_id: UUID
    role: Role  # Validated enum
    email: str
    display_name: str
