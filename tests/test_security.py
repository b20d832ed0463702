"""Tests for session token signing and key rotation."""
import uuid

import jwt
import pytest

from clinic_api.core.config import settings
from clinic_api.core.security import create_session_token, decode_session_token


def test_token_round_trip():
    user_id = uuid.uuid4()

    payload = decode_session_token(create_session_token(user_id, "client", 3))

    assert payload["sub"] == str(user_id)
    assert payload["role"] == "client"
    assert payload["token_version"] == 3


def test_previous_secret_still_accepted(monkeypatch):
    token = create_session_token(uuid.uuid4(), "provider", 1)
    old_secret = settings.JWT_SECRET

    monkeypatch.setattr(settings, "JWT_SECRET", "rotated-secret")
    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", old_secret)

    assert decode_session_token(token)["role"] == "provider"


def test_unknown_secret_rejected(monkeypatch):
    token = create_session_token(uuid.uuid4(), "admin", 1)

    monkeypatch.setattr(settings, "JWT_SECRET", "some-other-secret")
    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "")

    with pytest.raises(jwt.InvalidTokenError):
        decode_session_token(token)


@pytest.mark.asyncio
async def test_garbage_token_is_unauthenticated(client):
    response = await client.get("/appointments/history", headers={"x-auth-token": "not-a-jwt"})
    assert response.status_code == 401
