"""JWT verification tests."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from huddle.auth.jwt import TokenError, verify_token
from huddle.config import settings


def _encode(claims: dict, secret: str = None) -> str:
    return jwt.encode(
        claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm
    )


def _exp(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def test_valid_token():
    payload = verify_token(_encode({"sub": "user-1", "email": "a@b.c", "exp": _exp(5)}))
    assert payload["sub"] == "user-1"
    assert payload["email"] == "a@b.c"


def test_expired_token():
    with pytest.raises(TokenError, match="expired"):
        verify_token(_encode({"sub": "user-1", "exp": _exp(-5)}))


def test_wrong_secret():
    with pytest.raises(TokenError, match="Invalid token"):
        verify_token(_encode({"sub": "user-1", "exp": _exp(5)}, secret="x" * 32))


def test_token_without_subject():
    with pytest.raises(TokenError, match="subject"):
        verify_token(_encode({"exp": _exp(5)}))


@pytest.mark.asyncio
async def test_bearer_token_authenticates(unauthenticated_client):
    token = _encode({"sub": "00000000-0000-0000-0000-000000000001", "exp": _exp(5)})
    resp = await unauthenticated_client.get(
        "/api/v1/notifications", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_bad_bearer_token(unauthenticated_client):
    resp = await unauthenticated_client.get(
        "/api/v1/notifications", headers={"Authorization": "Bearer garbage"}
    )
    assert resp.status_code == 401
