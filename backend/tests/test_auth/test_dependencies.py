"""Tests for auth dependencies — identity-token verification on protected routes."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt

from conftest import make_identity_token
from threadifier.auth.identity import InvalidIdentityToken, get_uid

PROTECTED_URL = "/api/v1/billing/subscription"


class TestGetUid:
    def test_sub_claim(self):
        assert get_uid(make_identity_token("uid-sub")) == "uid-sub"

    def test_user_id_claim_fallback(self):
        token = jwt.encode({"user_id": "uid-legacy"}, "test-identity-key", algorithm="HS256")
        assert get_uid(token) == "uid-legacy"

    def test_no_subject(self):
        token = jwt.encode({"email": "x@test.com"}, "test-identity-key", algorithm="HS256")
        with pytest.raises(InvalidIdentityToken, match="no subject"):
            get_uid(token)

    def test_wrong_key(self):
        token = jwt.encode({"sub": "uid-forged"}, "some-other-key", algorithm="HS256")
        with pytest.raises(InvalidIdentityToken):
            get_uid(token)


class TestGetCurrentUser:
    """Test get_current_user dependency via the subscription endpoint."""

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get(PROTECTED_URL)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_invalid_token_format(self, client: AsyncClient):
        headers = {"Authorization": "Bearer not.a.valid.jwt"}
        response = await client.get(PROTECTED_URL, headers=headers)
        assert response.status_code == 401

    async def test_expired_token_rejected(self, client: AsyncClient, make_user):
        await make_user("uid-expired")
        token = make_identity_token("uid-expired", expires_in=timedelta(seconds=-1))
        response = await client.get(PROTECTED_URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_unknown_user(self, client: AsyncClient, auth_headers_for):
        response = await client.get(PROTECTED_URL, headers=auth_headers_for("uid-nobody"))
        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"

    async def test_valid_token(self, client: AsyncClient, make_user, auth_headers_for):
        await make_user("uid-ok")
        response = await client.get(PROTECTED_URL, headers=auth_headers_for("uid-ok"))
        assert response.status_code == 200
        assert response.json()["user_id"] == "uid-ok"
