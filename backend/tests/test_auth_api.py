# tests/test_auth_api.py
"""
Login, session checks, email verification and password reset.

Run with: pytest backend/tests/test_auth_api.py -v
"""

import pytest
from datetime import datetime, timedelta

from sqlalchemy import update

from app.auth import verify_password
from app.models import User

from conftest import PASSWORD

pytestmark = pytest.mark.integration

AUTH = "/api/v1/auth"


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_returns_token_and_user(self, client, users):
        response = await client.post(f"{AUTH}/login", json={"email": "Agent@Example.com", "password": PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["access_token"]
        assert body["user"]["id"] == users.agent.id
        assert body["user"]["role"] == "sales_agent"
        assert body["user"]["last_login"] is not None

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, users):
        response = await client.post(f"{AUTH}/login", json={"email": "agent@example.com", "password": "wrong-password"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_email(self, client, users):
        response = await client.post(f"{AUTH}/login", json={"email": "nobody@example.com", "password": PASSWORD})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_log_in(self, client, users):
        response = await client.post(f"{AUTH}/login", json={"email": "inactive@example.com", "password": PASSWORD})
        assert response.status_code == 403
        assert "deactivated" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_self_registration_is_disabled(self, client):
        response = await client.post(f"{AUTH}/register", json={})
        assert response.status_code == 404


class TestSession:

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client, users):
        response = await client.get(f"{AUTH}/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token(self, client, users):
        response = await client.get(f"{AUTH}/me", headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, client, users, auth):
        response = await client.get(f"{AUTH}/me", headers=auth(users.manager))
        assert response.status_code == 200
        assert response.json()["email"] == "manager@example.com"

    @pytest.mark.asyncio
    async def test_my_permissions(self, client, users, auth):
        response = await client.get(f"{AUTH}/me/permissions", headers=auth(users.agent))

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "sales_agent"
        assert "lead:view" in body["permissions"]
        assert "lead:create" not in body["permissions"]

    @pytest.mark.asyncio
    async def test_deactivation_takes_effect_on_next_request(self, client, users, auth, db):
        headers = auth(users.agent)
        assert (await client.get(f"{AUTH}/me", headers=headers)).status_code == 200

        await db.execute(update(User).where(User.id == users.agent.id).values(is_active=False))
        await db.commit()

        response = await client.get(f"{AUTH}/me", headers=headers)
        assert response.status_code == 401
        assert "deactivated" in response.json()["detail"]


class TestEmailVerification:

    @pytest.mark.asyncio
    async def test_send_and_verify_code(self, client, users, session_factory):
        response = await client.post(f"{AUTH}/send-verification", json={"email": "agent@example.com"})
        assert response.status_code == 200

        async with session_factory() as session:
            code = (await session.get(User, users.agent.id)).verification_code
        assert code is not None and len(code) == 6

        wrong = "000000" if code != "000000" else "111111"
        response = await client.post(f"{AUTH}/verify-code", json={"email": "agent@example.com", "code": wrong})
        assert response.status_code == 400

        response = await client.post(f"{AUTH}/verify-code", json={"email": "agent@example.com", "code": code})
        assert response.status_code == 200

        async with session_factory() as session:
            user = await session.get(User, users.agent.id)
        assert user.email_verified is True
        assert user.verification_code is None

    @pytest.mark.asyncio
    async def test_expired_code(self, client, users, db):
        await db.execute(
            update(User).where(User.id == users.agent.id).values(
                verification_code="123456",
                code_expires_at=datetime.utcnow() - timedelta(minutes=1),
            )
        )
        await db.commit()

        response = await client.post(f"{AUTH}/verify-code", json={"email": "agent@example.com", "code": "123456"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Verification code has expired"

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, users):
        response = await client.post(f"{AUTH}/send-verification", json={"email": "nobody@example.com"})
        assert response.status_code == 404


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_request_does_not_reveal_accounts(self, client, users):
        known = await client.post(f"{AUTH}/password-reset/request", json={"email": "agent@example.com"})
        unknown = await client.post(f"{AUTH}/password-reset/request", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    @pytest.mark.asyncio
    async def test_confirm_sets_new_password(self, client, users, session_factory):
        await client.post(f"{AUTH}/password-reset/request", json={"email": "agent@example.com"})
        async with session_factory() as session:
            code = (await session.get(User, users.agent.id)).password_reset_code

        response = await client.post(f"{AUTH}/password-reset/confirm", json={
            "email": "agent@example.com", "code": code, "new_password": "brand-new-pass",
        })
        assert response.status_code == 200

        async with session_factory() as session:
            user = await session.get(User, users.agent.id)
        assert verify_password("brand-new-pass", user.password_hash)
        assert user.password_reset_code is None

        login = await client.post(f"{AUTH}/login", json={"email": "agent@example.com", "password": "brand-new-pass"})
        assert login.status_code == 200
