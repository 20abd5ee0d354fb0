"""
Auth flow tests: register, verify, login, resend and password reset.

Run with: PYTHONPATH=. pytest tests/test_auth.py -v
"""

from datetime import timedelta

import pytest

from helpdesk.apps.auth.models import User
from helpdesk.utils.clock import utcnow
from helpdesk.utils.security import create_access_token

pytestmark = pytest.mark.asyncio

AUTH = "/api/v1/auth"


async def _register(client, email="new@example.com", **extra):
    body = {"name": "New Person", "email": email, "password": "secret123"}
    body.update(extra)
    return await client.post(f"{AUTH}/register", json=body)


async def test_register_verify_login(client, notifier):
    response = await _register(client, department="Finance")
    assert response.status_code == 201
    body = response.json()
    assert body["access_token"]
    assert body["token_type"] == "bearer"
    user = body["data"]["user"]
    assert user["role"] == "employee"
    assert user["is_verified"] is False
    assert "hashed_password" not in user
    code = body["data"]["verification_code"]
    assert len(code) == 6 and code.isdigit()

    response = await client.post(f"{AUTH}/login", json={"email": "new@example.com", "password": "secret123"})
    assert response.status_code == 403

    wrong = "111111" if code == "000000" else "000000"
    response = await client.post(f"{AUTH}/verify", json={"email": "new@example.com", "code": wrong})
    assert response.status_code == 400

    response = await client.post(f"{AUTH}/verify", json={"email": "new@example.com", "code": code})
    assert response.status_code == 200
    assert response.json()["message"] == "Account verified"

    response = await client.post(f"{AUTH}/verify", json={"email": "new@example.com", "code": code})
    assert response.json()["message"] == "User already verified"

    response = await client.post(f"{AUTH}/login", json={"email": "new@example.com", "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = await client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {token}"})
    assert response.json()["data"]["email"] == "new@example.com"
    assert response.json()["data"]["last_login_at"] is not None

    await notifier.drain()
    assert notifier.to("Your verification code") == [["new@example.com"]]


async def test_register_ignores_requested_role(client):
    response = await _register(client, role="manager")
    assert response.status_code == 201
    assert response.json()["data"]["user"]["role"] == "employee"


async def test_duplicate_email_conflicts(client):
    assert (await _register(client)).status_code == 201
    response = await _register(client)
    assert response.status_code == 409
    assert response.json()["status"] == "failure"


async def test_register_validation_is_422(client):
    response = await client.post(f"{AUTH}/register", json={"name": "x", "email": "not-an-email", "password": "123"})
    assert response.status_code == 422
    assert response.json()["message"] == "Validation error"


async def test_bad_credentials_are_generic(client, make_user):
    await make_user("employee", email="known@example.com", password="right-pass")

    wrong_password = await client.post(f"{AUTH}/login", json={"email": "known@example.com", "password": "nope"})
    unknown = await client.post(f"{AUTH}/login", json={"email": "ghost@example.com", "password": "nope"})

    assert wrong_password.status_code == unknown.status_code == 401
    assert wrong_password.json()["message"] == unknown.json()["message"]


async def test_expired_verification_code(client, session_factory):
    response = await _register(client)
    code = response.json()["data"]["verification_code"]

    async with session_factory() as session:
        user = await User.find_one(session, email="new@example.com")
        user.verification_expires = utcnow() - timedelta(minutes=1)
        await user.save(session)

    response = await client.post(f"{AUTH}/verify", json={"email": "new@example.com", "code": code})
    assert response.status_code == 400
    assert "expired" in response.json()["message"]


async def test_token_checks(client, make_user):
    user = await make_user("employee")

    assert (await client.get(f"{AUTH}/me")).status_code == 401

    expired = create_access_token(user_id=user.id, role=user.role, expires_delta=timedelta(minutes=-1))
    response = await client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 403

    ghost = create_access_token(user_id=9999, role="manager")
    response = await client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {ghost}"})
    assert response.status_code == 401


async def test_resend_is_throttled_with_retry_after(client):
    await _register(client)

    first = await client.post(f"{AUTH}/resend", json={"email": "new@example.com"})
    assert first.status_code == 200
    assert len(first.json()["data"]["verification_code"]) == 6

    second = await client.post(f"{AUTH}/resend", json={"email": "new@example.com"})
    assert second.status_code == 429
    assert 0 < int(second.headers["Retry-After"]) <= 60


async def test_resend_for_verified_or_unknown_account(client, make_user):
    await make_user("employee", email="done@example.com")
    assert (await client.post(f"{AUTH}/resend", json={"email": "done@example.com"})).status_code == 400
    assert (await client.post(f"{AUTH}/resend", json={"email": "ghost@example.com"})).status_code == 404


async def test_forgot_and_reset_password(client, make_user, notifier):
    await make_user("employee", email="forgetful@example.com", password="old-pass")

    unknown = await client.post(f"{AUTH}/forgot-password", json={"email": "ghost@example.com"})
    response = await client.post(f"{AUTH}/forgot-password", json={"email": "forgetful@example.com"})
    assert unknown.status_code == response.status_code == 200
    assert unknown.json()["message"] == response.json()["message"]
    assert unknown.json()["data"] is None
    code = response.json()["data"]["reset_code"]

    response = await client.post(
        f"{AUTH}/reset-password",
        json={"email": "forgetful@example.com", "code": code, "new_password": "new-pass"},
    )
    assert response.status_code == 200

    # Code is single use
    response = await client.post(
        f"{AUTH}/reset-password",
        json={"email": "forgetful@example.com", "code": code, "new_password": "other-pass"},
    )
    assert response.status_code == 400

    assert (await client.post(f"{AUTH}/login", json={"email": "forgetful@example.com", "password": "old-pass"})).status_code == 401
    assert (await client.post(f"{AUTH}/login", json={"email": "forgetful@example.com", "password": "new-pass"})).status_code == 200

    await notifier.drain()
    assert notifier.to("Your password reset code") == [["forgetful@example.com"]]


async def test_forgot_password_throttle_is_silent(client, make_user):
    await make_user("employee", email="forgetful@example.com")

    first = await client.post(f"{AUTH}/forgot-password", json={"email": "forgetful@example.com"})
    second = await client.post(f"{AUTH}/forgot-password", json={"email": "forgetful@example.com"})

    assert first.json()["data"]["reset_code"]
    assert second.status_code == 200
    assert second.json()["data"] is None


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
