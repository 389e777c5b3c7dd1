"""
Registration API contract.

Visitors pick applicant, mentor or partner; admin is granted by an admin and
never self-assigned. A successful registration creates the account and its
profile but issues no session.
"""
from __future__ import annotations

import pytest
import httpx
from httpx import ASGITransport

from backend.identity_access.domain import Profile
from backend.web import main


pytestmark = pytest.mark.anyio("asyncio")


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


def _payload(**overrides) -> dict:
    data = {"email": "nia@example.org", "password": "secret1", "full_name": "Nia Novak", "role": "partner"}
    data.update(overrides)
    return data


class _FailingSignUp:
    def sign_up(self, **_kw):
        raise RuntimeError("auth backend down")


class _FailingCreate:
    def create(self, profile: Profile):
        raise RuntimeError("insert failed")


@pytest.mark.anyio
async def test_register_creates_account_and_profile_then_login_works():
    async with _client() as client:
        r = await client.post("/api/auth/register", json=_payload())
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["user"]["email"] == "nia@example.org"
        assert r.headers.get("Cache-Control") == "private, no-store"
        assert "set-cookie" not in r.headers

        user_id = body["user"]["id"]
        profile = main.app.state.profiles.get(user_id)
        assert profile.role == "partner"
        assert profile.full_name == "Nia Novak"

        login = await client.post("/api/auth/login", json={"email": "nia@example.org", "password": "secret1"})
    assert login.status_code == 200
    assert login.json()["redirectUrl"] == "/partner/dashboard"


@pytest.mark.anyio
@pytest.mark.parametrize("missing", ["email", "password", "full_name", "role"])
async def test_register_missing_field_is_400(missing: str):
    async with _client() as client:
        r = await client.post("/api/auth/register", json=_payload(**{missing: ""}))
    assert r.status_code == 400
    assert r.json()["detail"] == "Missing required fields"
    assert main.app.state.profiles.list() == []


@pytest.mark.anyio
@pytest.mark.parametrize("role", ["admin", "ADMIN", "root"])
async def test_register_rejects_roles_outside_self_service(role: str):
    async with _client() as client:
        r = await client.post("/api/auth/register", json=_payload(role=role))
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid role. Must be applicant, mentor, or partner"
    assert main.app.state.profiles.list() == []
    assert main.app.state.sessions.sign_in(email="nia@example.org", password="secret1") is None


@pytest.mark.anyio
async def test_register_short_password_is_400():
    async with _client() as client:
        r = await client.post("/api/auth/register", json=_payload(password="12345"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Password must be at least 6 characters"
    assert main.app.state.profiles.list() == []


@pytest.mark.anyio
async def test_register_duplicate_email_is_400():
    async with _client() as client:
        first = await client.post("/api/auth/register", json=_payload())
        again = await client.post("/api/auth/register", json=_payload(email="NIA@example.org", role="mentor"))
    assert first.status_code == 200
    assert again.status_code == 400
    assert again.json()["detail"] == "Email already registered"
    assert [p.role for p in main.app.state.profiles.list()] == ["partner"]


@pytest.mark.anyio
async def test_register_auth_backend_failure_is_503():
    main.app.state.sessions = _FailingSignUp()
    async with _client() as client:
        r = await client.post("/api/auth/register", json=_payload())
    assert r.status_code == 503
    assert r.json()["error"] == "registration_failed"
    assert r.headers.get("Cache-Control") == "private, no-store"


@pytest.mark.anyio
async def test_register_profile_insert_failure_is_500():
    main.app.state.profiles = _FailingCreate()
    async with _client() as client:
        r = await client.post("/api/auth/register", json=_payload())
    assert r.status_code == 500
    assert r.json() == {"error": "profile_create_failed", "detail": "Failed to create user profile"}
