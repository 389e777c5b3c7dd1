"""
Authorization gate: decision table for `policy.evaluate`.

Covers:
- Public paths never touch the stores.
- Protected prefixes admit their roles plus admin, redirect everyone else home.
- Segment-boundary matching (`/mentorship` is not under `/mentor`).
- Missing sessions, missing profiles and store failures never resolve to Allow.
"""
from __future__ import annotations

import pytest

from backend.identity_access import policy
from backend.identity_access.domain import (
    ALLOWED_ROLES,
    ROLE_ADMIN,
    ROLE_APPLICANT,
    ROLE_HOME_PATHS,
    ROLE_MENTOR,
    ROLE_PARTNER,
    Profile,
)
from backend.identity_access.policy import Allow, RedirectToLogin, RedirectToRoleHome
from backend.identity_access.stores import ProfileStore, SessionStore


class _ExplodingStore:
    """Every call fails; a call at all means the gate did I/O."""

    calls = 0

    def resolve(self, token):
        type(self).calls += 1
        raise RuntimeError("store down")

    def get_role(self, user_id):
        type(self).calls += 1
        raise RuntimeError("store down")


class _RawRoleProfiles:
    def __init__(self, role):
        self._role = role

    def get_role(self, user_id):
        return self._role


def _stores_with(role: str | None, user_id: str = "u-1"):
    sessions = SessionStore()
    profiles = ProfileStore()
    token = sessions.create(user_id=user_id).session_id
    if role is not None:
        profiles.put(Profile(user_id=user_id, role=role))
    return sessions, profiles, token


@pytest.mark.parametrize("path", ["/", "/auth/callback", "/auth/callback/x", "/api/auth/login", "/api/health"])
def test_public_paths_allow_without_store_io(path):
    _ExplodingStore.calls = 0
    store = _ExplodingStore()
    decision = policy.evaluate(path, "any-token", sessions=store, profiles=store)
    assert decision == Allow()
    assert _ExplodingStore.calls == 0


def test_root_is_public_only_as_exact_match():
    assert policy.classify("/") == policy.PUBLIC
    assert policy.classify("/dashboard") == policy.AUTHENTICATED
    assert policy.classify("/admin/dashboard") == policy.PROTECTED


@pytest.mark.parametrize(
    "path,allowed",
    [
        ("/admin", {ROLE_ADMIN}),
        ("/admin/dashboard", {ROLE_ADMIN}),
        ("/api/admin/users", {ROLE_ADMIN}),
        ("/mentor/dashboard", {ROLE_MENTOR, ROLE_ADMIN}),
        ("/api/mentorship/matches", {ROLE_MENTOR, ROLE_ADMIN}),
        ("/partner/dashboard", {ROLE_PARTNER, ROLE_ADMIN}),
        ("/api/partners", {ROLE_PARTNER, ROLE_ADMIN}),
        ("/api/opportunities/42", {ROLE_PARTNER, ROLE_ADMIN}),
        ("/dashboard", set(ALLOWED_ROLES)),
        ("/profile", set(ALLOWED_ROLES)),
    ],
)
@pytest.mark.parametrize("role", sorted(ALLOWED_ROLES))
def test_role_table(path, allowed, role):
    sessions, profiles, token = _stores_with(role)
    decision = policy.evaluate(path, token, sessions=sessions, profiles=profiles)
    if role in allowed:
        assert decision == Allow(user_id="u-1", role=role)
    else:
        assert decision == RedirectToRoleHome(role=role)
        assert decision.location == ROLE_HOME_PATHS[role]


def test_admin_reaches_every_protected_prefix():
    sessions, profiles, token = _stores_with(ROLE_ADMIN)
    for prefix, _roles in policy.DEFAULT_ROUTES.protected:
        decision = policy.evaluate(prefix + "/x", token, sessions=sessions, profiles=profiles)
        assert isinstance(decision, Allow), prefix


def test_mentorship_page_is_not_under_mentor_prefix():
    sessions, profiles, token = _stores_with(ROLE_APPLICANT)
    assert policy.evaluate("/mentorship", token, sessions=sessions, profiles=profiles) == Allow(
        user_id="u-1", role=ROLE_APPLICANT
    )
    assert policy.evaluate("/mentor", token, sessions=sessions, profiles=profiles) == RedirectToRoleHome(
        role=ROLE_APPLICANT
    )


def test_path_normalization_cannot_dodge_prefix():
    sessions, profiles, token = _stores_with(ROLE_APPLICANT)
    for path in ("//admin", "/admin/", "/admin?x=1", "/admin//users"):
        decision = policy.evaluate(path, token, sessions=sessions, profiles=profiles)
        assert isinstance(decision, RedirectToRoleHome), path


def test_no_session_redirects_to_login_with_original_path():
    decision = policy.evaluate("/partner/dashboard", None, sessions=SessionStore(), profiles=ProfileStore())
    assert decision == RedirectToLogin(original_path="/partner/dashboard")
    assert decision.location == "/login?redirect=%2Fpartner%2Fdashboard"


def test_unknown_token_redirects_to_login():
    decision = policy.evaluate("/dashboard", "nope", sessions=SessionStore(), profiles=ProfileStore())
    assert isinstance(decision, RedirectToLogin)
    assert decision.reason == "unauthenticated"


def test_session_without_profile_redirects_with_no_profile_marker():
    sessions, profiles, token = _stores_with(None)
    decision = policy.evaluate("/dashboard", token, sessions=sessions, profiles=profiles)
    assert decision == RedirectToLogin(original_path="/dashboard", reason="profile_missing")
    assert "error=no_profile" in decision.location


@pytest.mark.parametrize("raw", ["superuser", "", "  ", 42])
def test_unknown_role_is_treated_as_missing_profile(raw):
    sessions = SessionStore()
    token = sessions.create(user_id="u-1").session_id
    decision = policy.evaluate("/dashboard", token, sessions=sessions, profiles=_RawRoleProfiles(raw))
    assert isinstance(decision, RedirectToLogin)
    assert decision.reason == "profile_missing"


def test_role_strings_are_normalized():
    sessions = SessionStore()
    token = sessions.create(user_id="u-1").session_id
    decision = policy.evaluate("/admin", token, sessions=sessions, profiles=_RawRoleProfiles(" Admin "))
    assert decision == Allow(user_id="u-1", role=ROLE_ADMIN)


def test_session_store_failure_fails_closed():
    store = _ExplodingStore()
    decision = policy.evaluate("/admin", "token", sessions=store, profiles=ProfileStore())
    assert isinstance(decision, RedirectToLogin)


def test_profile_store_failure_fails_closed():
    sessions = SessionStore()
    token = sessions.create(user_id="u-1").session_id
    decision = policy.evaluate("/admin", token, sessions=sessions, profiles=_ExplodingStore())
    assert decision == RedirectToLogin(original_path="/admin", reason="profile_missing")


@pytest.mark.parametrize("path", ["/login", "/register"])
def test_auth_pages_open_for_anonymous_visitors(path):
    assert policy.evaluate(path, None, sessions=SessionStore(), profiles=ProfileStore()) == Allow()


@pytest.mark.parametrize("role", sorted(ALLOWED_ROLES))
def test_auth_pages_send_signed_in_users_home(role):
    sessions, profiles, token = _stores_with(role)
    decision = policy.evaluate("/login", token, sessions=sessions, profiles=profiles)
    assert decision == RedirectToRoleHome(role=role)
    assert decision.location == ROLE_HOME_PATHS[role]


def test_auth_pages_stay_open_without_profile():
    sessions, profiles, token = _stores_with(None)
    decision = policy.evaluate("/login", token, sessions=sessions, profiles=profiles)
    assert isinstance(decision, Allow)


def test_with_public_extends_route_table():
    routes = policy.DEFAULT_ROUTES.with_public(("/coming-soon",))
    assert routes.classify("/coming-soon") == policy.PUBLIC
    assert policy.DEFAULT_ROUTES.classify("/coming-soon") == policy.AUTHENTICATED


def test_is_role_permitted_matches_table():
    assert policy.is_role_permitted("admin", "/partner/x")
    assert policy.is_role_permitted("partner", "/api/opportunities")
    assert not policy.is_role_permitted("mentor", "/api/opportunities")
    assert not policy.is_role_permitted("ghost", "/dashboard")
    assert not policy.is_role_permitted(None, "/dashboard")
