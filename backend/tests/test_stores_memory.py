"""
In-memory session/profile stores used in development and tests.
"""
from __future__ import annotations

import pytest

from backend.identity_access import stores as stores_mod
from backend.identity_access.domain import ROLE_MENTOR, ROLE_PARTNER, Profile
from backend.identity_access.errors import AccountExists
from backend.identity_access.stores import ProfileStore, SessionStore, escape_like


def test_session_resolve_slides_expiry(monkeypatch: pytest.MonkeyPatch):
    clock = [1_000]
    monkeypatch.setattr(stores_mod, "_now", lambda: clock[0])
    store = SessionStore()
    rec = store.create(user_id="u-1", ttl_seconds=60)
    assert rec.expires_at == 1_060

    clock[0] = 1_050
    assert store.resolve(rec.session_id) == "u-1"
    assert store.get(rec.session_id).expires_at == 1_110

    clock[0] = 1_200
    assert store.resolve(rec.session_id) is None
    assert store.get(rec.session_id) is None


def test_sign_in_checks_password_and_normalizes_email():
    store = SessionStore()
    store.register_account(email="Mentor@Example.org", password="s3cret", user_id="m-1")
    assert store.sign_in(email="mentor@example.org", password="wrong") is None
    assert store.sign_in(email="nobody@example.org", password="s3cret") is None
    rec = store.sign_in(email=" MENTOR@example.org ", password="s3cret")
    assert rec is not None
    assert rec.user_id == "m-1"
    assert rec.email == "mentor@example.org"
    store.sign_out(rec.session_id)
    assert store.resolve(rec.session_id) is None


def test_profile_put_rejects_unknown_role():
    with pytest.raises(ValueError):
        ProfileStore().put(Profile(user_id="u", role="root"))


def test_profile_list_filters_and_orders_newest_first():
    store = ProfileStore()
    store.put(Profile(user_id="a", role=ROLE_MENTOR, full_name="Ana", email="ana@x.org", created_at="2024-01-01T00:00:00+00:00"))
    store.put(Profile(user_id="b", role=ROLE_PARTNER, full_name="Ben", email="ben@x.org", created_at="2024-03-01T00:00:00+00:00"))
    store.put(Profile(user_id="c", role=ROLE_MENTOR, full_name="Cleo", email="cleo@y.org", created_at="2024-02-01T00:00:00+00:00"))

    assert [p.user_id for p in store.list()] == ["b", "c", "a"]
    assert [p.user_id for p in store.list(role=ROLE_MENTOR)] == ["c", "a"]
    assert [p.user_id for p in store.list(search="X.ORG")] == ["b", "a"]
    assert [p.user_id for p in store.list(role=ROLE_MENTOR, search="cle")] == ["c"]


def test_profile_update_only_touches_updatable_fields():
    store = ProfileStore()
    store.put(Profile(user_id="a", role=ROLE_MENTOR, email="ana@x.org"))
    updated = store.update("a", {"full_name": "Ana B", "email": "evil@x.org", "date_of_birth": "1990-01-01"})
    assert updated.full_name == "Ana B"
    assert updated.email == "ana@x.org"
    assert updated.to_dict()["date_of_birth"] == "1990-01-01"
    assert store.update("missing", {"full_name": "x"}) is None
    with pytest.raises(ValueError):
        store.update("a", {"role": "root"})


def test_sign_up_creates_credentials_and_rejects_duplicates():
    store = SessionStore()
    user_id = store.sign_up(email=" Nia@Example.org ", password="secret1", role=ROLE_PARTNER)
    assert user_id
    rec = store.sign_in(email="nia@example.org", password="secret1")
    assert rec is not None and rec.user_id == user_id
    with pytest.raises(AccountExists):
        store.sign_up(email="NIA@example.org", password="other12")


def test_profile_create_rejects_existing_user():
    store = ProfileStore()
    store.create(Profile(user_id="u-1", role=ROLE_MENTOR, full_name="Mia"))
    with pytest.raises(ValueError):
        store.create(Profile(user_id="u-1", role=ROLE_PARTNER))
    assert store.get_role("u-1") == ROLE_MENTOR


def test_escape_like_neutralizes_wildcards():
    assert escape_like("50%_off") == "50\\%\\_off"
    assert escape_like("a\\b") == "a\\\\b"
    assert escape_like("plain") == "plain"
