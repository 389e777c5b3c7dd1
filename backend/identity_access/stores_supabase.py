"""
Supabase-backed session and profile stores.

This adapter talks to Supabase Auth (GoTrue) and the PostgREST `profiles`
table through a provided Supabase client. It is duck-typed so tests can pass
a small fake; in production the client comes from
`supabase.create_client(url, key)` (see `build_supabase_client`).

Client shape used:
- client.auth.sign_in_with_password({"email", "password"}) -> .user, .session
- client.auth.sign_up({"email", "password", "options"}) -> .user
- client.auth.get_user(jwt) -> .user (raises on invalid/expired tokens)
- client.auth.admin.sign_out(jwt) -> None
- client.table(name).select(...).eq(...).limit(...).execute() -> .data

Security:
- The session cookie carries the Supabase access token; validation and
  refresh policy are owned by Supabase Auth.
- Use the Service Role key server-side only.
- A successful password sign-in or sign-up makes supabase-py swap the
  client's Authorization header to the user's JWT. Password flows therefore
  run on a throwaway auth client; the shared service-role client only ever
  does token checks, admin calls and PostgREST queries.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
import logging
import os

from .domain import UPDATABLE_PROFILE_FIELDS, Profile, normalize_role
from .errors import AccountExists
from .stores import SessionRecord, escape_like

logger = logging.getLogger("foundation.identity_access.supabase")

PROFILE_SELECT = "user_id, role, full_name, email, phone, location, avatar_url, created_at, updated_at"


def build_supabase_client(*, auth_only: bool = False) -> Any:
    """Create a Supabase client from SUPABASE_URL and the service role key.

    `auth_only` clients are single-use for password flows: no token refresh
    timer and no persisted session.
    """
    from supabase import ClientOptions, create_client

    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
    if auth_only:
        return create_client(url, key, options=ClientOptions(auto_refresh_token=False, persist_session=False))
    return create_client(url, key)


def _rows(response: Any) -> list[dict]:
    data = getattr(response, "data", None)
    if data is None and isinstance(response, dict):
        data = response.get("data")
    if isinstance(data, dict):
        return [data]
    return list(data or [])


def _or_ilike(columns: tuple[str, ...], term: str) -> str:
    """PostgREST `or` filter matching `term` literally in any of `columns`.

    The pattern is double-quoted so `,().:` cannot break out of the filter;
    LIKE wildcards are escaped and PostgREST's `*` wildcard is dropped.
    """
    pattern = "%" + escape_like(term.replace("*", "")) + "%"
    quoted = '"' + pattern.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return ",".join(f"{col}.ilike.{quoted}" for col in columns)


class SupabaseSessionStore:
    """Sessions are Supabase access tokens."""

    def __init__(self, client: Any, auth_client_factory: Optional[Callable[[], Any]] = None) -> None:
        self._client = client
        self._auth_client_factory = auth_client_factory

    def _auth_client(self) -> Any:
        if self._auth_client_factory is not None:
            return self._auth_client_factory()
        return build_supabase_client(auth_only=True)

    def resolve(self, token: str) -> Optional[str]:
        try:
            res = self._client.auth.get_user(token)
        except Exception as exc:
            # Invalid and expired tokens surface as API errors; both mean "no session".
            logger.debug("Supabase get_user rejected token: %s", exc.__class__.__name__)
            return None
        user = getattr(res, "user", None)
        user_id = getattr(user, "id", None)
        return str(user_id) if user_id else None

    def get(self, session_id: str) -> Optional[SessionRecord]:
        user_id = self.resolve(session_id)
        if user_id is None:
            return None
        return SessionRecord(session_id=session_id, user_id=user_id)

    def sign_in(self, *, email: str, password: str) -> Optional[SessionRecord]:
        auth = self._auth_client().auth
        try:
            res = auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            logger.info("Supabase sign-in failed: %s", exc.__class__.__name__)
            return None
        user = getattr(res, "user", None)
        session = getattr(res, "session", None)
        token = getattr(session, "access_token", None)
        if user is None or not token:
            return None
        expires_at = getattr(session, "expires_at", None)
        return SessionRecord(
            session_id=token,
            user_id=str(user.id),
            email=str(getattr(user, "email", "") or email),
            expires_at=int(expires_at) if expires_at else None,
        )

    def sign_up(self, *, email: str, password: str, full_name: str = "", role: str = "") -> str:
        """Register with Supabase Auth (sends the verification email); returns the user id."""
        auth = self._auth_client().auth
        try:
            res = auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"full_name": full_name, "role": role}},
            })
        except Exception as exc:
            if "already registered" in str(exc).lower():
                raise AccountExists(email) from exc
            raise
        user = getattr(res, "user", None)
        if user is None or not getattr(user, "id", None):
            raise RuntimeError("Supabase sign-up returned no user")
        return str(user.id)

    def delete(self, session_id: str) -> None:
        self._client.auth.admin.sign_out(session_id)

    def sign_out(self, session_id: str) -> None:
        self.delete(session_id)


class SupabaseProfileStore:
    """PostgREST access to the `profiles` table."""

    def __init__(self, client: Any, table: str = "profiles") -> None:
        self._client = client
        self._table = table

    def _query(self) -> Any:
        return self._client.table(self._table)

    def create(self, profile: Profile) -> Profile:
        if normalize_role(profile.role) is None:
            raise ValueError("invalid_role")
        payload = {
            "user_id": profile.user_id,
            "role": profile.role,
            "full_name": profile.full_name,
            "email": profile.email,
            "email_verified": False,
        }
        rows = _rows(self._query().insert(payload).execute())
        return Profile.from_row(rows[0]) if rows else profile

    def get(self, user_id: str) -> Optional[Profile]:
        rows = _rows(self._query().select(PROFILE_SELECT).eq("user_id", user_id).limit(1).execute())
        return Profile.from_row(rows[0]) if rows else None

    def get_role(self, user_id: str) -> Optional[str]:
        rows = _rows(self._query().select("role").eq("user_id", user_id).limit(1).execute())
        return rows[0].get("role") if rows else None

    def list(self, *, role: Optional[str] = None, search: Optional[str] = None) -> list[Profile]:
        query = self._query().select(PROFILE_SELECT)
        if role:
            query = query.eq("role", role)
        if search and search.strip():
            query = query.or_(_or_ilike(("full_name", "email"), search.strip()))
        rows = _rows(query.order("created_at", desc=True).execute())
        return [Profile.from_row(r) for r in rows]

    def update(self, user_id: str, updates: dict) -> Optional[Profile]:
        if "role" in updates and normalize_role(updates["role"]) is None:
            raise ValueError("invalid_role")
        payload = {k: v for k, v in updates.items() if k in UPDATABLE_PROFILE_FIELDS}
        if not payload:
            return self.get(user_id)
        rows = _rows(self._query().update(payload).eq("user_id", user_id).execute())
        return Profile.from_row(rows[0]) if rows else None
