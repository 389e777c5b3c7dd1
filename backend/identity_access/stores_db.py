"""
Database-backed SessionStore and ProfileStore (Postgres/Supabase).

Why: In-memory sessions are not durable and do not scale across instances.
These stores persist sessions in Postgres (e.g., via Supabase) and read the
`profiles` table owned by the portal database, while keeping the cookie
opaque and PII-minimal.

Security:
- Intended to be used with a service role connection string; anon clients must
  not access the `app_sessions` table. RLS is enabled; service role bypasses RLS.
- Password checks run inside Postgres against `auth.users` (pgcrypto `crypt`),
  so password hashes never leave the database.
- Table identifiers are validated before being interpolated into SQL.

Note: This module uses psycopg3. It is imported only when enabled via
`SESSIONS_BACKEND=db`. Tests use the in-memory stores or a fake driver.
"""
from __future__ import annotations

from typing import Optional
import os
import re
import time

import psycopg
from psycopg.types.json import Json

from .domain import UPDATABLE_PROFILE_FIELDS, Profile, normalize_role
from .errors import AccountExists
from .stores import DEFAULT_SESSION_TTL, SessionRecord, escape_like

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")

PROFILE_COLUMNS = (
    "user_id", "role", "full_name", "email", "phone", "location",
    "avatar_url", "created_at", "updated_at",
)


def _now() -> int:
    return int(time.time())


def _resolve_dsn(dsn: str | None) -> str:
    value = dsn or os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL", "")
    if not value:
        raise RuntimeError("No database DSN provided")
    return value


def _validate_table(table: str) -> str:
    if not _TABLE_RE.match(table or ""):
        raise ValueError("Invalid table name")
    return table


class DBSessionStore:
    """Postgres-backed session store with sliding expiry.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Use a service role in Supabase.
    table:
        Fully qualified table name. Defaults to `public.app_sessions`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.app_sessions", users_table: str = "auth.users") -> None:
        self._dsn = _resolve_dsn(dsn)
        self._table = _validate_table(table)
        self._users_table = _validate_table(users_table)

    def create(self, *, user_id: str, email: str = "", ttl_seconds: int = DEFAULT_SESSION_TTL) -> SessionRecord:
        expires_at = _now() + ttl_seconds
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._table} (session_id, user_id, email, ttl_seconds, expires_at) "
                    f"values (gen_random_uuid()::text, %s, %s, %s, to_timestamp(%s)) returning session_id",
                    (user_id, email, ttl_seconds, expires_at),
                )
                row = cur.fetchone()
        sid = str(row[0]) if row else ""
        return SessionRecord(session_id=sid, user_id=user_id, email=email, expires_at=expires_at, ttl_seconds=ttl_seconds)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select session_id, user_id, email, ttl_seconds, extract(epoch from expires_at)::bigint "
                    f"from {self._table} where session_id = %s and expires_at > now()",
                    (session_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return SessionRecord(
            session_id=row[0],
            user_id=row[1],
            email=row[2] or "",
            ttl_seconds=int(row[3]) if row[3] is not None else DEFAULT_SESSION_TTL,
            expires_at=int(row[4]) if row[4] is not None else None,
        )

    def resolve(self, token: str) -> Optional[str]:
        """Return the user id for a live session and push its expiry forward."""
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update {self._table} set expires_at = now() + make_interval(secs => ttl_seconds) "
                    f"where session_id = %s and expires_at > now() returning user_id",
                    (token,),
                )
                row = cur.fetchone()
        return str(row[0]) if row else None

    def delete(self, session_id: str) -> None:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(f"delete from {self._table} where session_id = %s", (session_id,))

    def sign_in(self, *, email: str, password: str) -> Optional[SessionRecord]:
        normalized = (email or "").strip().lower()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select id::text from {self._users_table} "
                    f"where lower(email) = %s and encrypted_password = crypt(%s, encrypted_password)",
                    (normalized, password),
                )
                row = cur.fetchone()
        if not row:
            return None
        return self.create(user_id=str(row[0]), email=normalized)

    def sign_up(self, *, email: str, password: str, full_name: str = "", role: str = "") -> str:
        """Create an `auth.users` row with a bcrypt hash computed by pgcrypto.

        Raises `AccountExists` when the email is already registered.
        """
        normalized = (email or "").strip().lower()
        metadata = Json({"full_name": full_name, "role": role})
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._users_table} "
                    f"(id, aud, role, email, encrypted_password, raw_user_meta_data, created_at, updated_at) "
                    f"select gen_random_uuid(), 'authenticated', 'authenticated', %s, crypt(%s, gen_salt('bf')), %s, now(), now() "
                    f"where not exists (select 1 from {self._users_table} where lower(email) = %s) "
                    f"returning id::text",
                    (normalized, password, metadata, normalized),
                )
                row = cur.fetchone()
        if not row:
            raise AccountExists(normalized)
        return str(row[0])

    def sign_out(self, session_id: str) -> None:
        self.delete(session_id)


class DBProfileStore:
    """Read/update access to the `profiles` table."""

    def __init__(self, dsn: str | None = None, table: str = "public.profiles") -> None:
        self._dsn = _resolve_dsn(dsn)
        self._table = _validate_table(table)

    def _select(self) -> str:
        return f"select {', '.join(PROFILE_COLUMNS)} from {self._table}"

    @staticmethod
    def _to_profile(row) -> Profile:
        return Profile.from_row(dict(zip(PROFILE_COLUMNS, row)))

    def create(self, profile: Profile) -> Profile:
        """Insert the profile for a newly registered user."""
        if normalize_role(profile.role) is None:
            raise ValueError("invalid_role")
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._table} (user_id, role, full_name, email, email_verified) "
                    f"values (%s, %s, %s, %s, false) returning {', '.join(PROFILE_COLUMNS)}",
                    (profile.user_id, profile.role, profile.full_name, profile.email),
                )
                row = cur.fetchone()
        return self._to_profile(row)

    def get(self, user_id: str) -> Optional[Profile]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"{self._select()} where user_id = %s limit 1", (user_id,))
                row = cur.fetchone()
        return self._to_profile(row) if row else None

    def get_role(self, user_id: str) -> Optional[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select role from {self._table} where user_id = %s limit 1", (user_id,))
                row = cur.fetchone()
        return row[0] if row else None

    def list(self, *, role: Optional[str] = None, search: Optional[str] = None) -> list[Profile]:
        clauses: list[str] = []
        params: list[str] = []
        if role:
            clauses.append("role = %s")
            params.append(role)
        if search:
            clauses.append("(full_name ilike %s escape '\\' or email ilike %s escape '\\')")
            like = f"%{escape_like(search.strip())}%"
            params.extend([like, like])
        where = f" where {' and '.join(clauses)}" if clauses else ""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"{self._select()}{where} order by created_at desc", tuple(params))
                rows = cur.fetchall()
        return [self._to_profile(r) for r in rows]

    def update(self, user_id: str, updates: dict) -> Optional[Profile]:
        if "role" in updates and normalize_role(updates["role"]) is None:
            raise ValueError("invalid_role")
        cols = [k for k in updates if k in UPDATABLE_PROFILE_FIELDS]
        if not cols:
            return self.get(user_id)
        assignments = ", ".join(f"{c} = %s" for c in cols)
        params = [updates[c] for c in cols] + [user_id]
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update {self._table} set {assignments}, updated_at = now() "
                    f"where user_id = %s returning {', '.join(PROFILE_COLUMNS)}",
                    tuple(params),
                )
                row = cur.fetchone()
        return self._to_profile(row) if row else None
