"""
Select and build the session/profile store pair for the web app.

Why:
    The gate only needs `resolve(token)` and `get_role(user_id)`; which backend
    answers them is a deployment decision. `SESSIONS_BACKEND` picks one of:

    - `memory`   in-process stores (dev and tests)
    - `db`       Postgres via psycopg (`public.app_sessions`, `public.profiles`)
    - `supabase` Supabase Auth + PostgREST through the supabase client

Security:
    The `db` and `supabase` backends expect service-role credentials
    (DATABASE_URL / SUPABASE_SERVICE_ROLE_KEY); nothing is exposed to clients.
"""
from __future__ import annotations

from typing import Any, Tuple
import logging
import os

from backend.identity_access.stores import ProfileStore, SessionStore

logger = logging.getLogger("foundation.web.wiring")

BACKENDS = ("memory", "db", "supabase")


def sessions_backend() -> str:
    value = (os.getenv("SESSIONS_BACKEND", "memory") or "memory").strip().lower()
    if value not in BACKENDS:
        raise RuntimeError(f"Unknown SESSIONS_BACKEND: {value}")
    return value


def build_identity_stores(backend: str | None = None) -> Tuple[Any, Any]:
    """Return `(sessions, profiles)` for the configured backend."""
    backend = backend or sessions_backend()
    if backend == "db":
        from backend.identity_access.stores_db import DBProfileStore, DBSessionStore

        logger.info("Identity stores wired: postgres")
        return DBSessionStore(), DBProfileStore()
    if backend == "supabase":
        from backend.identity_access.stores_supabase import (
            SupabaseProfileStore,
            SupabaseSessionStore,
            build_supabase_client,
        )

        client = build_supabase_client()
        logger.info("Identity stores wired: supabase")
        return SupabaseSessionStore(client), SupabaseProfileStore(client)
    logger.info("Identity stores wired: memory")
    return SessionStore(), ProfileStore()


__all__ = ["BACKENDS", "build_identity_stores", "sessions_backend"]
