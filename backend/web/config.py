"""
Configuration and startup security checks for the portal.

Why: Authorization decisions are only as good as the stores behind them. This
module provides a single guard that refuses obviously insecure production
deployments without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def portal_env() -> str:
    return (os.getenv("PORTAL_ENV", "dev") or "dev").strip().lower()


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/staging only):
    - Sessions must not live in process memory (lost on restart, not shared).
    - Supabase Service Role key must be set and not a known dummy placeholder
      when the Supabase backend is used.
    - SUPABASE_URL must use https.
    - DATABASE_URL must not explicitly disable TLS.
    """
    if not _is_prod_like(portal_env()):
        return  # dev/test remain permissive

    backend = (os.getenv("SESSIONS_BACKEND", "memory") or "").strip().lower()
    if backend == "memory":
        raise SystemExit(
            "Refusing to start: SESSIONS_BACKEND=memory is not allowed in production/staging."
        )

    if backend == "supabase":
        srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
        if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
            raise SystemExit(
                "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
            )

    url = (os.getenv("SUPABASE_URL", "") or "").strip().lower()
    if url.startswith("http://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production (got http).")

    dsn = os.getenv("DATABASE_URL", "")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )
