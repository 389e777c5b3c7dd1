"""
Pre-launch site lock ("coming soon" mode).

When SITE_PASSWORD is set, visitors must first unlock the site through
`POST /api/site-access`, which sets a cookie. Everything except a short list
of bypass prefixes is redirected to the coming-soon page until then.
"""
from __future__ import annotations

import os
import secrets

SITE_ACCESS_COOKIE = "site_access_granted"
SITE_ACCESS_MAX_AGE = 60 * 60 * 24 * 7  # 7 days
COMING_SOON_PATH = "/coming-soon"

BYPASS_PREFIXES = (
    COMING_SOON_PATH,
    "/api/site-access",
    "/favicon.ico",
    "/images",
    "/static",
    "/api/health",
)

# Paths the gate must also treat as public while the lock is active, so
# anonymous visitors can reach the unlock form.
GATE_PUBLIC_PREFIXES = (COMING_SOON_PATH, "/api/site-access")


def site_password() -> str:
    return (os.getenv("SITE_PASSWORD") or "").strip()


def is_enabled() -> bool:
    return bool(site_password())


def is_bypassed(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in BYPASS_PREFIXES)


def has_access(cookie_value: str | None) -> bool:
    return cookie_value == "true"


def password_matches(candidate: object) -> bool:
    expected = site_password()
    if not expected:
        return True
    if not isinstance(candidate, str):
        return False
    return secrets.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


__all__ = [
    "BYPASS_PREFIXES",
    "COMING_SOON_PATH",
    "GATE_PUBLIC_PREFIXES",
    "SITE_ACCESS_COOKIE",
    "SITE_ACCESS_MAX_AGE",
    "has_access",
    "is_bypassed",
    "is_enabled",
    "password_matches",
    "site_password",
]
