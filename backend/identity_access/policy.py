"""
Authorization gate: one pure policy evaluator for every access check.

Why:
    The request middleware, the route-level guards and the optimistic
    client-side guard must agree on who may see what. Keeping the route table
    and the decision procedure in a single module removes the drift between
    those layers.

Behavior (`evaluate`):
    1. Public paths are allowed without touching any store.
    2. The session token is resolved to a user id; no session means a login
       redirect (auth-only pages such as /login stay reachable).
    3. The user id is resolved to a role; a missing or unknown role is treated
       as unauthenticated.
    4. Authenticated users on auth-only pages are sent to their role home.
    5. Protected prefixes are matched longest-first on path segments; roles
       outside the permitted set are sent to their role home.

Failure semantics:
    Store exceptions are logged and degrade to "no session" / "no profile".
    Ambiguity about authorization state never resolves to `Allow`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Union
from urllib.parse import urlencode
import logging

from .domain import (
    ALLOWED_ROLES,
    ROLE_ADMIN,
    ROLE_MENTOR,
    ROLE_PARTNER,
    normalize_role,
    role_home,
)

logger = logging.getLogger("foundation.identity_access.policy")

LOGIN_PATH = "/login"

PUBLIC = "public"
AUTH_ONLY = "auth_only"
PROTECTED = "protected"
AUTHENTICATED = "authenticated"


class SessionResolver(Protocol):
    def resolve(self, token: str) -> Optional[str]: ...


class RoleResolver(Protocol):
    def get_role(self, user_id: str) -> Optional[str]: ...


# --- Decisions -------------------------------------------------------------------


@dataclass(frozen=True)
class Allow:
    user_id: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class RedirectToLogin:
    original_path: str
    reason: str = "unauthenticated"

    @property
    def location(self) -> str:
        params = {"redirect": self.original_path}
        if self.reason == "profile_missing":
            params["error"] = "no_profile"
        return f"{LOGIN_PATH}?{urlencode(params)}"


@dataclass(frozen=True)
class RedirectToRoleHome:
    role: str

    @property
    def location(self) -> str:
        return role_home(self.role)


Decision = Union[Allow, RedirectToLogin, RedirectToRoleHome]


# --- Route classification --------------------------------------------------------


def _segment_match(path: str, prefix: str) -> bool:
    if prefix == "/":
        return path == "/"
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def _normalize_path(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    # Collapse duplicate slashes so "//admin" cannot dodge the prefix match.
    while "//" in path:
        path = path.replace("//", "/")
    if len(path) > 1:
        path = path.rstrip("/")
    return path


@dataclass(frozen=True)
class RouteTable:
    """Static mapping from path prefix to permitted roles.

    `protected` entries are matched longest-prefix-first. Admin super-access is
    applied at lookup time, not stored per entry.
    """

    public: tuple[str, ...]
    auth_only: tuple[str, ...]
    protected: tuple[tuple[str, frozenset[str]], ...]

    def with_public(self, prefixes: Iterable[str]) -> "RouteTable":
        merged = tuple(dict.fromkeys(self.public + tuple(prefixes)))
        return RouteTable(public=merged, auth_only=self.auth_only, protected=self.protected)

    def classify(self, path: str) -> str:
        path = _normalize_path(path)
        if any(_segment_match(path, p) for p in self.auth_only):
            return AUTH_ONLY
        if any(_segment_match(path, p) for p in self.public):
            return PUBLIC
        if self._match_protected(path) is not None:
            return PROTECTED
        return AUTHENTICATED

    def permitted_roles(self, path: str) -> frozenset[str]:
        """Roles allowed on `path` once authenticated (admin always included)."""
        path = _normalize_path(path)
        entry = self._match_protected(path)
        if entry is None:
            return ALLOWED_ROLES
        return entry[1] | {ROLE_ADMIN}

    def _match_protected(self, path: str) -> Optional[tuple[str, frozenset[str]]]:
        best = None
        for prefix, roles in self.protected:
            if _segment_match(path, prefix) and (best is None or len(prefix) > len(best[0])):
                best = (prefix, roles)
        return best


DEFAULT_ROUTES = RouteTable(
    public=("/", "/auth/callback", "/api/auth", "/api/health"),
    auth_only=("/login", "/register"),
    protected=(
        ("/admin", frozenset({ROLE_ADMIN})),
        ("/api/admin", frozenset({ROLE_ADMIN})),
        ("/mentor", frozenset({ROLE_MENTOR, ROLE_ADMIN})),
        ("/api/mentorship", frozenset({ROLE_MENTOR, ROLE_ADMIN})),
        ("/partner", frozenset({ROLE_PARTNER, ROLE_ADMIN})),
        ("/api/partners", frozenset({ROLE_PARTNER, ROLE_ADMIN})),
        ("/api/opportunities", frozenset({ROLE_PARTNER, ROLE_ADMIN})),
    ),
)


def classify(path: str, routes: RouteTable = DEFAULT_ROUTES) -> str:
    return routes.classify(path)


def permitted_roles(path: str, routes: RouteTable = DEFAULT_ROUTES) -> frozenset[str]:
    return routes.permitted_roles(path)


def is_role_permitted(role: Optional[str], path: str, routes: RouteTable = DEFAULT_ROUTES) -> bool:
    role = normalize_role(role)
    return role is not None and role in routes.permitted_roles(path)


# --- Store lookups (fail closed) -------------------------------------------------


def _resolve_user(sessions: SessionResolver, token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        user_id = sessions.resolve(token)
    except Exception as exc:
        logger.warning("Session store resolve failed: %s", exc.__class__.__name__)
        return None
    return str(user_id) if user_id else None


def _resolve_role(profiles: RoleResolver, user_id: str) -> Optional[str]:
    try:
        raw = profiles.get_role(user_id)
    except Exception as exc:
        logger.warning("Profile store lookup failed: %s", exc.__class__.__name__)
        return None
    role = normalize_role(raw)
    if raw is not None and role is None:
        logger.warning("Profile carries unknown role; treating as missing")
    return role


# --- Evaluator -------------------------------------------------------------------


def evaluate(
    path: str,
    token: Optional[str],
    *,
    sessions: SessionResolver,
    profiles: RoleResolver,
    routes: RouteTable = DEFAULT_ROUTES,
) -> Decision:
    """Decide whether a request for `path` carrying `token` may proceed."""
    kind = routes.classify(path)
    if kind == PUBLIC:
        return Allow()

    user_id = _resolve_user(sessions, token)
    if user_id is None:
        if kind == AUTH_ONLY:
            return Allow()
        return RedirectToLogin(original_path=path)

    role = _resolve_role(profiles, user_id)
    if role is None:
        if kind == AUTH_ONLY:
            return Allow(user_id=user_id)
        return RedirectToLogin(original_path=path, reason="profile_missing")

    if kind == AUTH_ONLY:
        return RedirectToRoleHome(role=role)

    if role not in routes.permitted_roles(path):
        logger.info("Access denied to %s for role %s", path, role)
        return RedirectToRoleHome(role=role)

    logger.debug("Access granted to %s for role %s", path, role)
    return Allow(user_id=user_id, role=role)


__all__ = [
    "AUTHENTICATED",
    "AUTH_ONLY",
    "Allow",
    "DEFAULT_ROUTES",
    "Decision",
    "LOGIN_PATH",
    "PROTECTED",
    "PUBLIC",
    "RedirectToLogin",
    "RedirectToRoleHome",
    "RouteTable",
    "classify",
    "evaluate",
    "is_role_permitted",
    "permitted_roles",
]
