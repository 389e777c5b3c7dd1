"""
Shared authentication utilities for the web adapter.

Why:
    Avoid duplicating cookie policy and per-handler role checks across routers.
    Handlers trust only `request.state.user`, which the gate middleware fills
    from the same policy evaluator; no handler re-implements the role table.
"""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse, Response


def cookie_opts(environment: str) -> dict:
    """Return hardened cookie flags (dev = prod).

    Returns a mapping with keys:
      - secure: True
      - samesite: "lax"  # Allow top-level redirects after login to send the cookie
    """
    return {"secure": True, "samesite": "lax"}


def private_headers() -> dict:
    return {"Cache-Control": "private, no-store"}


def private_json(body, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=private_headers())


def private_error(error: str, *, status_code: int, detail: str | None = None) -> JSONResponse:
    body = {"error": error}
    if detail:
        body["detail"] = detail
    return private_json(body, status_code=status_code)


def current_user(request: Request) -> Optional[dict]:
    user = getattr(request.state, "user", None)
    if not isinstance(user, dict) or not user.get("sub"):
        return None
    return user


def require_role(request: Request, *roles: str) -> Tuple[Optional[dict], Optional[JSONResponse]]:
    """Return `(user, None)` when the caller holds one of `roles`, else `(None, error)`.

    With no roles given any authenticated user passes.
    """
    user = current_user(request)
    if user is None:
        return None, private_error("unauthenticated", status_code=401)
    if roles and user.get("role") not in roles:
        return None, private_error("forbidden", status_code=403)
    return user, None


SESSION_COOKIE_NAME = "portal_session"


def set_session_cookie(response: Response, value: str, *, environment: str, max_age: int | None = None) -> None:
    opts = cookie_opts(environment)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response: Response, *, environment: str) -> None:
    opts = cookie_opts(environment)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value="",
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        expires=0,
        max_age=0,
    )


__all__ = [
    "SESSION_COOKIE_NAME",
    "clear_session_cookie",
    "cookie_opts",
    "current_user",
    "private_error",
    "private_headers",
    "private_json",
    "require_role",
    "set_session_cookie",
]
