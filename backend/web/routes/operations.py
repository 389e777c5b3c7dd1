"""Operations endpoints: health check and pre-launch site access."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from backend.web import site_lock
from backend.web.auth_utils import cookie_opts, private_error, private_json
from backend.web.config import portal_env

operations_router = APIRouter(tags=["Operations"])

SERVICE_NAME = "Foundation Portal API"


@operations_router.get("/api/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return private_json({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "service": SERVICE_NAME,
    })


def _set_site_access_cookie(resp: JSONResponse) -> None:
    opts = cookie_opts(portal_env())
    resp.set_cookie(
        key=site_lock.SITE_ACCESS_COOKIE,
        value="true",
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=site_lock.SITE_ACCESS_MAX_AGE,
    )


@operations_router.post("/api/site-access")
async def grant_site_access(payload: dict[str, Any]):
    """Unlock the site for this browser.

    Access is granted automatically when no SITE_PASSWORD is configured.
    """
    if not site_lock.password_matches(payload.get("password")):
        return private_error("invalid_password", status_code=401, detail="Invalid password")
    resp = private_json({"success": True})
    _set_site_access_cookie(resp)
    return resp


@operations_router.delete("/api/site-access")
async def revoke_site_access():
    resp = private_json({"success": True})
    resp.delete_cookie(site_lock.SITE_ACCESS_COOKIE, path="/")
    return resp
