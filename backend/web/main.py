"Foundation Portal"
from __future__ import annotations

import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.concurrency import run_in_threadpool
from dotenv import load_dotenv

from backend.identity_access import policy
from backend.identity_access.events import SessionEventBus
from backend.web import config as _cfg
from backend.web import site_lock
from backend.web.auth_utils import SESSION_COOKIE_NAME, private_headers
from backend.web.identity_wiring import build_identity_stores, sessions_backend
from backend.web.routes.auth import auth_router
from backend.web.routes.operations import operations_router
from backend.web.routes.profiles import profiles_router
from backend.web.routes.users import users_router


def _under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via PORTAL_ENABLE_DOTENV (default true outside pytest).
    """
    if _under_pytest():
        return False
    flag = (os.getenv("PORTAL_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("foundation.identity_access")

app = FastAPI(title="Foundation Portal", description="Applicants, mentors and partners", version="0.1.0")

app.include_router(auth_router)
app.include_router(operations_router)
app.include_router(profiles_router)
app.include_router(users_router)

# --- Identity wiring ----------------------------------------------------------------

# Tests always run against the in-memory stores; they replace them per test.
app.state.sessions, app.state.profiles = build_identity_stores("memory" if _under_pytest() else sessions_backend())
app.state.session_events = SessionEventBus()
app.state.routes = policy.DEFAULT_ROUTES


def _gate_routes(request: Request) -> policy.RouteTable:
    routes = request.app.state.routes
    if site_lock.is_enabled():
        routes = routes.with_public(site_lock.GATE_PUBLIC_PREFIXES)
    return routes


def _is_api_path(path: str) -> bool:
    return path.startswith("/api/")


def _decision_response(request: Request, decision: policy.Decision) -> Response:
    """Translate a non-allow gate decision into an HTTP response.

    API callers get JSON status codes, HTMX gets a client-side redirect hint,
    browsers get a 302 to the decision's location.
    """
    path = request.url.path
    headers = private_headers()
    if isinstance(decision, policy.RedirectToLogin):
        status_code, body = 401, {"error": "unauthenticated"}
        if decision.reason == "profile_missing":
            body["detail"] = "profile_missing"
    else:
        status_code, body = 403, {"error": "forbidden"}

    if _is_api_path(path):
        headers["Vary"] = "Origin"
        return JSONResponse(body, status_code=status_code, headers=headers)
    if "HX-Request" in request.headers:
        # Security: prevent intermediaries from caching unauthenticated HTMX responses
        headers.update({"HX-Redirect": decision.location, "Vary": "HX-Request"})
        return Response(status_code=status_code, headers=headers)
    return RedirectResponse(url=decision.location, status_code=302, headers=headers)


# --- Middleware (last registered runs first) -----------------------------------------

@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    routes = _gate_routes(request)
    if routes.classify(path) == policy.PUBLIC:
        return await call_next(request)

    token = request.cookies.get(SESSION_COOKIE_NAME)
    decision = await run_in_threadpool(
        policy.evaluate,
        path,
        token,
        sessions=request.app.state.sessions,
        profiles=request.app.state.profiles,
        routes=routes,
    )
    if not isinstance(decision, policy.Allow):
        logger.debug("Gate decision %s for %s", decision.__class__.__name__, path)
        return _decision_response(request, decision)

    # Expose minimal, read-only user context for downstream handlers.
    if decision.user_id and decision.role:
        request.state.user = {"sub": decision.user_id, "role": decision.role}
    return await call_next(request)


@app.middleware("http")
async def site_lock_guard(request: Request, call_next):
    path = request.url.path
    if (
        not site_lock.is_enabled()
        or site_lock.is_bypassed(path)
        or site_lock.has_access(request.cookies.get(site_lock.SITE_ACCESS_COOKIE))
    ):
        return await call_next(request)
    if _is_api_path(path):
        return JSONResponse({"error": "site_locked"}, status_code=401, headers=private_headers())
    return RedirectResponse(url=site_lock.COMING_SOON_PATH, status_code=302)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # Allow the browser to talk to the configured Supabase origin for
    # client-side auth refreshes; everything else stays same-origin.
    extra_connect = []
    pub = (os.getenv("SUPABASE_PUBLIC_URL") or os.getenv("SUPABASE_URL") or "").strip()
    if pub:
        from urllib.parse import urlparse

        p = urlparse(pub)
        if p.scheme and p.netloc:
            extra_connect.append(f"{p.scheme}://{p.netloc}")
    connect_src = "'self'" + (" " + " ".join(extra_connect) if extra_connect else "")
    csp = (
        "default-src 'self'; script-src 'self'; style-src 'self'; "
        f"img-src 'self' data:; font-src 'self' data:; connect-src {connect_src};"
    )
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if _cfg.portal_env() == "prod":
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response
