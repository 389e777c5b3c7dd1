"""
Authentication-related FastAPI routes (router-only module).

Why:
    Keep register/login/logout in a dedicated router. All paths live under `/api/auth`
    and are public for the gate; they create and destroy the opaque session
    and publish session events so optimistic guards re-evaluate.

Notes:
    Stores and the event bus are read from `request.app.state`, which `main`
    populates at import time (tests swap them there as well).
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel
import logging

from backend.identity_access.domain import MIN_PASSWORD_LENGTH, SELF_REGISTER_ROLES, Profile, normalize_role, role_home
from backend.identity_access.errors import AccountExists
from backend.identity_access.events import SessionEvent, SessionEventType
from backend.web.auth_utils import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    private_error,
    private_json,
    set_session_cookie,
)
from backend.web.config import portal_env

auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("foundation.web.auth")


class LoginPayload(BaseModel):
    email: str = ""
    password: str = ""


@auth_router.post("/api/auth/login")
async def auth_login(request: Request, payload: LoginPayload):
    """Sign in with email and password.

    Behavior:
        - 400 when email or password is missing.
        - 401 on invalid credentials.
        - 404 when the account has no usable profile; the fresh session is
          discarded so no half-authenticated state remains.
        - 200 with `redirectUrl` set to the caller's role home and the session
          cookie attached.
    Permissions:
        Public.
    """
    email = (payload.email or "").strip()
    if not email or not payload.password:
        return private_error("bad_request", status_code=400, detail="Email and password are required")

    sessions = request.app.state.sessions
    profiles = request.app.state.profiles
    try:
        rec = sessions.sign_in(email=email, password=payload.password)
    except Exception as exc:
        logger.warning("Sign-in failed: %s", exc.__class__.__name__)
        return private_error("login_failed", status_code=503)
    if rec is None:
        return private_error("invalid_credentials", status_code=401, detail="Invalid email or password")

    try:
        profile = profiles.get(rec.user_id)
    except Exception as exc:
        logger.warning("Profile lookup failed during login: %s", exc.__class__.__name__)
        profile = None
    role = normalize_role(profile.role) if profile else None
    if role is None:
        try:
            sessions.sign_out(rec.session_id)
        except Exception as exc:
            logger.warning("Session cleanup failed after missing profile: %s", exc.__class__.__name__)
        return private_error("not_found", status_code=404, detail="User profile not found")

    request.app.state.session_events.publish(
        SessionEvent(SessionEventType.SIGNED_IN, token=rec.session_id, user_id=rec.user_id)
    )
    resp = private_json({
        "success": True,
        "message": "Login successful",
        "user": {"id": rec.user_id, "email": rec.email or email, "role": role},
        "redirectUrl": role_home(role),
    })
    set_session_cookie(resp, rec.session_id, environment=portal_env(), max_age=rec.ttl_seconds)
    return resp


class RegisterPayload(BaseModel):
    email: str = ""
    password: str = ""
    full_name: str = ""
    role: str = ""


@auth_router.post("/api/auth/register")
async def auth_register(request: Request, payload: RegisterPayload):
    """Create an account and its profile.

    Behavior:
        - 400 on missing fields, a role other than applicant/mentor/partner,
          a short password, or an email that is already registered.
        - 503 when the auth backend fails; 500 when the profile insert fails
          after the account was created.
        - 200 without a session: the caller signs in afterwards (hosted
          backends require email verification first).
    Permissions:
        Public. Admin is never self-assignable.
    """
    email = (payload.email or "").strip()
    full_name = (payload.full_name or "").strip()
    if not email or not payload.password or not full_name or not payload.role:
        return private_error("bad_request", status_code=400, detail="Missing required fields")
    role = normalize_role(payload.role)
    if role not in SELF_REGISTER_ROLES:
        return private_error(
            "bad_request", status_code=400, detail="Invalid role. Must be applicant, mentor, or partner"
        )
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        return private_error(
            "bad_request", status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

    try:
        user_id = request.app.state.sessions.sign_up(
            email=email, password=payload.password, full_name=full_name, role=role
        )
    except AccountExists:
        return private_error("bad_request", status_code=400, detail="Email already registered")
    except Exception as exc:
        logger.warning("Sign-up failed: %s", exc.__class__.__name__)
        return private_error("registration_failed", status_code=503)

    try:
        request.app.state.profiles.create(Profile(user_id=user_id, role=role, full_name=full_name, email=email))
    except Exception as exc:
        logger.error("Profile creation failed after sign-up: %s", exc.__class__.__name__)
        return private_error("profile_create_failed", status_code=500, detail="Failed to create user profile")

    logger.info("Account registered with role %s", role)
    return private_json({
        "success": True,
        "message": "Registration successful. Please check your email to verify your account.",
        "user": {"id": user_id, "email": email},
    })


@auth_router.post("/api/auth/logout")
async def auth_logout(request: Request):
    """Destroy the server-side session and expire the cookie.

    Best-effort on the store side: logout never fails because of a store error.
    """
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if sid:
        try:
            request.app.state.sessions.sign_out(sid)
        except Exception as exc:
            logger.warning("Session delete failed during logout: %s", exc.__class__.__name__)
        request.app.state.session_events.publish(SessionEvent(SessionEventType.SIGNED_OUT, token=sid))
    resp = private_json({"success": True, "message": "Logout successful"})
    clear_session_cookie(resp, environment=portal_env())
    return resp
