"""
Own-profile API routes (`/api/me`, `/api/profiles`).

Permissions:
    Any authenticated role; callers only ever read or change their own row.
    Fields in PROTECTED_PROFILE_FIELDS (role, email, ...) are stripped from
    updates; role changes are an admin action.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
import logging

from backend.identity_access.domain import PROTECTED_PROFILE_FIELDS, UPDATABLE_PROFILE_FIELDS
from backend.web.auth_utils import private_error, private_json, require_role

profiles_router = APIRouter(tags=["Profiles"])
logger = logging.getLogger("foundation.web.profiles")


@profiles_router.get("/api/me")
async def get_me(request: Request):
    user, error = require_role(request)
    if error:
        return error
    try:
        profile = request.app.state.profiles.get(user["sub"])
    except Exception as exc:
        logger.warning("Profile lookup failed: %s", exc.__class__.__name__)
        return private_error("unavailable", status_code=503)
    return private_json({
        "sub": user["sub"],
        "role": user["role"],
        "profile": profile.to_dict() if profile else None,
    })


@profiles_router.get("/api/profiles")
async def get_own_profile(request: Request):
    user, error = require_role(request)
    if error:
        return error
    try:
        profile = request.app.state.profiles.get(user["sub"])
    except Exception as exc:
        logger.warning("Profile lookup failed: %s", exc.__class__.__name__)
        return private_error("unavailable", status_code=503)
    if profile is None:
        return private_error("not_found", status_code=404)
    return private_json({"data": profile.to_dict()})


@profiles_router.patch("/api/profiles")
async def update_own_profile(request: Request, payload: dict[str, Any]):
    user, error = require_role(request)
    if error:
        return error
    updates = {
        k: v for k, v in payload.items()
        if k not in PROTECTED_PROFILE_FIELDS and k in UPDATABLE_PROFILE_FIELDS
    }
    if not updates:
        return private_error("bad_request", status_code=400, detail="No valid fields to update")
    try:
        updated = request.app.state.profiles.update(user["sub"], updates)
    except Exception as exc:
        logger.warning("Profile update failed: %s", exc.__class__.__name__)
        return private_error("unavailable", status_code=503)
    if updated is None:
        return private_error("not_found", status_code=404)
    return private_json({"success": True, "data": updated.to_dict()})
