"""
Admin user-management API routes.

Why:
    Admins list profiles and change user attributes, including roles. Role
    changes always go through `identity_access.roles.update_role` so the
    self-demotion rule cannot be bypassed from the web layer.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
import logging

from backend.identity_access.domain import ALLOWED_ROLES, ROLE_ADMIN, UPDATABLE_PROFILE_FIELDS
from backend.identity_access.errors import InvalidOperation, InvalidRole, ProfileMissing
from backend.identity_access.roles import update_role
from backend.web.auth_utils import private_error, private_json, require_role

users_router = APIRouter(tags=["Users"])  # explicit path below
logger = logging.getLogger("foundation.web.users")


@users_router.get("/api/admin/users")
async def admin_users_list(request: Request, role: Optional[str] = None, search: Optional[str] = None):
    """List profiles, newest first (admins only).

    Validation:
        - `role`, when given, must be one of the closed role set.
    """
    _, error = require_role(request, ROLE_ADMIN)
    if error:
        return error
    if role and role not in ALLOWED_ROLES:
        return private_error("bad_request", status_code=400, detail="invalid_role")
    try:
        items = request.app.state.profiles.list(role=role or None, search=(search or "").strip() or None)
    except Exception as exc:
        logger.warning("Profile listing failed: %s", exc.__class__.__name__)
        return private_error("unavailable", status_code=503)
    return private_json({"data": [p.to_dict() for p in items]})


@users_router.patch("/api/admin/users")
async def admin_users_update(request: Request, payload: dict[str, Any]):
    """Update another user's profile (admins only).

    Body: `{"user_id": ..., <fields>}`. A `role` field is applied through the
    role guard first; an admin removing their own admin role gets 400.
    """
    user, error = require_role(request, ROLE_ADMIN)
    if error:
        return error
    target_id = payload.get("user_id")
    if not target_id or not isinstance(target_id, str):
        return private_error("bad_request", status_code=400, detail="User ID required")

    profiles = request.app.state.profiles
    updates = {k: v for k, v in payload.items() if k in UPDATABLE_PROFILE_FIELDS and k != "role"}
    try:
        if payload.get("role") is not None:
            updated = update_role(user["sub"], target_id, str(payload["role"]), profiles=profiles)
        else:
            updated = profiles.get(target_id)
            if updated is None:
                raise ProfileMissing(target_id)
        if updates:
            updated = profiles.update(target_id, updates)
            if updated is None:
                raise ProfileMissing(target_id)
    except InvalidOperation as exc:
        return private_error("invalid_operation", status_code=400, detail=str(exc))
    except InvalidRole:
        return private_error("bad_request", status_code=400, detail="invalid_role")
    except ProfileMissing:
        return private_error("not_found", status_code=404)
    except Exception as exc:
        logger.warning("Profile update failed: %s", exc.__class__.__name__)
        return private_error("unavailable", status_code=503)
    return private_json({"success": True, "data": updated.to_dict()})
