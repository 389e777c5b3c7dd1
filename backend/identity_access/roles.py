"""
Role changes performed through the admin user-management path.

Invariant: an admin can change anyone else's role (including another admin's)
but can never remove their own admin role here.
"""
from __future__ import annotations

from typing import Optional, Protocol
import logging

from .domain import ROLE_ADMIN, Profile, normalize_role
from .errors import InvalidOperation, InvalidRole, ProfileMissing

logger = logging.getLogger("foundation.identity_access.roles")


class ProfileWriter(Protocol):
    def get(self, user_id: str) -> Optional[Profile]: ...
    def get_role(self, user_id: str) -> Optional[str]: ...
    def update(self, user_id: str, updates: dict) -> Optional[Profile]: ...


def check_role_change(acting_user_id: str, acting_role: Optional[str], target_user_id: str, new_role: str) -> str:
    """Validate a role change without touching storage; returns the canonical role."""
    role = normalize_role(new_role)
    if role is None:
        raise InvalidRole(f"unknown role: {new_role!r}")
    if acting_user_id == target_user_id and role != ROLE_ADMIN and normalize_role(acting_role) == ROLE_ADMIN:
        raise InvalidOperation("Cannot remove your own admin role")
    return role


def update_role(acting_user_id: str, target_user_id: str, new_role: str, *, profiles: ProfileWriter) -> Profile:
    """Change `target_user_id`'s role on behalf of `acting_user_id`.

    Raises:
        InvalidRole: `new_role` is outside the closed role set.
        InvalidOperation: an admin tried to demote themself.
        ProfileMissing: the target has no profile row.
    """
    acting_role = profiles.get_role(acting_user_id)
    role = check_role_change(acting_user_id, acting_role, target_user_id, new_role)

    current = profiles.get(target_user_id)
    if current is None:
        raise ProfileMissing(target_user_id)
    if normalize_role(current.role) == role:
        return current

    updated = profiles.update(target_user_id, {"role": role})
    if updated is None:
        raise ProfileMissing(target_user_id)
    logger.info("Role changed from %s to %s by admin action", current.role, role)
    return updated


__all__ = ["check_role_change", "update_role"]
