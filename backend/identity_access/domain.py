"""
Identity domain constants and simple helpers.

Why:
- Centralize the closed role set and role home pages so the gate, the route
  guards and the admin endpoints cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

ROLE_APPLICANT = "applicant"
ROLE_MENTOR = "mentor"
ROLE_PARTNER = "partner"
ROLE_ADMIN = "admin"

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({ROLE_APPLICANT, ROLE_MENTOR, ROLE_PARTNER, ROLE_ADMIN})

ROLE_HOME_PATHS: dict[str, str] = {
    ROLE_APPLICANT: "/dashboard",
    ROLE_MENTOR: "/mentor/dashboard",
    ROLE_PARTNER: "/partner/dashboard",
    ROLE_ADMIN: "/admin/dashboard",
}

# Roles a visitor may pick when registering; admin is granted, never chosen.
SELF_REGISTER_ROLES = frozenset({ROLE_APPLICANT, ROLE_MENTOR, ROLE_PARTNER})
MIN_PASSWORD_LENGTH = 6

# Fields a user may never change on their own profile.
PROTECTED_PROFILE_FIELDS = frozenset({"user_id", "email", "role", "email_verified", "created_at"})
# Columns a profile update may touch; everything else in a payload is ignored.
UPDATABLE_PROFILE_FIELDS = frozenset({"role", "full_name", "phone", "location", "avatar_url", "date_of_birth"})


def normalize_role(value: object) -> Optional[str]:
    """Return the canonical role string, or None when outside the closed set."""
    if not isinstance(value, str):
        return None
    role = value.strip().lower()
    return role if role in ALLOWED_ROLES else None


def role_home(role: str) -> str:
    """Home path for a role; unknown roles land on the applicant dashboard."""
    return ROLE_HOME_PATHS.get(role, ROLE_HOME_PATHS[ROLE_APPLICANT])


@dataclass
class Profile:
    user_id: str
    role: str
    full_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    location: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "user_id": self.user_id,
            "role": self.role,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "location": self.location,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_row(cls, row: dict) -> "Profile":
        known = {
            "user_id", "role", "full_name", "email", "phone", "location",
            "avatar_url", "created_at", "updated_at",
        }
        return cls(
            user_id=str(row.get("user_id", "")),
            role=str(row.get("role") or ""),
            full_name=str(row.get("full_name") or ""),
            email=str(row.get("email") or ""),
            phone=row.get("phone"),
            location=row.get("location"),
            avatar_url=row.get("avatar_url"),
            created_at=_as_text(row.get("created_at")),
            updated_at=_as_text(row.get("updated_at")),
            extra={k: v for k, v in row.items() if k not in known and k != "id"},
        )


def _as_text(value: object) -> Optional[str]:
    if value is None:
        return None
    iso = getattr(value, "isoformat", None)
    if callable(iso):
        return iso()
    return str(value)


__all__ = [
    "ALLOWED_ROLES",
    "MIN_PASSWORD_LENGTH",
    "PROTECTED_PROFILE_FIELDS",
    "Profile",
    "ROLE_ADMIN",
    "ROLE_APPLICANT",
    "ROLE_HOME_PATHS",
    "ROLE_MENTOR",
    "ROLE_PARTNER",
    "SELF_REGISTER_ROLES",
    "UPDATABLE_PROFILE_FIELDS",
    "normalize_role",
    "role_home",
]
