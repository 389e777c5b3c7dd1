"""
Authorization error taxonomy.

All of these resolve to a redirect or a rejected mutation at the web layer.
The gate itself never raises them to its caller; handlers and the role update
guard do.
"""
from __future__ import annotations


class AuthorizationError(Exception):
    """Base class; `code` is the machine-readable error used in JSON bodies."""

    code = "authorization_error"


class Unauthenticated(AuthorizationError):
    code = "unauthenticated"


class ProfileMissing(Unauthenticated):
    """Session is valid but no usable profile row exists."""

    code = "profile_missing"


class Forbidden(AuthorizationError):
    code = "forbidden"


class InvalidOperation(AuthorizationError):
    code = "invalid_operation"


class InvalidRole(AuthorizationError, ValueError):
    code = "invalid_role"


class AccountExists(AuthorizationError):
    """Registration for an email that already has an account."""

    code = "account_exists"


__all__ = [
    "AccountExists",
    "AuthorizationError",
    "Forbidden",
    "InvalidOperation",
    "InvalidRole",
    "ProfileMissing",
    "Unauthenticated",
]
