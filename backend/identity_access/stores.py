"""
In-memory stores for development: SessionStore and ProfileStore.

Why: Keep sessions opaque to the client and let tests run without a database.
For production, use the Postgres (`stores_db`) or Supabase
(`stores_supabase`) implementations; all share the same method names.

Security: Cookies carry only an opaque session id. Session data stays server-side.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional
import hashlib
import secrets
import threading
import time
import uuid

from .domain import UPDATABLE_PROFILE_FIELDS, Profile, normalize_role
from .errors import AccountExists

DEFAULT_SESSION_TTL = 3600


def _now() -> int:
    return int(time.time())


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 120_000)


def escape_like(term: str) -> str:
    """Escape LIKE/ILIKE wildcards so a search term only matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class SessionRecord:
    session_id: str
    user_id: str
    email: str = ""
    expires_at: Optional[int] = None
    ttl_seconds: int = DEFAULT_SESSION_TTL


@dataclass
class _Credential:
    user_id: str
    salt: bytes
    digest: bytes


class SessionStore:
    """Opaque session ids with sliding expiry (refresh-on-access)."""

    def __init__(self) -> None:
        self._data: Dict[str, SessionRecord] = {}
        self._accounts: Dict[str, _Credential] = {}
        self._lock = threading.Lock()

    def create(self, *, user_id: str, email: str = "", ttl_seconds: int = DEFAULT_SESSION_TTL) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(session_id=sid, user_id=user_id, email=email, expires_at=_now() + ttl_seconds, ttl_seconds=ttl_seconds)
        with self._lock:
            self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            rec = self._data.get(session_id)
            if not rec:
                return None
            if rec.expires_at and rec.expires_at < _now():
                self._data.pop(session_id, None)
                return None
            return rec

    def resolve(self, token: str) -> Optional[str]:
        """Return the user id behind `token` and slide its expiry forward."""
        rec = self.get(token)
        if rec is None:
            return None
        with self._lock:
            rec.expires_at = _now() + rec.ttl_seconds
        return rec.user_id

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)

    # --- Credentials (dev/test login) ---------------------------------------------

    def register_account(self, *, email: str, password: str, user_id: str) -> None:
        salt = secrets.token_bytes(16)
        with self._lock:
            self._accounts[email.strip().lower()] = _Credential(user_id=user_id, salt=salt, digest=_hash_password(password, salt))

    def sign_up(self, *, email: str, password: str, full_name: str = "", role: str = "") -> str:
        """Create credentials for a new account and return its user id.

        `full_name`/`role` are accepted for parity with the hosted backends,
        which keep them as account metadata; profiles are stored separately.
        """
        key = (email or "").strip().lower()
        with self._lock:
            exists = key in self._accounts
        if exists:
            raise AccountExists(key)
        user_id = str(uuid.uuid4())
        self.register_account(email=key, password=password, user_id=user_id)
        return user_id

    def sign_in(self, *, email: str, password: str) -> Optional[SessionRecord]:
        key = (email or "").strip().lower()
        with self._lock:
            cred = self._accounts.get(key)
        if cred is None:
            return None
        if not secrets.compare_digest(_hash_password(password, cred.salt), cred.digest):
            return None
        return self.create(user_id=cred.user_id, email=key)

    def sign_out(self, session_id: str) -> None:
        self.delete(session_id)


class ProfileStore:
    """One profile per user id; roles are validated on write."""

    def __init__(self) -> None:
        self._data: Dict[str, Profile] = {}
        self._lock = threading.Lock()

    def put(self, profile: Profile) -> Profile:
        if normalize_role(profile.role) is None:
            raise ValueError("invalid_role")
        now = _iso_now()
        stored = replace(profile, created_at=profile.created_at or now, updated_at=profile.updated_at or now)
        with self._lock:
            self._data[profile.user_id] = stored
        return stored

    def create(self, profile: Profile) -> Profile:
        """Insert the profile for a newly registered user (one per user id)."""
        with self._lock:
            exists = profile.user_id in self._data
        if exists:
            raise ValueError("profile_exists")
        return self.put(profile)

    def get(self, user_id: str) -> Optional[Profile]:
        with self._lock:
            return self._data.get(user_id)

    def get_role(self, user_id: str) -> Optional[str]:
        rec = self.get(user_id)
        return rec.role if rec else None

    def list(self, *, role: Optional[str] = None, search: Optional[str] = None) -> list[Profile]:
        with self._lock:
            items = list(self._data.values())
        if role:
            items = [p for p in items if p.role == role]
        if search:
            needle = search.strip().lower()
            items = [p for p in items if needle in p.full_name.lower() or needle in p.email.lower()]
        return sorted(items, key=lambda p: p.created_at or "", reverse=True)

    def update(self, user_id: str, updates: dict) -> Optional[Profile]:
        if "role" in updates and normalize_role(updates["role"]) is None:
            raise ValueError("invalid_role")
        with self._lock:
            current = self._data.get(user_id)
            if current is None:
                return None
            allowed = {k: v for k, v in updates.items() if k in UPDATABLE_PROFILE_FIELDS}
            fields = {k: v for k, v in allowed.items() if k in Profile.__dataclass_fields__}
            extra = dict(current.extra)
            extra.update({k: v for k, v in allowed.items() if k not in fields})
            updated = replace(current, **fields, extra=extra, updated_at=_iso_now())
            self._data[user_id] = updated
            return updated
