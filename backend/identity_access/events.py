"""
Session-change notifications and the optimistic route guard.

Why:
    UI-side guards only exist to avoid flashing protected content before the
    server answers. Instead of ambient mutable auth context they hold an
    explicit `AuthState` and re-run the shared `policy.evaluate` whenever a
    session event arrives. The middleware stays the sole authority.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
import logging
import threading

from . import policy

logger = logging.getLogger("foundation.identity_access.events")


class SessionEventType(Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"


@dataclass(frozen=True)
class SessionEvent:
    type: SessionEventType
    token: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[SessionEvent], None]


class SessionEventBus:
    """Synchronous publish/subscribe channel for session changes."""

    def __init__(self) -> None:
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register `handler`; the returned callable unsubscribes it."""
        with self._lock:
            self._handlers.append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: SessionEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                logger.warning("Session event handler failed: %s", exc.__class__.__name__)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)


@dataclass(frozen=True)
class AuthState:
    """What a client currently believes about its session."""

    token: Optional[str] = None
    user_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.token and self.user_id)


class RouteGuard:
    """Re-evaluates the gate for one path on every session event.

    Best-effort only: events for other users' tokens are ignored, and the
    decision is reported through `on_decision` for the caller to act on.
    """

    def __init__(
        self,
        path: str,
        *,
        sessions: policy.SessionResolver,
        profiles: policy.RoleResolver,
        bus: SessionEventBus,
        on_decision: Callable[[policy.Decision], None],
        state: AuthState | None = None,
        routes: policy.RouteTable = policy.DEFAULT_ROUTES,
    ) -> None:
        self.path = path
        self.state = state or AuthState()
        self._sessions = sessions
        self._profiles = profiles
        self._routes = routes
        self._on_decision = on_decision
        self._unsubscribe: Optional[Callable[[], None]] = bus.subscribe(self._handle)
        self.decision: policy.Decision = self.evaluate()

    def evaluate(self) -> policy.Decision:
        decision = policy.evaluate(
            self.path,
            self.state.token,
            sessions=self._sessions,
            profiles=self._profiles,
            routes=self._routes,
        )
        if isinstance(decision, policy.Allow) and decision.user_id:
            self.state = AuthState(token=self.state.token, user_id=decision.user_id, role=decision.role)
        elif isinstance(decision, policy.RedirectToRoleHome):
            self.state = AuthState(token=self.state.token, user_id=self.state.user_id, role=decision.role)
        self.decision = decision
        return decision

    def navigate(self, path: str) -> policy.Decision:
        self.path = path
        decision = self.evaluate()
        self._on_decision(decision)
        return decision

    def _handle(self, event: SessionEvent) -> None:
        if event.type is SessionEventType.SIGNED_OUT:
            if self.state.token and event.token and event.token != self.state.token:
                return
            self.state = AuthState()
        elif event.type in (SessionEventType.SIGNED_IN, SessionEventType.TOKEN_REFRESHED):
            if self.state.user_id and event.user_id and event.user_id != self.state.user_id:
                return
            self.state = AuthState(token=event.token, user_id=event.user_id)
        self._on_decision(self.evaluate())

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


__all__ = ["AuthState", "RouteGuard", "SessionEvent", "SessionEventBus", "SessionEventType"]
