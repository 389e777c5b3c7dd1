"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).
"""
import importlib
import sys
from pathlib import Path
import pytest

# Ensure the `backend` package is importable without an editable install
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_portal_env(monkeypatch: pytest.MonkeyPatch):
    """Keep env-driven toggles from leaking across tests.

    Tests that need prod semantics or the site lock opt in explicitly.
    """
    for var in (
        "PORTAL_ENV",
        "SESSIONS_BACKEND",
        "SITE_PASSWORD",
        "SUPABASE_URL",
        "SUPABASE_PUBLIC_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_identity_state():
    """Give every test fresh in-memory stores and an empty event bus.

    Why:
        Route handlers and the gate middleware read stores from `app.state`;
        sessions or profiles created in one test must not authorize requests
        in another.
    """
    from backend.identity_access.events import SessionEventBus
    from backend.identity_access.policy import DEFAULT_ROUTES
    from backend.identity_access.stores import ProfileStore, SessionStore

    main = importlib.import_module("backend.web.main")
    main.app.state.sessions = SessionStore()
    main.app.state.profiles = ProfileStore()
    main.app.state.session_events = SessionEventBus()
    main.app.state.routes = DEFAULT_ROUTES
    yield
