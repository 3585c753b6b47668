"""
tests/conftest.py -- Shared test fixtures for AuthKeep.

This module provides:
  - settings:  a Settings instance with fixed secrets and both OAuth providers
  - store:     an isolated in-memory CredentialStore per test
  - publisher: a RecordingPublisher that keeps every published event
  - clock:     a controllable millisecond clock for recovery-code expiry
  - services:  the full AuthServices graph wired from the above
  - client:    TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
test gets its own name so no state leaks between tests.

The DEBUG env var must be set before any api/auth import so get_settings()
auto-generates secrets in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import itertools
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import hash_password
from auth.models import Account
from auth.store import CredentialStore
from auth.wiring import AuthServices, build_auth_services
from core.config import Settings

# Satisfies the password policy enforced by the API models.
PASSWORD = "Sup3r!Secret"
OTHER_PASSWORD = "An0ther!Pass"

# Start of the controllable clock: 2026-01-01T00:00:00Z in epoch milliseconds.
CLOCK_START_MS = 1_767_225_600_000


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingPublisher:
    """NotificationPublisher that records events instead of sending them.

    fail=True makes every publish raise ConnectionError, which is what the
    Redis client raises when the broker is down.
    """

    def __init__(self, fail: bool = False) -> None:
        self.events: list[tuple[str, dict]] = []
        self.fail = fail

    def publish(self, event: str, payload: dict) -> None:
        if self.fail:
            raise ConnectionError("notification broker unavailable")
        self.events.append((event, payload))

    def of(self, event: str) -> list[dict]:
        return [payload for name, payload in self.events if name == event]

    def close(self) -> None:
        pass


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = CLOCK_START_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


class CodeSequence:
    """Deterministic recovery-code generator: 100001, 100002, ..."""

    def __init__(self) -> None:
        self._counter = itertools.count(100001)
        self.issued: list[str] = []

    def __call__(self) -> str:
        code = str(next(self._counter))
        self.issued.append(code)
        return code

    @property
    def last(self) -> str:
        return self.issued[-1]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_store() -> CredentialStore:
    """Create an isolated named shared-memory SQLite store."""
    return CredentialStore(f"sqlite:///file:authkeep_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def create_account(
    store: CredentialStore,
    email: str = "alice@example.com",
    password: str | None = PASSWORD,
    username: str | None = "alice",
) -> Account:
    """Insert an account directly through the store (no welcome event)."""
    hashed = hash_password(password) if password is not None else None
    account = store.create_account(Account(email=email, username=username, hashed_password=hashed))
    return account or store.get_account_by_email(email)


def _patch_lifespan(settings: Settings, store: CredentialStore, publisher: RecordingPublisher, services: AuthServices):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so TestClient routes see
    an isolated test DB and the recording publisher. The OAuth registry is a
    MagicMock; OAuth tests configure create_client() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.store = store
        app.state.publisher = publisher
        app.state.services = services
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        debug=True,
        secret_key="k" * 48,
        jwt_access_secret="a" * 48,
        jwt_refresh_secret="r" * 48,
        recovery_code_ttl_seconds=900,
        frontend_origin="http://localhost:3000",
        google_client_id="google-id",
        google_client_secret="google-secret",
        github_client_id="github-id",
        github_client_secret="github-secret",
        trust_forwarded_for=False,
    )


@pytest.fixture()
def store() -> Generator[CredentialStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def codes() -> CodeSequence:
    return CodeSequence()


@pytest.fixture()
def services(
    settings: Settings,
    store: CredentialStore,
    publisher: RecordingPublisher,
    clock: FakeClock,
    codes: CodeSequence,
) -> AuthServices:
    return build_auth_services(settings, store, publisher, clock_ms=clock, code_generator=codes)


@pytest.fixture()
def client(
    settings: Settings,
    store: CredentialStore,
    publisher: RecordingPublisher,
    services: AuthServices,
) -> Generator[TestClient, None, None]:
    """TestClient over the real app and routes, backed by the test fixtures.

    follow_redirects=False so OAuth tests can assert on Location headers.
    The base URL is plain http, so the Secure refresh cookie set by the
    server is never sent back automatically; tests pass it explicitly.
    """
    app.router.lifespan_context = _patch_lifespan(settings, store, publisher, services)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c
