"""
tests/conftest.py -- Shared test fixtures for RefreshGate.

This module provides:
  - settings: explicit Settings with two distinct signing secrets
  - store: file-backed SQLite IdentityStore under tmp_path (fresh per test)
  - clock: controllable clock injected into TokenService
  - token_service / credentials: the auth core wired to the above
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: file-backed SQLite (not :memory:) because the concurrency tests run
refresh() from several threads, and SQLAlchemy hands each thread its own
connection. A :memory: database is per-connection and would look empty to
every thread but the first.

DEBUG must be set before any api/ import so get_settings() auto-generates the
signing secrets instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any api/core import so get_settings() can auto-generate
# secrets in dev mode and TrustedHostMiddleware accepts the TestClient host.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import CredentialManager, TokenService
from auth.store import IdentityStore
from core.config import Settings, get_settings

ACCESS_SECRET = "access-secret-for-tests-" + "a" * 32
REFRESH_SECRET = "refresh-secret-for-tests-" + "r" * 32


class FakeClock:
    """Callable clock for TokenService. Starts at the real current time."""

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Auth core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        debug=True,
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
    )


@pytest.fixture
def store(tmp_path) -> Generator[IdentityStore, None, None]:
    s = IdentityStore(db_url=f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_service(store: IdentityStore, settings: Settings, clock: FakeClock) -> TokenService:
    return TokenService(store, settings, clock=clock)


@pytest.fixture
def credentials(store: IdentityStore, token_service: TokenService) -> CredentialManager:
    return CredentialManager(store, token_service)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: IdentityStore):
    """Return a lifespan that wires a test store into app.state instead of the real DB."""

    @asynccontextmanager
    async def test_lifespan(app):
        app_settings = get_settings()
        app.state.settings = app_settings
        app.state.identity_store = store
        app.state.tokens = TokenService(store, app_settings)
        app.state.credentials = CredentialManager(store, app.state.tokens)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[tuple[TestClient, IdentityStore], None, None]:
    """Yield (client, store) for API integration tests.

    One database per test module. Tests that need an identity sign up with an
    email unique to that test.
    """
    db_path = tmp_path_factory.mktemp("api") / "auth.db"
    store = IdentityStore(db_url=f"sqlite:///{db_path}")
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    store.close()
