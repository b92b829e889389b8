"""
tests/conftest.py -- Shared fixtures for the identity service tests.

This module provides:
  - stores / service: file-backed SQLite stores in tmp_path for unit tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a bootstrapped owner's JWT for API tests

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Unit tests that race threads against each other use a real file in
tmp_path instead, where SQLite's busy timeout serializes writers.

Environment must be set before any auth/core import: DEBUG lets
get_settings() auto-generate SECRET_KEY, PASSWORD_HASH_ROUNDS=4 keeps bcrypt
fast, and ALLOWED_HOSTS admits TestClient's default host.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.bootstrap import bootstrap_owner
from auth.refresh_store import RefreshTokenStore
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import create_access_token

OWNER_EMAIL = "owner@example.com"
OWNER_PASSWORD = "ownerpass123"


@pytest.fixture(autouse=True)
def reset_rate_limits() -> Generator[None, None, None]:
    """Every TestClient request comes from one address; start each test with empty counters."""
    limiter.reset()
    yield
    limiter.reset()


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def stores(db_url) -> Generator[tuple[UserStore, RefreshTokenStore], None, None]:
    user_store = UserStore(db_url)
    refresh_store = RefreshTokenStore(db_url)
    yield user_store, refresh_store
    refresh_store.close()
    user_store.close()


@pytest.fixture
def outbox() -> list[tuple[str, str]]:
    """Captures (email, raw_reset_token) pairs instead of delivering them."""
    return []


@pytest.fixture
def service(stores, outbox) -> AuthService:
    user_store, refresh_store = stores
    return AuthService(user_store, refresh_store, reset_sender=lambda user, raw: outbox.append((user.email, raw)))


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, refresh_store: RefreshTokenStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs. Reset tokens land in app.state.reset_outbox.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        outbox: list[tuple[str, str]] = []
        app.state.user_store = user_store
        app.state.refresh_store = refresh_store
        app.state.reset_outbox = outbox
        app.state.auth_service = AuthService(
            user_store,
            refresh_store,
            reset_sender=lambda user, raw: outbox.append((user.email, raw)),
        )
        app.state.ready = True
        yield
        app.state.ready = False

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, owner_token, owner_id) for API integration tests.

    One shared-memory DB per test module. The owner is created through the
    real bootstrap path before the client starts.
    """
    db_name = request.module.__name__.replace(".", "_")
    url = f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(url)
    refresh_store = RefreshTokenStore(url)

    owner = bootstrap_owner(user_store, OWNER_EMAIL, OWNER_PASSWORD)
    token = create_access_token(owner.id, owner.email, owner.role, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, refresh_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, owner.id

    refresh_store.close()
    user_store.close()
