"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - hasher / codec: low-cost bcrypt and fixed-secret token codec
  - store / service: a fresh in-memory directory per test
  - make_user: helper that registers a user straight into the store
  - api: TestClient over the real app, wired to test components
  - unique: factory for collision-free usernames in the module-scoped store

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates signing secrets in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any api/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import PasswordHasher
from auth.models import NewUser, User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"

# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """bcrypt at its minimum cost -- same algorithm, fast enough for tests."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: UserStore, hasher: PasswordHasher, codec: TokenCodec) -> AuthService:
    return AuthService(store, hasher, codec)


@pytest.fixture
def make_user(store: UserStore, hasher: PasswordHasher) -> Callable[..., User]:
    """Insert a user directly and return it fully joined (role resolved, no hash)."""

    def _make(
        username: str = "ana",
        email: str = "ana@example.org",
        password: str = "correct-horse",
        role_id: int = 5,
        municipality_id: int | None = None,
    ) -> User:
        created = store.create(
            NewUser(
                username=username,
                email=email,
                password_hash=hasher.hash(password),
                role_id=role_id,
                municipality_id=municipality_id,
            )
        )
        return store.find_by_id(created.id)

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    codec: TokenCodec
    service: AuthService


def _patch_lifespan(store: UserStore, codec: TokenCodec, service: AuthService):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.token_codec = codec
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext whose client hits the real routes over an isolated store."""
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = UserStore(db_url)
    codec = TokenCodec(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)
    service = AuthService(store, PasswordHasher(rounds=4), codec)

    app.router.lifespan_context = _patch_lifespan(store, codec, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=store, codec=codec, service=service)

    store.close()


@pytest.fixture
def unique() -> Callable[[str], str]:
    """Return a factory for collision-free usernames within a shared module store."""

    def _unique(prefix: str = "user") -> str:
        return f"{prefix}_{uuid.uuid4().hex[:10]}"

    return _unique
