"""
tests/conftest.py -- Shared fixtures for linkauth tests.

This module provides:
  - hasher: PasswordHasher at the minimum bcrypt cost (fast tests)
  - issuer / validator: signing pair built on a per-test secret
  - stores: (users, refresh_tokens) parametrized over the in-memory and the
    SQL implementations, so every SessionManager property runs on both
  - sessions: SessionManager over those stores
  - api_client: TestClient with a patched lifespan and isolated stores

Design: SQL unit fixtures use a SQLite file under tmp_path. Threads in the
concurrency tests each get their own pooled connection to it; plain :memory:
would hand every thread a blank schema. The API fixture follows the named
shared-memory URI pattern (file:name?mode=memory&cache=shared&uri=true)
because TestClient runs sync route handlers in a worker thread pool.

Environment must be set before any api/ or core/ import so get_settings()
sees it: DEBUG generates SECRET_KEY, the rate limit is raised so tests never
trip it, and TrustedHostMiddleware accepts TestClient's "testserver" host.
"""

from __future__ import annotations

import os
import secrets
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_session_manager
from auth.memory import MemoryDatabase, MemoryRefreshTokenStore, MemoryUserStore
from auth.passwords import PasswordHasher
from auth.session import SessionManager
from auth.store import RefreshTokenStore, UserStore, create_db_engine
from auth.tokens import TokenIssuer, TokenValidator
from core.config import get_settings

ACCESS_TTL = timedelta(minutes=15)
REFRESH_TTL = timedelta(days=7)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def secret_key() -> str:
    """A fresh signing secret per test, so no test can accept another's tokens."""
    return secrets.token_hex(32)


@pytest.fixture
def issuer(secret_key: str) -> TokenIssuer:
    return TokenIssuer(secret_key)


@pytest.fixture
def validator(secret_key: str) -> TokenValidator:
    return TokenValidator(secret_key)


@pytest.fixture
def sql_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'auth.db'}", timeout=5.0)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_stores(sql_engine) -> tuple[UserStore, RefreshTokenStore]:
    return UserStore(sql_engine), RefreshTokenStore(sql_engine)


@pytest.fixture
def memory_stores() -> tuple[MemoryUserStore, MemoryRefreshTokenStore]:
    db = MemoryDatabase()
    return MemoryUserStore(db), MemoryRefreshTokenStore(db)


@pytest.fixture(params=["memory", "sql"])
def stores(request):
    """Both storage backends; tests using this run once per backend."""
    if request.param == "memory":
        return request.getfixturevalue("memory_stores")
    return request.getfixturevalue("sql_stores")


@pytest.fixture
def sessions(stores, hasher, issuer, validator) -> SessionManager:
    users, refresh_tokens = stores
    return SessionManager(
        users=users,
        refresh_tokens=refresh_tokens,
        hasher=hasher,
        issuer=issuer,
        validator=validator,
        access_ttl=ACCESS_TTL,
        refresh_ttl=REFRESH_TTL,
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(users: UserStore, refresh_tokens: RefreshTokenStore, sessions: SessionManager):
    """Return a lifespan that wires pre-built test stores into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = users
        app.state.refresh_store = refresh_tokens
        app.state.sessions = sessions
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SessionManager, int], None, None]:
    """Yield (client, sessions, admin_id) for API integration tests.

    An admin account admin@example.com / adminpass123 exists before the
    client starts. Each test module gets its own shared-memory database.
    """
    settings = get_settings()
    db_name = f"test_auth_{secrets.token_hex(4)}"
    engine = create_db_engine(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    users, refresh_tokens = UserStore(engine), RefreshTokenStore(engine)
    sessions = build_session_manager(settings, users, refresh_tokens)

    admin_id = sessions.register("admin@example.com", "adminpass123")
    users.set_admin(admin_id, True)

    app.router.lifespan_context = _patch_lifespan(users, refresh_tokens, sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, sessions, admin_id

    engine.dispose()


@pytest.fixture
def client(api_client) -> TestClient:
    """The module's TestClient with an empty cookie jar."""
    test_client, _sessions, _admin_id = api_client
    test_client.cookies.clear()
    return test_client
