"""
tests/conftest.py -- Shared test fixtures for BookAdmin tests.

This module provides:
  - FrozenClock: an injectable clock tests can advance past token expiry
  - db / user_store / token_store / revoker: isolated in-memory stores per test
  - seed_user: create an account with a known password
  - api_client: TestClient wired to the same stores through a patched lifespan
  - login: POST /users/login and return the plaintext token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
Each test gets its own uniquely named database, so nothing leaks between tests.

Environment variables must be set before any app import: DEBUG lets
get_settings() auto-generate SECRET_KEY, BCRYPT_ROUNDS=4 keeps hashing fast,
rate limiting is off because the suite logs in many times a minute, and
TestClient's "testserver" host must pass TrustedHostMiddleware.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, attach_services
from auth.models import User
from auth.passwords import hash_password
from auth.sessions import SessionRevoker
from auth.store import TokenStore, UserStore
from auth.tokens import TokenGenerator
from core.db import Database

TEST_SECRET_KEY = "test-secret-key-that-is-at-least-32-characters"

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def db() -> Generator[Database, None, None]:
    """A fresh named shared-memory SQLite database for one test."""
    database = Database(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield database
    database.close()


@pytest.fixture
def generator(clock: FrozenClock) -> TokenGenerator:
    return TokenGenerator(TEST_SECRET_KEY, clock=clock)


@pytest.fixture
def user_store(db: Database, clock: FrozenClock) -> UserStore:
    return UserStore(db, clock=clock)


@pytest.fixture
def token_store(db: Database, generator: TokenGenerator) -> TokenStore:
    return TokenStore(db, generator)


@pytest.fixture
def revoker(db: Database, user_store: UserStore, token_store: TokenStore) -> SessionRevoker:
    return SessionRevoker(db, user_store, token_store)


@pytest.fixture
def seed_user(user_store: UserStore) -> Callable[..., User]:
    """Return a factory that inserts a user and returns it with its ID filled in.

    Every seeded user's password is "<first part of email>-password".
    """

    def _seed(email: str, active: bool = True, first_name: str = "", last_name: str = "") -> User:
        password = f"{email.split('@')[0]}-password"
        uid = user_store.create_user(
            User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                password_hash=hash_password(password),
                active=active,
            )
        )
        return user_store.get_by_id(uid)

    return _seed


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(db: Database, generator: TokenGenerator):
    """Return an async context manager that replaces the real lifespan.

    Wires the test database and frozen-clock generator into app.state so
    TestClient routes see the same data the store fixtures do.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app.state, db, generator)
        app.state.purge_task = None
        yield

    return test_lifespan


@pytest.fixture
def api_client(db: Database, generator: TokenGenerator) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real app against the test database."""
    app.router.lifespan_context = _patch_lifespan(db, generator)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def login(api_client: TestClient) -> Callable[[str, str | None], str]:
    """Return a helper that logs in and returns the plaintext bearer token."""

    def _login(email: str, password: str | None = None) -> str:
        password = password or f"{email.split('@')[0]}-password"
        resp = api_client.post("/api/v1/users/login", json={"email": email, "password": password})
        assert resp.status_code == 200, f"Login failed for {email}: {resp.status_code} {resp.text}"
        return resp.json()["token"]["token"]

    return _login

