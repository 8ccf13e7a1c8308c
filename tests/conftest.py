"""
tests/conftest.py -- Shared test fixtures for TaskTrack integration tests.

This module provides:
  - make_settings(): explicit Settings with an isolated in-memory database
  - Harness: a running TestClient plus direct store access for seeding
  - api: module-scoped Harness on the default (JWT) strategy
  - helpers for registering, logging in and building auth headers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool and the audit
recorder writes from its own worker thread. Plain :memory: DBs are
per-connection and would present a blank schema to each of those threads.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process, and the
harness keeps a UserStore open for the lifetime of the client so the
database is not discarded between requests.

Settings are passed to create_app() explicitly; no test depends on the
process environment.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth import accounts
from auth.models import User
from auth.store import UserStore
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"
STRONG_PASSWORD = "Str0ng!Pw"


def memory_db_url(prefix: str = "tasktrack") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    """Settings suitable for TestClient.

    secure_cookies=False: TestClient talks plain http://testserver and httpx
    will not send Secure cookies over it.
    allowed_hosts: TrustedHostMiddleware must accept "testserver".
    rate_limit_enabled=False: every test module hits login from one address.
    """
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "database_url": memory_db_url(),
        "secure_cookies": False,
        "allowed_hosts": ["testserver"],
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


@dataclass
class Harness:
    client: TestClient
    settings: Settings
    user_store: UserStore

    @property
    def app(self):
        return self.client.app

    def flush_audit(self) -> None:
        self.app.state.recorder.flush()


@contextmanager
def start_harness(settings: Settings) -> Iterator[Harness]:
    # Opened before the app so the shared-memory DB outlives every request.
    user_store = UserStore(settings.database_url)
    try:
        with TestClient(create_app(settings), raise_server_exceptions=True) as client:
            yield Harness(client=client, settings=settings, user_store=user_store)
    finally:
        user_store.close()


@pytest.fixture(scope="module")
def api() -> Iterator[Harness]:
    """Module-scoped harness on the default JWT strategy."""
    with start_harness(make_settings()) as harness:
        yield harness


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}@example.com"


def register(client: TestClient, username: str, email: str, password: str = STRONG_PASSWORD):
    return client.post(
        "/api/v1/users/register",
        json={"username": username, "email": email, "password": password},
    )


def login_token(client: TestClient, email: str, password: str = STRONG_PASSWORD) -> str:
    """Log in and return the credential from the auth cookie.

    The client's cookie jar is cleared afterwards so one module-scoped client
    can act as several users through explicit Authorization headers.
    """
    resp = client.post("/api/v1/users/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    token = resp.cookies.get("access_token")
    assert token
    client.cookies.clear()
    return token


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def new_user(harness: Harness, prefix: str = "user") -> tuple[str, str]:
    """Register a fresh "user" account through the API; return (email, token)."""
    email = unique_email(prefix)
    resp = register(harness.client, f"{prefix}_{uuid.uuid4().hex[:6]}", email)
    assert resp.status_code == 201, resp.text
    return email, login_token(harness.client, email)


def new_admin(harness: Harness, prefix: str = "admin") -> tuple[User, str]:
    """Create an admin directly in the store (the API cannot); return (user, token)."""
    email = unique_email(prefix)
    user = accounts.create_admin(harness.user_store, f"{prefix}_{uuid.uuid4().hex[:6]}", email, STRONG_PASSWORD)
    return user, login_token(harness.client, email)
