"""Tests for auth/credentials.py -- the two CredentialVerifier strategies.

Covers:
- JWT strategy: issue/verify round trip, revoke is a no-op
- Session strategy: raw id never stored, revoke deletes the session,
  expired sessions are rejected and removed, purge_expired()
- build_credential_verifier() picks the strategy from Settings
- The background purge loop survives a failed purge
- Session strategy end to end: logout kills the credential server-side
"""

from __future__ import annotations

import asyncio
import logging
import time
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from api.main import _purge_loop
from auth.credentials import JwtCredentialVerifier, SessionCredentialVerifier, build_credential_verifier
from auth.models import Identity, Session
from auth.store import SessionStore
from auth.tokens import ExpiredToken, TokenService, UnknownSession, hash_session_id
from conftest import TEST_SECRET, bearer, make_settings, memory_db_url, new_user, start_harness

ALICE = Identity(id=7, username="alice_1", role="user")


@pytest.fixture
def session_store():
    store = SessionStore(memory_db_url("sessions"))
    yield store
    store.close()


@pytest.fixture
def sessions(session_store) -> SessionCredentialVerifier:
    return SessionCredentialVerifier(session_store, TEST_SECRET, expire_seconds=3600)


# ---------------------------------------------------------------------------
# JWT strategy
# ---------------------------------------------------------------------------


def test_jwt_round_trip():
    verifier = JwtCredentialVerifier(TokenService(TEST_SECRET))
    assert verifier.verify(verifier.issue(ALICE)) == ALICE


def test_jwt_revoke_leaves_token_valid():
    verifier = JwtCredentialVerifier(TokenService(TEST_SECRET))
    token = verifier.issue(ALICE)
    verifier.revoke(token)
    assert verifier.verify(token) == ALICE


# ---------------------------------------------------------------------------
# Session strategy
# ---------------------------------------------------------------------------


def test_session_round_trip(sessions):
    assert sessions.verify(sessions.issue(ALICE)) == ALICE


def test_session_stores_only_the_hash(sessions, session_store):
    raw = sessions.issue(ALICE)
    assert session_store.get_by_hash(raw) is None
    stored = session_store.get_by_hash(hash_session_id(TEST_SECRET, raw))
    assert stored is not None
    assert stored.user_id == ALICE.id
    assert stored.expires_at - stored.created_at == 3600


def test_session_ids_are_unique(sessions):
    assert sessions.issue(ALICE) != sessions.issue(ALICE)


def test_unknown_session_rejected(sessions):
    with pytest.raises(UnknownSession):
        sessions.verify("never-issued")


def test_revoke_deletes_session(sessions):
    raw = sessions.issue(ALICE)
    sessions.revoke(raw)
    with pytest.raises(UnknownSession):
        sessions.verify(raw)


def test_revoke_unknown_is_silent(sessions):
    sessions.revoke("never-issued")


def test_expired_session_rejected_and_removed(sessions, session_store):
    now = int(time.time())
    raw = "expired-session-id"
    session_hash = hash_session_id(TEST_SECRET, raw)
    session_store.create_session(
        Session(
            session_hash=session_hash,
            user_id=ALICE.id,
            username=ALICE.username,
            role=ALICE.role,
            created_at=now - 7200,
            expires_at=now - 1,
        )
    )
    with pytest.raises(ExpiredToken):
        sessions.verify(raw)
    assert session_store.get_by_hash(session_hash) is None


def test_purge_expired_only_removes_expired(sessions, session_store):
    now = int(time.time())
    session_store.create_session(Session("old", ALICE.id, ALICE.username, ALICE.role, now - 100, now - 10))
    live = sessions.issue(ALICE)
    assert sessions.purge_expired() == 1
    assert sessions.verify(live) == ALICE


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------


def test_build_defaults_to_jwt():
    assert isinstance(build_credential_verifier(make_settings()), JwtCredentialVerifier)


def test_build_session_strategy(session_store):
    verifier = build_credential_verifier(make_settings(auth_strategy="session"), session_store)
    assert isinstance(verifier, SessionCredentialVerifier)


def test_build_session_strategy_requires_store():
    with pytest.raises(ValueError):
        build_credential_verifier(make_settings(auth_strategy="session"))


# ---------------------------------------------------------------------------
# Session strategy through the API
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def session_api():
    with start_harness(make_settings(auth_strategy="session")) as harness:
        yield harness


def test_session_login_then_me(session_api):
    email, token = new_user(session_api)
    resp = session_api.client.get("/api/v1/users/me", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.json()["email"] == email


def test_session_logout_revokes_server_side(session_api):
    _, token = new_user(session_api)
    assert session_api.client.post("/api/v1/users/logout", headers=bearer(token)).status_code == 200
    resp = session_api.client.get("/api/v1/users/me", headers=bearer(token))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_or_expired"


def test_session_deployment_rejects_jwt(session_api):
    _, session_token = new_user(session_api)
    me = session_api.client.get("/api/v1/users/me", headers=bearer(session_token)).json()
    jwt_token = TokenService(TEST_SECRET).issue(Identity(id=me["id"], username=me["username"], role=me["role"]))
    assert session_api.client.get("/api/v1/users/me", headers=bearer(jwt_token)).status_code == 401


class _StopLoop(Exception):
    pass


def test_purge_loop_survives_database_error(caplog):
    verifier = MagicMock()
    locked = OperationalError("DELETE", {}, Exception("database is locked"))
    verifier.purge_expired.side_effect = [locked, 2, _StopLoop()]
    with caplog.at_level(logging.ERROR, logger="tasktrack.api"), pytest.raises(_StopLoop):
        asyncio.run(_purge_loop(verifier, 0))
    assert verifier.purge_expired.call_count == 3
    assert "Session purge failed" in caplog.text
