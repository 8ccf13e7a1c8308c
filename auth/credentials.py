"""
auth/credentials.py -- Pluggable credential strategies behind one interface.

Two ways to turn a cookie value into an Identity:

  JwtCredentialVerifier      The cookie IS the credential: a signed token
                             carrying id, username and role. Nothing is
                             stored server-side, so logout only clears the
                             cookie and a copied token stays valid until it
                             expires.

  SessionCredentialVerifier  The cookie is a lookup key into the sessions
                             table. The table is the source of truth; logout
                             deletes the row and the cookie is dead at once.

Pick one per deployment with Settings.auth_strategy. They are never mixed:
a JWT presented to a session deployment is just an unknown session id.

In both strategies the role is captured when the credential is issued. A role
change made by an admin takes effect at the user's next login.

Layer rule: no imports from api/, audit/ or tasks/.
"""

from __future__ import annotations

import logging
import time
from typing import Protocol

from auth.models import Identity, Session
from auth.store import SessionStore
from auth.tokens import ExpiredToken, TokenService, UnknownSession, generate_session_id, hash_session_id
from core.config import Settings

logger = logging.getLogger("tasktrack.auth")


class CredentialVerifier(Protocol):
    """What the authentication dependency and the login/logout routes need."""

    def issue(self, identity: Identity) -> str: ...

    def verify(self, credential: str) -> Identity: ...

    def revoke(self, credential: str) -> None: ...


class JwtCredentialVerifier:
    def __init__(self, tokens: TokenService) -> None:
        self.tokens = tokens

    def issue(self, identity: Identity) -> str:
        return self.tokens.issue(identity)

    def verify(self, credential: str) -> Identity:
        return self.tokens.verify(credential)

    def revoke(self, credential: str) -> None:
        # Stateless: nothing to delete. The token lapses at its exp claim.
        return None


class SessionCredentialVerifier:
    def __init__(self, store: SessionStore, secret_key: str, expire_seconds: int) -> None:
        self.store = store
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, identity: Identity) -> str:
        raw_id = generate_session_id()
        now = int(time.time())
        self.store.create_session(
            Session(
                session_hash=hash_session_id(self._secret_key, raw_id),
                user_id=identity.id,
                username=identity.username,
                role=identity.role,
                created_at=now,
                expires_at=now + self.expire_seconds,
            )
        )
        return raw_id

    def verify(self, credential: str) -> Identity:
        session_hash = hash_session_id(self._secret_key, credential)
        session = self.store.get_by_hash(session_hash)
        if session is None:
            raise UnknownSession("No session matches this id.")
        if time.time() >= session.expires_at:
            self.store.delete_by_hash(session_hash)
            raise ExpiredToken("Session has expired.")
        return Identity(id=session.user_id, username=session.username, role=session.role)

    def revoke(self, credential: str) -> None:
        self.store.delete_by_hash(hash_session_id(self._secret_key, credential))

    def purge_expired(self) -> int:
        return self.store.purge_expired(int(time.time()))


def build_credential_verifier(settings: Settings, session_store: SessionStore | None = None) -> CredentialVerifier:
    """Return the verifier selected by settings.auth_strategy."""
    if settings.auth_strategy == "session":
        if session_store is None:
            raise ValueError("auth_strategy='session' requires a SessionStore.")
        logger.info("Using server-side session credentials")
        return SessionCredentialVerifier(session_store, settings.secret_key, settings.token_expire_seconds)
    logger.info("Using stateless JWT credentials")
    return JwtCredentialVerifier(TokenService(settings.secret_key, settings.token_expire_seconds))
