"""
auth/tokens.py -- JWT, password hashing, session-id hashing and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id), username, role,
       iat and exp. TokenService.verify() raises a CredentialError subclass
       that says WHY a token was refused (malformed, bad signature, expired).
       The route layer treats all three the same way (401); the kind only
       shows up in logs.

       Expiry is checked here rather than by jose: jose accepts a token whose
       exp equals the current second, but a token issued at T must be refused
       at exactly T + token_expire_seconds.

  Passwords: bcrypt directly, no passlib wrapper. bcrypt only looks at the
       first 72 bytes of input and bcrypt>=5 raises on longer input, so both
       hash and verify truncate to 72 bytes. The validator caps passwords at
       128 characters. _DUMMY_HASH enables timing equalization in
       authenticate_user() so response time does not reveal whether an email
       is registered [C1].

  Session ids: secrets.token_urlsafe(32) gives 256 bits of entropy. The
       sessions table stores HMAC-SHA256(SECRET_KEY, raw_id) so lookup is O(1)
       and a leaked DB does not hand out live cookies.

  Cookies: set_auth_cookie() and clear_auth_cookie() both read the same
       Settings fields, so the attributes used to clear the cookie always
       match those used to set it [C2].

Layer rule: no imports from api/, audit/ or tasks/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Identity

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("tasktrack.auth")

_ALGORITHM = "HS256"
_BCRYPT_ROUNDS = 12
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Credential errors
# ---------------------------------------------------------------------------


class CredentialError(Exception):
    """A presented credential could not be turned into an Identity."""

    kind = "invalid"


class MalformedToken(CredentialError):
    kind = "malformed"


class InvalidSignature(CredentialError):
    kind = "invalid_signature"


class ExpiredToken(CredentialError):
    kind = "expired"


class UnknownSession(CredentialError):
    kind = "unknown_session"


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password (random salt per call)."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed hash is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones [C1].
_DUMMY_HASH: str = hash_password("tasktrack_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization [C1].

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed identity tokens.

    Constructed once from Settings and shared by every request. now= lets
    callers (and tests) pin the clock; production code leaves it None.
    """

    def __init__(self, secret_key: str, expire_seconds: int = 24 * 60 * 60) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a secret key.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, identity: Identity, now: datetime | None = None) -> str:
        issued_at = int((now or datetime.now(timezone.utc)).timestamp())
        payload = {
            "sub": str(identity.id),
            "username": identity.username,
            "role": identity.role,
            "iat": issued_at,
            "exp": issued_at + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str, now: datetime | None = None) -> Identity:
        """Return the Identity encoded in token, or raise a CredentialError.

        Order of checks: structure, then signature, then expiry. A tampered
        token that is also expired therefore reports a signature problem.
        """
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedToken("Token is not a well-formed JWT.") from exc

        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidSignature("Token signature or claims are invalid.") from exc

        try:
            user_id = int(claims["sub"])
            username = str(claims["username"])
            role = str(claims["role"])
            expires_at = int(claims["exp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedToken("Token is missing required claims.") from exc

        current = (now or datetime.now(timezone.utc)).timestamp()
        if current >= expires_at:
            raise ExpiredToken("Token has expired.")
        return Identity(id=user_id, username=username, role=role)


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


def hash_session_id(secret_key: str, raw_id: str) -> str:
    """Return HMAC-SHA256(secret_key, raw_id) as a hex string.

    Deterministic, so the store can look sessions up by hash in O(1).
    """
    return hmac.new(secret_key.encode(), raw_id.encode(), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, credential: str, settings: Settings) -> None:
    """Write the credential as an httpOnly cookie on the response.

    httponly: JS cannot read the cookie (XSS mitigation).
    samesite / secure / domain: one policy from Settings [C2].
    max_age: matches the credential lifetime so both expire together.
    """
    response.set_cookie(
        settings.auth_cookie_name,
        value=credential,
        max_age=settings.token_expire_seconds,
        path="/",
        domain=settings.cookie_domain,
        secure=settings.secure_cookies,
        httponly=True,
        samesite=settings.cookie_samesite,
    )


def clear_auth_cookie(response, settings: Settings) -> None:
    """Expire the auth cookie using exactly the attributes set_auth_cookie() used [C2]."""
    response.delete_cookie(
        settings.auth_cookie_name,
        path="/",
        domain=settings.cookie_domain,
        secure=settings.secure_cookies,
        httponly=True,
        samesite=settings.cookie_samesite,
    )
