"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only define shape.

Layer rule: no imports from api/, audit/ or tasks/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES: frozenset[str] = frozenset({ROLE_USER, ROLE_ADMIN})


@dataclass
class User:
    """A registered account.

    email is the login key and the only unique field; username collisions
    are allowed. hashed_password is bcrypt output and must never be copied
    into a response model or a log line.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    hashed_password: str
    role: str = ROLE_USER  # "user" | "admin"
    id: int | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert


@dataclass(frozen=True)
class Identity:
    """The authenticated caller of one request.

    Derived from a verified credential, never persisted. Lives on
    request.state.identity for the duration of the request.
    """

    id: int
    username: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, username=user.username, role=user.role)


@dataclass
class Session:
    """A server-side login session (session auth strategy only).

    session_hash is HMAC-SHA256(SECRET_KEY, raw session id). The raw id only
    ever lives in the client's cookie. Timestamps are Unix epoch seconds.
    """

    session_hash: str
    user_id: int
    username: str
    role: str
    created_at: int
    expires_at: int
    id: int | None = None
