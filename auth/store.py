"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore and SessionStore are the
repositories; _row_to_user / _row_to_session are the mappers. Route and
dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  UNIQUE(email) is enforced by the schema; username is deliberately not
  unique. Callers pre-check get_by_email() and still catch IntegrityError
  for the race where two registrations for one email interleave.

DB: sqlite file next to the project by default (Settings.database_url).

Layer rule: no imports from api/, audit/ or tasks/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import ROLE_USER, Session, User
from core.database import is_row_id, make_engine, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # stored lowercase
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default=ROLE_USER),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("session_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("user_id", Integer, nullable=False),
    Column("username", String(50), nullable=False),
    Column("role", String(10), nullable=False),
    Column("created_at", Integer, nullable=False),
    Column("expires_at", Integer, nullable=False),
)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///tasktrack.db")
        uid = store.create_user(User(username="alice_1", email="alice@example.com",
                                     hashed_password=hash_password("Str0ng!Pw")))
        user = store.get_by_email("alice@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine, tables=[_users])

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        if not is_row_id(user_id):
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Exact match on the normalized (lowercase) email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, offset: int = 0, limit: int = 10, search: str = "") -> tuple[list[User], int]:
        """Return one page of users (newest first) and the total matching count.

        search is a case-insensitive substring match on username or email.
        """
        condition = None
        if search:
            condition = _users.c.username.icontains(search, autoescape=True) | _users.c.email.icontains(
                search, autoescape=True
            )
        query = _users.select().order_by(_users.c.created_at.desc(), _users.c.id.desc())
        count_query = select(func.count()).select_from(_users)
        if condition is not None:
            query = query.where(condition)
            count_query = count_query.where(condition)
        with self.engine.connect() as conn:
            rows = conn.execute(query.offset(offset).limit(limit)).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_user(r) for r in rows], total

    def update_role(self, user_id: int, role: str) -> bool:
        """Set a user's role. Returns True if a row was updated, False if user_id was not found."""
        if not is_row_id(user_id):
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(role=role))
            conn.commit()
        return result.rowcount > 0

    def count_by_role(self) -> dict[str, int]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_users.c.role, func.count()).group_by(_users.c.role)).fetchall()
        return {role: count for role, count in rows}

    def count_created_since(self, since_iso: str) -> int:
        """Count users whose created_at is at or after since_iso (UTC ISO 8601)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.created_at >= since_iso)
            ).scalar()
        return result or 0

    def recent_users(self, limit: int = 5) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().order_by(_users.c.created_at.desc(), _users.c.id.desc()).limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Sessions (session auth strategy)
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for server-side login sessions.

    Only used when Settings.auth_strategy == "session". The store is the source
    of truth: deleting a row logs the session out immediately, regardless of
    what the client still holds in its cookie.
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine, tables=[_sessions])

    def create_session(self, session: Session) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    session_hash=session.session_hash,
                    user_id=session.user_id,
                    username=session.username,
                    role=session.role,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_hash(self, session_hash: str) -> Session | None:
        """Look up a session by its HMAC hash. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.session_hash == session_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_by_hash(self, session_hash: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.session_hash == session_hash))
            conn.commit()
        return result.rowcount > 0

    def purge_expired(self, now: int) -> int:
        """Delete every session with expires_at <= now. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= now))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        session_hash=row.session_hash,
        user_id=row.user_id,
        username=row.username,
        role=row.role,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
