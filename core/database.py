"""
core/database.py -- Engine construction shared by every SQLAlchemy store.

Each store (auth, tasks, audit) owns its tables and its Engine but builds the
Engine here so SQLite gets the same treatment everywhere:
  check_same_thread=False  TestClient and the audit worker use other threads.
  WAL journal mode         readers do not block behind writers.

Tests pass named shared-memory URIs
(sqlite:///file:name?mode=memory&cache=shared&uri=true) so every connection,
from any thread, sees the same in-memory database.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

# SQLite INTEGER is a signed 64-bit value; larger Python ints cannot be bound.
MAX_ROW_ID = 2**63 - 1


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def is_row_id(value: int) -> bool:
    """True if value could be a primary key. Anything else matches no row."""
    return 1 <= value <= MAX_ROW_ID


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
