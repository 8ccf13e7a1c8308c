"""
audit/store.py -- SQLAlchemy Core persistence for audit records.

Append-only: the repository exposes append() and read queries, nothing that
updates or deletes. Same Repository + Data Mapper shape as auth/store.py.

Security: all queries use bound parameters. Bodies arrive already redacted
(audit/redaction.py); this layer does not inspect them.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from audit.models import AuditRecord
from core.database import is_row_id, make_engine

_metadata = MetaData()

_audit_log = Table(
    "audit_log",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_time", String(32), nullable=False),
    Column("event_type", String(30), nullable=False),
    Column("method", String(10), nullable=False),
    Column("path", Text, nullable=False),
    Column("status_code", Integer, nullable=False),
    Column("success", Boolean, nullable=False),
    Column("reason", String(50), nullable=False),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("user_id", Integer),  # NULL for anonymous requests
    Column("username", String(50)),
    Column("body", Text),  # redacted, truncated snapshot
)


class AuditStore:
    """Repository for AuditRecord entities.

    Usage:
        store = AuditStore("sqlite:///tasktrack.db")
        store.append(record)
        latest = store.list_recent(limit=50)
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def append(self, record: AuditRecord) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _audit_log.insert().values(
                    event_time=record.event_time,
                    event_type=record.event_type,
                    method=record.method,
                    path=record.path,
                    status_code=record.status_code,
                    success=record.success,
                    reason=record.reason,
                    ip_address=record.ip_address,
                    user_agent=record.user_agent,
                    user_id=record.user_id,
                    username=record.username,
                    body=record.body,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_recent(self, limit: int = 50, user_id: int | None = None) -> list[AuditRecord]:
        """Return the newest records first, optionally only those of one user."""
        if user_id is not None and not is_row_id(user_id):
            return []
        query = _audit_log.select().order_by(_audit_log.c.id.desc()).limit(limit)
        if user_id is not None:
            query = query.where(_audit_log.c.user_id == user_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_record(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_record(row) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        event_time=row.event_time,
        event_type=row.event_type,
        method=row.method,
        path=row.path,
        status_code=row.status_code,
        success=bool(row.success),
        reason=row.reason,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        user_id=row.user_id,
        username=row.username,
        body=row.body,
    )
