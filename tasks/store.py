"""
tasks/store.py -- SQLAlchemy Core persistence layer for tasks.

Pattern: Repository + Data Mapper (same as auth/store.py). TaskStore is the
repository; _row_to_task is the mapper.

Ownership (IDOR guard): every single-task method takes owner_id and puts it
in the WHERE clause next to the task id. A task that exists but belongs to
someone else is indistinguishable from one that does not exist.

Security: all queries use bound parameters. Title search goes through
icontains(autoescape=True) so % and _ in user input match literally.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from core.database import is_row_id, make_engine, now_iso
from tasks.models import TASK_STATUSES, Task

_metadata = MetaData()

_tasks = Table(
    "tasks",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("title", String(100), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_task() may touch. Anything else is rejected before SQL.
_UPDATABLE_FIELDS = frozenset({"title", "description", "status"})


class TaskStore:
    """Repository for Task entities.

    Usage:
        store = TaskStore("sqlite:///tasktrack.db")
        task_id = store.create_task(Task(title="Write report", owner_id=uid))
        tasks, total = store.list_tasks(uid, offset=0, limit=10, search="report")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def create_task(self, task: Task) -> int:
        stamp = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    owner_id=task.owner_id,
                    title=task.title,
                    description=task.description,
                    status=task.status,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_task(self, task_id: int, owner_id: int) -> Task | None:
        if not is_row_id(task_id):
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _tasks.select().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def update_task(self, task_id: int, owner_id: int, **fields) -> bool:
        """Update title/description/status on a task the owner holds.

        Returns True if a row was updated, False if not found or wrong owner.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {unknown!r}")
        if not is_row_id(task_id):
            return False
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update()
                .where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
                .values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_task(self, task_id: int, owner_id: int) -> bool:
        """Delete a task. Returns True if deleted, False if not found or wrong owner."""
        if not is_row_id(task_id):
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.delete().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
            )
            conn.commit()
        return result.rowcount > 0

    def list_tasks(
        self,
        owner_id: int,
        offset: int = 0,
        limit: int = 10,
        search: str = "",
        status: str = "",
    ) -> tuple[list[Task], int]:
        """Return one page of the owner's tasks (newest first) and the total matching count.

        An unknown status value is ignored rather than matching nothing.
        """
        condition = _tasks.c.owner_id == owner_id
        if search:
            condition = condition & _tasks.c.title.icontains(search, autoescape=True)
        if status in TASK_STATUSES:
            condition = condition & (_tasks.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tasks.select()
                .where(condition)
                .order_by(_tasks.c.created_at.desc(), _tasks.c.id.desc())
                .offset(offset)
                .limit(limit)
            ).fetchall()
            total = conn.execute(select(func.count()).select_from(_tasks).where(condition)).scalar() or 0
        return [_row_to_task(r) for r in rows], total

    def status_counts(self, owner_id: int | None = None) -> dict[str, int]:
        """Return {status: count} for one owner, or for everyone when owner_id is None.

        Every known status is present in the result, zero-filled.
        """
        query = select(_tasks.c.status, func.count()).group_by(_tasks.c.status)
        if owner_id is not None:
            query = query.where(_tasks.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        counts = {s: 0 for s in TASK_STATUSES}
        for status, count in rows:
            counts[status] = count
        return counts

    def recent_tasks(self, owner_id: int, limit: int = 5) -> list[Task]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tasks.select()
                .where(_tasks.c.owner_id == owner_id)
                .order_by(_tasks.c.created_at.desc(), _tasks.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        description=row.description,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
