"""
tasks/models.py -- Domain dataclass for tasks.

Pure data container. Validation of title/description/status lives in the
API request models; ownership checks live in tasks/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass

TASK_STATUSES: tuple[str, ...] = ("pending", "in-progress", "completed")


@dataclass
class Task:
    """A to-do item owned by exactly one user.

    id is None before the record is written to the database.
    """

    title: str
    owner_id: int
    description: str | None = None
    status: str = "pending"  # "pending" | "in-progress" | "completed"
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, set by store on every write
