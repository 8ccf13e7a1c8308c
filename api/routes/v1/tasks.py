"""
api/routes/v1/tasks.py -- The caller's own tasks.

Routes (all require auth):
  POST   /api/v1/tasks                -- create; 201
  GET    /api/v1/tasks                -- page/limit/search/status; newest first
  GET    /api/v1/tasks/overview       -- per-status counts + 5 most recent
  GET    /api/v1/tasks/{task_id}      -- detail
  PUT    /api/v1/tasks/{task_id}      -- partial update (omitted fields untouched)
  DELETE /api/v1/tasks/{task_id}      -- delete

IDOR guard: every store call passes identity.id as owner_id. Another user's
task id yields 404, the same as a task id that was never issued.

Registration order: /tasks/overview is declared before /tasks/{task_id} so
"overview" is not captured as a path parameter.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    MessageResponse,
    TaskCreate,
    TaskListResponse,
    TaskOverviewResponse,
    TaskPagination,
    TaskResponse,
    TaskStatistics,
    TaskUpdate,
)
from auth.dependencies import get_current_identity
from auth.models import Identity
from core.errors import NotFoundError
from core.pagination import DEFAULT_LIMIT, MAX_PAGE, PageInfo, check_limit, offset_for
from tasks.models import Task
from tasks.store import TaskStore

router = APIRouter()

_NOT_FOUND = "Task not found or unauthorized"


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    request: Request,
    body: TaskCreate,
    identity: Identity = Depends(get_current_identity),
) -> TaskResponse:
    task_store: TaskStore = request.app.state.task_store
    task_id = task_store.create_task(
        Task(
            title=body.title,
            description=body.description,
            status=body.status.value,
            owner_id=identity.id,
        )
    )
    return TaskResponse.from_task(task_store.get_task(task_id, identity.id))


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    search: str = Query("", max_length=100),
    status: str = Query(""),
    identity: Identity = Depends(get_current_identity),
) -> TaskListResponse:
    """Page through the caller's tasks.

    search matches the title case-insensitively. An unrecognized status is
    ignored, not treated as "match nothing".
    """
    check_limit(limit)
    task_store: TaskStore = request.app.state.task_store
    tasks, total = task_store.list_tasks(
        identity.id,
        offset=offset_for(page, limit),
        limit=limit,
        search=search.strip(),
        status=status,
    )
    return TaskListResponse(
        tasks=[TaskResponse.from_task(t) for t in tasks],
        pagination=TaskPagination.from_page(PageInfo.build(page, limit, total)),
    )


@router.get("/tasks/overview", response_model=TaskOverviewResponse)
def tasks_overview(request: Request, identity: Identity = Depends(get_current_identity)) -> TaskOverviewResponse:
    task_store: TaskStore = request.app.state.task_store
    counts = task_store.status_counts(identity.id)
    return TaskOverviewResponse(
        statistics=TaskStatistics(
            total=sum(counts.values()),
            pending=counts["pending"],
            in_progress=counts["in-progress"],
            completed=counts["completed"],
        ),
        recent_tasks=[TaskResponse.from_task(t) for t in task_store.recent_tasks(identity.id, limit=5)],
    )


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(request: Request, task_id: int, identity: Identity = Depends(get_current_identity)) -> TaskResponse:
    task_store: TaskStore = request.app.state.task_store
    task = task_store.get_task(task_id, identity.id)
    if task is None:
        raise NotFoundError(_NOT_FOUND)
    return TaskResponse.from_task(task)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    request: Request,
    task_id: int,
    body: TaskUpdate,
    identity: Identity = Depends(get_current_identity),
) -> TaskResponse:
    task_store: TaskStore = request.app.state.task_store
    # description may be cleared with null; title and status may not.
    updates = {
        k: v
        for k, v in body.model_dump(exclude_unset=True, mode="json").items()
        if v is not None or k == "description"
    }
    if updates:
        updated = task_store.update_task(task_id, identity.id, **updates)
    else:
        updated = task_store.get_task(task_id, identity.id) is not None
    if not updated:
        raise NotFoundError(_NOT_FOUND)
    return TaskResponse.from_task(task_store.get_task(task_id, identity.id))


@router.delete("/tasks/{task_id}", response_model=MessageResponse)
def delete_task(request: Request, task_id: int, identity: Identity = Depends(get_current_identity)) -> MessageResponse:
    task_store: TaskStore = request.app.state.task_store
    if not task_store.delete_task(task_id, identity.id):
        raise NotFoundError(_NOT_FOUND)
    return MessageResponse(message="Task deleted successfully")
