"""
API request and response models for TaskTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
tasks/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two.

No response model has a password or password-hash field. PublicUser is the
only way a User leaves the API.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from audit.models import AuditRecord
from auth.models import User
from core.pagination import PageInfo
from tasks.models import Task

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskStatusEnum(str, Enum):
    pending = "pending"
    in_progress = "in-progress"
    completed = "completed"


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    errors: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Users -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users/register.

    Fields are optional at the schema level on purpose: missing fields must
    show up in the itemized error list from auth.validation, not as a
    framework-level validation failure that stops at the first problem.
    Unknown fields (including "role") are ignored.
    """

    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    email: Optional[str] = None
    password: Optional[str] = None


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/admin/users/{user_id}/role.

    Checked against auth.models.ROLES in auth.accounts so that an invalid
    value produces the domain error code "invalid_role".
    """

    role: str = ""


# ---------------------------------------------------------------------------
# Users -- responses
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    redirect: str


class PublicUser(BaseModel):
    """The externally visible fields of a user."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            created_at=user.created_at or "",
        )


class UserPagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    total_users: int
    has_next: bool
    has_prev: bool
    limit: int

    @classmethod
    def from_page(cls, page: PageInfo) -> "UserPagination":
        return cls(
            current_page=page.current_page,
            total_pages=page.total_pages,
            total_users=page.total,
            has_next=page.has_next,
            has_prev=page.has_prev,
            limit=page.limit,
        )


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[PublicUser]
    pagination: UserPagination


class DashboardStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_users: int
    admin_users: int
    regular_users: int
    new_users_today: int
    tasks_by_status: dict[str, int]


class AdminDashboardResponse(BaseModel):
    """Response for GET /api/v1/users/admin/dashboard."""

    model_config = ConfigDict(frozen=True)

    stats: DashboardStats
    recent_users: list[PublicUser]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    """Request body for POST /api/v1/tasks."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    status: TaskStatusEnum = TaskStatusEnum.pending


class TaskUpdate(BaseModel):
    """Request body for PUT /api/v1/tasks/{task_id}. Omitted fields are left as they are."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    status: Optional[TaskStatusEnum] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: Optional[str]
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskPagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    total_tasks: int
    has_next: bool
    has_prev: bool
    limit: int

    @classmethod
    def from_page(cls, page: PageInfo) -> "TaskPagination":
        return cls(
            current_page=page.current_page,
            total_pages=page.total_pages,
            total_tasks=page.total,
            has_next=page.has_next,
            has_prev=page.has_prev,
            limit=page.limit,
        )


class TaskListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    tasks: list[TaskResponse]
    pagination: TaskPagination


class TaskStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    pending: int
    in_progress: int
    completed: int


class TaskOverviewResponse(BaseModel):
    """Response for GET /api/v1/tasks/overview."""

    model_config = ConfigDict(frozen=True)

    statistics: TaskStatistics
    recent_tasks: list[TaskResponse]


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditRecordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    event_time: str
    event_type: str
    method: str
    path: str
    status_code: int
    success: bool
    reason: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    user_id: Optional[int]
    username: Optional[str]
    body: Optional[str]

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditRecordResponse":
        return cls(
            id=record.id,
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
