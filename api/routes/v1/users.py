"""
api/routes/v1/users.py -- Registration, login/logout, identity and user administration.

Routes:
  POST  /api/v1/users/register                     -- create a "user" account; 201
  POST  /api/v1/users/login                        -- email/password; sets auth cookie
  POST  /api/v1/users/logout                       -- clears cookie; always 200
  GET   /api/v1/users/me                           -- current user (requires auth)
  GET   /api/v1/users/admin/users                  -- paginated user list (admin only)
  PATCH /api/v1/users/admin/users/{user_id}/role   -- change a role (admin only)
  GET   /api/v1/users/admin/dashboard              -- user/task counters (admin only)

Security:
  [H2] register and login are rate-limited per client IP.
  [C1] accounts.login() -> authenticate_user() equalizes timing; never inline
       get_by_email() + verify_password().
  [C2] set_auth_cookie()/clear_auth_cookie() share one cookie policy.
  [M5] Cache-Control: no-store on login and logout responses.
  Login failures use one error ("bad_credentials", "Invalid credentials") for
  unknown email and wrong password alike.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import (
    AdminDashboardResponse,
    DashboardStats,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PublicUser,
    RegisterRequest,
    RoleUpdate,
    UserListResponse,
    UserPagination,
)
from auth import accounts
from auth.dependencies import get_current_identity, read_credential, require_admin, try_get_current_identity
from auth.models import ROLE_ADMIN, ROLE_USER, Identity
from auth.store import UserStore
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.errors import NotFoundError
from core.pagination import DEFAULT_LIMIT, MAX_PAGE, PageInfo, check_limit, offset_for
from tasks.store import TaskStore

logger = logging.getLogger("tasktrack.api")

# Auth policy:
# - POST  /users/register:                 public, rate limited
# - POST  /users/login:                    public, rate limited
# - POST  /users/logout:                   public -- clearing a cookie needs no prior auth
# - GET   /users/me:                       requires auth (get_current_identity)
# - GET   /users/admin/users:              requires admin (require_admin)
# - PATCH /users/admin/users/{id}/role:    requires admin (require_admin)
# - GET   /users/admin/dashboard:          requires admin (require_admin)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/register", response_model=MessageResponse, status_code=201)
@limiter.limit("10/minute")  # [H2]
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Create a regular account. The role is always "user", whatever the body says."""
    request.state.audit_event = "register"
    user_store: UserStore = request.app.state.user_store
    accounts.register_user(user_store, body.username, body.email, body.password)
    return MessageResponse(message="User created successfully")


@router.post("/users/login", response_model=LoginResponse)
@limiter.limit("10/minute")  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Check email/password, issue a credential and set it as an httpOnly cookie.

    The credential is a signed token or a session id depending on
    Settings.auth_strategy; this route does not care which.
    """
    request.state.audit_event = "login"
    settings = request.app.state.settings
    user_store: UserStore = request.app.state.user_store

    user = accounts.login(user_store, body.email, body.password)
    identity = Identity.from_user(user)
    credential = request.app.state.credentials.issue(identity)
    request.state.identity = identity

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(message="Login successful", redirect=accounts.landing_page_for(user)).model_dump(),
    )
    set_auth_cookie(resp, credential, settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/users/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Clear the auth cookie and, for server-side sessions, delete the session.

    Idempotent: succeeds with or without a (valid) credential.
    """
    request.state.audit_event = "logout"
    settings = request.app.state.settings

    try_get_current_identity(request)
    credential = read_credential(request)
    if credential is not None:
        try:
            request.app.state.credentials.revoke(credential)
        except SQLAlchemyError:
            logger.exception("Session revoke failed during logout")

    resp = JSONResponse(content=MessageResponse(message="User logged out successfully").model_dump())
    clear_auth_cookie(resp, settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=PublicUser)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> PublicUser:
    """Return the public profile of the authenticated user.

    Loaded from the store rather than the credential so email and created_at
    are current.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.id)
    if user is None:
        raise NotFoundError("User not found.")
    return PublicUser.from_user(user)


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/users/admin/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    search: str = Query("", max_length=100),
    identity: Identity = Depends(require_admin),
) -> UserListResponse:
    """List user accounts, newest first, optionally filtered by username/email."""
    check_limit(limit)
    user_store: UserStore = request.app.state.user_store
    users, total = user_store.list_users(offset=offset_for(page, limit), limit=limit, search=search.strip())
    return UserListResponse(
        users=[PublicUser.from_user(u) for u in users],
        pagination=UserPagination.from_page(PageInfo.build(page, limit, total)),
    )


@router.patch("/users/admin/users/{user_id}/role", response_model=PublicUser)
def update_role(
    request: Request,
    user_id: int,
    body: RoleUpdate,
    identity: Identity = Depends(require_admin),
) -> PublicUser:
    """Set another user's role to "admin" or "user".

    An admin cannot change their own role (400, nothing written). The new
    role reaches the target's credential at their next login.
    """
    request.state.audit_event = "role_update"
    user_store: UserStore = request.app.state.user_store
    updated = accounts.update_user_role(user_store, identity, user_id, body.role.strip())
    return PublicUser.from_user(updated)


@router.get("/users/admin/dashboard", response_model=AdminDashboardResponse)
def admin_dashboard(request: Request, identity: Identity = Depends(require_admin)) -> AdminDashboardResponse:
    """Counters for the admin landing page."""
    user_store: UserStore = request.app.state.user_store
    task_store: TaskStore = request.app.state.task_store

    by_role = user_store.count_by_role()
    midnight = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    stats = DashboardStats(
        total_users=sum(by_role.values()),
        admin_users=by_role.get(ROLE_ADMIN, 0),
        regular_users=by_role.get(ROLE_USER, 0),
        new_users_today=user_store.count_created_since(midnight.isoformat()),
        tasks_by_status=task_store.status_counts(),
    )
    return AdminDashboardResponse(
        stats=stats,
        recent_users=[PublicUser.from_user(u) for u in user_store.recent_users(limit=5)],
    )
