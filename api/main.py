"""
api/main.py -- FastAPI application factory for TaskTrack.

create_app(settings) builds the whole service from one Settings object. The
object is stored on app.state.settings and handed to everything that needs
configuration (credential verifier, cookie helpers, CORS, audit recorder);
nothing on the request path reads the environment.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- one log line per request with latency
  2. audit_requests        -- one AuditRecord per request, after the body is sent
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. CORSMiddleware        -- credentials allowed for the one configured origin
  5. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, credential verifier, audit worker, session
purge task) and shutdown (stop worker, cancel purge task, close stores)
symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.audit import router as audit_router
from api.routes.v1.tasks import router as tasks_router
from api.routes.v1.users import router as users_router
from audit.recorder import AuditRecorder, build_record, client_ip
from audit.redaction import summarize_body
from audit.store import AuditStore
from auth.credentials import SessionCredentialVerifier, build_credential_verifier
from auth.dependencies import get_current_identity
from auth.models import Identity
from auth.store import SessionStore, UserStore
from core.config import Settings, get_settings
from core.errors import AppError
from tasks.store import TaskStore

VERSION = "0.1.0"

# Health checks from load balancers would drown the audit log.
_UNAUDITED_PATHS = frozenset({"/api/v1/health"})

# Bytes of response body kept for the audit snapshot. Larger bodies are cut
# here and then redacted as text rather than parsed as JSON.
_AUDIT_CAPTURE_BYTES = 64 * 1024

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tasktrack.api")


# ---------------------------------------------------------------------------
# Background session purge
# ---------------------------------------------------------------------------


async def _purge_loop(verifier: SessionCredentialVerifier, interval: int) -> None:
    """Delete expired server-side sessions every `interval` seconds.

    Only started for auth_strategy="session". A failed purge is logged and
    retried on the next tick. CancelledError from task.cancel() during
    shutdown propagates out of asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(verifier.purge_expired)
        except SQLAlchemyError:
            logger.exception("Session purge failed; retrying in %ds", interval)
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create stores and workers on startup, release them on shutdown.

    Startup order matters:
      1. Stores first -- everything else reads from or writes to them.
      2. Credential verifier -- needs the session store for "session".
      3. Audit worker -- must be running before the first request finishes.
      4. Purge task last -- references the verifier.
    """
    settings: Settings = app.state.settings
    logger.info("TaskTrack API starting up (auth_strategy=%s)", settings.auth_strategy)

    app.state.user_store = UserStore(settings.database_url)
    app.state.session_store = SessionStore(settings.database_url)
    app.state.task_store = TaskStore(settings.database_url)
    app.state.audit_store = AuditStore(settings.database_url)
    if not app.state.user_store.has_users():
        logger.warning("No users yet. Create the first admin with: python main.py create-admin")

    app.state.credentials = build_credential_verifier(settings, app.state.session_store)

    app.state.recorder = AuditRecorder(app.state.audit_store, max_queue=settings.audit_queue_size)
    app.state.recorder.start()

    app.state.purge_task = None
    if isinstance(app.state.credentials, SessionCredentialVerifier):
        app.state.purge_task = asyncio.create_task(
            _purge_loop(app.state.credentials, settings.session_purge_interval_seconds)
        )

    yield

    if app.state.purge_task is not None:
        app.state.purge_task.cancel()
    app.state.recorder.stop()
    app.state.user_store.close()
    app.state.session_store.close()
    app.state.task_store.close()
    app.state.audit_store.close()
    logger.info("TaskTrack API shutdown complete")


# ---------------------------------------------------------------------------
# Error envelope helpers
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: Optional[str] = None,
    errors: Optional[list[str]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail, errors=errors))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _validation_messages(exc: RequestValidationError) -> list[str]:
    """Itemize framework validation errors WITHOUT echoing the submitted values.

    exc.errors() carries the raw input; a password sent with the wrong type
    would otherwise be reflected back to the client.
    """
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg', 'invalid value')}" if loc else err.get("msg", "invalid value"))
    return messages


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="TaskTrack API",
        description="Per-user task management with cookie-based authentication and role-gated administration.",
        version=VERSION,
        lifespan=lifespan,
        # Built-in /docs and /redoc are replaced below by auth-protected routes.
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings

    # -----------------------------------------------------------------------
    # Middleware stack
    #
    # add_middleware() and @app.middleware both wrap the current stack, so the
    # last one registered is the outermost. Register innermost first.
    # -----------------------------------------------------------------------

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    # SlowAPI looks for app.state.limiter by convention. The limiter and its
    # enabled flag are shared by every app in the process (see api/limiter.py).
    if limiter.enabled != settings.rate_limit_enabled:
        logger.info("Rate limiting %s (process-wide)", "enabled" if settings.rate_limit_enabled else "disabled")
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    @app.middleware("http")
    async def audit_requests(request: Request, call_next):
        """Record the outcome of every request once its body has been sent.

        The record is built from request.state, which the route and the
        exception handlers fill in:
          identity      -- set by get_current_identity() / login
          audit_reason  -- error code set by the exception handlers
          audit_event   -- "login", "logout", ... set by the route
        Submission is a non-blocking enqueue; the write happens on the
        recorder's worker thread.
        """
        if not settings.audit_enabled or request.url.path in _UNAUDITED_PATHS:
            return await call_next(request)

        recorder: AuditRecorder = request.app.state.recorder
        try:
            response = await call_next(request)
        except Exception:
            recorder.submit(_audit_record(request, 500, b""))
            raise

        original = response.body_iterator

        async def tee_body():
            captured = bytearray()
            async for chunk in original:
                if len(captured) < _AUDIT_CAPTURE_BYTES:
                    captured.extend(chunk[: _AUDIT_CAPTURE_BYTES - len(captured)])
                yield chunk
            recorder.submit(_audit_record(request, response.status_code, bytes(captured)))

        response.body_iterator = tee_body()
        return response

    def _audit_record(request: Request, status_code: int, body: bytes):
        identity: Optional[Identity] = getattr(request.state, "identity", None)
        error_code = getattr(request.state, "audit_reason", None)
        if status_code >= 500 and error_code is None:
            error_code = "internal_error"
        return build_record(
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            event_type=getattr(request.state, "audit_event", "request"),
            error_code=error_code,
            ip_address=client_ip(
                request.headers.get("x-forwarded-for"),
                request.client.host if request.client else None,
            ),
            user_agent=request.headers.get("user-agent"),
            user_id=identity.id if identity else None,
            username=identity.username if identity else None,
            body=summarize_body(body, settings.audit_body_limit),
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    app.include_router(tasks_router, prefix="/api/v1", tags=["Tasks"])
    app.include_router(audit_router, prefix="/api/v1", tags=["Audit"])

    @app.get("/docs", include_in_schema=False)
    async def docs(identity: Identity = Depends(get_current_identity)):
        """Swagger UI -- requires authentication."""
        return get_swagger_ui_html(openapi_url="/openapi.json", title="TaskTrack API")

    @app.get("/redoc", include_in_schema=False)
    async def redoc(identity: Identity = Depends(get_current_identity)):
        """ReDoc UI -- requires authentication."""
        return get_redoc_html(openapi_url="/openapi.json", title="TaskTrack API")

    @app.get("/api/v1/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return API liveness and current version. Public, not rate limited, not audited."""
        return HealthResponse(version=VERSION)

    # -----------------------------------------------------------------------
    # Exception handlers
    #
    # All handlers return the same ErrorResponse envelope so clients can parse
    # errors uniformly. Each one also leaves the error code on request.state
    # for the audit middleware.
    # -----------------------------------------------------------------------

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        request.state.audit_reason = exc.code
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        response = _error_response(exc.status_code, exc.code, exc.message, errors=exc.errors)
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with Retry-After when a rate limit is exceeded."""
        request.state.audit_reason = "rate_limited"
        retry_after = int(getattr(exc, "retry_after", 60))
        response = _error_response(429, "rate_limited", "Too many requests.", detail=str(exc.detail))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed body or query params are a client error: 400 with itemized messages."""
        request.state.audit_reason = "validation_error"
        return _error_response(400, "validation_error", "Request validation failed.", errors=_validation_messages(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Unknown routes, wrong methods and any other framework HTTP errors."""
        code = f"http_{exc.status_code}"
        request.state.audit_reason = code
        return _error_response(exc.status_code, code, str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The raw exception goes to the server log only, never to the response
        body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred.")

    return app
