"""
core/errors.py -- Application exception taxonomy.

Every failure a route can report maps onto one of these classes. Each carries
the HTTP status and a machine-readable code; api/main.py has a single
exception handler that turns any AppError into the standard error envelope:

    {"error": {"code": "...", "message": "...", "errors": [...]}}

Domain code raises these instead of fastapi.HTTPException so auth/ and tasks/
stay importable (and testable) without a request in flight.

Messages must never contain password material. Callers pass fixed strings.

Layer rule: core/ is the kernel. No imports from api/, auth/, audit/, tasks/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that are reported to the client."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    """Client input is malformed (400). errors itemizes every violated rule."""

    status_code = 400
    code = "validation_error"
    message = "Validation errors"


class ConflictError(AppError):
    """A unique field is already taken (409)."""

    status_code = 409
    code = "conflict"
    message = "Resource already exists."


class AuthenticationError(AppError):
    """Missing, invalid or expired credential, or failed login (401).

    code is the reason: "no_credential", "invalid_or_expired" or
    "bad_credentials".
    """

    status_code = 401
    code = "no_credential"
    message = "Not authenticated."


class AuthorizationError(AppError):
    """Valid identity, insufficient role (403)."""

    status_code = 403
    code = "access_denied"
    message = "Access denied."


class NotFoundError(AppError):
    """Referenced entity is absent (404)."""

    status_code = 404
    code = "not_found"
    message = "Not found."


class InternalError(AppError):
    """A collaborator failed in a way the client cannot fix (500)."""
