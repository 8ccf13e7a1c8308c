"""
audit/models.py -- Domain dataclass for audit entries.

Pattern: Data class (pure data container, zero logic). Records are
append-only: created once by the recorder, never updated or deleted here.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AuditRecord:
    """One audited request.

    user_id / username are None for anonymous requests (and for login
    attempts that failed). reason is "success", the error code the request
    failed with (e.g. "no_credential", "access_denied"), or
    "failed_request" when no code is known. body is the redacted, truncated
    response snapshot.
    """

    event_time: str  # ISO 8601 UTC
    event_type: str  # "request", "login", "logout", "register", "role_update"
    method: str
    path: str
    status_code: int
    success: bool
    reason: str
    ip_address: str | None = None
    user_agent: str | None = None
    user_id: int | None = None
    username: str | None = None
    body: str | None = None
    id: int | None = None
