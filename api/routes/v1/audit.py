"""
api/routes/v1/audit.py -- Read access to the audit log (admin only).

Routes:
  GET /api/v1/audit?limit=N&user_id=M  -- newest records first

Records are written by the audit middleware in api/main.py; this router only
reads. Bodies were redacted before they were stored.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import AuditRecordResponse
from audit.store import AuditStore
from auth.dependencies import require_admin
from auth.models import Identity

router = APIRouter()


@router.get("/audit", response_model=list[AuditRecordResponse])
def list_audit_records(
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    user_id: Optional[int] = Query(None),
    identity: Identity = Depends(require_admin),
) -> list[AuditRecordResponse]:
    audit_store: AuditStore = request.app.state.audit_store
    return [AuditRecordResponse.from_record(r) for r in audit_store.list_recent(limit=limit, user_id=user_id)]
