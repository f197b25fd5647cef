"""Audit log routes: client-submitted entries and the admin query API."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from okrsview.access.context import AccessContext
from okrsview.access.policies import LIST_AUDIT_LOGS
from okrsview.exceptions import RecorderFailedError
from okrsview.types import AuditAction, AuditEntityType
from okrsview.web.auth.rbac import authorize_or_403, get_access_context
from okrsview.web.dependencies import Services, audit_entry, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/audit", tags=["audit"])

_ACTIONS = frozenset(a.value for a in AuditAction)
_ENTITY_TYPES = frozenset(e.value for e in AuditEntityType)


@router.post("")
async def create_audit_log(
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Record an entry on behalf of the caller, stamped with their tenant and IP."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    action = body.get("action")
    entity_type = body.get("entity_type")
    if not action or not entity_type:
        raise HTTPException(status_code=400, detail="Missing required fields: action, entity_type")
    if action not in _ACTIONS:
        raise HTTPException(status_code=400, detail=f"Unknown action: {action}")
    if entity_type not in _ENTITY_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown entity_type: {entity_type}")

    details = body.get("details")
    entity_id = body.get("entity_id")
    entry = audit_entry(
        request,
        context,
        action,
        entity_type,
        entity_id=str(entity_id) if entity_id else None,
        details=details if isinstance(details, dict) else {},
    )
    try:
        entry_id = await services.recorder.write(entry)
    except RecorderFailedError as exc:
        raise HTTPException(status_code=500, detail="Failed to create audit log") from exc
    return {"success": True, "id": entry_id}


@router.get("")
async def list_audit_logs(
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
    action: str | None = None,
    entity_type: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[dict[str, Any]]:
    """Query audit logs for the effective tenant. Requires admin role."""
    scope = authorize_or_403(context, LIST_AUDIT_LOGS)
    return await services.recorder.sink.query(
        tenant_id=scope.tenant_id,
        action=action,
        entity_type=entity_type,
        limit=limit,
        offset=offset,
    )
