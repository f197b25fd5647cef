"""Root "view as tenant" override for the current session."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel

from okrsview.access.context import AccessContext
from okrsview.access.policies import SET_TENANT_OVERRIDE
from okrsview.access.tenant import TenantScoper
from okrsview.types import AuditAction, AuditEntityType
from okrsview.web.auth.rbac import authorize_or_403, get_access_context, get_tenant_scoper
from okrsview.web.dependencies import Services, audit_entry, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


class TenantOverrideRequest(BaseModel):
    tenant_id: str


@router.get("/tenant")
async def get_tenant_scope(
    context: AccessContext = Depends(get_access_context),
) -> dict[str, Any]:
    return {
        "tenant_id": context.principal.tenant_id,
        "override": context.tenant_override if context.is_root else None,
        "effective_tenant_id": context.effective_tenant_id,
        "all_tenants": context.can_query_all_tenants,
    }


@router.put("/tenant")
async def set_tenant_override(
    body: TenantOverrideRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    scoper: TenantScoper = Depends(get_tenant_scoper),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    """Scope this session to one tenant. Malformed ids leave the current value."""
    authorize_or_403(context, SET_TENANT_OVERRIDE)
    accepted = scoper.set_override(body.tenant_id)
    if accepted:
        services.recorder.record_later(
            audit_entry(
                request,
                context,
                AuditAction.TENANT_OVERRIDE_SET,
                AuditEntityType.TENANT,
                tenant_id=body.tenant_id.strip(),
                entity_id=body.tenant_id.strip(),
            )
        )
    return {"accepted": accepted}


@router.delete("/tenant", status_code=204)
async def clear_tenant_override(
    request: Request,
    context: AccessContext = Depends(get_access_context),
    scoper: TenantScoper = Depends(get_tenant_scoper),
    services: Services = Depends(get_services),
) -> Response:
    authorize_or_403(context, SET_TENANT_OVERRIDE)
    scoper.clear_override()
    services.recorder.record_later(
        audit_entry(request, context, AuditAction.TENANT_OVERRIDE_CLEARED, AuditEntityType.TENANT)
    )
    return Response(status_code=204)
