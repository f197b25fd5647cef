"""Tenant lifecycle routes (root only)."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel

from okrsview.access.context import AccessContext
from okrsview.access.policies import MANAGE_TENANTS
from okrsview.exceptions import ValidationFailedError
from okrsview.types import AuditAction, AuditEntityType
from okrsview.validation.validator import validate
from okrsview.web.auth.rbac import authorize_or_403, get_access_context
from okrsview.web.dependencies import Services, audit_entry, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


class CreateTenantRequest(BaseModel):
    name: str
    slug: str


class UpdateTenantRequest(BaseModel):
    name: str | None = None
    slug: str | None = None
    is_active: bool | None = None


def _check(services: Services, data: dict[str, Any], partial: bool = False) -> None:
    rules = services.rules.get("tenant")
    if partial:
        rules = tuple(r for r in rules if r.field in data)
    result = validate("tenant", data, rules=rules)
    if not result.valid:
        raise ValidationFailedError("tenant", result.to_dict()["errors"])


@router.get("")
async def list_tenants(
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    authorize_or_403(context, MANAGE_TENANTS)
    return await services.tenants.list_all()


@router.post("", status_code=201)
async def create_tenant(
    body: CreateTenantRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    authorize_or_403(context, MANAGE_TENANTS)
    _check(services, body.model_dump())
    tenant = await services.tenants.create(name=body.name, slug=body.slug)
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.TENANT_CREATED,
            AuditEntityType.TENANT,
            tenant_id=tenant["id"],
            entity_id=tenant["id"],
            details={"name": tenant["name"], "slug": tenant["slug"]},
        )
    )
    return tenant


@router.get("/{tenant_id}")
async def get_tenant(
    tenant_id: str,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    authorize_or_403(context, MANAGE_TENANTS)
    tenant = await services.tenants.get(tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.put("/{tenant_id}")
async def update_tenant(
    tenant_id: str,
    body: UpdateTenantRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    authorize_or_403(context, MANAGE_TENANTS)
    updates = body.model_dump(exclude_none=True)
    _check(services, updates, partial=True)
    tenant = await services.tenants.update(tenant_id, **updates)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.TENANT_UPDATED,
            AuditEntityType.TENANT,
            tenant_id=tenant_id,
            entity_id=tenant_id,
            details={"fields": sorted(updates)},
        )
    )
    return tenant


@router.delete("/{tenant_id}", status_code=204)
async def delete_tenant(
    tenant_id: str,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> Response:
    authorize_or_403(context, MANAGE_TENANTS)
    if not await services.tenants.delete(tenant_id):
        raise HTTPException(status_code=404, detail="Tenant not found")
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.TENANT_DELETED,
            AuditEntityType.TENANT,
            tenant_id=tenant_id,
            entity_id=tenant_id,
        )
    )
    return Response(status_code=204)
