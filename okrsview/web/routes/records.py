"""Generic tenant-scoped CRUD routes, one router per entity policy.

Every handler runs the same pipeline: gate, validate, persist, then a
background audit record. Records outside the effective tenant are 404.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import Response

from okrsview.access.context import AccessContext
from okrsview.access.gate import Authorized
from okrsview.access.policies import ENTITY_POLICIES, EntityPolicy
from okrsview.exceptions import ValidationFailedError
from okrsview.validation.validator import INVALID_REFERENCE, REQUIRED, validate
from okrsview.web.auth.rbac import authorize_or_403, get_access_context
from okrsview.web.dependencies import Services, audit_entry, get_services

logger = structlog.get_logger(__name__)


def _scoped_payload(payload: dict[str, Any], scope: Authorized) -> dict[str, Any]:
    """Pin ``tenant_id`` to the authorized tenant; only unscoped root may choose."""
    data = dict(payload)
    if not scope.all_tenants:
        data["tenant_id"] = scope.tenant_id
    return data


def _check(
    services: Services,
    entity: str,
    data: dict[str, Any],
    partial: bool = False,
) -> None:
    rules = services.rules.get(entity)
    if partial:
        rules = tuple(r for r in rules if r.field in data)
    result = validate(entity, data, rules=rules)
    errors = result.to_dict()["errors"]
    if not partial and not data.get("tenant_id") and "tenant_id" not in result.error_fields():
        errors.append({"field": "tenant_id", "code": REQUIRED, "message": "tenant_id is required"})
    if errors:
        raise ValidationFailedError(entity, errors)


async def _check_parents(
    services: Services,
    policy: EntityPolicy,
    data: dict[str, Any],
    tenant_id: str,
) -> None:
    """Reject references to parent records that are missing from ``tenant_id``."""
    errors = []
    for field, parent in policy.parents:
        parent_id = data.get(field)
        if not parent_id:
            continue
        if await services.records.get(parent, str(parent_id), tenant_id=tenant_id) is None:
            logger.warning(
                "parent_reference_rejected", entity=policy.entity, field=field, tenant_id=tenant_id
            )
            label = parent.replace("_", " ")
            errors.append(
                {
                    "field": field,
                    "code": INVALID_REFERENCE,
                    "message": f"{field} does not reference a {label} in this tenant",
                }
            )
    if errors:
        raise ValidationFailedError(policy.entity, errors)


def build_router(policy: EntityPolicy) -> APIRouter:
    entity = policy.entity
    router = APIRouter(prefix=f"/api/{policy.path}", tags=[policy.path])
    not_found = f"{entity.replace('_', ' ').capitalize()} not found"

    @router.get("")
    async def list_records(
        tenant_id: str | None = None,
        context: AccessContext = Depends(get_access_context),
        services: Services = Depends(get_services),
    ) -> list[dict[str, Any]]:
        scope = authorize_or_403(context, policy.operation("list"), requested_tenant_id=tenant_id)
        return await services.records.list_all(entity, tenant_id=scope.tenant_id)

    @router.get("/{record_id}")
    async def get_record(
        record_id: str,
        context: AccessContext = Depends(get_access_context),
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        scope = authorize_or_403(context, policy.operation("get"))
        record = await services.records.get(entity, record_id, tenant_id=scope.tenant_id)
        if record is None:
            raise HTTPException(status_code=404, detail=not_found)
        return record

    @router.post("", status_code=201)
    async def create_record(
        request: Request,
        payload: dict[str, Any] = Body(...),
        context: AccessContext = Depends(get_access_context),
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        scope = authorize_or_403(
            context, policy.operation("create"), requested_tenant_id=payload.get("tenant_id")
        )
        data = _scoped_payload(payload, scope)
        _check(services, entity, data)
        await _check_parents(services, policy, data, data["tenant_id"])
        record = await services.records.create(entity, data)
        services.recorder.record_later(
            audit_entry(
                request,
                context,
                policy.created_action,
                policy.audit_type,
                tenant_id=record["tenant_id"],
                entity_id=record["id"],
            )
        )
        return record

    @router.put("/{record_id}")
    async def update_record(
        record_id: str,
        request: Request,
        payload: dict[str, Any] = Body(...),
        context: AccessContext = Depends(get_access_context),
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        scope = authorize_or_403(context, policy.operation("update"))
        changes = dict(payload)
        if not scope.all_tenants and changes.pop("tenant_id", scope.tenant_id) != scope.tenant_id:
            logger.warning("tenant_move_blocked", entity=entity, id=record_id)
        _check(services, entity, changes, partial=True)
        current = await services.records.get(entity, record_id, tenant_id=scope.tenant_id)
        if current is None:
            raise HTTPException(status_code=404, detail=not_found)
        target_tenant = changes.get("tenant_id") or current["tenant_id"]
        if target_tenant != current["tenant_id"]:
            # A moved record must bring every parent reference along
            references = {field: current.get(field) for field, _ in policy.parents}
            await _check_parents(services, policy, {**references, **changes}, target_tenant)
        else:
            await _check_parents(services, policy, changes, target_tenant)
        record = await services.records.update(
            entity, record_id, changes, tenant_id=scope.tenant_id
        )
        if record is None:
            raise HTTPException(status_code=404, detail=not_found)
        services.recorder.record_later(
            audit_entry(
                request,
                context,
                policy.updated_action,
                policy.audit_type,
                tenant_id=record["tenant_id"],
                entity_id=record_id,
                details={"fields": sorted(changes)},
            )
        )
        return record

    @router.delete("/{record_id}", status_code=204)
    async def delete_record(
        record_id: str,
        request: Request,
        context: AccessContext = Depends(get_access_context),
        services: Services = Depends(get_services),
    ) -> Response:
        scope = authorize_or_403(context, policy.operation("delete"))
        record = await services.records.get(entity, record_id, tenant_id=scope.tenant_id)
        if record is None or not await services.records.delete(
            entity, record_id, tenant_id=scope.tenant_id
        ):
            raise HTTPException(status_code=404, detail=not_found)
        services.recorder.record_later(
            audit_entry(
                request,
                context,
                policy.deleted_action,
                policy.audit_type,
                tenant_id=record["tenant_id"],
                entity_id=record_id,
            )
        )
        return Response(status_code=204)

    return router


routers = [build_router(policy) for policy in ENTITY_POLICIES.values()]
