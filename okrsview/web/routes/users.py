"""User management routes (admin and above, confined to the effective tenant)."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel

from okrsview.access.context import AccessContext, Principal
from okrsview.access.gate import Authorized
from okrsview.access.policies import MANAGE_USERS
from okrsview.exceptions import IdentityProviderError, UnauthorizedError, ValidationFailedError
from okrsview.types import AuditAction, AuditEntityType, Role
from okrsview.validation.validator import REQUIRED, validate
from okrsview.web.auth.rbac import authorize_or_403, get_access_context
from okrsview.web.dependencies import Services, audit_entry, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


class InviteUserRequest(BaseModel):
    email: str = ""
    name: str = ""
    role: str = ""
    tenant_id: str | None = None


class ReplaceRolesRequest(BaseModel):
    roles: list[str]


async def _target_in_scope(services: Services, user_id: str, scope: Authorized) -> Principal:
    target = await services.profiles.get_principal(user_id)
    if target is None or not (scope.all_tenants or target.tenant_id == scope.tenant_id):
        raise HTTPException(status_code=404, detail="User not found")
    return target


def _guard_rank(context: AccessContext, target: Principal, verb: str) -> None:
    if target.roles and target.role.rank > context.effective_role.rank:
        logger.warning("user_rank_guard_denied", target=target.user_id, action=verb)
        raise UnauthorizedError(f"Cannot {verb} a user above your own role")


@router.get("")
async def list_users(
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    scope = authorize_or_403(context, MANAGE_USERS)
    return await services.profiles.list_profiles(tenant_id=scope.tenant_id)


@router.post("/invite", status_code=201)
async def invite_user(
    body: InviteUserRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Invite a new user into the caller's effective tenant."""
    scope = authorize_or_403(context, MANAGE_USERS, requested_tenant_id=body.tenant_id)
    data = body.model_dump()
    result = validate("user", data, registry=services.rules)
    errors = result.to_dict()["errors"]
    if scope.tenant_id is None:
        errors.append(
            {"field": "tenant_id", "message": "tenant_id is required", "code": REQUIRED}
        )
    if errors:
        raise ValidationFailedError("user", errors)

    role = Role(body.role)
    if not context.has_minimum_role(role):
        raise UnauthorizedError("Cannot grant a role above your own")

    tenant = await services.tenants.get(scope.tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")

    email = body.email.strip().lower()
    try:
        user_id = await services.identity.invite_user(
            email,
            {"name": body.name, "tenant_id": scope.tenant_id, "role": role.value},
        )
    except IdentityProviderError as exc:
        raise HTTPException(status_code=500, detail="Failed to invite user") from exc

    principal = await services.profiles.register(
        user_id=user_id,
        email=email,
        name=body.name,
        tenant_id=scope.tenant_id,
        role=role,
    )
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.USER_INVITED,
            AuditEntityType.USER,
            tenant_id=scope.tenant_id,
            entity_id=user_id,
            details={"email": email, "role": role.value},
        )
    )
    logger.info("user_invited", user_id=user_id, tenant_id=scope.tenant_id, role=role.value)
    return {
        "success": True,
        "user": {
            "id": principal.user_id,
            "email": principal.email,
            "name": principal.name,
            "role": role.value,
            "tenant_id": principal.tenant_id,
        },
    }


@router.delete("/{user_id}", status_code=204)
async def deactivate_user(
    user_id: str,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> Response:
    scope = authorize_or_403(context, MANAGE_USERS)
    target = await _target_in_scope(services, user_id, scope)
    _guard_rank(context, target, "deactivate")
    await services.profiles.deactivate(user_id)
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.USER_DEACTIVATED,
            AuditEntityType.USER,
            tenant_id=target.tenant_id,
            entity_id=user_id,
        )
    )
    return Response(status_code=204)


@router.put("/{user_id}/roles")
async def replace_roles(
    user_id: str,
    body: ReplaceRolesRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Replace a user's role set. Nobody may grant above their own role."""
    scope = authorize_or_403(context, MANAGE_USERS)
    if not body.roles:
        raise HTTPException(status_code=400, detail="At least one role is required")
    try:
        roles = frozenset(Role(r) for r in body.roles)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Unknown role") from exc

    if max(r.rank for r in roles) > context.effective_role.rank:
        raise UnauthorizedError("Cannot grant a role above your own")

    target = await _target_in_scope(services, user_id, scope)
    _guard_rank(context, target, "change roles of")
    await services.profiles.set_roles(user_id, roles)
    ordered = [r.value for r in sorted(roles, key=lambda r: -r.rank)]
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.ROLE_CHANGED,
            AuditEntityType.USER,
            tenant_id=target.tenant_id,
            entity_id=user_id,
            details={
                "from": [r.value for r in sorted(target.roles, key=lambda r: -r.rank)],
                "to": ordered,
            },
        )
    )
    return {"user_id": user_id, "roles": ordered}
