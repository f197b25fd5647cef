"""Authentication routes: current principal, logout, password recovery."""

from __future__ import annotations

import re
from typing import Any

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from okrsview.access.context import AccessContext
from okrsview.audit.logger import AuditEntry
from okrsview.exceptions import (
    IdentityProviderError,
    NoRoleAssignedError,
    UnauthenticatedError,
)
from okrsview.types import AuditAction, AuditEntityType
from okrsview.web.auth.identity import verify_access_token
from okrsview.web.auth.rbac import bearer_token, get_access_context
from okrsview.web.dependencies import Services, audit_entry, get_services
from okrsview.web.middleware import client_ip

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 10

# (pattern, message) checked in order after the length check
_PASSWORD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character"),
)


def password_problem(password: Any) -> str | None:
    """Return the first strength rule ``password`` breaks, or None."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(password):
            return message
    return None


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _origin(request: Request) -> str:
    return request.headers.get("origin") or str(request.base_url).rstrip("/")


@router.get("/me")
async def me(
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Return the caller's identity, roles and tenant."""
    principal = context.principal
    try:
        role: str | None = context.effective_role.value
    except NoRoleAssignedError:
        logger.error("role_integrity_violation", user_id=principal.user_id, operation="auth.me")
        role = None

    tenant = None
    if principal.tenant_id:
        tenant = await services.tenants.get(principal.tenant_id)

    return {
        "id": principal.user_id,
        "email": principal.email,
        "name": principal.name,
        "role": role,
        "roles": [r.value for r in sorted(principal.roles, key=lambda r: -r.rank)],
        "tenant_id": principal.tenant_id,
        "tenant": tenant,
        "effective_tenant_id": context.effective_tenant_id,
        "profile": {
            "id": principal.profile_id,
            "name": principal.name,
            "email": principal.email,
            "tenant_id": principal.tenant_id,
            "is_active": principal.is_active,
        },
    }


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> Response:
    """End the session: drop the tenant override and all session state."""
    if context.session_id:
        services.sessions.destroy(context.session_id)
    services.recorder.record_later(
        audit_entry(
            request,
            context,
            AuditAction.LOGOUT,
            AuditEntityType.AUTH,
            tenant_id=context.principal.tenant_id,
        )
    )
    logger.info("logout", user_id=context.principal.user_id)
    return Response(status_code=204)


@router.post("/forgot-password")
async def forgot_password(
    request: Request,
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    """Send a reset email. Always succeeds so callers cannot discover accounts."""
    ok = {"success": True}
    ip = client_ip(request)
    if not services.forgot_password_limiter.hit(ip):
        logger.warning("forgot_password_rate_limited", ip=ip)
        return ok

    body = await _json_body(request)
    email = body.get("email")
    if not isinstance(email, str) or "@" not in email:
        logger.info("forgot_password_invalid_email")
        return ok

    try:
        await services.identity.send_password_reset(
            email.strip().lower(),
            redirect_to=f"{_origin(request)}/auth/reset-password",
        )
    except IdentityProviderError:
        logger.warning("forgot_password_provider_failed")
    return ok


@router.post("/reset-password")
async def reset_password(
    request: Request,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Set a new password for the bearer of a (recovery) access token."""
    ip = client_ip(request)
    if not services.reset_password_limiter.hit(ip):
        logger.warning("reset_password_rate_limited", ip=ip)
        raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")

    token = bearer_token(request)
    try:
        claims = verify_access_token(token)
    except jwt.PyJWTError as exc:
        logger.warning("access_token_invalid", error=str(exc))
        raise UnauthenticatedError("Unauthorized") from exc

    body = await _json_body(request)
    problem = password_problem(body.get("password"))
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    try:
        await services.identity.update_password(token, body["password"])
    except IdentityProviderError as exc:
        raise HTTPException(
            status_code=400, detail="Failed to reset password. Please try again."
        ) from exc

    services.recorder.record_later(
        AuditEntry(
            user_id=claims.sub,
            action=AuditAction.PASSWORD_RESET,
            entity_type=AuditEntityType.AUTH,
            ip_address=ip,
            request_id=getattr(request.state, "request_id", ""),
        )
    )
    logger.info("password_reset", user_id=claims.sub)
    return {"success": True, "message": "Password reset successfully"}

