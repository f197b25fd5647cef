"""Request authentication and role/tenant authorization dependencies."""

from __future__ import annotations

import jwt
import structlog
from fastapi import Depends, Request

from okrsview.access.context import AccessContext, Principal
from okrsview.access.gate import Authorized, Operation, authorize, require
from okrsview.access.tenant import TenantScoper
from okrsview.exceptions import UnauthenticatedError
from okrsview.web.auth.identity import IdentityClaims, verify_access_token
from okrsview.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        raise UnauthenticatedError("Missing Bearer token")
    return auth_header[7:]


async def get_claims(token: str = Depends(bearer_token)) -> IdentityClaims:
    try:
        return verify_access_token(token)
    except jwt.PyJWTError as exc:
        logger.warning("access_token_invalid", error=str(exc))
        raise UnauthenticatedError("Invalid token") from exc


async def get_principal(
    claims: IdentityClaims = Depends(get_claims),
    services: Services = Depends(get_services),
) -> Principal:
    principal = await services.profiles.get_principal(claims.sub)
    if principal is None or not principal.is_active:
        raise UnauthenticatedError("User not found or inactive")
    structlog.contextvars.bind_contextvars(user_id=principal.user_id)
    return principal


def get_tenant_scoper(
    claims: IdentityClaims = Depends(get_claims),
    services: Services = Depends(get_services),
) -> TenantScoper:
    return TenantScoper(services.sessions.slot(claims.session_id))


async def get_access_context(
    claims: IdentityClaims = Depends(get_claims),
    principal: Principal = Depends(get_principal),
    scoper: TenantScoper = Depends(get_tenant_scoper),
) -> AccessContext:
    """Snapshot the principal and its override for this request."""
    return AccessContext(
        principal=principal,
        tenant_override=scoper.current_override(),
        session_id=claims.session_id,
    )


def authorize_or_403(
    context: AccessContext,
    operation: Operation,
    requested_tenant_id: str | None = None,
) -> Authorized:
    """Run the gate; raises UnauthorizedError (mapped to 403) on denial."""
    return require(authorize(context, operation, requested_tenant_id))
