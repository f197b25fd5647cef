"""Authorization gate composing role and tenant checks.

Ordinary denials come back as :class:`Denied` values, never as exceptions;
route handlers turn them into HTTP responses with :func:`require`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from okrsview.exceptions import NoRoleAssignedError, UnauthorizedError

if TYPE_CHECKING:
    from okrsview.access.context import AccessContext
    from okrsview.types import Role

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Operation:
    name: str
    min_role: Role | None = None
    tenant_scoped: bool = True


@dataclass(frozen=True, slots=True)
class Authorized:
    """The operation may proceed.

    ``tenant_id`` is the tenant the operation must be confined to, or None
    when ``all_tenants`` is set (root acting unscoped).
    """

    tenant_id: str | None
    all_tenants: bool = False


@dataclass(frozen=True, slots=True)
class Denied:
    reason: str
    code: str = "forbidden"


Decision = Authorized | Denied


def authorize(
    context: AccessContext,
    operation: Operation,
    requested_tenant_id: str | None = None,
) -> Decision:
    """Decide whether ``operation`` may run and which tenant it is bound to."""
    principal = context.principal
    try:
        role = context.effective_role
    except NoRoleAssignedError:
        logger.error(
            "role_integrity_violation",
            user_id=principal.user_id,
            operation=operation.name,
        )
        return Denied(reason="No role assigned to this account", code="no_role")

    if operation.min_role is not None and not context.has_minimum_role(operation.min_role):
        logger.info(
            "access_denied",
            user_id=principal.user_id,
            operation=operation.name,
            role=role.value,
            required=operation.min_role.value,
        )
        return Denied(reason=f"{operation.min_role.value.capitalize()} access required")

    if not operation.tenant_scoped:
        return Authorized(tenant_id=None, all_tenants=context.is_root)

    effective = context.effective_tenant_id
    if effective is None:
        if context.is_root:
            return Authorized(
                tenant_id=requested_tenant_id,
                all_tenants=requested_tenant_id is None,
            )
        # Non-root without a tenant cannot see any tenant data
        return Denied(reason="No tenant associated with this account", code="no_tenant")

    if requested_tenant_id is not None and requested_tenant_id != effective:
        logger.warning(
            "tenant_scope_forced",
            user_id=principal.user_id,
            operation=operation.name,
            requested=requested_tenant_id,
            effective=effective,
        )
    return Authorized(tenant_id=effective)


def require(decision: Decision) -> Authorized:
    """Return the Authorized decision or raise UnauthorizedError."""
    if isinstance(decision, Denied):
        raise UnauthorizedError(decision.reason, code=decision.code)
    return decision
