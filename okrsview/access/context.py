"""Access context carried through each request."""

from __future__ import annotations

from dataclasses import dataclass

from okrsview.access.roles import effective_role, has_minimum_role, has_role, is_root
from okrsview.access.tenant import get_effective_tenant_id
from okrsview.types import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """An authenticated user's profile and role set, loaded once per request."""

    user_id: str
    email: str
    profile_id: str
    name: str
    tenant_id: str | None
    roles: frozenset[Role]
    is_active: bool = True

    @property
    def role(self) -> Role:
        return effective_role(self.roles)


@dataclass(frozen=True, slots=True)
class AccessContext:
    """Immutable inputs to every authorization decision for one request.

    ``tenant_override`` is the root "view as" value read from the session at
    request start; it is ignored for non-root principals.
    """

    principal: Principal
    tenant_override: str | None = None
    session_id: str | None = None

    @property
    def effective_role(self) -> Role:
        return effective_role(self.principal.roles)

    @property
    def effective_tenant_id(self) -> str | None:
        return get_effective_tenant_id(self.principal, self.tenant_override)

    @property
    def is_root(self) -> bool:
        return is_root(self.principal.roles)

    @property
    def can_query_all_tenants(self) -> bool:
        return self.is_root and self.effective_tenant_id is None

    def has_role(self, required: Role | set[Role]) -> bool:
        return has_role(self.principal.roles, required)

    def has_minimum_role(self, threshold: Role) -> bool:
        return has_minimum_role(self.principal.roles, threshold)
