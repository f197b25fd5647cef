"""Tenant scoping: effective tenant resolution and the root override slot."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol

import structlog

from okrsview.types import Role

if TYPE_CHECKING:
    from okrsview.access.context import Principal

logger = structlog.get_logger(__name__)

_TENANT_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class OverrideSlot(Protocol):
    """A session-lifetime key/value slot holding one string."""

    def get(self) -> str | None: ...

    def set(self, value: str) -> None: ...

    def remove(self) -> None: ...


def is_valid_tenant_id(candidate: object) -> bool:
    if not isinstance(candidate, str):
        return False
    return bool(_TENANT_ID_RE.match(candidate.strip()))


def sanitize_tenant_id(candidate: str | None) -> str | None:
    """Return the trimmed identifier, or None if it is absent or malformed."""
    if not candidate:
        return None
    if not is_valid_tenant_id(candidate):
        logger.warning("invalid_tenant_id_format", tenant_id=candidate[:64])
        return None
    return candidate.strip()


def get_effective_tenant_id(principal: Principal, override: str | None) -> str | None:
    """Resolve the tenant a request is confined to.

    Root with an override gets the override, root without one gets None (all
    tenants). Everyone else gets their own tenant and any override is ignored.
    """
    if Role.ROOT in principal.roles:
        return sanitize_tenant_id(override)
    return principal.tenant_id


def is_tenant_member(principal: Principal, tenant_id: str) -> bool:
    if Role.ROOT in principal.roles:
        return True
    return principal.tenant_id is not None and principal.tenant_id == tenant_id


can_access_tenant = is_tenant_member


class TenantScoper:
    """Manages the root "view as tenant" override for one session.

    The scoper has no identity context of its own; callers must check that
    the actor is root before calling :meth:`set_override`.
    """

    def __init__(self, slot: OverrideSlot) -> None:
        self._slot = slot

    def current_override(self) -> str | None:
        try:
            stored = self._slot.get()
        except Exception:
            logger.exception("tenant_override_read_failed")
            return None
        return sanitize_tenant_id(stored)

    def set_override(self, candidate: str) -> bool:
        """Store ``candidate`` if well-formed. Returns whether it was accepted."""
        sanitized = sanitize_tenant_id(candidate)
        if sanitized is None:
            logger.warning("tenant_override_rejected")
            return False
        try:
            self._slot.set(sanitized)
        except Exception:
            logger.exception("tenant_override_write_failed")
            return False
        logger.info("tenant_override_set", tenant_id=sanitized)
        return True

    def clear_override(self) -> None:
        try:
            self._slot.remove()
        except Exception:
            logger.exception("tenant_override_clear_failed")
