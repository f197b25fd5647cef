"""Role hierarchy resolution.

Pure functions over a role set already fetched from the profile store. The
precedence order lives on :class:`okrsview.types.Role` and nowhere else.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from okrsview.exceptions import NoRoleAssignedError
from okrsview.types import Role

logger = structlog.get_logger(__name__)


def parse_roles(values: Iterable[str]) -> frozenset[Role]:
    """Coerce stored role strings into a role set, skipping unknown values."""
    roles: set[Role] = set()
    for value in values:
        try:
            roles.add(Role(value))
        except ValueError:
            logger.warning("unknown_role_ignored", role=value)
    return frozenset(roles)


def effective_role(roles: Iterable[Role]) -> Role:
    """Return the highest-precedence role held.

    Raises NoRoleAssignedError when the set is empty. Every registered user
    gets at least ``member``, so an empty set is a data-integrity problem.
    """
    held = set(roles)
    if not held:
        raise NoRoleAssignedError("User has no role assigned")
    return max(held, key=lambda r: r.rank)


def is_root(roles: Iterable[Role]) -> bool:
    return Role.ROOT in set(roles)


def has_role(roles: Iterable[Role], required: Role | Iterable[Role]) -> bool:
    """Root satisfies every check; otherwise any held role must be required."""
    held = set(roles)
    if Role.ROOT in held:
        return True
    if isinstance(required, str):
        wanted = {Role(required)}
    else:
        wanted = {Role(r) for r in required}
    return bool(held & wanted)


def has_minimum_role(roles: Iterable[Role], threshold: Role) -> bool:
    """True when the effective role ranks at or above ``threshold``."""
    held = set(roles)
    if not held:
        return False
    if Role.ROOT in held:
        return True
    return effective_role(held).rank >= threshold.rank
