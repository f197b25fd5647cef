"""Profile and role repositories (in-memory and PostgreSQL-backed)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from okrsview.access.context import Principal
from okrsview.access.roles import parse_roles
from okrsview.exceptions import ConflictError
from okrsview.models.database import Profile, UserRole, _new_uuid, _utc_now
from okrsview.types import Role

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def _profile_dict(profile: Profile, roles: frozenset[Role]) -> dict[str, Any]:
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "tenant_id": profile.tenant_id,
        "name": profile.name,
        "email": profile.email,
        "is_active": profile.is_active,
        "roles": sorted((r.value for r in roles), key=lambda v: -Role(v).rank),
    }


def _principal(profile: Profile, roles: frozenset[Role]) -> Principal:
    return Principal(
        user_id=profile.user_id,
        email=profile.email,
        profile_id=profile.id,
        name=profile.name,
        tenant_id=profile.tenant_id,
        roles=roles,
        is_active=profile.is_active,
    )


class InMemoryProfileRepository:
    """In-memory profile store for single-process development and tests."""

    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}
        self._roles: dict[str, set[Role]] = {}

    async def register(
        self,
        user_id: str,
        email: str,
        name: str = "",
        tenant_id: str | None = None,
        role: Role = Role.MEMBER,
    ) -> Principal:
        if user_id in self._profiles:
            raise ConflictError(f"Profile already exists for user {user_id}")
        profile = Profile(
            id=_new_uuid(),
            user_id=user_id,
            email=email,
            name=name or email,
            tenant_id=tenant_id,
        )
        self._profiles[user_id] = profile
        self._roles[user_id] = {role}
        logger.info("profile_registered", user_id=user_id, tenant_id=tenant_id, role=role.value)
        return _principal(profile, frozenset({role}))

    async def get_principal(self, user_id: str) -> Principal | None:
        profile = self._profiles.get(user_id)
        if profile is None:
            return None
        return _principal(profile, frozenset(self._roles.get(user_id, set())))

    async def list_profiles(self, tenant_id: str | None = None) -> list[dict[str, Any]]:
        return [
            _profile_dict(p, frozenset(self._roles.get(p.user_id, set())))
            for p in self._profiles.values()
            if tenant_id is None or p.tenant_id == tenant_id
        ]

    async def deactivate(self, user_id: str) -> bool:
        profile = self._profiles.get(user_id)
        if profile is None:
            return False
        profile.is_active = False
        profile.updated_at = _utc_now()
        logger.info("profile_deactivated", user_id=user_id)
        return True

    async def set_roles(self, user_id: str, roles: frozenset[Role]) -> None:
        self._roles[user_id] = set(roles)
        logger.info("roles_replaced", user_id=user_id, roles=sorted(r.value for r in roles))


class DatabaseProfileRepository:
    """PostgreSQL-backed profile store using SQLModel."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _roles_for(self, session: AsyncSession, user_id: str) -> frozenset[Role]:
        result = await session.execute(
            select(UserRole.role).where(col(UserRole.user_id) == user_id)
        )
        return parse_roles(r for (r,) in result.all())

    async def register(
        self,
        user_id: str,
        email: str,
        name: str = "",
        tenant_id: str | None = None,
        role: Role = Role.MEMBER,
    ) -> Principal:
        async with AsyncSession(self._engine) as session:
            existing = await session.execute(
                select(Profile).where(col(Profile.user_id) == user_id)
            )
            if existing.scalars().first():
                raise ConflictError(f"Profile already exists for user {user_id}")

            profile = Profile(user_id=user_id, email=email, name=name or email, tenant_id=tenant_id)
            session.add(profile)
            # Profile and default role land in the same transaction
            session.add(UserRole(user_id=user_id, role=role.value))
            await session.commit()
            await session.refresh(profile)
            logger.info("profile_registered", user_id=user_id, tenant_id=tenant_id, role=role.value)
            return _principal(profile, frozenset({role}))

    async def get_principal(self, user_id: str) -> Principal | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                select(Profile).where(col(Profile.user_id) == user_id)
            )
            profile = result.scalars().first()
            if profile is None:
                return None
            return _principal(profile, await self._roles_for(session, user_id))

    async def list_profiles(self, tenant_id: str | None = None) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            stmt = select(Profile).order_by(col(Profile.name))
            if tenant_id is not None:
                stmt = stmt.where(col(Profile.tenant_id) == tenant_id)
            result = await session.execute(stmt)
            profiles = result.scalars().all()
            return [
                _profile_dict(p, await self._roles_for(session, p.user_id)) for p in profiles
            ]

    async def deactivate(self, user_id: str) -> bool:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                select(Profile).where(col(Profile.user_id) == user_id)
            )
            profile = result.scalars().first()
            if profile is None:
                return False
            profile.is_active = False
            profile.updated_at = _utc_now()
            session.add(profile)
            await session.commit()
            logger.info("profile_deactivated", user_id=user_id)
            return True

    async def set_roles(self, user_id: str, roles: frozenset[Role]) -> None:
        async with AsyncSession(self._engine) as session:
            await session.execute(delete(UserRole).where(col(UserRole.user_id) == user_id))
            for role in roles:
                session.add(UserRole(user_id=user_id, role=role.value))
            await session.commit()
            logger.info("roles_replaced", user_id=user_id, roles=sorted(r.value for r in roles))
