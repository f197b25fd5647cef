"""Tenant repositories. Tenant lifecycle is root-only; callers enforce that."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from okrsview.exceptions import ConflictError
from okrsview.models.database import Tenant, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

_MUTABLE_FIELDS = ("name", "slug", "is_active")


def _to_dict(tenant: Tenant) -> dict[str, Any]:
    return {
        "id": tenant.id,
        "name": tenant.name,
        "slug": tenant.slug,
        "is_active": tenant.is_active,
        "created_at": tenant.created_at.isoformat(),
    }


class InMemoryTenantRepository:
    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}

    def _slug_taken(self, slug: str, exclude_id: str | None = None) -> bool:
        return any(t.slug == slug and t.id != exclude_id for t in self._tenants.values())

    async def create(self, name: str, slug: str, tenant_id: str | None = None) -> dict[str, Any]:
        if self._slug_taken(slug):
            raise ConflictError(f"Tenant slug already exists: {slug}")
        tenant = Tenant(name=name, slug=slug)
        if tenant_id:
            tenant.id = tenant_id
        self._tenants[tenant.id] = tenant
        logger.info("tenant_created", tenant_id=tenant.id, slug=slug)
        return _to_dict(tenant)

    async def get(self, tenant_id: str) -> dict[str, Any] | None:
        tenant = self._tenants.get(tenant_id)
        return _to_dict(tenant) if tenant else None

    async def list_all(self) -> list[dict[str, Any]]:
        return [_to_dict(t) for t in sorted(self._tenants.values(), key=lambda t: t.name)]

    async def update(self, tenant_id: str, **updates: Any) -> dict[str, Any] | None:
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            return None
        slug = updates.get("slug")
        if slug and self._slug_taken(slug, exclude_id=tenant_id):
            raise ConflictError(f"Tenant slug already exists: {slug}")
        for key in _MUTABLE_FIELDS:
            if key in updates:
                setattr(tenant, key, updates[key])
        tenant.updated_at = _utc_now()
        return _to_dict(tenant)

    async def delete(self, tenant_id: str) -> bool:
        if self._tenants.pop(tenant_id, None) is None:
            return False
        logger.info("tenant_deleted", tenant_id=tenant_id)
        return True


class DatabaseTenantRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(self, name: str, slug: str, tenant_id: str | None = None) -> dict[str, Any]:
        async with AsyncSession(self._engine) as session:
            tenant = Tenant(name=name, slug=slug)
            if tenant_id:
                tenant.id = tenant_id
            session.add(tenant)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Tenant slug already exists: {slug}") from exc
            await session.refresh(tenant)
            logger.info("tenant_created", tenant_id=tenant.id, slug=slug)
            return _to_dict(tenant)

    async def get(self, tenant_id: str) -> dict[str, Any] | None:
        async with AsyncSession(self._engine) as session:
            tenant = await session.get(Tenant, tenant_id)
            return _to_dict(tenant) if tenant else None

    async def list_all(self) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(select(Tenant).order_by(col(Tenant.name)))
            return [_to_dict(t) for t in result.scalars().all()]

    async def update(self, tenant_id: str, **updates: Any) -> dict[str, Any] | None:
        async with AsyncSession(self._engine) as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                return None
            for key in _MUTABLE_FIELDS:
                if key in updates:
                    setattr(tenant, key, updates[key])
            tenant.updated_at = _utc_now()
            session.add(tenant)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Tenant slug already exists: {updates.get('slug')}") from exc
            await session.refresh(tenant)
            return _to_dict(tenant)

    async def delete(self, tenant_id: str) -> bool:
        async with AsyncSession(self._engine) as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                return False
            await session.delete(tenant)
            await session.commit()
            logger.info("tenant_deleted", tenant_id=tenant_id)
            return True
