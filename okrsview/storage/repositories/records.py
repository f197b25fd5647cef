"""Generic repositories for tenant-scoped business records.

Every method takes ``tenant_id``; ``None`` means unscoped (root acting across
all tenants). Records outside the given tenant behave as if absent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from okrsview.exceptions import ConflictError, StorageError, ValidationFailedError
from okrsview.models.database import ENTITY_MODELS, _utc_now
from okrsview.validation.validator import INVALID_FORMAT

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

_SERVER_FIELDS = frozenset({"id", "created_at", "updated_at"})


def _model_for(entity: str) -> type[SQLModel]:
    try:
        return ENTITY_MODELS[entity]
    except KeyError:
        raise StorageError(f"Unknown entity: {entity}") from None


def _field_error(error: Any) -> dict[str, Any]:
    field = ".".join(str(part) for part in error["loc"]) or "data"
    return {"field": field, "code": INVALID_FORMAT, "message": f"{field} is invalid"}


def _build(entity: str, data: dict[str, Any]) -> SQLModel:
    """Validate ``data`` into a table model, dropping unknown and server-owned keys."""
    model = _model_for(entity)
    clean = {k: v for k, v in data.items() if k in model.model_fields and k not in _SERVER_FIELDS}
    try:
        return model.model_validate(clean)
    except ValidationError as exc:
        errors = [_field_error(error) for error in exc.errors()]
        logger.info("record_rejected", entity=entity, fields=[e["field"] for e in errors])
        raise ValidationFailedError(entity, errors) from exc


def _in_scope(record: Any, tenant_id: str | None) -> bool:
    return tenant_id is None or record.tenant_id == tenant_id


def _to_dict(record: SQLModel) -> dict[str, Any]:
    return record.model_dump(mode="json")


class InMemoryRecordRepository:
    def __init__(self) -> None:
        self._records: dict[str, dict[str, SQLModel]] = {e: {} for e in ENTITY_MODELS}

    async def list_all(self, entity: str, tenant_id: str | None = None) -> list[dict[str, Any]]:
        _model_for(entity)
        return [_to_dict(r) for r in self._records[entity].values() if _in_scope(r, tenant_id)]

    async def get(
        self, entity: str, record_id: str, tenant_id: str | None = None
    ) -> dict[str, Any] | None:
        _model_for(entity)
        record = self._records[entity].get(record_id)
        if record is None or not _in_scope(record, tenant_id):
            return None
        return _to_dict(record)

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        record = _build(entity, data)
        row = _to_dict(record)
        self._records[entity][row["id"]] = record
        logger.info("record_created", entity=entity, id=row["id"], tenant_id=row["tenant_id"])
        return row

    async def update(
        self,
        entity: str,
        record_id: str,
        changes: dict[str, Any],
        tenant_id: str | None = None,
    ) -> dict[str, Any] | None:
        current = self._records.get(entity, {}).get(record_id)
        if current is None or not _in_scope(current, tenant_id):
            return None
        merged = _build(entity, {**current.model_dump(), **changes})
        for key in changes:
            if key in type(current).model_fields and key not in _SERVER_FIELDS:
                setattr(current, key, getattr(merged, key))
        current.updated_at = _utc_now()  # type: ignore[attr-defined]
        return _to_dict(current)

    async def delete(self, entity: str, record_id: str, tenant_id: str | None = None) -> bool:
        current = self._records.get(entity, {}).get(record_id)
        if current is None or not _in_scope(current, tenant_id):
            return False
        del self._records[entity][record_id]
        logger.info("record_deleted", entity=entity, id=record_id)
        return True


class DatabaseRecordRepository:
    """PostgreSQL-backed record store using SQLModel.

    Keeps the dict-based interface of the in-memory version so routes do not
    care which one they talk to.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _fetch(
        self, session: AsyncSession, entity: str, record_id: str, tenant_id: str | None
    ) -> Any:
        record = await session.get(_model_for(entity), record_id)
        if record is None or not _in_scope(record, tenant_id):
            return None
        return record

    async def list_all(self, entity: str, tenant_id: str | None = None) -> list[dict[str, Any]]:
        model = _model_for(entity)
        async with AsyncSession(self._engine) as session:
            stmt = select(model).order_by(col(model.created_at).desc())  # type: ignore[attr-defined]
            if tenant_id is not None:
                stmt = stmt.where(col(model.tenant_id) == tenant_id)  # type: ignore[attr-defined]
            result = await session.execute(stmt)
            return [_to_dict(r) for r in result.scalars().all()]

    async def get(
        self, entity: str, record_id: str, tenant_id: str | None = None
    ) -> dict[str, Any] | None:
        async with AsyncSession(self._engine) as session:
            record = await self._fetch(session, entity, record_id, tenant_id)
            return _to_dict(record) if record is not None else None

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        record = _build(entity, data)
        async with AsyncSession(self._engine) as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"{entity} conflicts with an existing record") from exc
            await session.refresh(record)
            row = _to_dict(record)
            logger.info(
                "record_created", entity=entity, id=row["id"], tenant_id=row["tenant_id"]
            )
            return row

    async def update(
        self,
        entity: str,
        record_id: str,
        changes: dict[str, Any],
        tenant_id: str | None = None,
    ) -> dict[str, Any] | None:
        async with AsyncSession(self._engine) as session:
            record = await self._fetch(session, entity, record_id, tenant_id)
            if record is None:
                return None
            merged = _build(entity, {**record.model_dump(), **changes})
            for key in changes:
                if key in type(record).model_fields and key not in _SERVER_FIELDS:
                    setattr(record, key, getattr(merged, key))
            record.updated_at = _utc_now()
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"{entity} conflicts with an existing record") from exc
            await session.refresh(record)
            return _to_dict(record)

    async def delete(self, entity: str, record_id: str, tenant_id: str | None = None) -> bool:
        async with AsyncSession(self._engine) as session:
            record = await self._fetch(session, entity, record_id, tenant_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
            logger.info("record_deleted", entity=entity, id=record_id)
            return True
