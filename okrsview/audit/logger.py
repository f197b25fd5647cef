"""Audit recorder: immutable, insert-only audit trail.

The database sink uses its own session so audit entries survive caller
rollbacks. Details JSON is sanitized (sensitive fields stripped, 10KB max).
Recording is best-effort: failures are logged and counted, never raised into
the action that triggered them.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from okrsview.exceptions import RecorderFailedError
from okrsview.models.database import AuditLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Keys stripped from details before they are stored
_SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "new_password",
        "secret",
        "token",
        "access_token",
        "refresh_token",
        "api_key",
        "apikey",
        "authorization",
        "cookie",
        "session",
        "service_key",
    }
)

_MAX_DETAILS_BYTES = 10_240  # 10KB


def _sanitize_details(details: dict[str, Any] | None) -> str:
    """Strip sensitive fields and enforce the size limit."""
    sanitized = {k: v for k, v in (details or {}).items() if k.lower() not in _SENSITIVE_FIELDS}
    encoded = json.dumps(sanitized, default=str)
    if len(encoded) > _MAX_DETAILS_BYTES:
        encoded = json.dumps({"truncated": True, "size": len(encoded)})
    return encoded


@dataclass(frozen=True, slots=True)
class AuditEntry:
    user_id: str
    action: str
    entity_type: str
    tenant_id: str | None = None
    entity_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: str = ""
    request_id: str = ""

    def to_row(self) -> AuditLog:
        return AuditLog(
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            details_json=_sanitize_details(self.details),
            ip_address=self.ip_address,
            request_id=self.request_id,
        )


def _row_to_dict(row: AuditLog) -> dict[str, Any]:
    return {
        "id": row.id,
        "tenant_id": row.tenant_id,
        "user_id": row.user_id,
        "action": row.action,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "details": json.loads(row.details_json or "{}"),
        "ip_address": row.ip_address,
        "request_id": row.request_id,
        "created_at": row.created_at.isoformat(),
    }


class AuditSink(Protocol):
    async def write(self, entry: AuditEntry) -> str: ...

    async def query(
        self,
        *,
        tenant_id: str | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]: ...


class InMemoryAuditSink:
    """Process-local audit store for development and tests."""

    def __init__(self) -> None:
        self._rows: list[AuditLog] = []

    async def write(self, entry: AuditEntry) -> str:
        row = entry.to_row()
        self._rows.append(row)
        return row.id

    async def query(
        self,
        *,
        tenant_id: str | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        rows = [
            r
            for r in reversed(self._rows)
            if (tenant_id is None or r.tenant_id == tenant_id)
            and (action is None or r.action == action)
            and (entity_type is None or r.entity_type == entity_type)
        ]
        return [_row_to_dict(r) for r in rows[offset : offset + limit]]


class DatabaseAuditSink:
    """Insert-only audit sink with its own DB session."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def write(self, entry: AuditEntry) -> str:
        row = entry.to_row()
        entry_id = row.id
        async with AsyncSession(self._engine) as session:
            session.add(row)
            await session.commit()
        return entry_id

    async def query(
        self,
        *,
        tenant_id: str | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        stmt = select(AuditLog)
        if tenant_id is not None:
            stmt = stmt.where(col(AuditLog.tenant_id) == tenant_id)
        if action:
            stmt = stmt.where(col(AuditLog.action) == action)
        if entity_type:
            stmt = stmt.where(col(AuditLog.entity_type) == entity_type)
        stmt = stmt.order_by(col(AuditLog.created_at).desc()).limit(limit).offset(offset)
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            return [_row_to_dict(r) for r in result.scalars().all()]


class AuditRecorder:
    """Front door for audit writes.

    ``write`` raises RecorderFailedError and is used where the caller is the
    audit endpoint itself. ``record`` and ``record_later`` never raise.
    """

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task[str | None]] = set()
        self.failures = 0

    @property
    def sink(self) -> AuditSink:
        return self._sink

    async def write(self, entry: AuditEntry) -> str:
        try:
            entry_id = await self._sink.write(entry)
        except Exception as exc:
            logger.exception(
                "audit_write_failed",
                action=entry.action,
                entity_type=entry.entity_type,
                tenant_id=entry.tenant_id,
            )
            raise RecorderFailedError("Failed to create audit log") from exc
        logger.info(
            "audit_recorded",
            action=entry.action,
            entity_type=entry.entity_type,
            user_id=entry.user_id,
        )
        return entry_id

    async def record(self, entry: AuditEntry) -> str | None:
        """Write ``entry``; on failure log, count, and return None."""
        try:
            return await self.write(entry)
        except RecorderFailedError:
            # Audit must never break the request
            self.failures += 1
            logger.warning("audit_record_failed", action=entry.action, failures=self.failures)
            return None

    def record_later(self, entry: AuditEntry) -> asyncio.Task[str | None]:
        """Schedule ``record`` without waiting for it."""
        task = asyncio.get_running_loop().create_task(self.record(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled record to finish."""
        if self._pending:
            await asyncio.gather(*self._pending)
