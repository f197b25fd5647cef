"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _timestamp(**kwargs: Any) -> Any:
    """UTC timestamp column stored as TIMESTAMP WITH TIME ZONE."""
    return Field(default_factory=_utc_now, sa_type=DateTime(timezone=True), **kwargs)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Tenancy and identity
# ---------------------------------------------------------------------------


class Tenant(SQLModel, table=True):
    __tablename__ = "tenants"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class Profile(SQLModel, table=True):
    """Per-user record. Never hard-deleted; deactivate via ``is_active``."""

    __tablename__ = "profiles"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    name: str
    email: str = Field(index=True)
    avatar_url: str | None = None
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    user_id: str = Field(index=True)
    role: str = Field(default="member")  # root | admin | leader | member
    created_at: datetime = _timestamp()


class AuditLog(SQLModel, table=True):
    """Append-only audit trail. No code path updates or deletes rows."""

    __tablename__ = "audit_logs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str | None = Field(default=None, index=True)
    user_id: str = Field(index=True)
    action: str = Field(index=True)
    entity_type: str = Field(index=True)
    entity_id: str | None = None
    details_json: str = Field(default="{}")
    ip_address: str = ""
    request_id: str = ""
    created_at: datetime = _timestamp(index=True)


# ---------------------------------------------------------------------------
# Tenant-scoped business data (every table carries tenant_id)
# ---------------------------------------------------------------------------


class Team(SQLModel, table=True):
    __tablename__ = "teams"
    __table_args__ = (UniqueConstraint("tenant_id", "slug"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    name: str
    slug: str
    description: str | None = None
    color: str = Field(default="#6366f1")
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class Sprint(SQLModel, table=True):
    __tablename__ = "sprints"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    name: str
    start_date: date
    end_date: date
    planned_points: int = Field(default=0)
    completed_points: int = Field(default=0)
    capacity: int = Field(default=100)
    status: str = Field(default="planned")  # planned | active | completed
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class Okr(SQLModel, table=True):
    __tablename__ = "okrs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    team_id: str | None = Field(default=None, foreign_key="teams.id")
    parent_id: str | None = None
    title: str
    description: str | None = None
    type: str = Field(default="objective")
    progress: int = Field(default=0)
    status: str = Field(default="active")
    start_date: date | None = None
    end_date: date | None = None
    owner_id: str | None = None
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class KeyResult(SQLModel, table=True):
    __tablename__ = "key_results"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    okr_id: str = Field(foreign_key="okrs.id", index=True)
    title: str
    description: str | None = None
    target_value: float = Field(default=100)
    current_value: float = Field(default=0)
    unit: str = Field(default="%")
    progress: int = Field(default=0)
    owner_id: str | None = None
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class WikiCategory(SQLModel, table=True):
    __tablename__ = "wiki_categories"
    __table_args__ = (UniqueConstraint("tenant_id", "slug"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    name: str
    slug: str
    description: str | None = None
    sort_order: int = Field(default=0)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class WikiDocument(SQLModel, table=True):
    __tablename__ = "wiki_documents"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    category_id: str | None = Field(default=None, foreign_key="wiki_categories.id")
    title: str
    content: str = ""
    author_id: str | None = None
    is_deleted: bool = Field(default=False)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


# Entity name (as used by policies and validation rules) to table model
ENTITY_MODELS: dict[str, type[SQLModel]] = {
    "team": Team,
    "sprint": Sprint,
    "okr": Okr,
    "key_result": KeyResult,
    "wiki_category": WikiCategory,
    "wiki_document": WikiDocument,
}
