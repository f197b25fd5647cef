"""Shared application services and the FastAPI dependencies that expose them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import Request

from okrsview.access.context import AccessContext
from okrsview.audit.logger import (
    AuditEntry,
    AuditRecorder,
    DatabaseAuditSink,
    InMemoryAuditSink,
)
from okrsview.config.settings import Settings, get_settings
from okrsview.storage.repositories.profiles import (
    DatabaseProfileRepository,
    InMemoryProfileRepository,
)
from okrsview.storage.repositories.records import (
    DatabaseRecordRepository,
    InMemoryRecordRepository,
)
from okrsview.storage.repositories.tenants import (
    DatabaseTenantRepository,
    InMemoryTenantRepository,
)
from okrsview.validation.rules import RuleRegistry, default_registry
from okrsview.web.auth.identity import IdentityProviderClient
from okrsview.web.auth.session import SessionStore
from okrsview.web.middleware import RateLimiter, client_ip

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Everything a request handler may touch, built once per app."""

    profiles: Any
    tenants: Any
    records: Any
    recorder: AuditRecorder
    sessions: SessionStore
    identity: IdentityProviderClient
    rules: RuleRegistry = field(default_factory=lambda: default_registry)
    forgot_password_limiter: RateLimiter = field(default_factory=lambda: RateLimiter(3))
    reset_password_limiter: RateLimiter = field(default_factory=lambda: RateLimiter(5))


def build_services(settings: Settings | None = None) -> Services:
    """Create the in-memory or database-backed services based on settings."""
    settings = settings or get_settings()
    if settings.use_database:
        from okrsview.storage.database import get_engine

        engine = get_engine()
        profiles: Any = DatabaseProfileRepository(engine)
        tenants: Any = DatabaseTenantRepository(engine)
        records: Any = DatabaseRecordRepository(engine)
        sink: Any = DatabaseAuditSink(engine)
    else:
        profiles = InMemoryProfileRepository()
        tenants = InMemoryTenantRepository()
        records = InMemoryRecordRepository()
        sink = InMemoryAuditSink()

    logger.info("services_built", use_database=settings.use_database)
    return Services(
        profiles=profiles,
        tenants=tenants,
        records=records,
        recorder=AuditRecorder(sink),
        sessions=SessionStore(max_age=settings.session_max_age),
        identity=IdentityProviderClient(settings.identity_url, settings.identity_service_key),
        forgot_password_limiter=RateLimiter(settings.forgot_password_rate_limit),
        reset_password_limiter=RateLimiter(settings.reset_password_rate_limit),
    )


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services


def audit_entry(
    request: Request,
    context: AccessContext,
    action: str,
    entity_type: str,
    *,
    tenant_id: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditEntry:
    """Build an audit entry stamped with the caller, client IP and request id."""
    return AuditEntry(
        user_id=context.principal.user_id,
        action=action,
        entity_type=entity_type,
        tenant_id=tenant_id if tenant_id is not None else context.effective_tenant_id,
        entity_id=entity_id,
        details=details or {},
        ip_address=client_ip(request),
        request_id=getattr(request.state, "request_id", ""),
    )
