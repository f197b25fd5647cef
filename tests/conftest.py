"""Shared test fixtures."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from unittest.mock import AsyncMock

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")

from okrsview.config.settings import Settings, get_settings  # noqa: E402
from okrsview.types import Role  # noqa: E402
from okrsview.web.app import create_app  # noqa: E402
from okrsview.web.auth.identity import IdentityProviderClient  # noqa: E402
from okrsview.web.dependencies import Services, build_services  # noqa: E402

TENANT_A = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TENANT_B = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"

# user_id -> (tenant, role)
USERS: dict[str, tuple[str | None, Role]] = {
    "root-user": (None, Role.ROOT),
    "admin-a": (TENANT_A, Role.ADMIN),
    "leader-a": (TENANT_A, Role.LEADER),
    "member-a": (TENANT_A, Role.MEMBER),
    "admin-b": (TENANT_B, Role.ADMIN),
}


def make_token(
    sub: str,
    session_id: str | None = None,
    expires_in: int = 3600,
    secret: str | None = None,
) -> str:
    settings = get_settings()
    payload = {
        "sub": sub,
        "email": f"{sub}@example.com",
        "session_id": session_id or f"session-{sub}",
        "aud": settings.jwt_audience,
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm="HS256")


def auth_headers(sub: str, session_id: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, session_id)}"}


@pytest.fixture()
def services() -> Services:
    """In-memory services with the identity provider mocked out."""
    built = build_services(Settings(use_database=False))
    built.identity = AsyncMock(spec=IdentityProviderClient)
    built.identity.invite_user.return_value = "invited-user"
    return built


@pytest.fixture()
async def seeded(services: Services) -> Services:
    """Two tenants and one user per role."""
    await services.tenants.create(name="Tenant A", slug="tenant-a", tenant_id=TENANT_A)
    await services.tenants.create(name="Tenant B", slug="tenant-b", tenant_id=TENANT_B)
    for user_id, (tenant_id, role) in USERS.items():
        await services.profiles.register(
            user_id=user_id,
            email=f"{user_id}@example.com",
            name=user_id,
            tenant_id=tenant_id,
            role=role,
        )
    return services


@pytest.fixture()
def app(seeded: Services):
    """Create a fresh app instance for tests."""
    return create_app(services=seeded)


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture()
def as_user() -> Callable[..., dict[str, str]]:
    return auth_headers


@pytest.fixture()
def mint_token() -> Callable[..., str]:
    return make_token


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    import okrsview.models.database  # noqa: F401

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()
