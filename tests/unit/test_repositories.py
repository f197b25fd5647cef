"""Profile, tenant and record repositories: in-memory and SQLite-backed."""

from __future__ import annotations

from datetime import UTC

import pytest

from okrsview.exceptions import ConflictError, StorageError, ValidationFailedError
from okrsview.models.database import ENTITY_MODELS, AuditLog, Profile, Tenant, _utc_now
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
from okrsview.types import Role

TENANT_A = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TENANT_B = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"


@pytest.fixture(params=["memory", "database"])
def profile_repo(request, async_engine):
    if request.param == "memory":
        return InMemoryProfileRepository()
    return DatabaseProfileRepository(async_engine)


@pytest.fixture(params=["memory", "database"])
def tenant_repo(request, async_engine):
    if request.param == "memory":
        return InMemoryTenantRepository()
    return DatabaseTenantRepository(async_engine)


@pytest.fixture(params=["memory", "database"])
def record_repo(request, async_engine):
    if request.param == "memory":
        return InMemoryRecordRepository()
    return DatabaseRecordRepository(async_engine)


@pytest.mark.unit
class TestProfileRepository:
    async def test_register_defaults_to_member(self, profile_repo) -> None:
        principal = await profile_repo.register("u1", "u1@example.com", tenant_id=TENANT_A)
        assert principal.roles == frozenset({Role.MEMBER})
        assert principal.tenant_id == TENANT_A
        assert principal.name == "u1@example.com"

    async def test_register_twice_conflicts(self, profile_repo) -> None:
        await profile_repo.register("u1", "u1@example.com")
        with pytest.raises(ConflictError):
            await profile_repo.register("u1", "other@example.com")

    async def test_get_principal(self, profile_repo) -> None:
        await profile_repo.register("u1", "u1@example.com", name="Ana", role=Role.LEADER)
        principal = await profile_repo.get_principal("u1")
        assert principal is not None
        assert principal.name == "Ana"
        assert principal.role is Role.LEADER
        assert await profile_repo.get_principal("missing") is None

    async def test_set_roles_replaces(self, profile_repo) -> None:
        await profile_repo.register("u1", "u1@example.com")
        await profile_repo.set_roles("u1", frozenset({Role.ADMIN, Role.LEADER}))
        principal = await profile_repo.get_principal("u1")
        assert principal.roles == frozenset({Role.ADMIN, Role.LEADER})
        assert principal.role is Role.ADMIN

    async def test_list_profiles_by_tenant(self, profile_repo) -> None:
        await profile_repo.register("u1", "u1@example.com", tenant_id=TENANT_A, role=Role.ADMIN)
        await profile_repo.register("u2", "u2@example.com", tenant_id=TENANT_B)
        listed = await profile_repo.list_profiles(tenant_id=TENANT_A)
        assert [p["user_id"] for p in listed] == ["u1"]
        assert listed[0]["roles"] == ["admin"]
        assert len(await profile_repo.list_profiles()) == 2

    async def test_deactivate(self, profile_repo) -> None:
        await profile_repo.register("u1", "u1@example.com")
        assert await profile_repo.deactivate("u1") is True
        principal = await profile_repo.get_principal("u1")
        assert principal.is_active is False
        assert await profile_repo.deactivate("missing") is False


@pytest.mark.unit
class TestTenantRepository:
    async def test_create_and_get(self, tenant_repo) -> None:
        tenant = await tenant_repo.create("Acme", "acme", tenant_id=TENANT_A)
        assert tenant["id"] == TENANT_A
        assert (await tenant_repo.get(TENANT_A))["slug"] == "acme"
        assert await tenant_repo.get(TENANT_B) is None

    async def test_duplicate_slug_conflicts(self, tenant_repo) -> None:
        await tenant_repo.create("Acme", "acme")
        with pytest.raises(ConflictError):
            await tenant_repo.create("Acme 2", "acme")

    async def test_list_sorted_by_name(self, tenant_repo) -> None:
        await tenant_repo.create("Zeta", "zeta")
        await tenant_repo.create("Alpha", "alpha")
        assert [t["name"] for t in await tenant_repo.list_all()] == ["Alpha", "Zeta"]

    async def test_update(self, tenant_repo) -> None:
        await tenant_repo.create("Acme", "acme", tenant_id=TENANT_A)
        updated = await tenant_repo.update(TENANT_A, name="Acme Corp", is_active=False)
        assert updated["name"] == "Acme Corp"
        assert updated["is_active"] is False
        assert await tenant_repo.update(TENANT_B, name="x") is None

    async def test_delete(self, tenant_repo) -> None:
        await tenant_repo.create("Acme", "acme", tenant_id=TENANT_A)
        assert await tenant_repo.delete(TENANT_A) is True
        assert await tenant_repo.delete(TENANT_A) is False


@pytest.mark.unit
class TestRecordRepository:
    async def test_create_and_scoped_get(self, record_repo) -> None:
        team = await record_repo.create(
            "team", {"name": "Platform", "slug": "platform", "tenant_id": TENANT_A}
        )
        assert team["id"]
        assert (await record_repo.get("team", team["id"], tenant_id=TENANT_A))["name"] == "Platform"
        assert await record_repo.get("team", team["id"], tenant_id=TENANT_B) is None
        assert await record_repo.get("team", team["id"]) is not None

    async def test_list_scoped(self, record_repo) -> None:
        await record_repo.create("team", {"name": "A1", "slug": "a1", "tenant_id": TENANT_A})
        await record_repo.create("team", {"name": "B1", "slug": "b1", "tenant_id": TENANT_B})
        assert [t["name"] for t in await record_repo.list_all("team", tenant_id=TENANT_A)] == ["A1"]
        assert len(await record_repo.list_all("team")) == 2

    async def test_server_fields_ignored(self, record_repo) -> None:
        team = await record_repo.create(
            "team", {"id": "chosen", "name": "A1", "slug": "a1", "tenant_id": TENANT_A}
        )
        assert team["id"] != "chosen"

    async def test_update_scoped(self, record_repo) -> None:
        team = await record_repo.create(
            "team", {"name": "A1", "slug": "a1", "tenant_id": TENANT_A}
        )
        assert await record_repo.update("team", team["id"], {"name": "x"}, TENANT_B) is None
        updated = await record_repo.update("team", team["id"], {"name": "Renamed"}, TENANT_A)
        assert updated["name"] == "Renamed"
        assert updated["slug"] == "a1"

    async def test_delete_scoped(self, record_repo) -> None:
        team = await record_repo.create(
            "team", {"name": "A1", "slug": "a1", "tenant_id": TENANT_A}
        )
        assert await record_repo.delete("team", team["id"], tenant_id=TENANT_B) is False
        assert await record_repo.delete("team", team["id"], tenant_id=TENANT_A) is True
        assert await record_repo.get("team", team["id"]) is None

    async def test_unknown_entity(self, record_repo) -> None:
        with pytest.raises(StorageError):
            await record_repo.list_all("dashboard")

    async def test_okr_defaults(self, record_repo) -> None:
        okr = await record_repo.create("okr", {"title": "Grow", "tenant_id": TENANT_A})
        assert okr["status"] == "active"
        assert okr["progress"] == 0

    async def test_unparseable_field_is_a_validation_failure(self, record_repo) -> None:
        with pytest.raises(ValidationFailedError) as excinfo:
            await record_repo.create(
                "sprint",
                {
                    "name": "Sprint 1",
                    "team_id": "t1",
                    "tenant_id": TENANT_A,
                    "start_date": "tomorrow",
                    "end_date": "2026-01-19",
                },
            )
        assert [e["field"] for e in excinfo.value.errors] == ["start_date"]

    async def test_update_rejects_unparseable_field(self, record_repo) -> None:
        okr = await record_repo.create("okr", {"title": "Grow", "tenant_id": TENANT_A})
        with pytest.raises(ValidationFailedError):
            await record_repo.update("okr", okr["id"], {"progress": "most"}, TENANT_A)
        assert (await record_repo.get("okr", okr["id"]))["progress"] == 0


@pytest.mark.unit
class TestTimestamps:
    def test_utc_now_is_timezone_aware(self) -> None:
        assert _utc_now().tzinfo is UTC

    @pytest.mark.parametrize(
        "model", [*ENTITY_MODELS.values(), AuditLog, Profile, Tenant], ids=lambda m: m.__name__
    )
    def test_columns_store_timezone(self, model) -> None:
        assert model.__table__.c.created_at.type.timezone is True
