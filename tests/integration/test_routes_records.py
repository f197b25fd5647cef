"""Tenant-scoped CRUD over the generic entity routes."""

from unittest.mock import AsyncMock

import pytest

TENANT_A = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TENANT_B = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
OKR = {"title": "Grow revenue", "type": "objective"}


async def _seed_okr(services, tenant_id: str, title: str = "Grow revenue") -> dict:
    return await services.records.create(
        "okr", {"title": title, "type": "objective", "tenant_id": tenant_id}
    )


@pytest.mark.integration
class TestTenantScoping:
    async def test_member_sees_only_own_tenant(self, client, seeded, as_user) -> None:
        await _seed_okr(seeded, TENANT_A, "Ours")
        await _seed_okr(seeded, TENANT_B, "Theirs")
        response = await client.get("/api/okrs", headers=as_user("member-a"))
        assert response.status_code == 200
        assert [o["title"] for o in response.json()] == ["Ours"]

    async def test_requested_tenant_is_forced_to_own(self, client, seeded, as_user) -> None:
        await _seed_okr(seeded, TENANT_A, "Ours")
        await _seed_okr(seeded, TENANT_B, "Theirs")
        response = await client.get(
            "/api/okrs", params={"tenant_id": TENANT_B}, headers=as_user("member-a")
        )
        assert response.status_code == 200
        assert {o["tenant_id"] for o in response.json()} == {TENANT_A}

    async def test_other_tenant_record_is_not_found(self, client, seeded, as_user) -> None:
        theirs = await _seed_okr(seeded, TENANT_B)
        response = await client.get(f"/api/okrs/{theirs['id']}", headers=as_user("member-a"))
        assert response.status_code == 404
        assert response.json()["detail"] == "Okr not found"

    async def test_root_unscoped_sees_all(self, client, seeded, as_user) -> None:
        await _seed_okr(seeded, TENANT_A)
        await _seed_okr(seeded, TENANT_B)
        response = await client.get("/api/okrs", headers=as_user("root-user"))
        assert len(response.json()) == 2

    async def test_root_override_confines(self, client, seeded, as_user) -> None:
        await _seed_okr(seeded, TENANT_A)
        await _seed_okr(seeded, TENANT_B)
        headers = as_user("root-user")
        await client.put("/api/session/tenant", json={"tenant_id": TENANT_B}, headers=headers)
        response = await client.get("/api/okrs", headers=headers)
        assert {o["tenant_id"] for o in response.json()} == {TENANT_B}


@pytest.mark.integration
class TestCreate:
    async def test_leader_creates_okr_in_own_tenant(self, client, seeded, as_user) -> None:
        response = await client.post(
            "/api/okrs", json={**OKR, "tenant_id": TENANT_B}, headers=as_user("leader-a")
        )
        assert response.status_code == 201
        assert response.json()["tenant_id"] == TENANT_A

        await seeded.recorder.drain()
        rows = await seeded.recorder.sink.query(action="okr_created")
        assert rows[0]["entity_id"] == response.json()["id"]
        assert rows[0]["tenant_id"] == TENANT_A

    async def test_leader_denied_admin_action_without_persistence(
        self, client, seeded, as_user
    ) -> None:
        seeded.records = AsyncMock()
        response = await client.post(
            "/api/teams", json={"name": "Platform", "slug": "platform"}, headers=as_user("leader-a")
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"
        assert seeded.records.mock_calls == []

    async def test_validation_failure_skips_persistence(self, client, seeded, as_user) -> None:
        seeded.records = AsyncMock()
        response = await client.post(
            "/api/teams", json={"name": "A", "slug": "Invalid Slug!"}, headers=as_user("admin-a")
        )
        assert response.status_code == 422
        body = response.json()
        assert body["detail"] == "Validation failed"
        assert {e["field"] for e in body["errors"]} == {"name", "slug"}
        assert seeded.records.mock_calls == []

    async def test_root_unscoped_must_name_tenant(self, client, as_user) -> None:
        response = await client.post(
            "/api/teams", json={"name": "Platform", "slug": "platform"}, headers=as_user("root-user")
        )
        assert response.status_code == 422
        assert [e["field"] for e in response.json()["errors"]] == ["tenant_id"]

    async def test_root_unscoped_with_tenant(self, client, as_user) -> None:
        response = await client.post(
            "/api/teams",
            json={"name": "Platform", "slug": "platform", "tenant_id": TENANT_B},
            headers=as_user("root-user"),
        )
        assert response.status_code == 201
        assert response.json()["tenant_id"] == TENANT_B

    async def test_key_result_without_tenant_in_rules(self, client, seeded, as_user) -> None:
        okr = await _seed_okr(seeded, TENANT_A)
        response = await client.post(
            "/api/key-results",
            json={"title": "Close 10 deals", "okr_id": okr["id"], "target_value": 10},
            headers=as_user("leader-a"),
        )
        assert response.status_code == 201
        assert response.json()["tenant_id"] == TENANT_A


@pytest.mark.integration
class TestUpdateAndDelete:
    async def test_admin_renames_team_but_cannot_move_it(self, client, seeded, as_user) -> None:
        team = await seeded.records.create(
            "team", {"name": "Platform", "slug": "platform", "tenant_id": TENANT_A}
        )
        response = await client.put(
            f"/api/teams/{team['id']}",
            json={"name": "Core Platform", "tenant_id": TENANT_B},
            headers=as_user("admin-a"),
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Core Platform"
        assert response.json()["tenant_id"] == TENANT_A

    async def test_update_validates_changed_fields(self, client, seeded, as_user) -> None:
        okr = await _seed_okr(seeded, TENANT_A)
        response = await client.put(
            f"/api/okrs/{okr['id']}", json={"progress": 150}, headers=as_user("leader-a")
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "progress"

    async def test_member_updates_key_result(self, client, seeded, as_user) -> None:
        okr = await _seed_okr(seeded, TENANT_A)
        kr = await seeded.records.create(
            "key_result",
            {"title": "Close deals", "okr_id": okr["id"], "tenant_id": TENANT_A},
        )
        response = await client.put(
            f"/api/key-results/{kr['id']}",
            json={"current_value": 4},
            headers=as_user("member-a"),
        )
        assert response.status_code == 200
        assert response.json()["current_value"] == 4

    async def test_update_other_tenant_is_not_found(self, client, seeded, as_user) -> None:
        theirs = await _seed_okr(seeded, TENANT_B)
        response = await client.put(
            f"/api/okrs/{theirs['id']}", json={"title": "Hijacked"}, headers=as_user("leader-a")
        )
        assert response.status_code == 404

    async def test_member_cannot_delete_okr(self, client, seeded, as_user) -> None:
        okr = await _seed_okr(seeded, TENANT_A)
        response = await client.delete(f"/api/okrs/{okr['id']}", headers=as_user("member-a"))
        assert response.status_code == 403

    async def test_admin_deletes_okr(self, client, seeded, as_user) -> None:
        okr = await _seed_okr(seeded, TENANT_A)
        headers = as_user("admin-a")
        assert (await client.delete(f"/api/okrs/{okr['id']}", headers=headers)).status_code == 204
        assert (await client.get(f"/api/okrs/{okr['id']}", headers=headers)).status_code == 404

        await seeded.recorder.drain()
        rows = await seeded.recorder.sink.query(action="okr_deleted")
        assert rows[0]["entity_id"] == okr["id"]

    async def test_delete_other_tenant_is_not_found(self, client, seeded, as_user) -> None:
        theirs = await _seed_okr(seeded, TENANT_B)
        response = await client.delete(f"/api/okrs/{theirs['id']}", headers=as_user("admin-a"))
        assert response.status_code == 404
        assert await seeded.records.get("okr", theirs["id"]) is not None


async def _seed_team(services, tenant_id: str, slug: str = "platform") -> dict:
    return await services.records.create(
        "team", {"name": "Platform", "slug": slug, "tenant_id": tenant_id}
    )


@pytest.mark.integration
class TestParentReferences:
    async def test_key_result_on_other_tenant_okr_rejected(
        self, client, seeded, as_user
    ) -> None:
        theirs = await _seed_okr(seeded, TENANT_B)
        response = await client.post(
            "/api/key-results",
            json={"title": "Close deals", "okr_id": theirs["id"], "target_value": 10},
            headers=as_user("leader-a"),
        )
        assert response.status_code == 422
        error = response.json()["errors"][0]
        assert error["field"] == "okr_id"
        assert error["code"] == "VALIDATION_INVALID_REFERENCE"
        assert await seeded.records.list_all("key_result") == []

    async def test_sprint_on_other_tenant_team_rejected(self, client, seeded, as_user) -> None:
        theirs = await _seed_team(seeded, TENANT_B)
        response = await client.post(
            "/api/sprints",
            json={
                "name": "Sprint 1",
                "team_id": theirs["id"],
                "start_date": "2026-01-05",
                "end_date": "2026-01-19",
            },
            headers=as_user("leader-a"),
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "team_id"

    async def test_sprint_on_own_team(self, client, seeded, as_user) -> None:
        team = await _seed_team(seeded, TENANT_A)
        response = await client.post(
            "/api/sprints",
            json={
                "name": "Sprint 1",
                "team_id": team["id"],
                "start_date": "2026-01-05",
                "end_date": "2026-01-19",
            },
            headers=as_user("leader-a"),
        )
        assert response.status_code == 201
        assert response.json()["team_id"] == team["id"]

    async def test_update_cannot_repoint_to_other_tenant(self, client, seeded, as_user) -> None:
        ours = await _seed_okr(seeded, TENANT_A)
        theirs = await _seed_okr(seeded, TENANT_B, "Theirs")
        response = await client.put(
            f"/api/okrs/{ours['id']}",
            json={"parent_id": theirs["id"]},
            headers=as_user("leader-a"),
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "parent_id"
        assert (await seeded.records.get("okr", ours["id"]))["parent_id"] is None

    async def test_root_must_keep_parents_in_target_tenant(self, client, seeded, as_user) -> None:
        team = await _seed_team(seeded, TENANT_B)
        response = await client.post(
            "/api/okrs",
            json={**OKR, "team_id": team["id"], "tenant_id": TENANT_A},
            headers=as_user("root-user"),
        )
        assert response.status_code == 422

        okr = await seeded.records.create(
            "okr", {**OKR, "team_id": team["id"], "tenant_id": TENANT_B}
        )
        moved = await client.put(
            f"/api/okrs/{okr['id']}", json={"tenant_id": TENANT_A}, headers=as_user("root-user")
        )
        assert moved.status_code == 422
        assert moved.json()["errors"][0]["field"] == "team_id"


@pytest.mark.integration
class TestModelRejections:
    async def test_unparseable_date_on_create(self, client, seeded, as_user) -> None:
        team = await _seed_team(seeded, TENANT_A)
        response = await client.post(
            "/api/sprints",
            json={
                "name": "Sprint 1",
                "team_id": team["id"],
                "start_date": "tomorrow",
                "end_date": "2026-01-19",
            },
            headers=as_user("leader-a"),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["detail"] == "Validation failed"
        assert body["errors"][0]["field"] == "start_date"
        assert body["errors"][0]["code"] == "VALIDATION_INVALID_FORMAT"

    async def test_non_numeric_value_on_update(self, client, seeded, as_user) -> None:
        okr = await _seed_okr(seeded, TENANT_A)
        kr = await seeded.records.create(
            "key_result", {"title": "Close deals", "okr_id": okr["id"], "tenant_id": TENANT_A}
        )
        response = await client.put(
            f"/api/key-results/{kr['id']}",
            json={"target_value": "lots"},
            headers=as_user("member-a"),
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "target_value"
        assert (await seeded.records.get("key_result", kr["id"]))["target_value"] == 100
