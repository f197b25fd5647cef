from __future__ import annotations

import pytest

from okrsview.access.context import AccessContext, Principal
from okrsview.access.tenant import (
    TenantScoper,
    can_access_tenant,
    get_effective_tenant_id,
    is_valid_tenant_id,
    sanitize_tenant_id,
)
from okrsview.types import Role
from okrsview.web.auth.session import SessionStore

TENANT_A = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
OVERRIDE = "11111111-1111-1111-1111-111111111111"


def _principal(role: Role, tenant_id: str | None = TENANT_A) -> Principal:
    return Principal(
        user_id=f"{role.value}-user",
        email=f"{role.value}@example.com",
        profile_id="p1",
        name=role.value,
        tenant_id=tenant_id,
        roles=frozenset({role}),
    )


class _BrokenSlot:
    def get(self) -> str | None:
        raise RuntimeError("storage unavailable")

    def set(self, value: str) -> None:
        raise RuntimeError("storage unavailable")

    def remove(self) -> None:
        raise RuntimeError("storage unavailable")


@pytest.mark.unit
class TestTenantIdFormat:
    def test_valid_uuid(self) -> None:
        assert is_valid_tenant_id(OVERRIDE)
        assert is_valid_tenant_id(OVERRIDE.upper())

    @pytest.mark.parametrize("value", ["not-a-uuid", "", "1111", None, 42])
    def test_invalid(self, value: object) -> None:
        assert not is_valid_tenant_id(value)

    def test_sanitize_trims(self) -> None:
        assert sanitize_tenant_id(f"  {OVERRIDE} ") == OVERRIDE

    def test_sanitize_rejects(self) -> None:
        assert sanitize_tenant_id("'; DROP TABLE tenants; --") is None


@pytest.mark.unit
class TestEffectiveTenant:
    @pytest.mark.parametrize("role", [Role.ADMIN, Role.LEADER, Role.MEMBER])
    @pytest.mark.parametrize("override", [None, OVERRIDE, "not-a-uuid"])
    def test_non_root_always_own_tenant(self, role: Role, override: str | None) -> None:
        assert get_effective_tenant_id(_principal(role), override) == TENANT_A

    def test_root_without_override_is_all_tenants(self) -> None:
        assert get_effective_tenant_id(_principal(Role.ROOT, None), None) is None

    def test_root_with_override(self) -> None:
        assert get_effective_tenant_id(_principal(Role.ROOT, None), OVERRIDE) == OVERRIDE

    def test_root_with_malformed_stored_value(self) -> None:
        assert get_effective_tenant_id(_principal(Role.ROOT, None), "garbage") is None

    def test_can_access_tenant(self) -> None:
        assert can_access_tenant(_principal(Role.MEMBER), TENANT_A)
        assert not can_access_tenant(_principal(Role.MEMBER), OVERRIDE)
        assert can_access_tenant(_principal(Role.ROOT, None), OVERRIDE)

    def test_context_ignores_override_for_non_root(self) -> None:
        context = AccessContext(principal=_principal(Role.ADMIN), tenant_override=OVERRIDE)
        assert context.effective_tenant_id == TENANT_A
        assert not context.can_query_all_tenants


@pytest.mark.unit
class TestTenantScoper:
    def _scoper(self) -> tuple[TenantScoper, SessionStore]:
        store = SessionStore()
        return TenantScoper(store.slot("session-1")), store

    def test_no_override_initially(self) -> None:
        scoper, _ = self._scoper()
        assert scoper.current_override() is None

    def test_set_and_read(self) -> None:
        scoper, _ = self._scoper()
        assert scoper.set_override(OVERRIDE) is True
        assert scoper.current_override() == OVERRIDE

    def test_malformed_keeps_previous_value(self) -> None:
        scoper, _ = self._scoper()
        scoper.set_override(OVERRIDE)
        assert scoper.set_override("not-a-uuid") is False
        assert scoper.current_override() == OVERRIDE

    def test_malformed_with_nothing_stored(self) -> None:
        scoper, _ = self._scoper()
        assert scoper.set_override("not-a-uuid") is False
        assert scoper.current_override() is None

    def test_clear_is_idempotent(self) -> None:
        scoper, store = self._scoper()
        scoper.set_override(OVERRIDE)
        scoper.clear_override()
        once = (scoper.current_override(), store.get("session-1", "okrs_view_selected_tenant"))
        scoper.clear_override()
        twice = (scoper.current_override(), store.get("session-1", "okrs_view_selected_tenant"))
        assert once == twice == (None, None)

    def test_sessions_are_isolated(self) -> None:
        store = SessionStore()
        TenantScoper(store.slot("s1")).set_override(OVERRIDE)
        assert TenantScoper(store.slot("s2")).current_override() is None

    def test_storage_failures_are_absorbed(self) -> None:
        scoper = TenantScoper(_BrokenSlot())
        assert scoper.current_override() is None
        assert scoper.set_override(OVERRIDE) is False
        scoper.clear_override()
