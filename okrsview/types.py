"""Enums and type aliases for OKRs View."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    ROOT = "root"
    ADMIN = "admin"
    LEADER = "leader"
    MEMBER = "member"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


# Single source of truth for role precedence (higher wins)
_ROLE_RANK: dict[Role, int] = {
    Role.ROOT: 4,
    Role.ADMIN: 3,
    Role.LEADER: 2,
    Role.MEMBER: 1,
}


class AuditAction(StrEnum):
    LOGIN = "login"
    LOGOUT = "logout"
    PASSWORD_RESET = "password_reset"
    OKR_CREATED = "okr_created"
    OKR_UPDATED = "okr_updated"
    OKR_DELETED = "okr_deleted"
    KEY_RESULT_CREATED = "key_result_created"
    KEY_RESULT_UPDATED = "key_result_updated"
    KEY_RESULT_DELETED = "key_result_deleted"
    TEAM_CREATED = "team_created"
    TEAM_UPDATED = "team_updated"
    TEAM_DELETED = "team_deleted"
    USER_CREATED = "user_created"
    USER_INVITED = "user_invited"
    USER_UPDATED = "user_updated"
    USER_DEACTIVATED = "user_deactivated"
    SPRINT_CREATED = "sprint_created"
    SPRINT_UPDATED = "sprint_updated"
    SPRINT_COMPLETED = "sprint_completed"
    SPRINT_DELETED = "sprint_deleted"
    WIKI_CREATED = "wiki_created"
    WIKI_UPDATED = "wiki_updated"
    WIKI_DELETED = "wiki_deleted"
    TENANT_CREATED = "tenant_created"
    TENANT_UPDATED = "tenant_updated"
    TENANT_DELETED = "tenant_deleted"
    TENANT_OVERRIDE_SET = "tenant_override_set"
    TENANT_OVERRIDE_CLEARED = "tenant_override_cleared"
    ROLE_CHANGED = "role_changed"
    ORG_ROLE_ASSIGNED = "org_role_assigned"
    ORG_ROLE_REMOVED = "org_role_removed"


class AuditEntityType(StrEnum):
    AUTH = "auth"
    OKR = "okr"
    KEY_RESULT = "key_result"
    TEAM = "team"
    USER = "user"
    SPRINT = "sprint"
    WIKI = "wiki"
    TENANT = "tenant"
