"""Per-entity access policies, mirroring the database row-level policies."""

from __future__ import annotations

from dataclasses import dataclass

from okrsview.access.gate import Operation
from okrsview.types import AuditAction, AuditEntityType, Role


@dataclass(frozen=True, slots=True)
class EntityPolicy:
    entity: str
    path: str
    read_role: Role
    create_role: Role
    update_role: Role
    delete_role: Role
    audit_type: AuditEntityType
    created_action: AuditAction
    updated_action: AuditAction
    deleted_action: AuditAction
    # (field, parent entity) pairs that must resolve inside the record's tenant
    parents: tuple[tuple[str, str], ...] = ()

    def operation(self, verb: str) -> Operation:
        role = {
            "list": self.read_role,
            "get": self.read_role,
            "create": self.create_role,
            "update": self.update_role,
            "delete": self.delete_role,
        }[verb]
        return Operation(name=f"{self.entity}.{verb}", min_role=role)


ENTITY_POLICIES: dict[str, EntityPolicy] = {
    p.entity: p
    for p in (
        EntityPolicy(
            entity="team",
            path="teams",
            read_role=Role.MEMBER,
            create_role=Role.ADMIN,
            update_role=Role.ADMIN,
            delete_role=Role.ADMIN,
            audit_type=AuditEntityType.TEAM,
            created_action=AuditAction.TEAM_CREATED,
            updated_action=AuditAction.TEAM_UPDATED,
            deleted_action=AuditAction.TEAM_DELETED,
        ),
        EntityPolicy(
            entity="sprint",
            path="sprints",
            read_role=Role.MEMBER,
            create_role=Role.LEADER,
            update_role=Role.LEADER,
            delete_role=Role.LEADER,
            audit_type=AuditEntityType.SPRINT,
            created_action=AuditAction.SPRINT_CREATED,
            updated_action=AuditAction.SPRINT_UPDATED,
            deleted_action=AuditAction.SPRINT_DELETED,
            parents=(("team_id", "team"),),
        ),
        EntityPolicy(
            entity="okr",
            path="okrs",
            read_role=Role.MEMBER,
            create_role=Role.LEADER,
            update_role=Role.LEADER,
            delete_role=Role.ADMIN,
            audit_type=AuditEntityType.OKR,
            created_action=AuditAction.OKR_CREATED,
            updated_action=AuditAction.OKR_UPDATED,
            deleted_action=AuditAction.OKR_DELETED,
            parents=(("team_id", "team"), ("parent_id", "okr")),
        ),
        # Members may record progress on key results
        EntityPolicy(
            entity="key_result",
            path="key-results",
            read_role=Role.MEMBER,
            create_role=Role.LEADER,
            update_role=Role.MEMBER,
            delete_role=Role.LEADER,
            audit_type=AuditEntityType.KEY_RESULT,
            created_action=AuditAction.KEY_RESULT_CREATED,
            updated_action=AuditAction.KEY_RESULT_UPDATED,
            deleted_action=AuditAction.KEY_RESULT_DELETED,
            parents=(("okr_id", "okr"),),
        ),
        EntityPolicy(
            entity="wiki_category",
            path="wiki-categories",
            read_role=Role.MEMBER,
            create_role=Role.LEADER,
            update_role=Role.LEADER,
            delete_role=Role.LEADER,
            audit_type=AuditEntityType.WIKI,
            created_action=AuditAction.WIKI_CREATED,
            updated_action=AuditAction.WIKI_UPDATED,
            deleted_action=AuditAction.WIKI_DELETED,
        ),
        EntityPolicy(
            entity="wiki_document",
            path="wiki-documents",
            read_role=Role.MEMBER,
            create_role=Role.LEADER,
            update_role=Role.LEADER,
            delete_role=Role.LEADER,
            audit_type=AuditEntityType.WIKI,
            created_action=AuditAction.WIKI_CREATED,
            updated_action=AuditAction.WIKI_UPDATED,
            deleted_action=AuditAction.WIKI_DELETED,
            parents=(("category_id", "wiki_category"),),
        ),
    )
}

# Non-entity operations
LIST_AUDIT_LOGS = Operation(name="audit.list", min_role=Role.ADMIN)
MANAGE_USERS = Operation(name="users.manage", min_role=Role.ADMIN)
MANAGE_TENANTS = Operation(name="tenants.manage", min_role=Role.ROOT, tenant_scoped=False)
SET_TENANT_OVERRIDE = Operation(
    name="session.tenant_override", min_role=Role.ROOT, tenant_scoped=False
)
