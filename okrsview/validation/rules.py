"""Field validation rules, keyed by entity name.

The table is data: register new entities with :meth:`RuleRegistry.register`
instead of adding cases to the validator.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class FieldRule:
    field: str
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    email: bool = False
    uuid: bool = False
    min: float | None = None
    max: float | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FieldRule:
        """Build a rule from the wire shape ``{"field": ..., "rules": {...}}``.

        Raises ValueError when a constraint has the wrong type or the pattern
        does not compile.
        """
        rules = raw.get("rules", {})
        if not isinstance(raw["field"], str) or not isinstance(rules, dict):
            raise ValueError("Rule needs a string field and a rules object")
        pattern = _optional(rules, "pattern", str)
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid pattern for {raw['field']}: {exc}") from exc
        return cls(
            field=raw["field"],
            required=bool(rules.get("required", False)),
            min_length=_optional(rules, "minLength", int),
            max_length=_optional(rules, "maxLength", int),
            pattern=pattern,
            email=bool(rules.get("email", False)),
            uuid=bool(rules.get("uuid", False)),
            min=_optional(rules, "min", (int, float)),
            max=_optional(rules, "max", (int, float)),
        )


def _optional(rules: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    value = rules.get(key)
    if value is not None and (isinstance(value, bool) or not isinstance(value, kind)):
        raise ValueError(f"{key} must be {getattr(kind, '__name__', 'a number')}")
    return value


_SLUG = "^[a-z0-9-]+$"

DEFAULT_RULES: dict[str, tuple[FieldRule, ...]] = {
    "okr": (
        FieldRule("title", required=True, min_length=3, max_length=200),
        FieldRule("tenant_id", required=True, uuid=True),
        FieldRule("type", required=True, pattern="^(objective|team)$"),
        FieldRule("status", pattern="^(active|at_risk|behind|completed)$"),
        FieldRule("progress", min=0, max=100),
    ),
    "key_result": (
        FieldRule("title", required=True, min_length=3, max_length=200),
        FieldRule("okr_id", required=True, uuid=True),
        FieldRule("target_value", required=True, min=0),
        FieldRule("current_value", min=0),
    ),
    "team": (
        FieldRule("name", required=True, min_length=2, max_length=100),
        FieldRule("tenant_id", required=True, uuid=True),
        FieldRule("slug", required=True, pattern=_SLUG, max_length=50),
    ),
    "sprint": (
        FieldRule("name", required=True, min_length=2, max_length=100),
        FieldRule("team_id", required=True, uuid=True),
        FieldRule("start_date", required=True),
        FieldRule("end_date", required=True),
        FieldRule("capacity", min=0, max=100),
        FieldRule("planned_points", min=0),
        FieldRule("completed_points", min=0),
    ),
    "wiki_document": (
        FieldRule("title", required=True, min_length=2, max_length=200),
        FieldRule("tenant_id", required=True, uuid=True),
        FieldRule("content", max_length=100_000),
    ),
    "wiki_category": (
        FieldRule("name", required=True, min_length=2, max_length=100),
        FieldRule("tenant_id", required=True, uuid=True),
        FieldRule("slug", required=True, pattern=_SLUG, max_length=50),
    ),
    "user": (
        FieldRule("name", required=True, min_length=2, max_length=100),
        FieldRule("email", required=True, email=True),
        FieldRule("role", required=True, pattern="^(admin|leader|member)$"),
    ),
    "tenant": (
        FieldRule("name", required=True, min_length=2, max_length=100),
        FieldRule("slug", required=True, pattern=_SLUG, max_length=50),
    ),
}


class RuleRegistry:
    """Mutable mapping of entity name to its field rules."""

    def __init__(self, rules: dict[str, tuple[FieldRule, ...]] | None = None) -> None:
        self._rules: dict[str, tuple[FieldRule, ...]] = dict(
            DEFAULT_RULES if rules is None else rules
        )

    def register(self, entity: str, rules: Iterable[FieldRule]) -> None:
        self._rules[entity] = tuple(rules)

    def get(self, entity: str) -> tuple[FieldRule, ...]:
        return self._rules.get(entity, ())

    def entities(self) -> list[str]:
        return sorted(self._rules)

    def __contains__(self, entity: object) -> bool:
        return entity in self._rules


default_registry = RuleRegistry()
