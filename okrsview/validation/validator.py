"""Schema-driven field validation."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from typing import Any

import structlog

from okrsview.validation.rules import FieldRule, RuleRegistry, default_registry

logger = structlog.get_logger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REQUIRED = "VALIDATION_REQUIRED"
MIN_LENGTH = "VALIDATION_MIN_LENGTH"
MAX_LENGTH = "VALIDATION_MAX_LENGTH"
INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
INVALID_REFERENCE = "VALIDATION_INVALID_REFERENCE"


@dataclass(frozen=True, slots=True)
class FieldError:
    field: str
    code: str
    message: str


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[FieldError] = field(default_factory=list)

    def error_fields(self) -> set[str]:
        return {e.field for e in self.errors}

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": [asdict(e) for e in self.errors]}


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_number(value: Any) -> float | None:
    """Numeric value of ``value``, or None when it is not a number."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _fmt(limit: float) -> str:
    return _as_text(float(limit))


def validate_field(name: str, value: Any, rule: FieldRule) -> FieldError | None:
    """Check one value against its rule. The first failing check wins."""
    if rule.required and _is_empty(value):
        return FieldError(name, REQUIRED, f"Field {name} is required")
    if _is_empty(value):
        return None

    text = _as_text(value)

    if rule.min_length and len(text) < rule.min_length:
        return FieldError(
            name, MIN_LENGTH, f"Field {name} must have at least {rule.min_length} characters"
        )
    if rule.max_length and len(text) > rule.max_length:
        return FieldError(
            name, MAX_LENGTH, f"Field {name} must have at most {rule.max_length} characters"
        )
    if rule.pattern and not re.search(rule.pattern, text):
        return FieldError(name, INVALID_FORMAT, f"Field {name} has invalid format")
    if rule.email and not EMAIL_RE.match(text):
        return FieldError(name, INVALID_FORMAT, f"Field {name} must be a valid email")
    if rule.uuid and not UUID_RE.match(text):
        return FieldError(name, INVALID_FORMAT, f"Field {name} must be a valid UUID")

    number = _as_number(value)
    if number is not None:
        if rule.min is not None and number < rule.min:
            return FieldError(name, INVALID_FORMAT, f"Field {name} must be at least {_fmt(rule.min)}")
        if rule.max is not None and number > rule.max:
            return FieldError(name, INVALID_FORMAT, f"Field {name} must be at most {_fmt(rule.max)}")

    return None


def validate(
    entity: str,
    data: dict[str, Any],
    rules: Iterable[FieldRule] | None = None,
    registry: RuleRegistry | None = None,
) -> ValidationResult:
    """Validate ``data`` against custom ``rules`` or the entity's registered rules."""
    if rules is None:
        registry = registry or default_registry
        if entity not in registry:
            logger.debug("validation_no_rules", entity=entity)
        rules = registry.get(entity)

    errors = [
        err
        for rule in rules
        if (err := validate_field(rule.field, data.get(rule.field), rule)) is not None
    ]
    if errors:
        logger.info("validation_failed", entity=entity, fields=[e.field for e in errors])
    return ValidationResult(valid=not errors, errors=errors)
