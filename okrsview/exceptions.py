"""Exception hierarchy for OKRs View."""

from __future__ import annotations

from typing import Any


class OkrsViewError(Exception):
    """Base exception for all OKRs View errors."""


class NoRoleAssignedError(OkrsViewError):
    """Raised when a user has no role at all (data-integrity violation)."""


class UnauthenticatedError(OkrsViewError):
    """Raised when there is no valid identity session."""


class UnauthorizedError(OkrsViewError):
    """Raised when an authenticated actor fails a role or tenant check."""

    def __init__(self, reason: str, code: str = "forbidden") -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code


class ValidationFailedError(OkrsViewError):
    """Raised when field validation rejects a payload."""

    def __init__(self, entity: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(f"Validation failed for {entity}")
        self.entity = entity
        self.errors = errors


class RecorderFailedError(OkrsViewError):
    """Raised when an audit entry cannot be written."""


class StorageError(OkrsViewError):
    """Raised when storage operations fail."""


class ConflictError(StorageError):
    """Raised when a write violates a uniqueness constraint."""


class IdentityProviderError(OkrsViewError):
    """Raised when the identity provider rejects or fails a call."""


class ConfigError(OkrsViewError, ValueError):
    """Raised when configuration is invalid."""
