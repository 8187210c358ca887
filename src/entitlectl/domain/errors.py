"""Error taxonomy for entitlement operations.

Errors are raised inside a unit of work so the transaction rolls back,
then converted to a :class:`~entitlectl.services.result.ServiceError`
at the service boundary.  Only :class:`DependencyError` is retryable.
"""

from __future__ import annotations

from typing import Any


class EntitlementError(Exception):
    """Base class carrying a stable machine-readable ``code``."""

    code = "ENTITLEMENT_ERROR"
    retryable = False

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(EntitlementError):
    """Malformed input."""

    code = "VALIDATION_FAILED"


class AuthorizationError(EntitlementError):
    """Actor lacks the capability for the requested call."""

    code = "UNAUTHORIZED"


class NotFoundError(EntitlementError):
    """Unknown subject."""

    code = "NOT_FOUND"


class InvalidTransitionError(EntitlementError):
    """Requested transition is not in the allowed table."""

    code = "INVALID_TRANSITION"


class ConflictError(EntitlementError):
    """State changed since the precondition was read."""

    code = "CONFLICT"


class DependencyError(EntitlementError):
    """Artifact generator or notifier failed or timed out."""

    code = "DEPENDENCY_ERROR"
    retryable = True
