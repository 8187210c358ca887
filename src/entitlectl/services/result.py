"""ServiceResult and ServiceError — the universal service contract.

All service-layer methods return ServiceResult; the CLI and any
embedding application consume this type.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from entitlectl.domain.errors import EntitlementError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: EntitlementError) -> ServiceError:
        return cls(code=exc.code, message=exc.message, detail=dict(exc.detail))


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"update_payment_status"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing spans).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(cls, op: str, exc: EntitlementError) -> ServiceResult:
        """Failed result carrying *exc* as its structured error."""
        return cls(ok=False, op=op, error=ServiceError.from_exception(exc))
