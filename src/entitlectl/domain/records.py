"""Read models for subjects, ledger rows, and audit entries.

Built from database rows via ``model_validate(row._mapping)``; integer
flags coerce to ``bool`` and status strings to their enums.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from entitlectl.domain.types import (
    Classification,
    PaymentKind,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
    SubscriptionStatus,
)


class Owner(BaseModel):
    model_config = {"frozen": True}

    id: str
    email: str
    display_name: str | None = None
    classification: Classification


class Subject(BaseModel):
    """A billable, publicly displayable record gated by entitlement."""

    model_config = {"frozen": True}

    id: str
    owner_id: str
    public_slug: str
    payment_status: PaymentStatus
    is_published: bool = False
    artifact_issued: bool = False
    artifact_ref: str | None = None
    version: int = 1


class Subscription(BaseModel):
    model_config = {"frozen": True}

    id: int
    subject_id: str
    status: SubscriptionStatus
    amount: int = 0
    next_billing_date: date | None = None
    cancelled_at: str | None = None


class PaymentRecord(BaseModel):
    model_config = {"frozen": True}

    id: int
    subject_id: str
    kind: PaymentKind
    method: PaymentMethod
    status: PaymentRecordStatus
    amount: int = 0
    paid_at: str | None = None


class AuditEntry(BaseModel):
    """One immutable row of the audit trail."""

    model_config = {"frozen": True}

    id: int | None = None
    actor_id: str
    actor_label: str
    change_type: str
    target_type: str
    target_id: str | None = None
    description: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    occurred_at: str
