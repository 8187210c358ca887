"""Closed enumerations for subjects, ledgers, actors, and the audit trail.

Status values are persisted as their string form, so renaming a member
value is a schema change.
"""

from __future__ import annotations

from enum import StrEnum


class PaymentStatus(StrEnum):
    """Entitlement-relevant payment state of a subject."""

    UNUSED = "UNUSED"
    BANK_PENDING = "BANK_PENDING"
    BANK_PAID = "BANK_PAID"
    CARD_PAID = "CARD_PAID"
    WIRE_PAID = "WIRE_PAID"


class SubscriptionStatus(StrEnum):
    """Lifecycle of a billing subscription."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    CANCELED = "canceled"
    EXPIRED = "expired"


class PaymentRecordStatus(StrEnum):
    """Settlement state of a single payment record."""

    PENDING = "pending"
    COMPLETED = "completed"


class PaymentKind(StrEnum):
    """What a payment record pays for."""

    NEW_USER = "new_user"
    EXISTING_USER = "existing_user"
    ADDON = "addon"


class PaymentMethod(StrEnum):
    """How a payment is settled."""

    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    WIRE = "wire"


class Classification(StrEnum):
    """Owner classification; drives the recurring-payment requirement."""

    NEW = "new"
    EXISTING = "existing"
    COMPLIMENTARY = "complimentary"


class ActorRole(StrEnum):
    """Capability level of whoever issues a call."""

    ADMIN = "admin"
    VIEWER = "viewer"
    SYSTEM = "system"


class ChangeType(StrEnum):
    """Audit trail change types."""

    PAYMENT_STATUS_UPDATED = "payment_status_updated"
    PUBLICATION_UPDATED = "publication_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_OVERDUE = "subscription_overdue"
    MONTHLY_PAYMENT_OVERDUE = "monthly_payment_overdue"


class SideEffect(StrEnum):
    """Outbox effect kinds."""

    ISSUE_ARTIFACT = "issue_artifact"
    SEND_NOTIFICATION = "send_notification"


class OutboxStatus(StrEnum):
    """Delivery state of an outbox row."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


# --- Derived groupings ---

ENTITLED_STATUSES: frozenset[PaymentStatus] = frozenset(
    {PaymentStatus.BANK_PAID, PaymentStatus.CARD_PAID, PaymentStatus.WIRE_PAID}
)

ENTITLEMENT_KINDS: frozenset[PaymentKind] = frozenset(
    {PaymentKind.NEW_USER, PaymentKind.EXISTING_USER}
)

RECURRING_CLASSIFICATIONS: frozenset[Classification] = frozenset(
    {Classification.NEW, Classification.EXISTING}
)

CANCELLABLE_SUBSCRIPTION_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.INCOMPLETE,
    }
)

PENDING_OUTBOX_STATUSES: frozenset[OutboxStatus] = frozenset(
    {OutboxStatus.PENDING, OutboxStatus.FAILED}
)
