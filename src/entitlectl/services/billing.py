"""BillingService — ledger writes made by the billing system.

Registration and ledger seeding for operators and tests.  Nothing here
goes through the transition validator: payment records and subscriptions
are billing facts, and the entitlement engine reacts to them.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError

from entitlectl.domain.errors import ConflictError, EntitlementError, ValidationError
from entitlectl.domain.types import (
    Classification,
    PaymentKind,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
    SubscriptionStatus,
)
from entitlectl.infrastructure.repositories import ledger
from entitlectl.infrastructure.repositories import subjects as subjects_repo
from entitlectl.services._helpers import new_id, parse_date, parse_timestamp
from entitlectl.services.base import BaseService
from entitlectl.services.gateway import Capability
from entitlectl.services.result import ServiceResult
from entitlectl.services.telemetry import traced

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


_E = TypeVar("_E")


def _coerce(enum_cls: type[_E], value: Any, field: str) -> _E:
    try:
        return enum_cls(value)  # type: ignore[call-arg]
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: {value!r}") from exc


class BillingService(BaseService):
    """Subject registration and ledger entries."""

    @traced
    def register_subject(
        self,
        owner_email: str,
        public_slug: str,
        *,
        classification: Classification | str = Classification.NEW,
        payment_status: PaymentStatus | str = PaymentStatus.UNUSED,
        display_name: str | None = None,
    ) -> ServiceResult:
        """Create a subject (unpublished) for a new or existing owner."""
        op = "register_subject"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            if not _EMAIL_RE.match(owner_email):
                raise ValidationError(f"Invalid e-mail address: {owner_email!r}")
            if not _SLUG_RE.match(public_slug):
                raise ValidationError(
                    "public_slug must be 2-63 lowercase letters, digits or hyphens",
                    detail={"public_slug": public_slug},
                )
            klass = _coerce(Classification, classification, "classification")
            status = _coerce(PaymentStatus, payment_status, "payment_status")

            subject_id = new_id("sub")
            with self._store.transaction() as txn:
                if subjects_repo.slug_taken(txn.conn, public_slug):
                    raise ConflictError(
                        f"public_slug already in use: {public_slug}",
                        detail={"public_slug": public_slug},
                    )
                owner = subjects_repo.find_owner_by_email(txn.conn, owner_email)
                if owner is None:
                    owner_id = new_id("own")
                    subjects_repo.insert_owner(
                        txn.conn, owner_id, owner_email, str(klass), display_name=display_name
                    )
                else:
                    owner_id = owner.id
                subjects_repo.insert_subject(
                    txn.conn, subject_id, owner_id, public_slug, str(status)
                )
                subject = txn.require_subject(subject_id)
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)
        except IntegrityError as exc:
            return ServiceResult.failure(
                op, ConflictError(f"Registration conflicts with existing data: {exc.orig}")
            )

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "id": subject.id,
                "owner_id": owner_id,
                "public_slug": subject.public_slug,
                "payment_status": str(subject.payment_status),
                "is_published": subject.is_published,
            },
        )

    @traced
    def open_bank_transfer(
        self,
        subject_id: str,
        kind: PaymentKind | str = PaymentKind.NEW_USER,
        amount: int = 0,
    ) -> ServiceResult:
        """Record a pending bank-transfer payment awaiting confirmation."""
        op = "open_bank_transfer"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            payment_kind = _coerce(PaymentKind, kind, "kind")
            with self._store.transaction() as txn:
                subject = txn.require_subject(subject_id)
                payment_id = ledger.insert_payment(
                    txn.conn,
                    subject_id,
                    kind=str(payment_kind),
                    method=str(PaymentMethod.BANK_TRANSFER),
                    status=str(PaymentRecordStatus.PENDING),
                    amount=amount,
                )
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "payment_id": payment_id,
                "subject_id": subject_id,
                "payment_status": str(subject.payment_status),
            },
        )

    @traced
    def record_payment(
        self,
        subject_id: str,
        *,
        kind: PaymentKind | str,
        method: PaymentMethod | str,
        paid_at: str,
        amount: int = 0,
    ) -> ServiceResult:
        """Record a completed payment exactly as the billing system saw it."""
        op = "record_payment"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            payment_kind = _coerce(PaymentKind, kind, "kind")
            payment_method = _coerce(PaymentMethod, method, "method")
            paid = parse_timestamp(paid_at, field="paid_at")
            with self._store.transaction() as txn:
                txn.require_subject(subject_id)
                payment_id = ledger.insert_payment(
                    txn.conn,
                    subject_id,
                    kind=str(payment_kind),
                    method=str(payment_method),
                    status=str(PaymentRecordStatus.COMPLETED),
                    amount=amount,
                    paid_at=paid.isoformat(),
                )
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        return ServiceResult(
            ok=True,
            op=op,
            data={"payment_id": payment_id, "subject_id": subject_id, "paid_at": paid.isoformat()},
        )

    @traced
    def open_subscription(
        self,
        subject_id: str,
        *,
        next_billing_date: date | str | None,
        amount: int | None = None,
        status: SubscriptionStatus | str = SubscriptionStatus.ACTIVE,
    ) -> ServiceResult:
        op = "open_subscription"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            sub_status = _coerce(SubscriptionStatus, status, "status")
            billing_date = (
                parse_date(next_billing_date, field="next_billing_date")
                if isinstance(next_billing_date, str)
                else next_billing_date
            )
            billing = self._store.settings.billing
            with self._store.transaction() as txn:
                txn.require_subject(subject_id)
                subscription_id = ledger.insert_subscription(
                    txn.conn,
                    subject_id,
                    next_billing_date=billing_date,
                    amount=billing.monthly_amount if amount is None else amount,
                    status=str(sub_status),
                    billing_cycle=billing.billing_cycle,
                )
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "subscription_id": subscription_id,
                "subject_id": subject_id,
                "status": str(sub_status),
                "next_billing_date": billing_date.isoformat() if billing_date else None,
            },
        )
