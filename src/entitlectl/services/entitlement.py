"""EntitlementService — manual payment transitions, publication, and revocation.

Pipeline for every mutation: AUTHORIZE → VALIDATE → APPLY → AUDIT → RESPOND,
with APPLY and AUDIT sharing one transaction.  Each write re-checks the
subject's ``payment_status``/``is_published``/``version`` read at the top of
the unit of work; a concurrent change aborts with ``CONFLICT``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog

from entitlectl.domain.actors import SYSTEM_ACTOR
from entitlectl.domain.errors import (
    AuthorizationError,
    EntitlementError,
    InvalidTransitionError,
    ValidationError,
)
from entitlectl.domain.lifecycle import (
    Deny,
    is_entitled,
    issues_artifact,
    normalize_publication,
    pending_counterpart,
    validate_transition,
)
from entitlectl.domain.records import Subject
from entitlectl.domain.types import (
    CANCELLABLE_SUBSCRIPTION_STATUSES,
    ChangeType,
    PaymentMethod,
    PaymentStatus,
    SideEffect,
    SubscriptionStatus,
)
from entitlectl.services._helpers import (
    add_months,
    now_iso,
    parse_date,
    parse_timestamp,
    utc_now,
)
from entitlectl.services.base import BaseService
from entitlectl.services.gateway import Capability
from entitlectl.services.result import ServiceResult
from entitlectl.services.telemetry import trace_span, traced

log = structlog.get_logger("entitlectl.entitlement")

_DENIALS: dict[str, type[EntitlementError]] = {
    AuthorizationError.code: AuthorizationError,
    InvalidTransitionError.code: InvalidTransitionError,
}


def _subject_state(subject: Subject) -> dict[str, Any]:
    return {
        "id": subject.id,
        "owner_id": subject.owner_id,
        "public_slug": subject.public_slug,
        "payment_status": str(subject.payment_status),
        "is_published": subject.is_published,
        "artifact_issued": subject.artifact_issued,
        "artifact_ref": subject.artifact_ref,
        "version": subject.version,
    }


def _parse_status(value: PaymentStatus | str) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise ValidationError(
            f"Unknown payment status {value!r}. Expected one of: {allowed}"
        ) from exc


class EntitlementService(BaseService):
    """Administrator-facing entitlement mutations and reads."""

    # ------------------------------------------------------------------
    # Manual payment-status transition
    # ------------------------------------------------------------------

    @traced
    def update_payment_status(
        self,
        subject_id: str,
        requested_status: PaymentStatus | str,
        *,
        paid_at: str | None = None,
        expiration_date: str | None = None,
    ) -> ServiceResult:
        """Confirm a bank transfer: ``BANK_PENDING -> BANK_PAID``.

        Completes the most recent pending bank-transfer payment, renews the
        subscription, and queues artifact issuance when the subject has never
        had one.  Publication is left alone.

        Args:
            subject_id: Target subject.
            requested_status: Must be ``BANK_PAID``.
            paid_at: Settlement time, ``YYYY-MM-DD`` or
                ``YYYY-MM-DD HH:MM:SS`` (default: now).
            expiration_date: Last covered day, ``YYYY-MM-DD``; the next
                billing date is the day after.  Defaults to one month
                after *paid_at*.
        """
        op = "update_payment_status"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            requested = _parse_status(requested_status)
            paid = parse_timestamp(paid_at, field="paid_at") if paid_at else utc_now()
            expiration = (
                parse_date(expiration_date, field="expiration_date") if expiration_date else None
            )
            if expiration is not None and expiration < paid.date():
                raise ValidationError(
                    "expiration_date must not be before paid_at",
                    detail={"paid_at": paid.isoformat(), "expiration_date": expiration.isoformat()},
                )
            if expiration is not None:
                next_billing = expiration + timedelta(days=1)
            else:
                next_billing = add_months(paid.date(), 1)

            with self._store.transaction() as txn:
                subject = txn.require_subject(subject_id)
                verdict = validate_transition(subject.payment_status, requested, self._actor.role)
                if isinstance(verdict, Deny):
                    raise _DENIALS[verdict.code](
                        verdict.reason,
                        detail={
                            "subject_id": subject_id,
                            "current": str(subject.payment_status),
                            "requested": str(requested),
                        },
                    )

                queue_artifact = not subject.artifact_issued and issues_artifact(
                    subject.payment_status, requested
                )
                updated = txn.compare_and_set_subject(subject, payment_status=str(requested))
                payment_id = txn.complete_pending_payment(
                    subject_id, str(PaymentMethod.BANK_TRANSFER), paid.isoformat()
                )
                billing = self._store.settings.billing
                subscription_id, created = txn.renew_subscription(
                    subject_id,
                    next_billing,
                    amount=billing.monthly_amount,
                    billing_cycle=billing.billing_cycle,
                )
                outbox_id = None
                if queue_artifact:
                    outbox_id = txn.enqueue_side_effect(
                        subject_id,
                        SideEffect.ISSUE_ARTIFACT,
                        {"public_link": self._store.public_link(updated)},
                    )
                txn.record_audit(
                    self._audit_entry(
                        self._actor,
                        ChangeType.PAYMENT_STATUS_UPDATED,
                        subject_id,
                        f"Payment status changed from {subject.payment_status} to {requested}",
                        {
                            "from": str(subject.payment_status),
                            "to": str(requested),
                            "payment_id": payment_id,
                            "subscription_id": subscription_id,
                            "subscription_created": created,
                            "next_billing_date": next_billing.isoformat(),
                            "artifact_queued": outbox_id is not None,
                        },
                    )
                )
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        log.info(
            "payment_status.updated",
            subject_id=subject_id,
            actor_id=self._actor.id,
            from_status=str(subject.payment_status),
            to_status=str(requested),
        )

        warnings: list[str] = []
        if payment_id is None:
            warnings.append(f"No pending bank-transfer payment found for {subject_id}")

        data: dict[str, Any] = {
            "subject": _subject_state(updated),
            "previous_status": str(subject.payment_status),
            "payment_id": payment_id,
            "subscription_id": subscription_id,
            "next_billing_date": next_billing.isoformat(),
            "artifact_queued": outbox_id is not None,
        }
        if outbox_id is not None:
            data["side_effects"] = self._dispatch_inline(subject_id, warnings)
            data["subject"] = self._read_state(subject_id) or data["subject"]
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    # ------------------------------------------------------------------
    # Publication toggle
    # ------------------------------------------------------------------

    @traced
    def set_publication(self, subject_id: str, published: bool) -> ServiceResult:
        """Set ``is_published``, coercing to False unless the subject is entitled.

        The coerced value is returned; an audit entry is written only when the
        stored value actually changes.
        """
        op = "set_publication"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            with self._store.transaction() as txn:
                subject = txn.require_subject(subject_id)
                stored = normalize_publication(subject.payment_status, published)
                changed = stored != subject.is_published
                if changed:
                    subject = txn.compare_and_set_subject(subject, is_published=int(stored))
                    txn.record_audit(
                        self._audit_entry(
                            self._actor,
                            ChangeType.PUBLICATION_UPDATED,
                            subject_id,
                            "Published" if stored else "Unpublished",
                            {
                                "requested": published,
                                "is_published": stored,
                                "payment_status": str(subject.payment_status),
                            },
                        )
                    )
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        coerced = stored != published
        warnings = []
        if coerced:
            warnings.append(
                f"Subject {subject_id} is not entitled ({subject.payment_status}); "
                "publication kept off"
            )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "subject": _subject_state(subject),
                "is_published": stored,
                "requested": published,
                "coerced": coerced,
                "changed": changed,
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Cancel / stop usage
    # ------------------------------------------------------------------

    @traced
    def cancel(self, subject_id: str, *, reason: str | None = None) -> ServiceResult:
        """Revoke entitlement from any state.

        Cancels the latest cancellable subscription and forces ``is_published``
        off.  While the subject is still published or entitled, the most recent
        completed payment is demoted to pending and the status moves to its
        pending counterpart.  Nothing to revoke is a successful no-op, so a
        repeated cancel never touches older payments.
        """
        op = "cancel"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        try:
            with self._store.transaction() as txn:
                subject = txn.require_subject(subject_id)
                cancelled_at = now_iso()

                subscription_id = None
                subscription = txn.latest_subscription(subject_id)
                if (
                    subscription is not None
                    and subscription.status in CANCELLABLE_SUBSCRIPTION_STATUSES
                    and txn.set_subscription_status(
                        subscription.id,
                        str(SubscriptionStatus.CANCELED),
                        expected=[str(subscription.status)],
                        cancelled_at=cancelled_at,
                    )
                ):
                    subscription_id = subscription.id

                # A revoked subject keeps its remaining payment history.
                payment_id = None
                if subject.is_published or is_entitled(subject.payment_status):
                    payment_id = txn.demote_latest_completed_payment(subject_id)

                target_status = pending_counterpart(subject.payment_status)
                subject_values: dict[str, Any] = {}
                if subject.is_published:
                    subject_values["is_published"] = 0
                if target_status != subject.payment_status:
                    subject_values["payment_status"] = str(target_status)
                updated = subject
                if subject_values:
                    updated = txn.compare_and_set_subject(subject, **subject_values)

                changed = (
                    bool(subject_values) or subscription_id is not None or payment_id is not None
                )
                if changed:
                    txn.record_audit(
                        self._audit_entry(
                            self._actor,
                            ChangeType.SUBSCRIPTION_CANCELED,
                            subject_id,
                            f"Usage stopped{f': {reason}' if reason else ''}",
                            {
                                "reason": reason,
                                "subscription_id": subscription_id,
                                "payment_id": payment_id,
                                "from_status": str(subject.payment_status),
                                "to_status": str(updated.payment_status),
                                "was_published": subject.is_published,
                            },
                        )
                    )
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        if changed:
            log.info("subject.cancelled", subject_id=subject_id, actor_id=self._actor.id)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "subject": _subject_state(updated),
                "changed": changed,
                "subscription_id": subscription_id,
                "payment_id": payment_id,
                "cancelled_at": cancelled_at if subscription_id is not None else None,
            },
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @traced
    def get_subject(self, subject_id: str) -> ServiceResult:
        """Current entitlement state with its latest subscription and owner."""
        op = "get_subject"
        denied = self._authorize(op, Capability.READ)
        if denied is not None:
            return denied

        try:
            with self._store.transaction() as txn:
                subject = txn.require_subject(subject_id)
                owner = txn.get_owner(subject.owner_id)
                subscription = txn.latest_subscription(subject_id)
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)

        data: dict[str, Any] = {
            "subject": _subject_state(subject),
            "public_link": self._store.public_link(subject),
            "owner": owner.model_dump(mode="json") if owner else None,
            "subscription": subscription.model_dump(mode="json") if subscription else None,
        }
        return ServiceResult(ok=True, op=op, data=data)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _dispatch_inline(self, subject_id: str, warnings: list[str]) -> dict[str, Any]:
        """Deliver the subject's queued side effects right after commit.

        Delivery problems become warnings; the committed transition stands
        and the outbox keeps the row for retry.
        """
        settings = self._store.settings
        if settings.no_dispatch or not settings.outbox.dispatch_inline:
            return {"dispatched": False}

        from entitlectl.services.dispatcher import SideEffectDispatcher

        with trace_span("dispatch_inline"):
            result = SideEffectDispatcher(self._store, SYSTEM_ACTOR).dispatch(subject_id=subject_id)
        warnings.extend(result.warnings)
        return {"dispatched": True, **result.data}

    def _read_state(self, subject_id: str) -> dict[str, Any] | None:
        with self._store.transaction() as txn:
            subject = txn.get_subject(subject_id)
        return _subject_state(subject) if subject else None
