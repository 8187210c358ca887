"""ReconciliationService — the overdue sweep that revokes lapsed entitlement.

Two scans per run, each subject handled in its own transaction:

1. **Subscription overdue**: the latest subscription is active, its billing
   date has passed, and no completed payment arrived since.
2. **Monthly payment overdue**: a published subject that pays monthly, has
   no active subscription, and whose last completed payment is too old.

Demotion flips the latest completed payment back to pending, unpublishes
the subject, moves an entitled status to its pending counterpart and, for
long-overdue subscriptions, expires the subscription.  A subject that is
already unpublished and unentitled is left alone, so a second run with no
new billing events changes nothing.

A ``job_leases`` row keeps two runs from overlapping.  The run renews it
before each subject and stops if another holder has taken it over.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from entitlectl.domain.actors import SYSTEM_ACTOR
from entitlectl.domain.errors import ConflictError, EntitlementError
from entitlectl.domain.lifecycle import is_entitled, pending_counterpart
from entitlectl.domain.types import ChangeType, SubscriptionStatus
from entitlectl.infrastructure.database.leases import acquire_lease, release_lease, renew_lease
from entitlectl.infrastructure.repositories import ledger
from entitlectl.services._helpers import (
    cutoff_iso,
    days_between,
    parse_date,
    start_of_day,
    today_utc,
    utc_now,
)
from entitlectl.services.base import BaseService
from entitlectl.services.gateway import Capability
from entitlectl.services.result import ServiceError, ServiceResult
from entitlectl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger("entitlectl.reconcile")

LEASE_NAME = "reconcile"


@dataclass(frozen=True)
class _Candidate:
    """One subject selected by a scan, with the facts that selected it."""

    subject_id: str
    owner_id: str
    change_type: ChangeType
    description: str
    detail: dict[str, Any]
    subscription_id: int | None = None
    escalate: bool = False


class ReconciliationService(BaseService):
    """Batch demotion of subjects whose billing has lapsed."""

    @traced
    def run(
        self,
        *,
        today: date | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> ServiceResult:
        """Run one reconciliation pass.

        Args:
            today: Reference date for overdue checks (default: today, UTC).
            should_stop: Polled between subjects; returning True ends the
                pass early.  Subjects already committed stay committed.

        A storage error while scanning fails the whole run with
        ``STORAGE_ERROR``; errors on a single subject are reported per
        subject and the run continues.
        """
        op = "reconcile"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        config = self._store.settings.reconcile
        holder = f"{self._actor.id}:{uuid.uuid4().hex[:8]}"
        try:
            with self._store.transaction() as txn:
                acquired = acquire_lease(
                    txn.conn,
                    LEASE_NAME,
                    holder,
                    now=utc_now(),
                    ttl_seconds=config.lease_ttl_seconds,
                )
        except IntegrityError:
            acquired = False
        if not acquired:
            return ServiceResult.failure(
                op,
                ConflictError(
                    "Another reconciliation run holds the lease",
                    detail={"lease": LEASE_NAME},
                ),
            )

        try:
            summary = self._sweep(today or today_utc(), holder, should_stop)
        except EntitlementError as exc:
            return ServiceResult.failure(op, exc)
        except SQLAlchemyError as exc:
            log.warning("reconcile.scan_failed", error=str(exc))
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code="STORAGE_ERROR", message=str(exc)),
            )
        finally:
            with self._store.transaction() as txn:
                release_lease(txn.conn, LEASE_NAME, holder)

        log.info(
            "reconcile.complete",
            updated_count=summary["updated_count"],
            errors=len(summary["errors"]),
            aborted=summary["aborted"],
            lease_lost=summary["lease_lost"],
        )
        warnings = [f"{e['subject_id']}: {e['message']}" for e in summary["errors"]]
        if summary["lease_lost"]:
            warnings.append("Reconciliation lease was taken over by another run")
        if summary["aborted"]:
            warnings.append("Reconciliation stopped before all subjects were processed")
        return ServiceResult(ok=True, op=op, data=summary, warnings=warnings)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def _sweep(
        self,
        today: date,
        holder: str,
        should_stop: Callable[[], bool] | None,
    ) -> dict[str, Any]:
        updated: list[dict[str, Any]] = []
        errors: list[dict[str, Any]] = []
        seen: set[str] = set()
        aborted = lease_lost = False

        for scan in (self._overdue_subscriptions, self._lapsed_payments):
            with trace_span(scan.__name__.lstrip("_")):
                for candidate in scan(today):
                    if candidate.subject_id in seen:
                        continue
                    if should_stop is not None and should_stop():
                        aborted = True
                        break
                    if not self._renew(holder):
                        log.warning("reconcile.lease_lost", lease=LEASE_NAME, holder=holder)
                        aborted = lease_lost = True
                        break
                    seen.add(candidate.subject_id)
                    try:
                        change = self._demote(candidate)
                    except (EntitlementError, SQLAlchemyError) as exc:
                        message = exc.message if isinstance(exc, EntitlementError) else str(exc)
                        code = exc.code if isinstance(exc, EntitlementError) else "STORAGE_ERROR"
                        log.warning(
                            "reconcile.subject_failed",
                            subject_id=candidate.subject_id,
                            code=code,
                            error=message,
                        )
                        errors.append(
                            {"subject_id": candidate.subject_id, "code": code, "message": message}
                        )
                        continue
                    if change is not None:
                        updated.append(change)
            if aborted:
                break

        return {
            "updated_count": len(updated),
            "updated": updated,
            "errors": errors,
            "aborted": aborted,
            "lease_lost": lease_lost,
            "today": today.isoformat(),
        }

    def _renew(self, holder: str) -> bool:
        with self._store.transaction() as txn:
            return renew_lease(
                txn.conn,
                LEASE_NAME,
                holder,
                now=utc_now(),
                ttl_seconds=self._store.settings.reconcile.lease_ttl_seconds,
            )

    def _overdue_subscriptions(self, today: date) -> list[_Candidate]:
        escalate_after = self._store.settings.reconcile.escalate_after_days
        with self._store.engine.connect() as conn:
            rows = ledger.find_overdue_subscriptions(conn, today)

        candidates = []
        for row in rows:
            billing_date = parse_date(row.next_billing_date, field="next_billing_date")
            days_overdue = days_between(billing_date, today)
            candidates.append(
                _Candidate(
                    subject_id=row.subject_id,
                    owner_id=row.owner_id,
                    change_type=ChangeType.SUBSCRIPTION_OVERDUE,
                    description=(
                        f"Subscription payment overdue since {billing_date.isoformat()} "
                        f"({days_overdue} days)"
                    ),
                    detail={
                        "billing_date": billing_date.isoformat(),
                        "days_overdue": days_overdue,
                        "subscription_id": row.subscription_id,
                    },
                    subscription_id=row.subscription_id,
                    escalate=days_overdue > escalate_after,
                )
            )
        return candidates

    def _lapsed_payments(self, today: date) -> list[_Candidate]:
        overdue_after = self._store.settings.reconcile.overdue_after_days
        cutoff = cutoff_iso(start_of_day(today), overdue_after)
        with self._store.engine.connect() as conn:
            rows = ledger.find_lapsed_subjects(conn, cutoff)

        return [
            _Candidate(
                subject_id=row.subject_id,
                owner_id=row.owner_id,
                change_type=ChangeType.MONTHLY_PAYMENT_OVERDUE,
                description=(
                    f"Monthly payment overdue (last payment: {row.last_payment_date or 'none'})"
                ),
                detail={
                    "last_payment_date": row.last_payment_date,
                    "classification": row.classification,
                },
            )
            for row in rows
        ]

    def _demote(self, candidate: _Candidate) -> dict[str, Any] | None:
        """Apply one subject's demotion atomically. None when nothing changed."""
        with self._store.transaction() as txn:
            subject = txn.require_subject(candidate.subject_id)

            payment_id = None
            subject_values: dict[str, Any] = {}
            if subject.is_published or is_entitled(subject.payment_status):
                payment_id = txn.demote_latest_completed_payment(subject.id)
                if subject.is_published:
                    subject_values["is_published"] = 0
                target = pending_counterpart(subject.payment_status)
                if target != subject.payment_status:
                    subject_values["payment_status"] = str(target)
                if subject_values:
                    subject = txn.compare_and_set_subject(subject, **subject_values)

            expired = False
            if candidate.escalate and candidate.subscription_id is not None:
                expired = txn.set_subscription_status(
                    candidate.subscription_id,
                    str(SubscriptionStatus.EXPIRED),
                    expected=[str(SubscriptionStatus.ACTIVE)],
                )

            if not (subject_values or payment_id is not None or expired):
                return None

            detail = {
                **candidate.detail,
                "payment_id": payment_id,
                "unpublished": "is_published" in subject_values,
                "payment_status": str(subject.payment_status),
                "expired": expired,
            }
            txn.record_audit(
                self._audit_entry(
                    SYSTEM_ACTOR,
                    candidate.change_type,
                    subject.id,
                    candidate.description,
                    detail,
                )
            )

        log.info(
            "reconcile.subject_demoted",
            subject_id=candidate.subject_id,
            reason=str(candidate.change_type),
            expired=expired,
        )
        change: dict[str, Any] = {
            "subject_id": candidate.subject_id,
            "owner_id": candidate.owner_id,
            "reason": str(candidate.change_type),
            "expired": expired,
        }
        if candidate.change_type == ChangeType.SUBSCRIPTION_OVERDUE:
            change["billing_date"] = candidate.detail["billing_date"]
            change["days_overdue"] = candidate.detail["days_overdue"]
        else:
            change["last_payment_date"] = candidate.detail["last_payment_date"]
        return change
