"""Subscription and payment ledger queries.

Reads drive overdue detection for the reconciliation sweep.  The only
writes the entitlement engine performs on the ledgers are flipping a
completed payment back to pending and moving a subscription's status;
the insert helpers stand in for the external billing system.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, insert, or_, select, update

from entitlectl.domain.records import PaymentRecord, Subscription
from entitlectl.domain.types import (
    ENTITLEMENT_KINDS,
    RECURRING_CLASSIFICATIONS,
    PaymentRecordStatus,
    SubscriptionStatus,
)
from entitlectl.infrastructure.database.schema import owners, payments, subjects, subscriptions
from entitlectl.services._helpers import now_iso

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy import Connection
    from sqlalchemy.engine import Row

_ENTITLEMENT_KINDS = sorted(str(k) for k in ENTITLEMENT_KINDS)
_RECURRING = sorted(str(c) for c in RECURRING_CLASSIFICATIONS)
_COMPLETED = str(PaymentRecordStatus.COMPLETED)
_PENDING = str(PaymentRecordStatus.PENDING)
_ACTIVE = str(SubscriptionStatus.ACTIVE)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _latest_subscription_id(subject_col: Any) -> Any:
    """Correlated scalar subquery: id of the most recent subscription."""
    latest = subscriptions.alias("latest")
    return (
        select(latest.c.id)
        .where(latest.c.subject_id == subject_col)
        .order_by(latest.c.created.desc(), latest.c.id.desc())
        .limit(1)
        .scalar_subquery()
    )


def latest_subscription(conn: Connection, subject_id: str) -> Subscription | None:
    """The authoritative (most recent) subscription for a subject."""
    row = conn.execute(
        select(subscriptions)
        .where(subscriptions.c.subject_id == subject_id)
        .order_by(subscriptions.c.created.desc(), subscriptions.c.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return None
    return Subscription.model_validate(dict(row._mapping))


def list_payments(conn: Connection, subject_id: str) -> list[PaymentRecord]:
    rows = conn.execute(
        select(payments).where(payments.c.subject_id == subject_id).order_by(payments.c.id)
    ).fetchall()
    return [PaymentRecord.model_validate(dict(r._mapping)) for r in rows]


def find_overdue_subscriptions(
    conn: Connection,
    today: date,
    *,
    subject_id: str | None = None,
) -> list[Row[Any]]:
    """Active subscriptions past their billing date with no payment since.

    A subscription qualifies when it is the subject's most recent one, its
    ``next_billing_date`` is before *today*, and no completed
    entitlement-bearing payment has ``paid_at`` on/after that date.
    """
    paid_since = (
        select(payments.c.id)
        .where(
            payments.c.subject_id == subscriptions.c.subject_id,
            payments.c.status == _COMPLETED,
            payments.c.paid_at >= subscriptions.c.next_billing_date,
            payments.c.kind.in_(_ENTITLEMENT_KINDS),
        )
        .exists()
    )
    stmt = (
        select(
            subscriptions.c.id.label("subscription_id"),
            subscriptions.c.subject_id,
            subscriptions.c.next_billing_date,
            subjects.c.owner_id,
        )
        .join(subjects, subjects.c.id == subscriptions.c.subject_id)
        .where(
            subscriptions.c.status == _ACTIVE,
            subscriptions.c.next_billing_date.is_not(None),
            subscriptions.c.next_billing_date < today.isoformat(),
            subscriptions.c.id == _latest_subscription_id(subscriptions.c.subject_id),
            ~paid_since,
        )
        .order_by(subscriptions.c.next_billing_date, subscriptions.c.id)
    )
    if subject_id is not None:
        stmt = stmt.where(subscriptions.c.subject_id == subject_id)
    return list(conn.execute(stmt).fetchall())


def find_lapsed_subjects(
    conn: Connection,
    cutoff: str,
    *,
    subject_id: str | None = None,
) -> list[Row[Any]]:
    """Published, recurring-payment subjects with no active subscription
    whose latest completed payment is older than *cutoff* or absent.

    Only subjects with at least one entitlement-bearing payment on record
    (in any state) are considered.
    """
    last_paid = func.max(payments.c.paid_at)
    has_active = (
        select(subscriptions.c.id)
        .where(subscriptions.c.subject_id == subjects.c.id, subscriptions.c.status == _ACTIVE)
        .exists()
    )
    history = payments.alias("history")
    has_history = (
        select(history.c.id)
        .where(history.c.subject_id == subjects.c.id, history.c.kind.in_(_ENTITLEMENT_KINDS))
        .exists()
    )
    stmt = (
        select(
            subjects.c.id.label("subject_id"),
            subjects.c.owner_id,
            owners.c.classification,
            last_paid.label("last_payment_date"),
        )
        .select_from(
            subjects.join(owners, owners.c.id == subjects.c.owner_id).outerjoin(
                payments,
                and_(
                    payments.c.subject_id == subjects.c.id,
                    payments.c.status == _COMPLETED,
                    payments.c.kind.in_(_ENTITLEMENT_KINDS),
                ),
            )
        )
        .where(
            owners.c.classification.in_(_RECURRING),
            subjects.c.is_published == 1,
            ~has_active,
            has_history,
        )
        .group_by(subjects.c.id, subjects.c.owner_id, owners.c.classification)
        .having(or_(last_paid.is_(None), last_paid < cutoff))
        .order_by(subjects.c.id)
    )
    if subject_id is not None:
        stmt = stmt.where(subjects.c.id == subject_id)
    return list(conn.execute(stmt).fetchall())


# ---------------------------------------------------------------------------
# Entitlement-engine writes
# ---------------------------------------------------------------------------


def demote_latest_completed_payment(conn: Connection, subject_id: str) -> int | None:
    """Flip the most recent completed entitlement payment back to pending.

    Returns the payment id, or None if there was nothing to demote.
    """
    row = conn.execute(
        select(payments.c.id)
        .where(
            payments.c.subject_id == subject_id,
            payments.c.status == _COMPLETED,
            payments.c.kind.in_(_ENTITLEMENT_KINDS),
        )
        .order_by(payments.c.paid_at.desc(), payments.c.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return None
    conn.execute(
        update(payments)
        .where(payments.c.id == row.id, payments.c.status == _COMPLETED)
        .values(status=_PENDING, paid_at=None)
    )
    return int(row.id)


def complete_pending_payment(
    conn: Connection,
    subject_id: str,
    method: str,
    paid_at: str,
) -> int | None:
    """Mark the most recent pending payment made by *method* as completed."""
    row = conn.execute(
        select(payments.c.id)
        .where(
            payments.c.subject_id == subject_id,
            payments.c.method == method,
            payments.c.status == _PENDING,
        )
        .order_by(payments.c.created.desc(), payments.c.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return None
    conn.execute(
        update(payments).where(payments.c.id == row.id).values(status=_COMPLETED, paid_at=paid_at)
    )
    return int(row.id)


def set_subscription_status(
    conn: Connection,
    subscription_id: int,
    status: str,
    *,
    expected: Iterable[str],
    cancelled_at: str | None = None,
) -> bool:
    """Move a subscription to *status* if it is still in one of *expected*."""
    values: dict[str, Any] = {"status": status, "modified": now_iso()}
    if cancelled_at is not None:
        values["cancelled_at"] = cancelled_at
    result = conn.execute(
        update(subscriptions)
        .where(subscriptions.c.id == subscription_id, subscriptions.c.status.in_(list(expected)))
        .values(**values)
    )
    return result.rowcount == 1


def renew_subscription(
    conn: Connection,
    subject_id: str,
    next_billing_date: date,
    *,
    amount: int,
    billing_cycle: str = "monthly",
) -> tuple[int, bool]:
    """Reactivate the latest subscription, or open one if none exists.

    Returns ``(subscription_id, created)``.
    """
    current = latest_subscription(conn, subject_id)
    now = now_iso()
    if current is not None:
        conn.execute(
            update(subscriptions)
            .where(subscriptions.c.id == current.id)
            .values(
                status=_ACTIVE,
                next_billing_date=next_billing_date.isoformat(),
                cancelled_at=None,
                modified=now,
            )
        )
        return current.id, False

    new_id = insert_subscription(
        conn,
        subject_id,
        next_billing_date=next_billing_date,
        amount=amount,
        billing_cycle=billing_cycle,
    )
    return new_id, True


# ---------------------------------------------------------------------------
# Billing-system writes
# ---------------------------------------------------------------------------


def insert_subscription(
    conn: Connection,
    subject_id: str,
    *,
    next_billing_date: date | None,
    amount: int,
    status: str = _ACTIVE,
    billing_cycle: str = "monthly",
) -> int:
    now = now_iso()
    result = conn.execute(
        insert(subscriptions).values(
            subject_id=subject_id,
            status=status,
            amount=amount,
            billing_cycle=billing_cycle,
            next_billing_date=next_billing_date.isoformat() if next_billing_date else None,
            created=now,
            modified=now,
        )
    )
    assert result.inserted_primary_key is not None
    return int(result.inserted_primary_key[0])


def insert_payment(
    conn: Connection,
    subject_id: str,
    *,
    kind: str,
    method: str,
    status: str,
    amount: int,
    paid_at: str | None = None,
) -> int:
    result = conn.execute(
        insert(payments).values(
            subject_id=subject_id,
            kind=kind,
            method=method,
            status=status,
            amount=amount,
            paid_at=paid_at,
            created=now_iso(),
        )
    )
    assert result.inserted_primary_key is not None
    return int(result.inserted_primary_key[0])
