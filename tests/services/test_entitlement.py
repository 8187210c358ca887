"""Tests for EntitlementService: confirmation, publication, cancel, reads."""

from __future__ import annotations

from typing import Any

import pytest

from entitlectl.domain.actors import Actor
from entitlectl.infrastructure.store import Store, StoreTransaction
from entitlectl.services.audit import AuditService
from entitlectl.services.billing import BillingService
from entitlectl.services.dispatcher import SideEffectDispatcher
from entitlectl.services.entitlement import EntitlementService
from tests.conftest import (
    TODAY,
    RecordingCollaborator,
    days_ago,
    force_subject,
    open_subscription,
    paid_published_subject,
    payment_rows,
    pending_bank_subject,
    register_subject,
    subject_row,
    subscription_row,
)


def _audit(store: Store, actor: Actor, subject_id: str) -> list[dict[str, Any]]:
    result = AuditService(store, actor).query(subject_id=subject_id)
    assert result.ok, result.error
    return result.data["items"]


# ---------------------------------------------------------------------------
# Bank-transfer confirmation
# ---------------------------------------------------------------------------


class TestConfirmBankTransfer:
    def test_confirmation_issues_artifact_once(
        self, store: Store, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        sid = pending_bank_subject(store, admin, slug="tanaka-realty")

        result = EntitlementService(store, admin).update_payment_status(
            sid, "BANK_PAID", paid_at="2026-10-01"
        )

        assert result.ok, result.error
        assert result.warnings == []
        assert result.data["previous_status"] == "BANK_PENDING"
        assert result.data["artifact_queued"] is True
        assert result.data["next_billing_date"] == "2026-11-01"
        effects = result.data["side_effects"]
        assert effects["dispatched"] is True
        assert effects["delivered"] == 2

        subject = result.data["subject"]
        assert subject["payment_status"] == "BANK_PAID"
        assert subject["is_published"] is False
        assert subject["artifact_issued"] is True
        assert subject["artifact_ref"] == f"artifact://{sid}"

        assert collaborator.artifacts == [
            {"subject_id": sid, "public_link": "https://example.invalid/card/tanaka-realty"}
        ]
        assert len(collaborator.notifications) == 1
        assert collaborator.notifications[0]["recipient"] == "tanaka-realty@example.com"
        assert collaborator.notifications[0]["artifact_ref"] == f"artifact://{sid}"

    def test_pending_payment_is_completed(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(
            sid, "BANK_PAID", paid_at="2026-10-01 09:30:00"
        )

        assert result.ok, result.error
        (payment,) = payment_rows(store, sid)
        assert payment.id == result.data["payment_id"]
        assert payment.status == "completed"
        assert payment.paid_at == "2026-10-01T09:30:00+00:00"

    def test_single_audit_entry(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        entries = _audit(store, admin, sid)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["change_type"] == "payment_status_updated"
        assert entry["actor_id"] == "admin-1"
        assert entry["detail"]["from"] == "BANK_PENDING"
        assert entry["detail"]["to"] == "BANK_PAID"
        assert entry["detail"]["artifact_queued"] is True

    def test_expiration_date_sets_next_billing(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(
            sid, "BANK_PAID", paid_at="2026-10-01", expiration_date="2026-12-31"
        )

        assert result.ok, result.error
        assert result.data["next_billing_date"] == "2027-01-01"
        sub = subscription_row(store, result.data["subscription_id"])
        assert sub.status == "active"
        assert sub.next_billing_date == "2027-01-01"

    def test_existing_subscription_is_renewed(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)
        sub_id = open_subscription(store, admin, sid, days_ago(40))

        result = EntitlementService(store, admin).update_payment_status(
            sid, "BANK_PAID", paid_at="2026-10-15"
        )

        assert result.ok, result.error
        assert result.data["subscription_id"] == sub_id
        assert subscription_row(store, sub_id).next_billing_date == "2026-11-15"

    def test_month_end_clamps(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(
            sid, "BANK_PAID", paid_at="2026-01-31"
        )

        assert result.data["next_billing_date"] == "2026-02-28"

    def test_missing_pending_payment_warns(self, store: Store, admin: Actor) -> None:
        sid = register_subject(store, admin, status="BANK_PENDING")

        result = EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        assert result.ok, result.error
        assert result.data["payment_id"] is None
        assert any("No pending bank-transfer payment" in w for w in result.warnings)

    def test_artifact_already_issued_is_not_reissued(
        self, store: Store, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        sid = pending_bank_subject(store, admin)
        force_subject(store, sid, artifact_issued=1, artifact_ref="legacy://cert")

        result = EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        assert result.ok, result.error
        assert result.data["artifact_queued"] is False
        assert "side_effects" not in result.data
        assert result.data["subject"]["artifact_ref"] == "legacy://cert"
        assert collaborator.artifacts == []
        assert collaborator.notifications == []

    def test_no_dispatch_leaves_effect_queued(
        self, make_store: Any, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        store = make_store(no_dispatch=True)
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        assert result.ok, result.error
        assert result.data["side_effects"] == {"dispatched": False}
        assert collaborator.artifacts == []
        pending = SideEffectDispatcher(store, admin).pending(subject_id=sid)
        assert [item["effect"] for item in pending.data["items"]] == ["issue_artifact"]

    def test_collaborator_failure_keeps_transition(
        self, store: Store, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        collaborator.fail_artifact = True
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        assert result.ok, result.error
        assert any("issue_artifact" in w and "renderer unavailable" in w for w in result.warnings)
        row = subject_row(store, sid)
        assert row.payment_status == "BANK_PAID"
        assert row.artifact_issued == 0
        pending = SideEffectDispatcher(store, admin).pending(subject_id=sid)
        assert pending.data["items"][0]["status"] == "failed"
        assert pending.data["items"][0]["retries"] == 1


class TestConfirmRejections:
    @pytest.mark.parametrize("status", ["UNUSED", "CARD_PAID", "WIRE_PAID", "BANK_PAID"])
    def test_only_bank_pending_can_be_confirmed(
        self, store: Store, admin: Actor, status: str
    ) -> None:
        sid = register_subject(store, admin, status=status)

        result = EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "INVALID_TRANSITION"
        assert subject_row(store, sid).payment_status == status
        assert _audit(store, admin, sid) == []

    def test_second_confirmation_is_rejected(
        self, store: Store, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        sid = pending_bank_subject(store, admin)
        svc = EntitlementService(store, admin)
        assert svc.update_payment_status(sid, "BANK_PAID").ok

        again = svc.update_payment_status(sid, "BANK_PAID")

        assert not again.ok
        assert again.error is not None
        assert again.error.code == "INVALID_TRANSITION"
        assert len(collaborator.artifacts) == 1
        assert len(_audit(store, admin, sid)) == 1

    def test_other_targets_are_rejected(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(sid, "UNUSED")

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "INVALID_TRANSITION"

    def test_viewer_is_unauthorized(self, store: Store, admin: Actor, viewer: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, viewer).update_payment_status(sid, "BANK_PAID")

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "UNAUTHORIZED"
        assert subject_row(store, sid).payment_status == "BANK_PENDING"
        assert _audit(store, admin, sid) == []

    def test_unknown_subject(self, store: Store, admin: Actor) -> None:
        result = EntitlementService(store, admin).update_payment_status("sub_missing", "BANK_PAID")

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "NOT_FOUND"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"requested_status": "PAID"},
            {"requested_status": "BANK_PAID", "paid_at": "yesterday"},
            {"requested_status": "BANK_PAID", "expiration_date": "2026/12/31"},
            {
                "requested_status": "BANK_PAID",
                "paid_at": "2026-10-01",
                "expiration_date": "2026-09-30",
            },
        ],
    )
    def test_malformed_input(self, store: Store, admin: Actor, kwargs: dict[str, str]) -> None:
        sid = pending_bank_subject(store, admin)

        result = EntitlementService(store, admin).update_payment_status(sid, **kwargs)

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_FAILED"
        assert subject_row(store, sid).payment_status == "BANK_PENDING"

    def test_concurrent_change_aborts_with_conflict(
        self, store: Store, admin: Actor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        sid = pending_bank_subject(store, admin)
        original = StoreTransaction.require_subject

        def _read_then_race(self: StoreTransaction, subject_id: str) -> Any:
            subject = original(self, subject_id)
            force_subject(store, subject_id, version=subject.version + 1)
            return subject

        monkeypatch.setattr(StoreTransaction, "require_subject", _read_then_race)
        result = EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")
        monkeypatch.undo()

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "CONFLICT"
        row = subject_row(store, sid)
        assert row.payment_status == "BANK_PENDING"
        assert payment_rows(store, sid)[0].status == "pending"
        assert _audit(store, admin, sid) == []
        assert SideEffectDispatcher(store, admin).pending().data["count"] == 0


# ---------------------------------------------------------------------------
# Publication
# ---------------------------------------------------------------------------


class TestSetPublication:
    def test_entitled_subject_can_publish(self, store: Store, admin: Actor) -> None:
        sid = register_subject(store, admin, status="CARD_PAID")

        result = EntitlementService(store, admin).set_publication(sid, True)

        assert result.ok, result.error
        assert result.data["is_published"] is True
        assert result.data["changed"] is True
        assert result.data["coerced"] is False
        assert subject_row(store, sid).is_published == 1
        (entry,) = _audit(store, admin, sid)
        assert entry["change_type"] == "publication_updated"

    def test_unentitled_subject_is_coerced_off(self, store: Store, admin: Actor) -> None:
        sid = register_subject(store, admin, status="BANK_PENDING")

        result = EntitlementService(store, admin).set_publication(sid, True)

        assert result.ok, result.error
        assert result.data["is_published"] is False
        assert result.data["requested"] is True
        assert result.data["coerced"] is True
        assert result.data["changed"] is False
        assert result.warnings
        assert subject_row(store, sid).is_published == 0
        assert _audit(store, admin, sid) == []

    def test_repeat_is_a_noop(self, store: Store, admin: Actor) -> None:
        sid = register_subject(store, admin, status="WIRE_PAID")
        svc = EntitlementService(store, admin)
        svc.set_publication(sid, True)

        again = svc.set_publication(sid, True)

        assert again.ok
        assert again.data["changed"] is False
        assert len(_audit(store, admin, sid)) == 1

    def test_unpublish(self, store: Store, admin: Actor) -> None:
        sid = paid_published_subject(store, admin, paid_on=TODAY)

        result = EntitlementService(store, admin).set_publication(sid, False)

        assert result.ok, result.error
        assert result.data["is_published"] is False
        assert result.data["changed"] is True
        assert subject_row(store, sid).is_published == 0

    def test_payment_confirmation_never_publishes(self, store: Store, admin: Actor) -> None:
        sid = pending_bank_subject(store, admin)

        EntitlementService(store, admin).update_payment_status(sid, "BANK_PAID")

        assert subject_row(store, sid).is_published == 0

    def test_viewer_cannot_publish(self, store: Store, admin: Actor, viewer: Actor) -> None:
        sid = register_subject(store, admin, status="BANK_PAID")

        result = EntitlementService(store, viewer).set_publication(sid, True)

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "UNAUTHORIZED"
        assert subject_row(store, sid).is_published == 0


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


class TestCancel:
    def test_cancel_revokes_everything(self, store: Store, admin: Actor) -> None:
        sid = paid_published_subject(store, admin, paid_on=days_ago(3))
        sub_id = open_subscription(store, admin, sid, days_ago(-27))

        result = EntitlementService(store, admin).cancel(sid, reason="refund issued")

        assert result.ok, result.error
        assert result.data["changed"] is True
        assert result.data["subscription_id"] == sub_id
        assert result.data["cancelled_at"] is not None

        row = subject_row(store, sid)
        assert row.payment_status == "BANK_PENDING"
        assert row.is_published == 0
        sub = subscription_row(store, sub_id)
        assert sub.status == "canceled"
        assert sub.cancelled_at == result.data["cancelled_at"]
        (payment,) = payment_rows(store, sid)
        assert payment.status == "pending"
        assert payment.paid_at is None

        entries = _audit(store, admin, sid)
        assert entries[0]["change_type"] == "subscription_canceled"
        assert entries[0]["detail"]["reason"] == "refund issued"
        assert entries[0]["detail"]["was_published"] is True

    def test_cancel_twice_is_a_noop(self, store: Store, admin: Actor) -> None:
        sid = paid_published_subject(store, admin, paid_on=days_ago(3))
        svc = EntitlementService(store, admin)
        assert svc.cancel(sid).ok
        before = len(_audit(store, admin, sid))

        again = svc.cancel(sid)

        assert again.ok
        assert again.data["changed"] is False
        assert len(_audit(store, admin, sid)) == before

    def test_repeated_cancel_keeps_older_payments(self, store: Store, admin: Actor) -> None:
        sid = paid_published_subject(store, admin, paid_on=days_ago(40))
        renewal = BillingService(store, admin).record_payment(
            sid, kind="new_user", method="bank_transfer", paid_at=days_ago(5).isoformat()
        )
        assert renewal.ok, renewal.error
        svc = EntitlementService(store, admin)

        first = svc.cancel(sid)
        second = svc.cancel(sid)
        third = svc.cancel(sid)

        assert first.data["payment_id"] == renewal.data["payment_id"]
        assert second.data["changed"] is False
        assert second.data["payment_id"] is None
        assert third.data["changed"] is False
        older, latest = payment_rows(store, sid)
        assert older.status == "completed"
        assert older.paid_at is not None
        assert latest.status == "pending"
        changes = [entry["change_type"] for entry in _audit(store, admin, sid)]
        assert changes.count("subscription_canceled") == 1

    def test_cancel_unused_subject(self, store: Store, admin: Actor) -> None:
        sid = register_subject(store, admin)

        result = EntitlementService(store, admin).cancel(sid)

        assert result.ok, result.error
        assert result.data["changed"] is False
        assert subject_row(store, sid).payment_status == "UNUSED"
        assert _audit(store, admin, sid) == []

    def test_viewer_cannot_cancel(self, store: Store, admin: Actor, viewer: Actor) -> None:
        sid = paid_published_subject(store, admin, paid_on=days_ago(3))

        result = EntitlementService(store, viewer).cancel(sid)

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "UNAUTHORIZED"
        assert subject_row(store, sid).is_published == 1


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestGetSubject:
    def test_viewer_can_read(self, store: Store, admin: Actor, viewer: Actor) -> None:
        sid = register_subject(store, admin, slug="open-house")
        open_subscription(store, admin, sid, days_ago(-10))

        result = EntitlementService(store, viewer).get_subject(sid)

        assert result.ok, result.error
        assert result.data["subject"]["id"] == sid
        assert result.data["public_link"] == "https://example.invalid/card/open-house"
        assert result.data["owner"]["email"] == "open-house@example.com"
        assert result.data["subscription"]["status"] == "active"

    def test_unknown_subject(self, store: Store, viewer: Actor) -> None:
        result = EntitlementService(store, viewer).get_subject("sub_nope")

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "NOT_FOUND"
