"""End-to-end workflows across services sharing one store."""

from __future__ import annotations

from datetime import date

from entitlectl.domain.actors import Actor
from entitlectl.infrastructure.store import Store
from entitlectl.services.audit import AuditService
from entitlectl.services.billing import BillingService
from entitlectl.services.dispatcher import SideEffectDispatcher
from entitlectl.services.entitlement import EntitlementService
from entitlectl.services.reconcile import ReconciliationService
from tests.conftest import RecordingCollaborator, subject_row


class TestPaidLifecycle:
    """register -> transfer -> confirm -> publish -> lapse -> repay."""

    def test_full_lifecycle(
        self, store: Store, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        billing = BillingService(store, admin)
        entitlement = EntitlementService(store, admin)

        registered = billing.register_subject(
            "harbor@example.com", "harbor", payment_status="BANK_PENDING"
        )
        subject_id = registered.data["id"]
        assert billing.open_bank_transfer(subject_id, "new_user", 30000).ok

        confirmed = entitlement.update_payment_status(
            subject_id, "BANK_PAID", paid_at="2026-08-01"
        )
        assert confirmed.ok
        assert confirmed.data["next_billing_date"] == "2026-09-01"
        assert len(collaborator.artifacts) == 1
        assert len(collaborator.notifications) == 1

        assert entitlement.set_publication(subject_id, True).data["is_published"] is True

        swept = ReconciliationService(store, admin).run(today=date(2026, 10, 19))
        assert swept.data["updated_count"] == 1
        row = subject_row(store, subject_id)
        assert (row.payment_status, row.is_published) == ("BANK_PENDING", 0)

        # A new transfer restores entitlement without issuing a second artifact.
        assert billing.open_bank_transfer(subject_id, "existing_user", 500).ok
        renewed = entitlement.update_payment_status(
            subject_id, "BANK_PAID", paid_at="2026-10-20"
        )
        assert renewed.ok
        assert renewed.data["artifact_queued"] is False
        assert len(collaborator.artifacts) == 1
        assert subject_row(store, subject_id).is_published == 0

        history = AuditService(store, admin).query(subject_id=subject_id)
        changes = [item["change_type"] for item in history.data["items"]]
        assert changes == [
            "payment_status_updated",
            "subscription_overdue",
            "publication_updated",
            "payment_status_updated",
        ]


class TestDeferredDelivery:
    """Confirmation while the collaborator is down, delivery later."""

    def test_failed_inline_delivery_is_retried(
        self, store: Store, admin: Actor, collaborator: RecordingCollaborator
    ) -> None:
        billing = BillingService(store, admin)
        subject_id = billing.register_subject(
            "late@example.com", "late", payment_status="BANK_PENDING"
        ).data["id"]
        billing.open_bank_transfer(subject_id, "new_user", 30000)

        collaborator.fail_artifact = True
        confirmed = EntitlementService(store, admin).update_payment_status(subject_id, "BANK_PAID")
        assert confirmed.ok
        assert confirmed.warnings
        assert subject_row(store, subject_id).artifact_issued == 0

        collaborator.fail_artifact = False
        dispatched = SideEffectDispatcher(store, admin).dispatch()

        assert dispatched.data["failed"] == 0
        assert subject_row(store, subject_id).artifact_issued == 1
        assert len(collaborator.notifications) == 1
        assert SideEffectDispatcher(store, admin).pending().data["count"] == 0
