"""SideEffectDispatcher — outbox consumer for artifact issuance and notification.

Rows are written by the unit of work that commits a qualifying
transition; this consumer runs afterwards, outside that transaction:

    CLAIM (CAS to processing) → CALL collaborator (bounded timeout) → SETTLE

A collaborator failure or timeout is a :class:`DependencyError`: the row
is marked ``failed`` (or ``dead_letter`` once ``max_retries`` is reached)
and the committed payment-status change is left untouched.
"""

from __future__ import annotations

import json
import threading
from collections import deque
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog

from entitlectl.domain.errors import DependencyError, EntitlementError, NotFoundError
from entitlectl.domain.types import OutboxStatus, SideEffect
from entitlectl.infrastructure.repositories import outbox as outbox_repo
from entitlectl.infrastructure.repositories import subjects as subjects_repo
from entitlectl.services._helpers import utc_now
from entitlectl.services.base import BaseService
from entitlectl.services.gateway import Capability
from entitlectl.services.result import ServiceResult
from entitlectl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Row

log = structlog.get_logger("entitlectl.dispatcher")


class SideEffectDispatcher(BaseService):
    """Deliver queued side effects through the collaborator hooks."""

    @traced
    def dispatch(
        self,
        *,
        subject_id: str | None = None,
        limit: int | None = None,
    ) -> ServiceResult:
        """Deliver pending and failed outbox rows once each.

        A notification enqueued by a successful artifact issuance is
        delivered in the same call.
        """
        op = "dispatch_side_effects"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        config = self._store.settings.outbox
        stale_before = (utc_now() - timedelta(seconds=config.claim_ttl_seconds)).isoformat()
        with self._store.engine.connect() as conn:
            queue: deque[Row[Any]] = deque(
                outbox_repo.find_claimable(
                    conn,
                    stale_before=stale_before,
                    subject_id=subject_id,
                    limit=limit,
                )
            )

        processed: list[dict[str, Any]] = []
        while queue:
            row = queue.popleft()
            outcome, follow_up = self._deliver(row)
            processed.append(outcome)
            if follow_up is not None:
                queue.append(follow_up)

        warnings = [
            f"{item['effect']} for {item['subject_id']} is {item['status']}: {item['error']}"
            for item in processed
            if item["status"] in (OutboxStatus.FAILED, OutboxStatus.DEAD_LETTER)
        ]
        delivered = sum(1 for item in processed if item["status"] == OutboxStatus.COMPLETED)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "processed": processed,
                "delivered": delivered,
                "failed": len(warnings),
            },
            warnings=warnings,
        )

    @traced
    def pending(self, *, subject_id: str | None = None) -> ServiceResult:
        """List outbox rows that have not been delivered (dead letters included)."""
        op = "list_outbox"
        denied = self._authorize(op, Capability.READ)
        if denied is not None:
            return denied

        with self._store.engine.connect() as conn:
            rows = outbox_repo.list_undelivered(conn, subject_id=subject_id)
        items = [
            {
                "id": row.id,
                "subject_id": row.subject_id,
                "effect": row.effect,
                "status": row.status,
                "retries": row.retries,
                "error": row.error,
                "created": row.created,
            }
            for row in rows
        ]
        return ServiceResult(ok=True, op=op, data={"items": items, "count": len(items)})

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver(self, row: Row[Any]) -> tuple[dict[str, Any], Row[Any] | None]:
        outcome: dict[str, Any] = {
            "id": row.id,
            "effect": row.effect,
            "subject_id": row.subject_id,
            "status": None,
            "error": None,
        }

        with self._store.transaction() as txn:
            if not outbox_repo.claim(txn.conn, row):
                outcome["status"] = "skipped"
                return outcome, None

        payload = json.loads(row.payload)
        follow_up: Row[Any] | None = None
        try:
            with trace_span(f"effect.{row.effect}"):
                match SideEffect(row.effect):
                    case SideEffect.ISSUE_ARTIFACT:
                        follow_up = self._issue_artifact(row, payload)
                    case SideEffect.SEND_NOTIFICATION:
                        self._send_notification(row, payload)
        except EntitlementError as exc:
            with self._store.transaction() as txn:
                status = outbox_repo.mark_failed(
                    txn.conn,
                    row.id,
                    exc.message,
                    max_retries=self._store.settings.outbox.max_retries,
                )
            log.warning(
                "side_effect.failed",
                outbox_id=row.id,
                effect=row.effect,
                subject_id=row.subject_id,
                status=status,
                error=exc.message,
            )
            outcome.update(status=status, error=exc.message)
            return outcome, None

        log.info(
            "side_effect.delivered",
            outbox_id=row.id,
            effect=row.effect,
            subject_id=row.subject_id,
        )
        outcome["status"] = str(OutboxStatus.COMPLETED)
        return outcome, follow_up

    def _issue_artifact(
        self,
        row: Row[Any],
        payload: dict[str, Any],
    ) -> Row[Any] | None:
        """Generate the artifact, then record it and queue the notification.

        Returns the freshly enqueued notification row, if any.
        """
        with self._store.engine.connect() as conn:
            subject = subjects_repo.get_subject(conn, row.subject_id)
        if subject is None:
            raise NotFoundError(f"No subject found with ID: {row.subject_id}")

        if subject.artifact_issued:
            with self._store.transaction() as txn:
                outbox_repo.mark_completed(txn.conn, row.id)
            return None

        public_link = payload.get("public_link") or self._store.public_link(subject)
        artifact_ref = self._call(
            SideEffect.ISSUE_ARTIFACT,
            self._store.plugins.hook.generate_artifact,
            subject_id=subject.id,
            public_link=public_link,
        )
        if not artifact_ref:
            raise DependencyError(
                "Artifact generator returned no reference",
                detail={"subject_id": subject.id},
            )

        with self._store.transaction() as txn:
            newly_issued = subjects_repo.mark_artifact_issued(txn.conn, subject.id, artifact_ref)
            outbox_repo.mark_completed(txn.conn, row.id)
            if not newly_issued:
                return None
            owner = txn.get_owner(subject.owner_id)
            assert owner is not None
            notification_id = txn.enqueue_side_effect(
                subject.id,
                SideEffect.SEND_NOTIFICATION,
                {
                    "recipient": owner.email,
                    "public_link": public_link,
                    "artifact_ref": artifact_ref,
                },
            )
            if notification_id is None:
                return None
            return outbox_repo.get_row(txn.conn, notification_id)

    def _send_notification(
        self,
        row: Row[Any],
        payload: dict[str, Any],
    ) -> None:
        sent = self._call(
            SideEffect.SEND_NOTIFICATION,
            self._store.plugins.hook.send_notification,
            recipient=payload["recipient"],
            public_link=payload["public_link"],
            artifact_ref=payload["artifact_ref"],
        )
        if not sent:
            raise DependencyError(
                "Notifier reported the message as not sent",
                detail={"subject_id": row.subject_id},
            )
        with self._store.transaction() as txn:
            outbox_repo.mark_completed(txn.conn, row.id)

    def _call(
        self,
        effect: SideEffect,
        hook: Callable[..., Any],
        **kwargs: Any,
    ) -> Any:
        """Invoke a collaborator hook with the configured timeout.

        The hook runs on a daemon thread that is abandoned on timeout, so a
        hung collaborator blocks neither the caller nor interpreter exit.
        Whatever it returns after that is discarded.
        """
        timeout = self._store.settings.outbox.call_timeout_seconds
        outcome: dict[str, Any] = {}

        def _run() -> None:
            try:
                outcome["value"] = hook(**kwargs)
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_run, name=f"entitlectl-{effect}", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            raise DependencyError(
                f"{effect} timed out after {timeout}s",
                detail={"effect": str(effect), "timeout_seconds": timeout},
            )
        if "error" in outcome:
            exc = outcome["error"]
            raise DependencyError(
                f"{effect} failed: {exc}",
                detail={"effect": str(effect)},
            ) from exc
        return outcome.get("value")
