"""AuditService — read access to the append-only audit trail.

Entries are written only from inside mutating units of work (see
:meth:`StoreTransaction.record_audit`); this service offers no update or
delete.
"""

from __future__ import annotations

from entitlectl.domain.errors import ValidationError
from entitlectl.domain.records import AuditEntry
from entitlectl.services.base import BaseService
from entitlectl.services.gateway import Capability
from entitlectl.services.result import ServiceResult
from entitlectl.services.telemetry import traced


class AuditService(BaseService):
    """Query the audit trail, most recent entry first."""

    def record(self, entry: AuditEntry) -> ServiceResult:
        """Append a standalone entry in its own transaction."""
        op = "record_audit"
        denied = self._authorize(op, Capability.MUTATE)
        if denied is not None:
            return denied

        with self._store.transaction() as txn:
            entry_id = txn.record_audit(entry)
        return ServiceResult(ok=True, op=op, data={"id": entry_id})

    @traced
    def query(
        self,
        *,
        subject_id: str | None = None,
        actor_id: str | None = None,
        change_type: str | None = None,
        limit: int | None = None,
    ) -> ServiceResult:
        op = "query_audit"
        denied = self._authorize(op, Capability.READ)
        if denied is not None:
            return denied
        if limit is not None and limit < 1:
            return ServiceResult.failure(op, ValidationError("limit must be a positive integer"))

        entries = self._store.audit.query(
            subject_id=subject_id,
            actor_id=actor_id,
            change_type=change_type,
            limit=limit,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "items": [entry.model_dump(mode="json") for entry in entries],
                "count": len(entries),
            },
        )
