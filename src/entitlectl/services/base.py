"""BaseService — foundation for all entitlectl services.

Every service receives a :class:`Store` and the acting :class:`Actor` at
construction time.  Services own their transaction boundaries via
``self._store.transaction()`` and convert domain errors raised inside a
unit of work into failed :class:`ServiceResult` values at the boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from entitlectl.domain.errors import AuthorizationError
from entitlectl.domain.lifecycle import Deny
from entitlectl.domain.records import AuditEntry
from entitlectl.infrastructure.repositories.audit import SUBJECT_TARGET
from entitlectl.services._helpers import now_iso
from entitlectl.services.gateway import AdminGateway, Capability
from entitlectl.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    from entitlectl.domain.actors import Actor
    from entitlectl.infrastructure.store import Store


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class EntitlementService(BaseService):
            def cancel(self, subject_id: str) -> ServiceResult:
                denied = self._authorize("cancel", Capability.MUTATE)
                if denied is not None:
                    return denied
                with self._store.transaction() as txn:
                    ...
    """

    def __init__(
        self,
        store: Store,
        actor: Actor,
        *,
        gateway: AdminGateway | None = None,
    ) -> None:
        self._store = store
        self._actor = actor
        self._gateway = gateway or AdminGateway()

    @property
    def actor(self) -> Actor:
        return self._actor

    def _authorize(self, op: str, capability: Capability) -> ServiceResult | None:
        """Return a failed result if the actor lacks *capability*, else None."""
        verdict = self._gateway.authorize(self._actor, capability)
        if isinstance(verdict, Deny):
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code=AuthorizationError.code,
                    message=verdict.reason,
                    detail={"actor_id": self._actor.id, "role": str(self._actor.role)},
                ),
            )
        return None

    @staticmethod
    def _audit_entry(
        actor: Actor,
        change_type: str,
        subject_id: str,
        description: str,
        detail: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Build one audit entry targeting a subject."""
        return AuditEntry(
            actor_id=actor.id,
            actor_label=actor.label,
            change_type=change_type,
            target_type=SUBJECT_TARGET,
            target_id=subject_id,
            description=description,
            detail=detail or {},
            occurred_at=now_iso(),
        )
