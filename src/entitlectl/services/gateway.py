"""AdminGateway — capability checks ahead of every service call.

A denied call never reaches the transition validator, never opens a
write transaction, and leaves no audit entry.
"""

from __future__ import annotations

import logging
from enum import StrEnum

from entitlectl.domain.actors import Actor
from entitlectl.domain.errors import AuthorizationError
from entitlectl.domain.lifecycle import Allow, Deny, Verdict
from entitlectl.domain.types import ActorRole

logger = logging.getLogger(__name__)


class Capability(StrEnum):
    READ = "read"
    MUTATE = "mutate"


ROLE_CAPABILITIES: dict[ActorRole, frozenset[Capability]] = {
    ActorRole.ADMIN: frozenset({Capability.READ, Capability.MUTATE}),
    ActorRole.SYSTEM: frozenset({Capability.READ, Capability.MUTATE}),
    ActorRole.VIEWER: frozenset({Capability.READ}),
}


class AdminGateway:
    """Decide whether an actor may perform a class of operation."""

    def __init__(
        self,
        capabilities: dict[ActorRole, frozenset[Capability]] | None = None,
    ) -> None:
        self._capabilities = capabilities or ROLE_CAPABILITIES

    def authorize(self, actor: Actor, capability: Capability = Capability.MUTATE) -> Verdict:
        granted = self._capabilities.get(actor.role, frozenset())
        if capability in granted:
            return Allow()
        logger.info(
            "Denied %s capability to actor %s (role %s)", capability, actor.id, actor.role
        )
        return Deny(
            AuthorizationError.code,
            f"Actor {actor.id!r} with role {actor.role!s} may not {capability!s}",
        )

    def require(self, actor: Actor, capability: Capability = Capability.MUTATE) -> None:
        """Like :meth:`authorize` but raises :class:`AuthorizationError`."""
        verdict = self.authorize(actor, capability)
        if isinstance(verdict, Deny):
            raise AuthorizationError(
                verdict.reason,
                detail={
                    "actor_id": actor.id,
                    "role": str(actor.role),
                    "capability": str(capability),
                },
            )
