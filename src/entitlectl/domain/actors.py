"""Explicit actor identity threaded through every service call."""

from __future__ import annotations

from pydantic import BaseModel

from entitlectl.domain.types import ActorRole


class Actor(BaseModel):
    """Who is issuing a call.

    Attributes:
        id: Stable identifier recorded as ``actor_id`` in the audit trail.
        label: Human-readable name (e-mail, "System", ...).
        role: Capability level checked by the admin gateway.
    """

    model_config = {"frozen": True}

    id: str
    label: str
    role: ActorRole = ActorRole.VIEWER

    @property
    def can_mutate(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.SYSTEM)


SYSTEM_ACTOR = Actor(id="system", label="System", role=ActorRole.SYSTEM)
