"""Pluggy hook specifications for the side-effect collaborators.

Both hooks are ``firstresult``: the first implementation returning a
non-None value answers the call.  Implementations run outside any
database transaction, and an exception raised by one is recorded as a
failed delivery attempt on the outbox row.
"""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("entitlectl")


class EntitlectlHookSpec:
    """Hook specifications for the entitlectl collaborator system."""

    @hookspec(firstresult=True)
    def generate_artifact(self, subject_id: str, public_link: str) -> str | None:
        """Produce the subject's artifact and return a reference to it."""

    @hookspec(firstresult=True)
    def send_notification(
        self,
        recipient: str,
        public_link: str,
        artifact_ref: str,
    ) -> bool | None:
        """Deliver the artifact notice to *recipient*. Return True when sent."""
