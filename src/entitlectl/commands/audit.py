"""Command: browse the audit trail."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntCommand
from entitlectl.domain.types import ChangeType

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext


@click.command(
    cls=EntCommand,
    examples="""\
  entitlectl audit
  entitlectl audit --subject sub_1a2b3c4d5e6f
  entitlectl audit --by system --change-type subscription_overdue --limit 50""",
)
@click.option("--subject", "subject_id", default=None, help="Only entries for this subject.")
@click.option("--by", "actor_id", default=None, help="Only entries made by this actor id.")
@click.option(
    "--change-type",
    type=click.Choice([c.value for c in ChangeType]),
    default=None,
    help="Only entries of this change type.",
)
@click.option("--limit", type=int, default=100, show_default=True, help="Max entries.")
@click.pass_obj
def audit(
    app: AppContext,
    subject_id: str | None,
    actor_id: str | None,
    change_type: str | None,
    limit: int,
) -> None:
    """List audit entries, most recent first."""
    from entitlectl.services.audit import AuditService

    app.emit(
        AuditService(app.store, app.actor).query(
            subject_id=subject_id,
            actor_id=actor_id,
            change_type=change_type,
            limit=limit,
        )
    )
