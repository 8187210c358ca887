"""Command: stop usage and revoke entitlement."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntCommand

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext


@click.command(
    cls=EntCommand,
    examples="""\
  entitlectl --role admin cancel sub_1a2b3c4d5e6f
  entitlectl --role admin cancel sub_1a2b3c4d5e6f --reason 'refund issued'""",
)
@click.argument("subject_id")
@click.option("--reason", default=None, help="Why usage is being stopped.")
@click.pass_obj
def cancel(app: AppContext, subject_id: str, reason: str | None) -> None:
    """Cancel the subscription, unpublish, and return payment to pending."""
    from entitlectl.services.entitlement import EntitlementService

    app.emit(EntitlementService(app.store, app.actor).cancel(subject_id, reason=reason))
