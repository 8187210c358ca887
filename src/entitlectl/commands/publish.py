"""Command: publication toggle."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntCommand

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext


@click.command(
    cls=EntCommand,
    examples="""\
  entitlectl --role admin publish sub_1a2b3c4d5e6f
  entitlectl --role admin publish sub_1a2b3c4d5e6f --off""",
)
@click.argument("subject_id")
@click.option("--on/--off", "published", default=True, help="Publish or unpublish.")
@click.pass_obj
def publish(app: AppContext, subject_id: str, published: bool) -> None:
    """Publish or unpublish a subject (publishing requires entitlement)."""
    from entitlectl.services.entitlement import EntitlementService

    app.emit(EntitlementService(app.store, app.actor).set_publication(subject_id, published))
