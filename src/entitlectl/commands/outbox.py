"""Command group: inspect and deliver queued side effects."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntGroup

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext

_OUTBOX_EXAMPLES = """\
  entitlectl outbox list
  entitlectl --role system outbox dispatch
  entitlectl --role admin outbox dispatch --subject sub_1a2b3c4d5e6f"""


@click.group(cls=EntGroup, examples=_OUTBOX_EXAMPLES)
@click.pass_obj
def outbox(app: AppContext) -> None:
    """Artifact issuance and notification queue."""


@outbox.command(
    "list",
    examples="""\
  entitlectl outbox list
  entitlectl --json outbox list --subject sub_1a2b3c4d5e6f""",
)
@click.option("--subject", "subject_id", default=None, help="Only rows for this subject.")
@click.pass_obj
def list_cmd(app: AppContext, subject_id: str | None) -> None:
    """List side effects that have not been delivered."""
    from entitlectl.services.dispatcher import SideEffectDispatcher

    app.emit(SideEffectDispatcher(app.store, app.actor).pending(subject_id=subject_id))


@outbox.command(
    examples="""\
  entitlectl --role system outbox dispatch
  entitlectl --role admin outbox dispatch --limit 10"""
)
@click.option("--subject", "subject_id", default=None, help="Only rows for this subject.")
@click.option("--limit", type=int, default=None, help="Max rows to attempt.")
@click.pass_obj
def dispatch(app: AppContext, subject_id: str | None, limit: int | None) -> None:
    """Deliver pending and failed side effects once each."""
    from entitlectl.services.dispatcher import SideEffectDispatcher

    app.emit(
        SideEffectDispatcher(app.store, app.actor).dispatch(subject_id=subject_id, limit=limit)
    )
