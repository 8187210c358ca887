"""Command: run the overdue reconciliation sweep."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntCommand

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext


@click.command(
    cls=EntCommand,
    examples="""\
  entitlectl --role admin reconcile
  entitlectl --role system --actor cron --actor-label "Nightly cron" reconcile
  entitlectl --role admin --json reconcile --today 2026-11-01""",
)
@click.option("--today", default=None, help="Reference date (YYYY-MM-DD); default is today UTC.")
@click.pass_obj
def reconcile(app: AppContext, today: str | None) -> None:
    """Demote subjects whose subscription or monthly payment is overdue."""
    from entitlectl.domain.errors import ValidationError
    from entitlectl.services._helpers import parse_date
    from entitlectl.services.reconcile import ReconciliationService
    from entitlectl.services.result import ServiceResult

    try:
        reference = parse_date(today, field="today") if today else None
    except ValidationError as exc:
        app.emit(ServiceResult.failure("reconcile", exc))
        return

    app.emit(ReconciliationService(app.store, app.actor).run(today=reference))
