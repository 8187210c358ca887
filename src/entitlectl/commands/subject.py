"""Command group: subject registration and inspection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntGroup
from entitlectl.domain.types import Classification, PaymentStatus

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext

_SUBJECT_EXAMPLES = """\
  entitlectl --role admin subject register agent@example.com tanaka-realty
  entitlectl subject show sub_1a2b3c4d5e6f"""


@click.group(cls=EntGroup, examples=_SUBJECT_EXAMPLES)
@click.pass_obj
def subject(app: AppContext) -> None:
    """Register and inspect subjects."""


@subject.command(
    examples="""\
  entitlectl --role admin subject register agent@example.com tanaka-realty
  entitlectl --role admin subject register a@example.com slug --status BANK_PENDING
  entitlectl --role admin subject register b@example.com promo --classification complimentary"""
)
@click.argument("owner_email")
@click.argument("public_slug")
@click.option(
    "--classification",
    type=click.Choice([c.value for c in Classification]),
    default=Classification.NEW.value,
    show_default=True,
    help="Owner billing classification.",
)
@click.option(
    "--status",
    "payment_status",
    type=click.Choice([s.value for s in PaymentStatus]),
    default=PaymentStatus.UNUSED.value,
    show_default=True,
    help="Initial payment status.",
)
@click.option("--name", "display_name", default=None, help="Owner display name.")
@click.pass_obj
def register(
    app: AppContext,
    owner_email: str,
    public_slug: str,
    classification: str,
    payment_status: str,
    display_name: str | None,
) -> None:
    """Register a new, unpublished subject."""
    from entitlectl.services.billing import BillingService

    app.emit(
        BillingService(app.store, app.actor).register_subject(
            owner_email,
            public_slug,
            classification=classification,
            payment_status=payment_status,
            display_name=display_name,
        )
    )


@subject.command(
    examples="""\
  entitlectl subject show sub_1a2b3c4d5e6f
  entitlectl --json subject show sub_1a2b3c4d5e6f"""
)
@click.argument("subject_id")
@click.pass_obj
def show(app: AppContext, subject_id: str) -> None:
    """Show a subject's entitlement state."""
    from entitlectl.services.entitlement import EntitlementService

    app.emit(EntitlementService(app.store, app.actor).get_subject(subject_id))
