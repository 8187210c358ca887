"""Command group: bank-transfer intake and confirmation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntGroup
from entitlectl.domain.types import PaymentKind, PaymentStatus

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext

_PAYMENT_EXAMPLES = """\
  entitlectl --role admin payment open sub_1a2b3c4d5e6f --amount 30000
  entitlectl --role admin payment confirm sub_1a2b3c4d5e6f
  entitlectl --role admin payment confirm sub_1a2b3c4d5e6f --paid-at 2026-10-01"""


@click.group(cls=EntGroup, examples=_PAYMENT_EXAMPLES)
@click.pass_obj
def payment(app: AppContext) -> None:
    """Record and confirm bank-transfer payments."""


@payment.command(
    "open",
    examples="""\
  entitlectl --role admin payment open sub_1a2b3c4d5e6f
  entitlectl --role admin payment open sub_1a2b3c4d5e6f --kind existing_user --amount 500""",
)
@click.argument("subject_id")
@click.option(
    "--kind",
    type=click.Choice([k.value for k in PaymentKind]),
    default=PaymentKind.NEW_USER.value,
    show_default=True,
    help="What the transfer pays for.",
)
@click.option("--amount", type=int, default=0, help="Amount in minor units.")
@click.pass_obj
def open_transfer(app: AppContext, subject_id: str, kind: str, amount: int) -> None:
    """Record a pending bank transfer awaiting confirmation."""
    from entitlectl.services.billing import BillingService

    app.emit(BillingService(app.store, app.actor).open_bank_transfer(subject_id, kind, amount))


@payment.command(
    examples="""\
  entitlectl --role admin payment confirm sub_1a2b3c4d5e6f
  entitlectl --role admin payment confirm sub_1a2b3c4d5e6f --paid-at "2026-10-01 09:30:00"
  entitlectl --role admin payment confirm sub_1a2b3c4d5e6f --expiration-date 2026-12-31
  entitlectl --role admin --no-dispatch payment confirm sub_1a2b3c4d5e6f"""
)
@click.argument("subject_id")
@click.option(
    "--status",
    "requested_status",
    default=PaymentStatus.BANK_PAID.value,
    show_default=True,
    help="Requested payment status.",
)
@click.option("--paid-at", default=None, help="Settlement time (YYYY-MM-DD[ HH:MM:SS]).")
@click.option("--expiration-date", default=None, help="Last covered day (YYYY-MM-DD).")
@click.pass_obj
def confirm(
    app: AppContext,
    subject_id: str,
    requested_status: str,
    paid_at: str | None,
    expiration_date: str | None,
) -> None:
    """Confirm a received bank transfer (BANK_PENDING -> BANK_PAID)."""
    from entitlectl.services.entitlement import EntitlementService

    app.emit(
        EntitlementService(app.store, app.actor).update_payment_status(
            subject_id,
            requested_status,
            paid_at=paid_at,
            expiration_date=expiration_date,
        )
    )
