"""Subcommand modules for entitlectl.

Provides register_commands() which uses deferred imports to keep
``entitlectl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all command groups and standalone commands on the root CLI group."""
    # --- Groups ---
    from entitlectl.commands.outbox import outbox
    from entitlectl.commands.payment import payment
    from entitlectl.commands.subject import subject

    cli.add_command(subject)
    cli.add_command(payment)
    cli.add_command(outbox)

    # --- Standalone commands ---
    from entitlectl.commands.audit import audit
    from entitlectl.commands.cancel import cancel
    from entitlectl.commands.init_cmd import init_cmd
    from entitlectl.commands.publish import publish
    from entitlectl.commands.reconcile import reconcile

    cli.add_command(init_cmd)
    cli.add_command(publish)
    cli.add_command(cancel)
    cli.add_command(reconcile)
    cli.add_command(audit)
