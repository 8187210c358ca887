"""Root CLI group for entitlectl with global flags and command registration."""

from __future__ import annotations

import click

from entitlectl import __version__
from entitlectl.commands import register_commands
from entitlectl.commands._context import AppContext
from entitlectl.config.settings import EntitlementSettings
from entitlectl.domain.types import ActorRole


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="entitlectl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with timing spans.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--actor", "actor_id", default=None, help="Actor id recorded in the audit trail.")
@click.option("--actor-label", default=None, help="Human-readable actor label.")
@click.option(
    "--role",
    "actor_role",
    type=click.Choice([r.value for r in ActorRole]),
    default=None,
    help="Capability level of the actor.",
)
@click.option("--no-dispatch", is_flag=True, help="Queue side effects without delivering them.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    actor_id: str | None,
    actor_label: str | None,
    actor_role: str | None,
    no_dispatch: bool,
) -> None:
    """entitlectl — entitlement state engine for published subjects."""
    ctx.ensure_object(dict)
    settings = EntitlementSettings.from_cli(
        config_path=config_path,
        json_output=json_output or None,
        quiet=quiet or None,
        verbose=verbose or None,
        log_json=log_json or None,
        no_dispatch=no_dispatch or None,
        actor_id=actor_id,
        actor_label=actor_label,
        actor_role=actor_role,
    )
    ctx.obj = AppContext(settings)
    ctx.call_on_close(ctx.obj.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
