"""AppContext — shared Click context for all commands.

Created once by the root CLI group and handed to subcommands via
``@click.pass_obj``.  Provides lazy Store initialization, the acting
identity, and centralized result emission (stdout/stderr routing + exit
codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from entitlectl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from entitlectl.config.settings import EntitlementSettings
    from entitlectl.domain.actors import Actor
    from entitlectl.infrastructure.store import Store
    from entitlectl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The store is created on first use so ``--help`` and ``--version``
    never touch the database.
    """

    def __init__(self, settings: EntitlementSettings) -> None:
        self.settings = settings
        self._store: Store | None = None

        from entitlectl.config.logging import bind_actor, configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)
        bind_actor(settings.actor)

        if settings.verbose:
            from entitlectl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def store(self) -> Store:
        """The store instance (created lazily on first access)."""
        if self._store is None:
            from entitlectl.infrastructure.store import Store

            self._store = Store(self.settings)
        return self._store

    @property
    def actor(self) -> Actor:
        """Identity every call from this invocation is attributed to."""
        return self.settings.actor

    def close(self) -> None:
        """Release the store, if one was created."""
        if self._store is not None:
            self._store.close()
            self._store = None

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: writes to stdout; warnings go to stderr unless ``--json``
          already carries them.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
