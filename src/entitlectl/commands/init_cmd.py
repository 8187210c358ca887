"""Command: data-root initialization (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from entitlectl.commands._base import EntCommand

if TYPE_CHECKING:
    from entitlectl.commands._context import AppContext

_INIT_EXAMPLES = """\
  entitlectl init
  entitlectl init /srv/entitlements --base-url https://cards.example.com/c
  entitlectl --json init ."""

_CONFIG_TEMPLATE = """\
# entitlectl configuration. Only overrides are needed; defaults are built in.

[public]
base_url = "{base_url}"

# [reconcile]
# escalate_after_days = 30
# overdue_after_days = 30
# lease_ttl_seconds = 300

# [outbox]
# dispatch_inline = true
# max_retries = 5
# call_timeout_seconds = 10.0
"""


@click.command("init", cls=EntCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option("--base-url", default=None, help="Base URL for public subject links.")
@click.pass_obj
def init_cmd(app: AppContext, path: str, base_url: str | None) -> None:
    """Create the database and a starter entitlectl.toml."""
    from entitlectl.config.discovery import CONFIG_FILENAME
    from entitlectl.config.settings import EntitlementSettings
    from entitlectl.infrastructure.database.engine import db_path_for
    from entitlectl.infrastructure.database.migrations import current_revision, stamp_head
    from entitlectl.infrastructure.store import Store
    from entitlectl.services.result import ServiceResult

    root = Path(path).resolve()
    root.mkdir(parents=True, exist_ok=True)

    config_path = root / CONFIG_FILENAME
    config_written = False
    if not config_path.exists():
        url = base_url or app.settings.public.base_url
        config_path.write_text(_CONFIG_TEMPLATE.format(base_url=url), encoding="utf-8")
        config_written = True

    store = Store(EntitlementSettings.from_cli(config_path=str(config_path), data_root=root))
    try:
        stamp_head(root)
        revision = current_revision(root)
    finally:
        store.close()

    app.emit(
        ServiceResult(
            ok=True,
            op="init",
            data={
                "data_root": str(root),
                "database": str(db_path_for(root)),
                "config_path": str(config_path),
                "config_written": config_written,
                "revision": revision,
            },
        )
    )
