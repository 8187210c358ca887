"""Alembic migration infrastructure for entitlectl.

Provides programmatic Alembic configuration — no alembic.ini needed.
The migration scripts live alongside this module.
"""

from __future__ import annotations

from pathlib import Path

from alembic.config import Config

from entitlectl.infrastructure.database.engine import db_path_for


def build_config(db_url: str) -> Config:
    """Build an Alembic Config pointing at our migration scripts."""
    cfg = Config()
    cfg.set_main_option("script_location", str(Path(__file__).parent))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def stamp_head(data_root: Path) -> None:
    """Stamp a database as at the current head revision.

    Called during ``entitlectl init`` so freshly created databases start
    at the correct Alembic version without running migrations.
    """
    from alembic import command

    cfg = build_config(f"sqlite:///{db_path_for(data_root)}")
    command.stamp(cfg, "head")


def current_revision(data_root: Path) -> str | None:
    """Return the revision a database is stamped at (None if unstamped)."""
    from alembic.runtime.migration import MigrationContext
    from sqlalchemy import create_engine

    engine = create_engine(f"sqlite:///{db_path_for(data_root)}")
    try:
        with engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()
