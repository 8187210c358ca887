"""Alembic entry point for the ``.entitlectl/entitlectl.db`` schema.

``entitlectl init`` stamps new databases at head through this module.
Connections get the same pragmas as the application engine, and
operations run in batch mode because SQLite cannot ALTER most
constraints in place.
"""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine, event, pool

from entitlectl.infrastructure.database.engine import apply_sqlite_pragmas
from entitlectl.infrastructure.database.schema import metadata


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout without a database."""
    context.configure(
        url=context.config.get_main_option("sqlalchemy.url"),
        target_metadata=metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = context.config.get_main_option("sqlalchemy.url")
    if url is None:
        raise RuntimeError("sqlalchemy.url is not set; use migrations.build_config()")

    connectable = create_engine(url, poolclass=pool.NullPool)
    event.listen(connectable, "connect", apply_sqlite_pragmas)
    try:
        with connectable.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=metadata,
                render_as_batch=True,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
