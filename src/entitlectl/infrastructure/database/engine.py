"""Database engine setup for SQLite with WAL mode.

The DB is stored at {data_root}/.entitlectl/entitlectl.db.  SQLAlchemy Core
(not ORM) is used: every unit of work is a short, explicit transaction.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

from entitlectl.infrastructure.database.schema import AUDIT_APPEND_ONLY_DDL, metadata

STATE_DIR = ".entitlectl"
DB_FILENAME = "entitlectl.db"


def db_path_for(data_root: Path) -> Path:
    """Location of the database file under *data_root*."""
    return data_root / STATE_DIR / DB_FILENAME


def apply_sqlite_pragmas(dbapi_conn: Any, _: Any) -> None:
    """``connect`` listener: WAL journaling and enforced foreign keys."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_path: Path) -> Engine:
    """Create a SQLite engine with WAL mode and foreign keys enabled."""
    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"timeout": 15, "check_same_thread": False},
    )
    event.listen(engine, "connect", apply_sqlite_pragmas)
    return engine


def init_database(data_root: Path) -> Engine:
    """Initialize the database at ``{data_root}/.entitlectl/entitlectl.db``.

    Creates the state directory, all tables from :data:`schema.metadata`
    and the audit append-only triggers.

    Idempotent — safe to call on an existing database.
    """
    state_dir = data_root / STATE_DIR
    state_dir.mkdir(parents=True, exist_ok=True)
    (state_dir / "artifacts").mkdir(exist_ok=True)

    engine = create_db_engine(db_path_for(data_root))
    metadata.create_all(engine)

    with engine.begin() as conn:
        for ddl in AUDIT_APPEND_ONLY_DDL:
            conn.execute(text(ddl))

    return engine
