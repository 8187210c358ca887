"""SQLite database engine and schema via SQLAlchemy Core."""

from entitlectl.infrastructure.database.engine import create_db_engine, db_path_for, init_database
from entitlectl.infrastructure.database.schema import (
    audit_log,
    job_leases,
    metadata,
    owners,
    payments,
    side_effect_outbox,
    subjects,
    subscriptions,
)

__all__ = [
    "audit_log",
    "create_db_engine",
    "db_path_for",
    "init_database",
    "job_leases",
    "metadata",
    "owners",
    "payments",
    "side_effect_outbox",
    "subjects",
    "subscriptions",
]
