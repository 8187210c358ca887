"""SQLAlchemy Core table definitions for the entitlectl database.

The append-only guard on ``audit_log`` is created via raw DDL in the
initialization function since SQLAlchemy cannot express SQLite triggers
natively.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

owners = Table(
    "owners",
    metadata,
    Column("id", Text, primary_key=True),
    Column("email", Text, nullable=False, unique=True),
    Column("display_name", Text),
    Column("classification", Text, nullable=False),
    Column("created", Text, nullable=False),
)

subjects = Table(
    "subjects",
    metadata,
    Column("id", Text, primary_key=True),
    Column("owner_id", Text, ForeignKey("owners.id"), nullable=False),
    Column("public_slug", Text, nullable=False, unique=True),
    Column("payment_status", Text, nullable=False),
    Column("is_published", Integer, default=0, server_default="0"),
    Column("artifact_issued", Integer, default=0, server_default="0"),
    Column("artifact_ref", Text),
    Column("version", Integer, nullable=False, default=1, server_default="1"),
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

subscriptions = Table(
    "subscriptions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("subject_id", Text, ForeignKey("subjects.id"), nullable=False),
    Column("status", Text, nullable=False),
    Column("amount", Integer, default=0, server_default="0"),
    Column("billing_cycle", Text, default="monthly", server_default="monthly"),
    Column("next_billing_date", Text),  # YYYY-MM-DD
    Column("cancelled_at", Text),
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

payments = Table(
    "payments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("subject_id", Text, ForeignKey("subjects.id"), nullable=False),
    Column("kind", Text, nullable=False),
    Column("method", Text, nullable=False),
    Column("status", Text, nullable=False),
    Column("amount", Integer, default=0, server_default="0"),
    Column("paid_at", Text),  # ISO 8601 UTC
    Column("created", Text, nullable=False),
)

audit_log = Table(
    "audit_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("actor_id", Text, nullable=False),
    Column("actor_label", Text, nullable=False),
    Column("change_type", Text, nullable=False),
    Column("target_type", Text, nullable=False),
    Column("target_id", Text),
    Column("description", Text),
    Column("detail", Text),  # JSON object
    Column("occurred_at", Text, nullable=False),
)

side_effect_outbox = Table(
    "side_effect_outbox",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("subject_id", Text, ForeignKey("subjects.id"), nullable=False),
    Column("effect", Text, nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    Column("status", Text, nullable=False),
    Column("error", Text),
    Column("retries", Integer, default=0, server_default="0"),
    Column("created", Text, nullable=False),
    Column("claimed_at", Text),
    Column("completed", Text),
    UniqueConstraint("subject_id", "effect"),
)

job_leases = Table(
    "job_leases",
    metadata,
    Column("name", Text, primary_key=True),
    Column("holder", Text, nullable=False),
    Column("acquired_at", Text, nullable=False),
    Column("expires_at", Text, nullable=False),
)

# ---------------------------------------------------------------------------
# Indexes for frequently filtered columns
# ---------------------------------------------------------------------------

Index("ix_subjects_owner", subjects.c.owner_id)
Index("ix_subjects_published", subjects.c.is_published)
Index("ix_subscriptions_subject", subscriptions.c.subject_id)
Index("ix_subscriptions_status", subscriptions.c.status)
Index("ix_payments_subject", payments.c.subject_id)
Index("ix_payments_status", payments.c.status)
Index("ix_audit_target", audit_log.c.target_type, audit_log.c.target_id)
Index("ix_audit_actor", audit_log.c.actor_id)
Index("ix_audit_occurred", audit_log.c.occurred_at)
Index("ix_outbox_status", side_effect_outbox.c.status)

# Audit rows are immutable once written.
AUDIT_APPEND_ONLY_DDL = (
    "CREATE TRIGGER IF NOT EXISTS audit_log_no_update BEFORE UPDATE ON audit_log "
    "BEGIN SELECT RAISE(ABORT, 'audit_log is append-only'); END",
    "CREATE TRIGGER IF NOT EXISTS audit_log_no_delete BEFORE DELETE ON audit_log "
    "BEGIN SELECT RAISE(ABORT, 'audit_log is append-only'); END",
)
