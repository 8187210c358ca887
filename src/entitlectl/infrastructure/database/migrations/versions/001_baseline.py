"""Baseline schema — subjects, ledgers, audit trail, outbox, leases.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-01

Fresh databases are created from ``schema.metadata`` and stamped at this
revision without running it.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "owners",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("email", sa.Text, nullable=False, unique=True),
        sa.Column("display_name", sa.Text),
        sa.Column("classification", sa.Text, nullable=False),
        sa.Column("created", sa.Text, nullable=False),
    )

    op.create_table(
        "subjects",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("owner_id", sa.Text, sa.ForeignKey("owners.id"), nullable=False),
        sa.Column("public_slug", sa.Text, nullable=False, unique=True),
        sa.Column("payment_status", sa.Text, nullable=False),
        sa.Column("is_published", sa.Integer, server_default="0"),
        sa.Column("artifact_issued", sa.Integer, server_default="0"),
        sa.Column("artifact_ref", sa.Text),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("modified", sa.Text, nullable=False),
    )
    op.create_index("ix_subjects_owner", "subjects", ["owner_id"])
    op.create_index("ix_subjects_published", "subjects", ["is_published"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("subject_id", sa.Text, sa.ForeignKey("subjects.id"), nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("amount", sa.Integer, server_default="0"),
        sa.Column("billing_cycle", sa.Text, server_default="monthly"),
        sa.Column("next_billing_date", sa.Text),
        sa.Column("cancelled_at", sa.Text),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("modified", sa.Text, nullable=False),
    )
    op.create_index("ix_subscriptions_subject", "subscriptions", ["subject_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("subject_id", sa.Text, sa.ForeignKey("subjects.id"), nullable=False),
        sa.Column("kind", sa.Text, nullable=False),
        sa.Column("method", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("amount", sa.Integer, server_default="0"),
        sa.Column("paid_at", sa.Text),
        sa.Column("created", sa.Text, nullable=False),
    )
    op.create_index("ix_payments_subject", "payments", ["subject_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Text, nullable=False),
        sa.Column("actor_label", sa.Text, nullable=False),
        sa.Column("change_type", sa.Text, nullable=False),
        sa.Column("target_type", sa.Text, nullable=False),
        sa.Column("target_id", sa.Text),
        sa.Column("description", sa.Text),
        sa.Column("detail", sa.Text),
        sa.Column("occurred_at", sa.Text, nullable=False),
    )
    op.create_index("ix_audit_target", "audit_log", ["target_type", "target_id"])
    op.create_index("ix_audit_actor", "audit_log", ["actor_id"])
    op.create_index("ix_audit_occurred", "audit_log", ["occurred_at"])
    op.execute(
        "CREATE TRIGGER IF NOT EXISTS audit_log_no_update BEFORE UPDATE ON audit_log "
        "BEGIN SELECT RAISE(ABORT, 'audit_log is append-only'); END"
    )
    op.execute(
        "CREATE TRIGGER IF NOT EXISTS audit_log_no_delete BEFORE DELETE ON audit_log "
        "BEGIN SELECT RAISE(ABORT, 'audit_log is append-only'); END"
    )

    op.create_table(
        "side_effect_outbox",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("subject_id", sa.Text, sa.ForeignKey("subjects.id"), nullable=False),
        sa.Column("effect", sa.Text, nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("error", sa.Text),
        sa.Column("retries", sa.Integer, server_default="0"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("claimed_at", sa.Text),
        sa.Column("completed", sa.Text),
        sa.UniqueConstraint("subject_id", "effect"),
    )
    op.create_index("ix_outbox_status", "side_effect_outbox", ["status"])

    op.create_table(
        "job_leases",
        sa.Column("name", sa.Text, primary_key=True),
        sa.Column("holder", sa.Text, nullable=False),
        sa.Column("acquired_at", sa.Text, nullable=False),
        sa.Column("expires_at", sa.Text, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("job_leases")
    op.drop_table("side_effect_outbox")
    op.execute("DROP TRIGGER IF EXISTS audit_log_no_delete")
    op.execute("DROP TRIGGER IF EXISTS audit_log_no_update")
    op.drop_table("audit_log")
    op.drop_table("payments")
    op.drop_table("subscriptions")
    op.drop_table("subjects")
    op.drop_table("owners")
