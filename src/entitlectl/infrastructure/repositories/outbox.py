"""Side-effect outbox rows: enqueue, claim, and settle.

Rows are enqueued in the same transaction as the state change that
requires them, and ``UNIQUE(subject_id, effect)`` guarantees at most one
row per effect for a subject's lifetime.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, insert, or_, select, update

from entitlectl.domain.types import PENDING_OUTBOX_STATUSES, OutboxStatus
from entitlectl.infrastructure.database.schema import side_effect_outbox
from entitlectl.services._helpers import now_iso

if TYPE_CHECKING:
    from sqlalchemy import Connection
    from sqlalchemy.engine import Row

_RETRYABLE = sorted(str(s) for s in PENDING_OUTBOX_STATUSES)


def enqueue(conn: Connection, subject_id: str, effect: str, payload: dict[str, Any]) -> int | None:
    """Insert a pending row unless one already exists for (subject, effect).

    Returns the new row id, or None when the effect was enqueued before.
    """
    existing = conn.execute(
        select(side_effect_outbox.c.id).where(
            side_effect_outbox.c.subject_id == subject_id,
            side_effect_outbox.c.effect == effect,
        )
    ).first()
    if existing is not None:
        return None
    result = conn.execute(
        insert(side_effect_outbox).values(
            subject_id=subject_id,
            effect=effect,
            payload=json.dumps(payload),
            status=str(OutboxStatus.PENDING),
            retries=0,
            created=now_iso(),
        )
    )
    assert result.inserted_primary_key is not None
    return int(result.inserted_primary_key[0])


def find_claimable(
    conn: Connection,
    *,
    stale_before: str,
    subject_id: str | None = None,
    limit: int | None = None,
) -> list[Row[Any]]:
    """Rows waiting for delivery, including ``processing`` rows whose claim expired."""
    stmt = select(side_effect_outbox).where(
        or_(
            side_effect_outbox.c.status.in_(_RETRYABLE),
            and_(
                side_effect_outbox.c.status == str(OutboxStatus.PROCESSING),
                side_effect_outbox.c.claimed_at < stale_before,
            ),
        )
    )
    if subject_id is not None:
        stmt = stmt.where(side_effect_outbox.c.subject_id == subject_id)
    stmt = stmt.order_by(side_effect_outbox.c.id)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(conn.execute(stmt).fetchall())


def list_undelivered(conn: Connection, *, subject_id: str | None = None) -> list[Row[Any]]:
    """Rows not yet completed (dead letters included)."""
    stmt = select(side_effect_outbox).where(
        side_effect_outbox.c.status != str(OutboxStatus.COMPLETED)
    )
    if subject_id is not None:
        stmt = stmt.where(side_effect_outbox.c.subject_id == subject_id)
    return list(conn.execute(stmt.order_by(side_effect_outbox.c.id)).fetchall())


def claim(conn: Connection, row: Row[Any]) -> bool:
    """Compare-and-set a row into ``processing``. False if another worker won."""
    result = conn.execute(
        update(side_effect_outbox)
        .where(
            side_effect_outbox.c.id == row.id,
            side_effect_outbox.c.status == row.status,
            side_effect_outbox.c.retries == row.retries,
        )
        .values(status=str(OutboxStatus.PROCESSING), claimed_at=now_iso())
    )
    return result.rowcount == 1


def mark_completed(conn: Connection, event_id: int) -> None:
    conn.execute(
        update(side_effect_outbox)
        .where(side_effect_outbox.c.id == event_id)
        .values(status=str(OutboxStatus.COMPLETED), error=None, completed=now_iso())
    )


def mark_failed(conn: Connection, event_id: int, error: str, *, max_retries: int) -> str:
    """Increment retries, mark failed or dead_letter. Returns the new status."""
    retries = conn.execute(
        select(side_effect_outbox.c.retries).where(side_effect_outbox.c.id == event_id)
    ).scalar_one()

    new_retries = retries + 1
    new_status = OutboxStatus.DEAD_LETTER if new_retries >= max_retries else OutboxStatus.FAILED

    conn.execute(
        update(side_effect_outbox)
        .where(side_effect_outbox.c.id == event_id)
        .values(
            status=str(new_status),
            error=error,
            retries=new_retries,
            completed=now_iso() if new_status == OutboxStatus.DEAD_LETTER else None,
        )
    )
    return str(new_status)


def get_status(conn: Connection, event_id: int) -> str:
    return str(
        conn.execute(
            select(side_effect_outbox.c.status).where(side_effect_outbox.c.id == event_id)
        ).scalar_one()
    )


def get_row(conn: Connection, event_id: int) -> Row[Any]:
    return conn.execute(select(side_effect_outbox).where(side_effect_outbox.c.id == event_id)).one()
