"""Append-only audit trail storage.

No update or delete is offered here, and the database triggers reject
them outright.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select

from entitlectl.domain.records import AuditEntry
from entitlectl.infrastructure.database.schema import audit_log

if TYPE_CHECKING:
    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine

SUBJECT_TARGET = "subject"


def append_entry(conn: Connection, entry: AuditEntry) -> int:
    """Insert *entry* inside the caller's transaction. Returns the row id."""
    result = conn.execute(
        insert(audit_log).values(
            actor_id=entry.actor_id,
            actor_label=entry.actor_label,
            change_type=entry.change_type,
            target_type=entry.target_type,
            target_id=entry.target_id,
            description=entry.description,
            detail=json.dumps(entry.detail, ensure_ascii=False, default=str),
            occurred_at=entry.occurred_at,
        )
    )
    assert result.inserted_primary_key is not None
    return int(result.inserted_primary_key[0])


def _to_entry(mapping: Any) -> AuditEntry:
    data = dict(mapping)
    data["detail"] = json.loads(data["detail"]) if data.get("detail") else {}
    return AuditEntry.model_validate(data)


class AuditRepository:
    """Read side of the audit trail."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def query(
        self,
        *,
        subject_id: str | None = None,
        actor_id: str | None = None,
        change_type: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Entries matching the filters, most recent first."""
        stmt = select(audit_log)
        if subject_id is not None:
            stmt = stmt.where(
                audit_log.c.target_type == SUBJECT_TARGET,
                audit_log.c.target_id == subject_id,
            )
        if actor_id is not None:
            stmt = stmt.where(audit_log.c.actor_id == actor_id)
        if change_type is not None:
            stmt = stmt.where(audit_log.c.change_type == change_type)
        stmt = stmt.order_by(audit_log.c.occurred_at.desc(), audit_log.c.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_entry(row) for row in rows]

    def count(self) -> int:
        from sqlalchemy import func

        with self._engine.connect() as conn:
            return int(conn.execute(select(func.count(audit_log.c.id))).scalar_one() or 0)
