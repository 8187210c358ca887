"""Subject and owner persistence with optimistic concurrency."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select, update

from entitlectl.domain.errors import ConflictError
from entitlectl.domain.records import Owner, Subject
from entitlectl.infrastructure.database.schema import owners, subjects
from entitlectl.services._helpers import now_iso

if TYPE_CHECKING:
    from sqlalchemy import Connection


def get_subject(conn: Connection, subject_id: str) -> Subject | None:
    """Read a subject row (None if unknown)."""
    row = conn.execute(select(subjects).where(subjects.c.id == subject_id)).first()
    if row is None:
        return None
    return Subject.model_validate(dict(row._mapping))


def get_owner(conn: Connection, owner_id: str) -> Owner | None:
    row = conn.execute(select(owners).where(owners.c.id == owner_id)).first()
    if row is None:
        return None
    return Owner.model_validate(dict(row._mapping))


def find_owner_by_email(conn: Connection, email: str) -> Owner | None:
    row = conn.execute(select(owners).where(owners.c.email == email)).first()
    if row is None:
        return None
    return Owner.model_validate(dict(row._mapping))


def compare_and_set_subject(conn: Connection, expected: Subject, **values: Any) -> Subject:
    """Write *values* only if the subject still matches *expected*.

    The guard covers ``version``, ``payment_status`` and ``is_published``
    so a concurrent writer is detected even if it bypassed versioning.

    Raises:
        ConflictError: The row changed (or vanished) since *expected* was read.
    """
    result = conn.execute(
        update(subjects)
        .where(
            subjects.c.id == expected.id,
            subjects.c.version == expected.version,
            subjects.c.payment_status == str(expected.payment_status),
            subjects.c.is_published == int(expected.is_published),
        )
        .values(**values, version=expected.version + 1, modified=now_iso())
    )
    if result.rowcount != 1:
        msg = f"Subject {expected.id} changed concurrently; re-read and retry"
        raise ConflictError(msg, detail={"subject_id": expected.id, "version": expected.version})

    updated = get_subject(conn, expected.id)
    assert updated is not None
    return updated


def mark_artifact_issued(conn: Connection, subject_id: str, artifact_ref: str) -> bool:
    """Flip ``artifact_issued`` false -> true. Returns False if already issued."""
    result = conn.execute(
        update(subjects)
        .where(subjects.c.id == subject_id, subjects.c.artifact_issued == 0)
        .values(
            artifact_issued=1,
            artifact_ref=artifact_ref,
            version=subjects.c.version + 1,
            modified=now_iso(),
        )
    )
    return result.rowcount == 1


def insert_owner(
    conn: Connection,
    owner_id: str,
    email: str,
    classification: str,
    *,
    display_name: str | None = None,
) -> None:
    conn.execute(
        insert(owners).values(
            id=owner_id,
            email=email,
            display_name=display_name,
            classification=classification,
            created=now_iso(),
        )
    )


def insert_subject(
    conn: Connection,
    subject_id: str,
    owner_id: str,
    public_slug: str,
    payment_status: str,
) -> None:
    now = now_iso()
    conn.execute(
        insert(subjects).values(
            id=subject_id,
            owner_id=owner_id,
            public_slug=public_slug,
            payment_status=payment_status,
            is_published=0,
            artifact_issued=0,
            version=1,
            created=now,
            modified=now,
        )
    )


def slug_taken(conn: Connection, public_slug: str) -> bool:
    row = conn.execute(select(subjects.c.id).where(subjects.c.public_slug == public_slug)).first()
    return row is not None
