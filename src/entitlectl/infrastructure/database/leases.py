"""Short-lived named leases that keep batch jobs from overlapping.

A lease is a row in ``job_leases``.  Acquisition succeeds when no row
exists or the existing one has expired.  A long-running holder renews it
between units of work and releases it when done.
The caller owns the transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select, update

from entitlectl.infrastructure.database.schema import job_leases

if TYPE_CHECKING:
    from sqlalchemy import Connection


def acquire_lease(
    conn: Connection,
    name: str,
    holder: str,
    *,
    now: datetime,
    ttl_seconds: int,
) -> bool:
    """Claim lease *name* for *holder*. Returns False if someone else holds it."""
    expires_at = (now + timedelta(seconds=ttl_seconds)).isoformat()
    row = conn.execute(
        select(job_leases.c.holder, job_leases.c.expires_at).where(job_leases.c.name == name)
    ).first()

    if row is None:
        conn.execute(
            insert(job_leases).values(
                name=name,
                holder=holder,
                acquired_at=now.isoformat(),
                expires_at=expires_at,
            )
        )
        return True

    if row.holder != holder and row.expires_at > now.isoformat():
        return False

    result = conn.execute(
        update(job_leases)
        .where(job_leases.c.name == name, job_leases.c.expires_at == row.expires_at)
        .values(holder=holder, acquired_at=now.isoformat(), expires_at=expires_at)
    )
    return result.rowcount == 1


def release_lease(conn: Connection, name: str, holder: str) -> None:
    """Drop lease *name* if *holder* still owns it."""
    conn.execute(delete(job_leases).where(job_leases.c.name == name, job_leases.c.holder == holder))


def renew_lease(
    conn: Connection,
    name: str,
    holder: str,
    *,
    now: datetime,
    ttl_seconds: int,
) -> bool:
    """Push *holder*'s expiry forward. False once someone else has taken the lease."""
    expires_at = (now + timedelta(seconds=ttl_seconds)).isoformat()
    result = conn.execute(
        update(job_leases)
        .where(job_leases.c.name == name, job_leases.c.holder == holder)
        .values(expires_at=expires_at)
    )
    return result.rowcount == 1
