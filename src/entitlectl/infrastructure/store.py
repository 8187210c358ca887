"""Store — repository pattern with per-subject transactional units of work.

The Store is the single dependency injected into every service. It owns
the database engine and the collaborator plugin manager. The
:meth:`transaction` context manager wraps one unit of work:

- **DB**: Native SQLAlchemy ``engine.begin()`` with auto-commit/rollback.
- **Side effects**: never executed inside a transaction; they are
  enqueued to the outbox and delivered after commit.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from entitlectl.domain.errors import NotFoundError
from entitlectl.domain.records import AuditEntry, Owner, Subject, Subscription
from entitlectl.domain.types import SideEffect
from entitlectl.infrastructure.database.engine import init_database
from entitlectl.infrastructure.repositories import audit as audit_repo
from entitlectl.infrastructure.repositories import ledger
from entitlectl.infrastructure.repositories import outbox as outbox_repo
from entitlectl.infrastructure.repositories import subjects as subjects_repo
from entitlectl.infrastructure.repositories.audit import AuditRepository

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine

    from entitlectl.config.settings import EntitlementSettings
    from entitlectl.plugins.manager import PluginManager


# ---------------------------------------------------------------------------
# StoreTransaction — yielded to callers within transaction()
# ---------------------------------------------------------------------------


@dataclass
class StoreTransaction:
    """Active unit of work: one connection, one commit."""

    conn: Connection
    _store: Store

    # -- subjects ------------------------------------------------------

    def get_subject(self, subject_id: str) -> Subject | None:
        return subjects_repo.get_subject(self.conn, subject_id)

    def require_subject(self, subject_id: str) -> Subject:
        """Re-read a subject or raise :class:`NotFoundError`."""
        subject = self.get_subject(subject_id)
        if subject is None:
            raise NotFoundError(
                f"No subject found with ID: {subject_id}",
                detail={"subject_id": subject_id},
            )
        return subject

    def get_owner(self, owner_id: str) -> Owner | None:
        return subjects_repo.get_owner(self.conn, owner_id)

    def compare_and_set_subject(self, expected: Subject, **values: Any) -> Subject:
        return subjects_repo.compare_and_set_subject(self.conn, expected, **values)

    # -- ledgers -------------------------------------------------------

    def latest_subscription(self, subject_id: str) -> Subscription | None:
        return ledger.latest_subscription(self.conn, subject_id)

    def complete_pending_payment(self, subject_id: str, method: str, paid_at: str) -> int | None:
        return ledger.complete_pending_payment(self.conn, subject_id, method, paid_at)

    def demote_latest_completed_payment(self, subject_id: str) -> int | None:
        return ledger.demote_latest_completed_payment(self.conn, subject_id)

    def renew_subscription(
        self,
        subject_id: str,
        next_billing_date: date,
        *,
        amount: int,
        billing_cycle: str = "monthly",
    ) -> tuple[int, bool]:
        return ledger.renew_subscription(
            self.conn,
            subject_id,
            next_billing_date,
            amount=amount,
            billing_cycle=billing_cycle,
        )

    def set_subscription_status(
        self,
        subscription_id: int,
        status: str,
        *,
        expected: Iterable[str],
        cancelled_at: str | None = None,
    ) -> bool:
        return ledger.set_subscription_status(
            self.conn,
            subscription_id,
            status,
            expected=expected,
            cancelled_at=cancelled_at,
        )

    # -- outbox + audit ------------------------------------------------

    def enqueue_side_effect(
        self,
        subject_id: str,
        effect: SideEffect,
        payload: dict[str, Any],
    ) -> int | None:
        return outbox_repo.enqueue(self.conn, subject_id, str(effect), payload)

    def record_audit(self, entry: AuditEntry) -> int:
        return audit_repo.append_entry(self.conn, entry)


# ---------------------------------------------------------------------------
# Store — the repository
# ---------------------------------------------------------------------------


class Store:
    """Repository encapsulating database access and collaborator plugins.

    Constructed once at CLI startup from :class:`EntitlementSettings` and
    stored on the click context.  Services receive the Store via their
    :class:`BaseService` constructor.
    """

    def __init__(self, settings: EntitlementSettings) -> None:
        self._settings = settings
        self._engine: Engine = init_database(self.root)
        self._plugins: PluginManager | None = None
        self._audit = AuditRepository(self._engine)

    @property
    def root(self) -> Path:
        """The data root directory."""
        return self._settings.data_root

    @property
    def artifacts_dir(self) -> Path:
        return self.root / ".entitlectl" / "artifacts"

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def settings(self) -> EntitlementSettings:
        return self._settings

    @property
    def audit(self) -> AuditRepository:
        return self._audit

    @property
    def plugins(self) -> PluginManager:
        """Collaborator plugin manager (built-ins registered on first access)."""
        if self._plugins is None:
            self.init_plugins()
        assert self._plugins is not None
        return self._plugins

    def init_plugins(self, *, discover: bool = True) -> PluginManager:
        """Create the plugin manager and register the built-in collaborators.

        Built-in hook implementations are marked ``trylast``, so a
        ``firstresult`` hook answered by an installed plugin wins.
        """
        from entitlectl.plugins.builtins.artifacts import FileArtifactPlugin
        from entitlectl.plugins.builtins.notifier import LogNotifierPlugin
        from entitlectl.plugins.manager import PluginManager

        pm = PluginManager()
        if discover:
            pm.discover_and_load(local_dir=self.root / ".entitlectl" / "plugins")

        plugins_config = self._settings.plugins
        if plugins_config.file_artifacts:
            pm.register_plugin(
                FileArtifactPlugin(self.artifacts_dir), name="file-artifacts-builtin"
            )
        if plugins_config.log_notifier:
            pm.register_plugin(LogNotifierPlugin(), name="log-notifier-builtin")

        self._plugins = pm
        return pm

    def use_plugins(self, pm: PluginManager) -> None:
        """Replace the plugin manager (tests, embedding applications)."""
        self._plugins = pm

    def public_link(self, subject: Subject) -> str:
        return self._settings.public.link_for(subject.public_slug)

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """One atomic unit of work.

        Commits when the block exits normally and rolls back on any
        exception, so a subject's status write, publication write, outbox
        row and audit entry land together or not at all.

        Usage::

            with store.transaction() as txn:
                subject = txn.require_subject(subject_id)
                txn.compare_and_set_subject(subject, is_published=0)
                txn.record_audit(entry)
        """
        with self._engine.begin() as conn:
            yield StoreTransaction(conn=conn, _store=self)

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self._engine.dispose()
