"""Shared pytest fixtures and test helpers for entitlectl tests."""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable, Iterator
from datetime import date, timedelta
from pathlib import Path
from typing import Any

import pluggy
import pytest
import structlog
from click.testing import CliRunner
from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from entitlectl.config.models import OutboxConfig
from entitlectl.config.settings import EntitlementSettings
from entitlectl.domain.actors import Actor
from entitlectl.domain.types import ActorRole
from entitlectl.infrastructure.database.engine import init_database
from entitlectl.infrastructure.database.schema import payments, subjects, subscriptions
from entitlectl.infrastructure.store import Store
from entitlectl.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("entitlectl")

TODAY = date(2026, 10, 19)


# ---------------------------------------------------------------------------
# Collaborator double
# ---------------------------------------------------------------------------


class RecordingCollaborator:
    """Artifact generator + notifier that records calls and can misbehave."""

    def __init__(self) -> None:
        self.artifacts: list[dict[str, str]] = []
        self.notifications: list[dict[str, str]] = []
        self.fail_artifact = False
        self.artifact_delay = 0.0
        self.notify_result: bool = True

    @hookimpl
    def generate_artifact(self, subject_id: str, public_link: str) -> str | None:
        if self.artifact_delay:
            time.sleep(self.artifact_delay)
        if self.fail_artifact:
            raise RuntimeError("renderer unavailable")
        self.artifacts.append({"subject_id": subject_id, "public_link": public_link})
        return f"artifact://{subject_id}"

    @hookimpl
    def send_notification(self, recipient: str, public_link: str, artifact_ref: str) -> bool | None:
        self.notifications.append(
            {"recipient": recipient, "public_link": public_link, "artifact_ref": artifact_ref}
        )
        return self.notify_result


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_ambient_state() -> Iterator[None]:
    """Undo telemetry and logging configuration made by CLI invocations."""
    yield
    from entitlectl.services.telemetry import disable_telemetry

    disable_telemetry()
    logging.getLogger().handlers.clear()
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def collaborator() -> RecordingCollaborator:
    return RecordingCollaborator()


@pytest.fixture
def make_store(
    tmp_path: Path,
    collaborator: RecordingCollaborator,
) -> Iterator[Callable[..., Store]]:
    """Factory for stores on the temp data root with the recording collaborator.

    Keyword arguments are passed to :meth:`EntitlementSettings.from_cli`.
    """
    created: list[Store] = []

    def _make(**overrides: Any) -> Store:
        settings = EntitlementSettings.from_cli(data_root=tmp_path, **overrides)
        store = Store(settings)
        pm = PluginManager()
        pm.register_plugin(collaborator, name="recording")
        store.use_plugins(pm)
        created.append(store)
        return store

    yield _make
    for store in created:
        store.close()


@pytest.fixture
def store(make_store: Callable[..., Store]) -> Store:
    """Store with default settings, fast collaborator timeout."""
    return make_store(outbox=OutboxConfig(call_timeout_seconds=2.0))


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", label="admin@example.com", role=ActorRole.ADMIN)


@pytest.fixture
def viewer() -> Actor:
    return Actor(id="viewer-1", label="viewer@example.com", role=ActorRole.VIEWER)


@pytest.fixture
def _isolated_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the temp directory so the CLI uses an isolated data root."""
    monkeypatch.delenv("ENTITLECTL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Shared test helpers (used across service test modules)
# ---------------------------------------------------------------------------


def iso_day(day: date) -> str:
    return day.isoformat()


def days_ago(n: int, *, today: date = TODAY) -> date:
    return today - timedelta(days=n)


def register_subject(
    store: Store,
    actor: Actor,
    *,
    status: str = "UNUSED",
    classification: str = "new",
    slug: str | None = None,
) -> str:
    """Register a subject via BillingService, asserting success. Returns its id."""
    from entitlectl.services.billing import BillingService

    slug = slug or f"subject-{uuid.uuid4().hex[:8]}"
    result = BillingService(store, actor).register_subject(
        f"{slug}@example.com",
        slug,
        classification=classification,
        payment_status=status,
    )
    assert result.ok, result.error
    return result.data["id"]


def pending_bank_subject(store: Store, actor: Actor, **kwargs: Any) -> str:
    """A ``BANK_PENDING`` subject with an open bank-transfer payment."""
    from entitlectl.services.billing import BillingService

    subject_id = register_subject(store, actor, status="BANK_PENDING", **kwargs)
    result = BillingService(store, actor).open_bank_transfer(subject_id, "new_user", 30000)
    assert result.ok, result.error
    return subject_id


def paid_published_subject(
    store: Store,
    actor: Actor,
    *,
    paid_on: date,
    classification: str = "new",
) -> str:
    """A ``BANK_PAID``, published subject with one completed payment on *paid_on*."""
    from entitlectl.services.billing import BillingService
    from entitlectl.services.entitlement import EntitlementService

    subject_id = register_subject(store, actor, status="BANK_PAID", classification=classification)
    result = BillingService(store, actor).record_payment(
        subject_id,
        kind="new_user",
        method="bank_transfer",
        paid_at=iso_day(paid_on),
        amount=30000,
    )
    assert result.ok, result.error
    published = EntitlementService(store, actor).set_publication(subject_id, True)
    assert published.ok and published.data["is_published"] is True
    return subject_id


def open_subscription(store: Store, actor: Actor, subject_id: str, next_billing: date) -> int:
    from entitlectl.services.billing import BillingService

    result = BillingService(store, actor).open_subscription(
        subject_id, next_billing_date=iso_day(next_billing), amount=500
    )
    assert result.ok, result.error
    return result.data["subscription_id"]


def subject_row(store: Store, subject_id: str) -> Any:
    with store.engine.connect() as conn:
        return conn.execute(select(subjects).where(subjects.c.id == subject_id)).one()


def payment_rows(store: Store, subject_id: str) -> list[Any]:
    with store.engine.connect() as conn:
        return list(
            conn.execute(
                select(payments).where(payments.c.subject_id == subject_id).order_by(payments.c.id)
            ).fetchall()
        )


def subscription_row(store: Store, subscription_id: int) -> Any:
    with store.engine.connect() as conn:
        return conn.execute(
            select(subscriptions).where(subscriptions.c.id == subscription_id)
        ).one()


def force_subject(store: Store, subject_id: str, **values: Any) -> None:
    """Write subject columns directly, bypassing every service check."""
    with store.engine.begin() as conn:
        conn.execute(update(subjects).where(subjects.c.id == subject_id).values(**values))


def run_cli(runner: CliRunner, *args: str, role: str | None = "admin") -> tuple[Any, dict]:
    """Invoke the CLI with ``--json`` and parse the emitted result.

    Successful results are read from stdout, failures from stderr.
    """
    from entitlectl.cli import cli

    argv = ["--json"] + (["--role", role] if role else []) + list(args)
    result = runner.invoke(cli, argv)
    stream = result.stdout if result.exit_code == 0 else result.stderr
    return result, json.loads(stream)


def cli_paid_subject(runner: CliRunner, slug: str, *, paid_at: str = "2026-08-01") -> str:
    """Register, open and confirm a bank transfer through the CLI; returns the subject id."""
    _, registered = run_cli(
        runner, "subject", "register", f"{slug}@example.com", slug, "--status", "BANK_PENDING"
    )
    subject_id = registered["data"]["id"]
    run_cli(runner, "payment", "open", subject_id, "--amount", "30000")
    _, confirmed = run_cli(runner, "payment", "confirm", subject_id, "--paid-at", paid_at)
    assert confirmed["ok"], confirmed
    return subject_id
