"""Tests for audit CLI command."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from entitlectl.cli import cli
from tests.conftest import cli_paid_subject, run_cli


@pytest.mark.usefixtures("_isolated_root")
class TestAuditCommand:
    def test_lists_confirmation_and_publication(self, cli_runner: CliRunner) -> None:
        subject_id = cli_paid_subject(cli_runner, "harbor")
        run_cli(cli_runner, "publish", subject_id)

        result, payload = run_cli(cli_runner, "audit", "--subject", subject_id, role=None)

        assert result.exit_code == 0
        changes = [item["change_type"] for item in payload["data"]["items"]]
        assert changes == ["publication_updated", "payment_status_updated"]
        assert all(item["actor_id"] == "cli" for item in payload["data"]["items"])

    def test_filters(self, cli_runner: CliRunner) -> None:
        subject_id = cli_paid_subject(cli_runner, "harbor")
        run_cli(cli_runner, "publish", subject_id)

        _, by_type = run_cli(cli_runner, "audit", "--change-type", "publication_updated")
        _, by_actor = run_cli(cli_runner, "audit", "--by", "someone-else")
        _, limited = run_cli(cli_runner, "audit", "--limit", "1")

        assert by_type["data"]["count"] == 1
        assert by_actor["data"]["count"] == 0
        assert limited["data"]["count"] == 1

    def test_actor_flags_recorded(self, cli_runner: CliRunner) -> None:
        subject_id = cli_paid_subject(cli_runner, "harbor")
        args = ["--role", "admin", "--actor", "ops-7", "--actor-label", "Ops Seven"]
        cli_runner.invoke(cli, [*args, "publish", subject_id])

        _, payload = run_cli(cli_runner, "audit", "--by", "ops-7", role=None)

        assert payload["data"]["count"] == 1
        entry = payload["data"]["items"][0]
        assert entry["actor_label"] == "Ops Seven"
        assert entry["change_type"] == "publication_updated"

    def test_rich_table(self, cli_runner: CliRunner) -> None:
        subject_id = cli_paid_subject(cli_runner, "harbor")
        result = cli_runner.invoke(cli, ["audit", "--subject", subject_id])
        assert result.exit_code == 0
        assert "payment_status_updated" in result.stdout
        assert "1 entries" in result.stdout
