"""Tests for subject CLI commands."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from tests.conftest import run_cli


@pytest.mark.usefixtures("_isolated_root")
class TestSubjectRegister:
    def test_register(self, cli_runner: CliRunner) -> None:
        result, payload = run_cli(
            cli_runner, "subject", "register", "harbor@example.com", "harbor"
        )
        assert result.exit_code == 0
        assert payload["op"] == "register_subject"
        assert payload["data"]["id"].startswith("sub_")
        assert payload["data"]["payment_status"] == "UNUSED"
        assert payload["data"]["is_published"] is False

    def test_register_with_options(self, cli_runner: CliRunner) -> None:
        _, payload = run_cli(
            cli_runner,
            "subject",
            "register",
            "promo@example.com",
            "promo",
            "--classification",
            "complimentary",
            "--status",
            "BANK_PENDING",
        )
        assert payload["data"]["payment_status"] == "BANK_PENDING"

    def test_duplicate_slug_conflicts(self, cli_runner: CliRunner) -> None:
        run_cli(cli_runner, "subject", "register", "a@example.com", "same")
        result, payload = run_cli(cli_runner, "subject", "register", "b@example.com", "same")
        assert result.exit_code == 1
        assert payload["error"]["code"] == "CONFLICT"

    def test_viewer_cannot_register(self, cli_runner: CliRunner) -> None:
        result, payload = run_cli(
            cli_runner, "subject", "register", "a@example.com", "slug", role=None
        )
        assert result.exit_code == 1
        assert payload["error"]["code"] == "UNAUTHORIZED"

    def test_unknown_status_rejected_by_click(self, cli_runner: CliRunner) -> None:
        from entitlectl.cli import cli

        result = cli_runner.invoke(
            cli,
            ["--role", "admin", "subject", "register", "a@example.com", "s", "--status", "GOLD"],
        )
        assert result.exit_code == 2


@pytest.mark.usefixtures("_isolated_root")
class TestSubjectShow:
    def test_show(self, cli_runner: CliRunner) -> None:
        _, registered = run_cli(cli_runner, "subject", "register", "h@example.com", "harbor")
        subject_id = registered["data"]["id"]

        result, payload = run_cli(cli_runner, "subject", "show", subject_id, role=None)

        assert result.exit_code == 0
        assert payload["data"]["subject"]["id"] == subject_id
        assert payload["data"]["public_link"] == "https://example.invalid/card/harbor"
        assert payload["data"]["owner"]["email"] == "h@example.com"
        assert payload["data"]["subscription"] is None

    def test_show_rich(self, cli_runner: CliRunner) -> None:
        from entitlectl.cli import cli

        _, registered = run_cli(cli_runner, "subject", "register", "h@example.com", "harbor")
        result = cli_runner.invoke(cli, ["subject", "show", registered["data"]["id"]])
        assert result.exit_code == 0
        assert "payment_status: UNUSED" in result.stdout
        assert "subscription: none" in result.stdout

    def test_show_missing(self, cli_runner: CliRunner) -> None:
        result, payload = run_cli(cli_runner, "subject", "show", "sub_000000000000")
        assert result.exit_code == 1
        assert payload["error"]["code"] == "NOT_FOUND"
