"""Tests for the root entitlectl CLI."""

import pytest
from click.testing import CliRunner

from entitlectl import __version__
from entitlectl.cli import cli


def test_cli_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "entitlectl" in result.output


def test_cli_version(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_no_args(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, [])
    assert result.exit_code == 0
    assert "Usage" in result.output


# --- Global flags ---


@pytest.mark.parametrize(
    "flags",
    [
        ["--json"],
        ["-q"],
        ["-v"],
        ["--log-json"],
        ["--no-dispatch"],
        ["-c", "missing.toml"],
        ["--actor", "ops-1", "--actor-label", "Ops"],
        ["--role", "system"],
    ],
)
def test_global_flags_accepted(cli_runner: CliRunner, flags: list[str]) -> None:
    result = cli_runner.invoke(cli, [*flags, "--version"])
    assert result.exit_code == 0


def test_unknown_role_rejected(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--role", "root", "audit"])
    assert result.exit_code == 2


# --- Command registration ---


@pytest.mark.parametrize("group", ["subject", "payment", "outbox"])
def test_group_registered(cli_runner: CliRunner, group: str) -> None:
    result = cli_runner.invoke(cli, [group, "--help"])
    assert result.exit_code == 0


@pytest.mark.parametrize("command", ["init", "publish", "cancel", "reconcile", "audit"])
def test_command_registered(cli_runner: CliRunner, command: str) -> None:
    result = cli_runner.invoke(cli, [command, "--help"])
    assert result.exit_code == 0


def test_all_commands_in_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--help"])
    for name in ("subject", "payment", "outbox", "init", "publish", "cancel", "reconcile", "audit"):
        assert name in result.output


@pytest.mark.usefixtures("_isolated_root")
def test_quiet_prints_ids(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(
        cli, ["-q", "--role", "admin", "subject", "register", "q@example.com", "quiet"]
    )
    assert result.exit_code == 0
    assert result.stdout.strip().startswith("sub_")
