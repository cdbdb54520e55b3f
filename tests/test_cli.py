"""Tests for the leash command line."""

from __future__ import annotations

from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from leash import __version__
from leash.main import cli

POLICY_YAML = """\
agent: inbox-bot
rules:
  allow: ["read*", "check*"]
  deny: ["*send*", "*export*"]
default: deny
expire_after: 8h
max_actions: 25
domains: [mail.example.com]
"""


@pytest.fixture
def policy_file(tmp_path: Path) -> Path:
    path = tmp_path / "leash.yaml"
    path.write_text(POLICY_YAML)
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestCheckPolicy:
    def test_valid_policy(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(cli, ["check-policy", "--policy", str(policy_file)])
        assert result.exit_code == 0
        assert "Policy OK" in result.output
        assert "Agent: inbox-bot" in result.output
        assert "+ read*" in result.output
        assert "- *send*" in result.output
        assert "Action budget: 25" in result.output
        assert "Expires after: 8h" in result.output
        assert "Domains: mail.example.com" in result.output

    def test_policy_from_env(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(cli, ["check-policy"], env={"LEASH_POLICY": str(policy_file)})
        assert result.exit_code == 0
        assert "Policy OK" in result.output

    def test_configures_logging(self, runner: CliRunner, policy_file: Path) -> None:
        assert not structlog.is_configured()
        result = runner.invoke(
            cli, ["check-policy", "--policy", str(policy_file), "--log-level", "DEBUG"]
        )
        assert result.exit_code == 0
        assert structlog.is_configured()

    def test_rejects_unknown_log_level(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(
            cli, ["check-policy", "--policy", str(policy_file), "--log-level", "LOUD"]
        )
        assert result.exit_code == 2

    def test_missing_policy(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["check-policy", "--policy", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_invalid_policy(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("max_actions: -1\n")
        result = runner.invoke(cli, ["check-policy", "--policy", str(path)])
        assert result.exit_code == 1
        assert "FAIL" in result.output


class TestEvaluate:
    def test_allowed(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(cli, ["evaluate", "--policy", str(policy_file), "read my inbox"])
        assert result.exit_code == 0
        assert "ALLOWED" in result.output

    def test_blocked_by_deny(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(
            cli, ["evaluate", "--policy", str(policy_file), "read and send messages"]
        )
        assert result.exit_code == 1
        assert "BLOCKED: blocked by deny pattern: *send*" in result.output

    def test_blocked_by_default(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(cli, ["evaluate", "--policy", str(policy_file), "browse around"])
        assert result.exit_code == 1
        assert "default: deny" in result.output


class TestScan:
    def test_flags_from_stdin(self, runner: CliRunner, policy_file: Path) -> None:
        result = runner.invoke(
            cli,
            ["scan", "--policy", str(policy_file)],
            input="Successfully exported 500 contacts to CSV file.",
        )
        assert result.exit_code == 1
        assert "*export*" in result.output
        assert "keyword='export'" in result.output

    def test_clean_file(self, runner: CliRunner, policy_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "output.txt"
        output.write_text("Here are your 5 unread messages.")
        result = runner.invoke(
            cli, ["scan", "--policy", str(policy_file), "--file", str(output)]
        )
        assert result.exit_code == 0
        assert "No flags." in result.output


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
