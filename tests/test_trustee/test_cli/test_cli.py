"""Tests for the trustee CLI commands."""
from __future__ import annotations

import platform
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from trustee._version import git_commit, package_version, version_string
from trustee.checkpoint import CheckpointManager, SessionStatus
from trustee.cli.main import cli


def _run_stub(runner: CliRunner, tmp_path, *extra: str):
    return runner.invoke(
        cli,
        [
            "run", "say hello",
            "--provider", "stub",
            "--checkpoint-dir", str(tmp_path / "sessions"),
            "--workdir", str(tmp_path),
            *extra,
        ],
    )


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


class TestCLIGroup:
    def test_help_lists_commands(self, runner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.output
        assert "resume" in result.output
        assert "sessions" in result.output

    def test_version(self, runner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith(f"trustee {package_version()} (")
        assert f"Python {platform.python_version()}" in result.output

    def test_verbose_flag_accepted(self, runner, tmp_path) -> None:
        result = runner.invoke(cli, ["-vv", "sessions", "--checkpoint-dir", str(tmp_path)])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# run command
# ---------------------------------------------------------------------------


class TestRunCommand:
    def test_run_with_stub_provider(self, runner, tmp_path) -> None:
        result = _run_stub(runner, tmp_path, "--session-id", "abc")
        assert result.exit_code == 0, result.output
        assert "Completed after 1 iteration(s)." in result.output
        assert "Session: abc" in result.output

        index = CheckpointManager(tmp_path / "sessions").read_index("abc")
        assert index.status == SessionStatus.COMPLETED
        assert index.task_description == "say hello"

    def test_run_rejects_existing_session_id(self, runner, tmp_path) -> None:
        _run_stub(runner, tmp_path, "--session-id", "abc")
        result = _run_stub(runner, tmp_path, "--session-id", "abc")
        assert result.exit_code == 2
        assert "already exists" in result.output

    def test_run_rejects_bad_session_id(self, runner, tmp_path) -> None:
        result = _run_stub(runner, tmp_path, "--session-id", "../escape")
        assert result.exit_code == 2

    def test_run_anthropic_requires_model(self, runner, tmp_path) -> None:
        result = runner.invoke(
            cli, ["run", "x", "--provider", "anthropic", "--workdir", str(tmp_path)],
        )
        assert result.exit_code == 1
        assert "model is required" in result.output

    def test_run_reports_config_errors(self, runner, tmp_path) -> None:
        config = tmp_path / "trustee.toml"
        config.write_text("[session]\nmax_iteration = 3\n")
        result = runner.invoke(cli, ["run", "x", "--config", str(config)])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_run_picks_up_project_config(self, runner, tmp_path) -> None:
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path("config").mkdir()
            Path("config/trustee.toml").write_text(
                '[provider]\nkind = "stub"\n[checkpoint]\ndir = "stored"\n'
            )
            result = runner.invoke(cli, ["run", "x", "--session-id", "auto"])
            assert result.exit_code == 0, result.output
            assert Path("stored/auto/session.json").is_file()

    def test_explicit_config_wins_over_project_config(self, runner, tmp_path) -> None:
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path("config").mkdir()
            Path("config/trustee.toml").write_text("[checkpoint]\ndri = \"typo\"\n")
            Path("other.toml").write_text('[provider]\nkind = "stub"\n')
            result = runner.invoke(cli, ["run", "x", "--config", "other.toml"])
            assert result.exit_code == 0, result.output

    def test_run_uses_config_file(self, runner, tmp_path) -> None:
        config = tmp_path / "trustee.toml"
        config.write_text(
            "[provider]\nkind = \"stub\"\n"
            f"[checkpoint]\ndir = \"{(tmp_path / 'stored').as_posix()}\"\n"
        )
        result = runner.invoke(
            cli, ["run", "x", "--config", str(config), "--workdir", str(tmp_path), "--session-id", "cfg"],
        )
        assert result.exit_code == 0, result.output
        assert (tmp_path / "stored" / "cfg" / "session.json").is_file()


# ---------------------------------------------------------------------------
# sessions command
# ---------------------------------------------------------------------------


class TestSessionsCommand:
    def test_list_empty(self, runner, tmp_path) -> None:
        result = runner.invoke(cli, ["sessions", "--checkpoint-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "No sessions" in result.output

    def test_list_after_run(self, runner, tmp_path) -> None:
        _run_stub(runner, tmp_path, "--session-id", "abc")
        result = runner.invoke(
            cli, ["sessions", "--list", "--checkpoint-dir", str(tmp_path / "sessions")],
        )
        assert result.exit_code == 0
        assert "abc" in result.output
        assert "completed" in result.output

    def test_show(self, runner, tmp_path) -> None:
        _run_stub(runner, tmp_path, "--session-id", "abc")
        result = runner.invoke(
            cli, ["sessions", "--show", "abc", "--checkpoint-dir", str(tmp_path / "sessions")],
        )
        assert result.exit_code == 0
        assert "Task:        say hello" in result.output
        assert "Checkpoints: 1, 2" in result.output

    def test_show_unknown_session(self, runner, tmp_path) -> None:
        result = runner.invoke(
            cli, ["sessions", "--show", "nope", "--checkpoint-dir", str(tmp_path)],
        )
        assert result.exit_code == 2
        assert "Unknown session" in result.output


# ---------------------------------------------------------------------------
# resume command
# ---------------------------------------------------------------------------


class TestResumeCommand:
    def _resume(self, runner, tmp_path, session_id: str):
        return runner.invoke(
            cli,
            [
                "resume", "--session", session_id,
                "--provider", "stub",
                "--checkpoint-dir", str(tmp_path / "sessions"),
                "--workdir", str(tmp_path),
            ],
        )

    def test_resume_unknown_session(self, runner, tmp_path) -> None:
        result = self._resume(runner, tmp_path, "missing")
        assert result.exit_code == 2
        assert "Cannot resume session missing" in result.output

    def test_resume_corrupt_checkpoint(self, runner, tmp_path) -> None:
        _run_stub(runner, tmp_path, "--session-id", "abc")
        manager = CheckpointManager(tmp_path / "sessions")
        manager.checkpoint_path("abc", manager.latest_sequence("abc")).write_bytes(b"not gzip")

        result = self._resume(runner, tmp_path, "abc")
        assert result.exit_code == 2
        assert "corrupt" in result.output

    def test_resume_finished_session(self, runner, tmp_path) -> None:
        _run_stub(runner, tmp_path, "--session-id", "abc")
        result = self._resume(runner, tmp_path, "abc")
        assert result.exit_code == 0, result.output
        assert "Completed" in result.output

    def test_resume_bad_session_id(self, runner, tmp_path) -> None:
        result = self._resume(runner, tmp_path, "../escape")
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# version details
# ---------------------------------------------------------------------------


class TestVersion:
    def test_git_commit_outside_repository(self, tmp_path) -> None:
        assert git_commit(tmp_path) is None

    def test_git_commit_without_git(self) -> None:
        with patch("trustee._version.subprocess.run", side_effect=FileNotFoundError("git")):
            assert git_commit() is None

    def test_version_string_includes_commit(self) -> None:
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="abc1234\n", stderr="")
        with patch("trustee._version.subprocess.run", return_value=completed):
            text = version_string()
        assert text.startswith(f"trustee {package_version()} (commit abc1234, Python ")
