"""Tests for git commit counting."""

import os
import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from commit_clock.core.errors import ExternalToolError
from commit_clock.core.git import CommitCounter
from conftest import T0


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCountCommits:
    """Test CommitCounter.count_commits with git mocked out."""

    @patch("commit_clock.core.git.subprocess.run")
    def test_counts_log_lines(self, mock_run, temp_dir: Path) -> None:
        """Test that each log line is one commit."""
        mock_run.side_effect = [completed(), completed(stdout="aaa\nbbb\nccc")]

        commits = CommitCounter().count_commits(temp_dir, T0, T0 + timedelta(seconds=90))

        assert commits == 3
        log_call = mock_run.call_args_list[1]
        args = log_call.args[0]
        assert args[:2] == ["git", "log"]
        assert "--since=2025-11-16 09:00:00 +0100" in args
        assert "--until=2025-11-16 09:01:30 +0100" in args
        assert log_call.kwargs["cwd"] == str(temp_dir)
        assert log_call.kwargs["timeout"] == 10.0

    @patch("commit_clock.core.git.subprocess.run")
    def test_no_commits_in_window(self, mock_run, temp_dir: Path) -> None:
        mock_run.side_effect = [completed(), completed(stdout="")]
        assert CommitCounter().count_commits(temp_dir, T0, T0 + timedelta(minutes=1)) == 0

    @patch("commit_clock.core.git.subprocess.run")
    def test_repository_without_commits(self, mock_run, temp_dir: Path) -> None:
        """Test that a fresh repository counts zero without running git log."""
        mock_run.return_value = completed(returncode=1)

        assert CommitCounter().count_commits(temp_dir, T0, T0 + timedelta(minutes=1)) == 0
        assert mock_run.call_count == 1

    @patch("commit_clock.core.git.subprocess.run")
    def test_not_a_repository(self, mock_run, temp_dir: Path) -> None:
        """Test that git's fatal exit becomes an ExternalToolError."""
        mock_run.return_value = completed(returncode=128, stderr="fatal: not a git repository")

        with pytest.raises(ExternalToolError, match="not a git repository"):
            CommitCounter().count_commits(temp_dir, T0, T0 + timedelta(minutes=1))

    @patch("commit_clock.core.git.subprocess.run")
    def test_log_failure(self, mock_run, temp_dir: Path) -> None:
        mock_run.side_effect = [completed(), completed(returncode=129, stderr="bad option")]

        with pytest.raises(ExternalToolError, match="git log failed"):
            CommitCounter().count_commits(temp_dir, T0, T0 + timedelta(minutes=1))

    @patch("commit_clock.core.git.subprocess.run", side_effect=FileNotFoundError("git"))
    def test_git_not_installed(self, mock_run, temp_dir: Path) -> None:
        with pytest.raises(ExternalToolError, match="Could not run"):
            CommitCounter(git_binary="no-such-git").count_commits(
                temp_dir, T0, T0 + timedelta(minutes=1)
            )

    @patch(
        "commit_clock.core.git.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="git", timeout=2),
    )
    def test_timeout(self, mock_run, temp_dir: Path) -> None:
        with pytest.raises(ExternalToolError, match="timed out"):
            CommitCounter(timeout=2).count_commits(temp_dir, T0, T0 + timedelta(minutes=1))

    def test_missing_directory(self, temp_dir: Path) -> None:
        """Test that running in a missing directory is an ExternalToolError."""
        with pytest.raises(ExternalToolError):
            CommitCounter().count_commits(temp_dir / "missing", T0, T0 + timedelta(minutes=1))


class TestIsRepository:
    """Test CommitCounter.is_repository."""

    @patch("commit_clock.core.git.subprocess.run")
    def test_status_success(self, mock_run, temp_dir: Path) -> None:
        mock_run.return_value = completed()
        assert CommitCounter().is_repository(temp_dir) is True
        assert mock_run.call_args.args[0] == ["git", "status", "--porcelain"]

    @patch("commit_clock.core.git.subprocess.run")
    def test_status_failure(self, mock_run, temp_dir: Path) -> None:
        mock_run.return_value = completed(returncode=128)
        assert CommitCounter().is_repository(temp_dir) is False

    @patch("commit_clock.core.git.subprocess.run", side_effect=FileNotFoundError("git"))
    def test_git_missing(self, mock_run, temp_dir: Path) -> None:
        assert CommitCounter().is_repository(temp_dir) is False


def _git(repo: Path, *args: str, when: datetime | None = None) -> None:
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": "Test",
        "GIT_AUTHOR_EMAIL": "test@example.com",
        "GIT_COMMITTER_NAME": "Test",
        "GIT_COMMITTER_EMAIL": "test@example.com",
    }
    if when is not None:
        env["GIT_AUTHOR_DATE"] = when.isoformat()
        env["GIT_COMMITTER_DATE"] = when.isoformat()
    subprocess.run(
        ["git", "-c", "commit.gpgsign=false", *args],
        cwd=repo,
        env=env,
        check=True,
        capture_output=True,
    )


@pytest.mark.integration
@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
class TestWithGit:
    """Run the counter against a real repository."""

    def test_counts_commits_in_window(self, repo_dir: Path) -> None:
        begin = datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
        _git(repo_dir, "init", "-q")
        _git(repo_dir, "commit", "--allow-empty", "-q", "-m", "before", when=begin - timedelta(hours=1))
        _git(repo_dir, "commit", "--allow-empty", "-q", "-m", "one", when=begin + timedelta(seconds=10))
        _git(repo_dir, "commit", "--allow-empty", "-q", "-m", "two", when=begin + timedelta(seconds=50))
        _git(repo_dir, "commit", "--allow-empty", "-q", "-m", "after", when=begin + timedelta(hours=1))

        counter = CommitCounter()
        assert counter.is_repository(repo_dir) is True
        assert counter.count_commits(repo_dir, begin, begin + timedelta(seconds=90)) == 2

    def test_empty_repository_counts_zero(self, repo_dir: Path) -> None:
        _git(repo_dir, "init", "-q")
        begin = datetime.now(timezone.utc)
        assert CommitCounter().count_commits(repo_dir, begin, begin + timedelta(seconds=1)) == 0
