"""Commit counting through the git command line."""

import logging
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Union

from commit_clock.core.errors import ExternalToolError

logger = logging.getLogger(__name__)

# git's date parser understands this layout unambiguously, offset included
GIT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


class CommitCounter:
    """Query git history for the number of commits made in a time window."""

    def __init__(self, git_binary: str = "git", timeout: float = 10.0):
        """Initialize commit counter.

        Args:
            git_binary: Name or path of the git executable
            timeout: Seconds before a git invocation is abandoned
        """
        self.git_binary = git_binary
        self.timeout = timeout

    def _run(self, directory: Union[str, Path], *args: str) -> subprocess.CompletedProcess:
        """Run a git subcommand inside a directory.

        Raises:
            ExternalToolError: If git is missing, the directory is unusable,
                or the command timed out
        """
        command = [self.git_binary, *args]
        try:
            return subprocess.run(
                command,
                cwd=str(directory),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExternalToolError(
                f"'{' '.join(command)}' timed out after {self.timeout}s in {directory}"
            )
        except OSError as e:
            raise ExternalToolError(f"Could not run '{self.git_binary}' in {directory}: {e}")

    def is_repository(self, directory: Union[str, Path]) -> bool:
        """Check whether a directory is a git working copy.

        Args:
            directory: Directory to probe

        Returns:
            True if `git status` succeeds there
        """
        try:
            result = self._run(directory, "status", "--porcelain")
        except ExternalToolError as e:
            logger.debug(f"Repository probe failed: {e}")
            return False
        return result.returncode == 0

    def _has_commits(self, directory: Union[str, Path]) -> bool:
        result = self._run(directory, "rev-parse", "--verify", "--quiet", "HEAD")
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            # Valid repository whose current branch has no commit yet
            return False
        raise ExternalToolError(
            f"git rev-parse failed in {directory} (exit {result.returncode}): "
            f"{result.stderr.strip()}"
        )

    def count_commits(self, directory: Union[str, Path], begin: datetime, end: datetime) -> int:
        """Count commits made between begin and end.

        Both bounds are inclusive at one-second granularity.

        Args:
            directory: Root of the git working copy
            begin: Start of the window
            end: End of the window

        Returns:
            Number of commits on the current branch in the window

        Raises:
            ExternalToolError: If git fails for any reason
        """
        if not self._has_commits(directory):
            return 0

        result = self._run(
            directory,
            "log",
            f"--since={begin.strftime(GIT_DATE_FORMAT)}",
            f"--until={end.strftime(GIT_DATE_FORMAT)}",
            "--pretty=format:%H",
        )
        if result.returncode != 0:
            raise ExternalToolError(
                f"git log failed in {directory} (exit {result.returncode}): "
                f"{result.stderr.strip()}"
            )

        commits = sum(1 for line in result.stdout.splitlines() if line.strip())
        logger.info(f"{commits} commits made in {directory} between {begin} and {end}")
        return commits
