"""Pytest configuration and shared fixtures."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional

import pytest  # type: ignore[import-not-found]

from commit_clock.core.errors import ExternalToolError
from commit_clock.core.git import CommitCounter
from commit_clock.core.storage import StorageManager

T0 = datetime(2025, 11, 16, 9, 0, 0, tzinfo=timezone(timedelta(hours=1)))


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


class StubCounter(CommitCounter):
    """Commit counter that never runs git."""

    def __init__(
        self,
        commits: int = 0,
        repository: bool = True,
        error: Optional[ExternalToolError] = None,
    ):
        super().__init__()
        self.commits = commits
        self.repository = repository
        self.error = error
        self.calls: list[tuple[str, datetime, datetime]] = []

    def is_repository(self, directory) -> bool:  # type: ignore[no-untyped-def]
        return self.repository

    def count_commits(self, directory, begin, end) -> int:  # type: ignore[no-untyped-def]
        self.calls.append((str(directory), begin, end))
        if self.error is not None:
            raise self.error
        return self.commits


class FakeClock:
    """Clock returning queued times, then repeating the last one."""

    def __init__(self, *times: datetime):
        self.times = list(times)
        self.last = times[0] if times else T0

    def advance_to(self, *times: datetime) -> None:
        self.times.extend(times)

    def __call__(self) -> datetime:
        if self.times:
            self.last = self.times.pop(0)
        return self.last


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def repo_dir(temp_dir: Path) -> Path:
    """Directory standing in for a git working copy."""
    repo = temp_dir / "repo"
    repo.mkdir()
    return repo


@pytest.fixture
def counter() -> StubCounter:
    return StubCounter(commits=3)


@pytest.fixture
def storage(temp_dir: Path, counter: StubCounter) -> StorageManager:
    """Storage manager writing to a temporary project file."""
    return StorageManager(temp_dir / "data" / "projects.json", counter=counter)
