"""Presentation of a project's session history."""

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterator

from commit_clock.core.errors import ValidationError
from commit_clock.core.models import Project, Session
from commit_clock.core.storage import StorageManager

DEFAULT_DATE_FORMAT = "%a %m/%d/%y %H:%M"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*(h|m|s)", re.IGNORECASE)
_CLOCK_DURATION = re.compile(r"^(\d+):([0-5]?\d)(?::([0-5]?\d))?$")


def format_duration(duration: timedelta) -> str:
    """Format a duration as e.g. '1h 30m 5s' (whole seconds)."""
    seconds = int(duration.total_seconds())
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def parse_duration(text: str) -> timedelta:
    """Parse '1h 30m', '1h30m5s', '90s', '45m' or 'H:MM[:SS]'.

    Raises:
        ValidationError: If the text is not a positive duration
    """
    text = text.strip()
    clock = _CLOCK_DURATION.match(text)
    parts = _DURATION_PART.findall(text)
    if not clock and (not parts or _DURATION_PART.sub("", text).strip()):
        raise ValidationError(f"Invalid duration: {text!r}")

    try:
        if clock:
            hours, minutes, seconds = clock.groups()
            duration = timedelta(
                hours=int(hours), minutes=int(minutes), seconds=int(seconds or 0)
            )
        else:
            units = {"h": "hours", "m": "minutes", "s": "seconds"}
            duration = timedelta()
            for amount, unit in parts:
                duration += timedelta(**{units[unit.lower()]: float(amount)})
    except OverflowError:
        raise ValidationError(f"Duration is too large: {text!r}")

    if duration <= timedelta(0):
        raise ValidationError("Duration must be positive")
    return duration


def parse_datetime(text: str) -> datetime:
    """Parse 'YYYY-MM-DD HH:MM' or an ISO 8601 timestamp as local time.

    Raises:
        ValidationError: If the text matches neither form
    """
    text = text.strip()
    try:
        parsed = datetime.strptime(text, "%Y-%m-%d %H:%M")
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid date: {text!r}. Use YYYY-MM-DD HH:MM")
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _parse_commits(text: str) -> int:
    try:
        commits = int(text.strip())
    except ValueError:
        raise ValidationError(f"Invalid commit count: {text!r}")
    if commits < 0:
        raise ValidationError("Commit count cannot be negative")
    return commits


class HistoryColumn(Enum):
    """Columns of the history table, each with a typed accessor."""

    DATE = "date"
    DURATION = "duration"
    COMMITS = "commits"
    COMMENT = "comment"

    @property
    def field(self) -> str:
        """Keyword accepted by Session.with_changes for this column."""
        return {
            HistoryColumn.DATE: "begin",
            HistoryColumn.DURATION: "duration",
            HistoryColumn.COMMITS: "commits",
            HistoryColumn.COMMENT: "comment",
        }[self]

    def get(self, session: Session) -> Any:
        """Typed value of this column for a session."""
        return getattr(session, self.field)

    def format(self, session: Session, date_format: str = DEFAULT_DATE_FORMAT) -> str:
        """Display text of this column for a session."""
        if self is HistoryColumn.DATE:
            return session.begin.strftime(date_format)
        if self is HistoryColumn.DURATION:
            return format_duration(session.duration)
        if self is HistoryColumn.COMMITS:
            return str(session.commits)
        return session.comment or "None"

    def parse(self, text: str) -> Any:
        """Convert user text into this column's typed value.

        Raises:
            ValidationError: If the text is invalid for the column
        """
        if self is HistoryColumn.DATE:
            return parse_datetime(text)
        if self is HistoryColumn.DURATION:
            return parse_duration(text)
        if self is HistoryColumn.COMMITS:
            return _parse_commits(text)
        return text


class HistoryView:
    """Newest-first, read-only view over a project's history.

    Display row 0 is the most recent session. The stored history keeps its
    chronological order.
    """

    def __init__(self, project: Project):
        self.project = project

    def __len__(self) -> int:
        return len(self.project.history)

    def rows(self) -> Iterator[Session]:
        """Sessions, most recent first."""
        return reversed(self.project.history)

    def stored_index(self, row: int) -> int:
        """Map a display row to the chronological history index.

        Raises:
            IndexError: If the row does not exist
        """
        if not 0 <= row < len(self):
            raise IndexError(f"No history row {row}")
        return len(self) - 1 - row

    def session(self, row: int) -> Session:
        return self.project.history[self.stored_index(row)]

    def cell(self, row: int, column: HistoryColumn) -> Any:
        """Typed value at a display row and column."""
        return column.get(self.session(row))

    def edit(self, storage: StorageManager, row: int, column: HistoryColumn, value: Any) -> Session:
        """Write a typed value into the session shown at a display row.

        Aggregates are recomputed and the store saved by the storage manager.

        Returns:
            The edited session
        """
        return storage.edit_session(
            self.project.id, self.stored_index(row), **{column.field: value}
        )
