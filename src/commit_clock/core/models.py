"""Core data models for project time tracking."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Optional

from commit_clock.core.errors import ValidationError

logger = logging.getLogger(__name__)

NANOSECONDS_PER_MICROSECOND = 1000


def now() -> datetime:
    """Current local time as a timezone-aware datetime."""
    return datetime.now().astimezone()


def duration_to_ns(duration: timedelta) -> int:
    """Convert a timedelta to integer nanoseconds (on-disk duration unit)."""
    return (duration // timedelta(microseconds=1)) * NANOSECONDS_PER_MICROSECOND


def ns_to_duration(nanoseconds: int) -> timedelta:
    """Convert integer nanoseconds to a timedelta (sub-microsecond part dropped)."""
    return timedelta(microseconds=nanoseconds // NANOSECONDS_PER_MICROSECOND)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as RFC 3339."""
    return value.isoformat()


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp. Naive values are taken as local time."""
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True)
class Session:
    """One completed work interval on a project.

    Attributes:
        begin: When the session started
        end: When the session stopped (strictly after begin)
        project_id: Id of the owning project
        comment: User comment entered after stopping
        commits: Number of commits made during the session
    """

    begin: datetime
    end: datetime
    project_id: int
    comment: str = ""
    commits: int = 0

    def __post_init__(self) -> None:
        if self.end <= self.begin:
            raise ValidationError("Session end must be after its begin")
        if self.commits < 0:
            raise ValidationError("Session commit count cannot be negative")

    @property
    def duration(self) -> timedelta:
        """Length of the session."""
        return self.end - self.begin

    def with_changes(
        self,
        begin: Optional[datetime] = None,
        duration: Optional[timedelta] = None,
        comment: Optional[str] = None,
        commits: Optional[int] = None,
    ) -> "Session":
        """Return an edited copy. The end always follows begin + duration."""
        new_begin = begin if begin is not None else self.begin
        new_duration = duration if duration is not None else self.duration
        if new_duration <= timedelta(0):
            raise ValidationError("Session duration must be positive")
        try:
            new_end = new_begin + new_duration
        except OverflowError:
            raise ValidationError("Session would end after the latest representable date")
        return replace(
            self,
            begin=new_begin,
            end=new_end,
            comment=comment if comment is not None else self.comment,
            commits=commits if commits is not None else self.commits,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "Begin": format_timestamp(self.begin),
            "End": format_timestamp(self.end),
            "Duration": duration_to_ns(self.duration),
            "ProjectId": self.project_id,
            "Comment": self.comment,
            "Commits": self.commits,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create Session from dictionary (JSON deserialization).

        A stored duration that disagrees with End - Begin wins: the end is
        moved to begin + duration.
        """
        begin = parse_timestamp(data["Begin"])
        end = parse_timestamp(data["End"])
        stored = ns_to_duration(int(data["Duration"]))
        if stored != end - begin:
            logger.debug(f"Session at {begin} has edited duration {stored}, realigning end")
            end = begin + stored
        return cls(
            begin=begin,
            end=end,
            project_id=int(data["ProjectId"]),
            comment=data.get("Comment") or "",
            commits=int(data.get("Commits", 0)),
        )


@dataclass
class Project:
    """A named unit of work tied to a git working copy.

    Attributes:
        id: Unique project id (never reused)
        name: Display name
        directory: Absolute path of the git working copy
        description: Free text description
        created_at: Creation timestamp
        history: Completed sessions, oldest first
        last_comment: Comment of the most recently added session
    """

    id: int
    name: str
    directory: str
    description: str = ""
    created_at: datetime = field(default_factory=now)
    history: list[Session] = field(default_factory=list)
    last_comment: str = ""

    @property
    def total_duration(self) -> timedelta:
        """Sum of all session durations."""
        return sum((s.duration for s in self.history), timedelta(0))

    @property
    def total_commits(self) -> int:
        """Sum of all session commit counts."""
        return sum(s.commits for s in self.history)

    def add(self, session: Session) -> None:
        """Append a finished session to the history."""
        if session.project_id != self.id:
            raise ValueError(
                f"Session belongs to project {session.project_id}, not {self.id}"
            )
        self.history.append(session)
        self.last_comment = session.comment

    def replace_session(self, index: int, session: Session) -> None:
        """Replace the session at a chronological index with an edited copy."""
        self.history[index] = session
        if index in (-1, len(self.history) - 1):
            self.last_comment = session.comment

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "created": format_timestamp(self.created_at),
            "duration": duration_to_ns(self.total_duration),
            "history-list": [s.to_dict() for s in self.history],
            "unique-id": self.id,
            "last-comment": self.last_comment,
            "commits": self.total_commits,
            "working-directory": self.directory,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        """Create Project from dictionary (JSON deserialization)."""
        project = cls(
            id=int(data["unique-id"]),
            name=data["name"],
            directory=data["working-directory"],
            description=data.get("description") or "",
            created_at=parse_timestamp(data["created"]),
            history=[Session.from_dict(s) for s in data.get("history-list") or []],
            last_comment=data.get("last-comment") or "",
        )

        # Totals are derived from history; stale stored values are only reported
        if duration_to_ns(project.total_duration) != int(data.get("duration", 0)) or (
            project.total_commits != int(data.get("commits", 0))
        ):
            logger.warning(
                f"Stored totals of project {project.id} disagree with its history, "
                "recomputed from sessions"
            )
        return project


@dataclass
class ProjectStore:
    """All projects plus the id counter.

    Attributes:
        max_id: Highest id ever assigned
        projects: Projects keyed by id
    """

    max_id: int = 0
    projects: dict[int, Project] = field(default_factory=dict)

    def next_id(self) -> int:
        """Id the next created project will receive."""
        return self.max_id + 1

    def check_invariants(self) -> None:
        """Verify key/id agreement and the id counter.

        Raises:
            ValueError: If the store is inconsistent
        """
        for key, project in self.projects.items():
            if key != project.id:
                raise ValueError(f"Project key {key} does not match its id {project.id}")
        if self.projects and self.max_id < max(self.projects):
            raise ValueError(
                f"max-id {self.max_id} is lower than project id {max(self.projects)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "max-id": self.max_id,
            "project-list": {
                str(project_id): project.to_dict()
                for project_id, project in sorted(self.projects.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectStore":
        """Create ProjectStore from dictionary (JSON deserialization)."""
        store = cls(
            max_id=int(data.get("max-id", 0)),
            projects={
                int(key): Project.from_dict(value)
                for key, value in (data.get("project-list") or {}).items()
            },
        )
        store.check_invariants()
        return store
