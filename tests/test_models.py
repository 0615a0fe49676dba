"""Tests for core data models."""

from datetime import datetime, timedelta

import pytest

from commit_clock.core.errors import ValidationError
from commit_clock.core.models import (
    Project,
    ProjectStore,
    Session,
    duration_to_ns,
    ns_to_duration,
    parse_timestamp,
)
from conftest import T0


def make_session(
    minutes: int = 30, commits: int = 0, comment: str = "", offset: int = 0, project_id: int = 1
) -> Session:
    begin = T0 + timedelta(hours=offset)
    return Session(
        begin=begin,
        end=begin + timedelta(minutes=minutes),
        project_id=project_id,
        comment=comment,
        commits=commits,
    )


class TestSession:
    """Test Session model."""

    def test_duration_is_end_minus_begin(self) -> None:
        """Test duration calculation."""
        session = make_session(minutes=90)
        assert session.duration == timedelta(minutes=90)

    def test_end_must_follow_begin(self) -> None:
        """Test that an empty or inverted interval is rejected."""
        with pytest.raises(ValidationError, match="end must be after"):
            Session(begin=T0, end=T0, project_id=1)
        with pytest.raises(ValidationError):
            Session(begin=T0, end=T0 - timedelta(seconds=1), project_id=1)

    def test_negative_commits_rejected(self) -> None:
        """Test that commit counts cannot be negative."""
        with pytest.raises(ValidationError, match="negative"):
            Session(begin=T0, end=T0 + timedelta(minutes=1), project_id=1, commits=-1)

    def test_session_is_immutable(self) -> None:
        """Test that sessions cannot be modified in place."""
        session = make_session()
        with pytest.raises(AttributeError):
            session.comment = "changed"  # type: ignore[misc]

    def test_with_changes_moves_end_with_begin(self) -> None:
        """Test that editing begin keeps the duration."""
        session = make_session(minutes=45)
        edited = session.with_changes(begin=T0 + timedelta(days=1))

        assert edited.begin == T0 + timedelta(days=1)
        assert edited.duration == timedelta(minutes=45)
        assert session.begin == T0

    def test_with_changes_duration_and_comment(self) -> None:
        """Test editing duration, comment and commits together."""
        session = make_session(minutes=45, comment="old", commits=1)
        edited = session.with_changes(duration=timedelta(hours=2), comment="new", commits=4)

        assert edited.end == T0 + timedelta(hours=2)
        assert edited.comment == "new"
        assert edited.commits == 4

    def test_with_changes_rejects_non_positive_duration(self) -> None:
        """Test that a zero duration edit is rejected."""
        with pytest.raises(ValidationError, match="positive"):
            make_session().with_changes(duration=timedelta(0))

    def test_with_changes_past_max_date_rejected(self) -> None:
        late = datetime(9999, 12, 31, 22, 0, tzinfo=T0.tzinfo)
        with pytest.raises(ValidationError, match="latest representable date"):
            make_session().with_changes(begin=late, duration=timedelta(hours=3))

    def test_to_dict_uses_file_keys(self) -> None:
        """Test serialization keys and nanosecond duration."""
        data = make_session(minutes=1, commits=2, comment="c").to_dict()

        assert data["Begin"] == T0.isoformat()
        assert data["Duration"] == 60 * 10**9
        assert data["ProjectId"] == 1
        assert data["Comment"] == "c"
        assert data["Commits"] == 2

    def test_from_dict_go_timestamps(self) -> None:
        """Test parsing nanosecond fractions and Z offsets."""
        session = Session.from_dict(
            {
                "Begin": "2019-05-04T10:00:00.123456789+02:00",
                "End": "2019-05-04T10:01:30.123456789+02:00",
                "Duration": 90 * 10**9,
                "ProjectId": 3,
                "Comment": "hello",
                "Commits": 1,
            }
        )

        assert session.duration == timedelta(seconds=90)
        assert session.begin.microsecond == 123456
        assert session.project_id == 3

    def test_from_dict_edited_duration_realigns_end(self) -> None:
        """Test that a stored duration differing from End - Begin wins."""
        session = Session.from_dict(
            {
                "Begin": "2019-05-04T10:00:00Z",
                "End": "2019-05-04T10:01:00Z",
                "Duration": 3600 * 10**9,
                "ProjectId": 1,
            }
        )

        assert session.duration == timedelta(hours=1)
        assert session.comment == ""
        assert session.commits == 0


class TestProject:
    """Test Project model."""

    def test_new_project_is_empty(self) -> None:
        """Test project defaults."""
        project = Project(id=1, name="Tracker", directory="/repo")

        assert project.history == []
        assert project.total_duration == timedelta(0)
        assert project.total_commits == 0
        assert project.last_comment == ""

    def test_add_updates_aggregates(self) -> None:
        """Test that adding sessions updates totals and last comment."""
        project = Project(id=1, name="Tracker", directory="/repo")
        project.add(make_session(minutes=30, commits=2, comment="first"))
        project.add(make_session(minutes=15, commits=1, comment="second", offset=1))

        assert len(project.history) == 2
        assert project.total_duration == timedelta(minutes=45)
        assert project.total_commits == 3
        assert project.last_comment == "second"

    def test_add_rejects_foreign_session(self) -> None:
        """Test that a session of another project cannot be added."""
        project = Project(id=2, name="Other", directory="/repo")
        with pytest.raises(ValueError, match="belongs to project 1"):
            project.add(make_session())

    def test_replace_session_recomputes_totals(self) -> None:
        """Test that totals follow an edited session."""
        project = Project(id=1, name="Tracker", directory="/repo")
        project.add(make_session(minutes=30, commits=2, comment="first"))
        project.add(make_session(minutes=15, commits=1, comment="second", offset=1))

        project.replace_session(0, project.history[0].with_changes(commits=10))

        assert project.total_commits == 11
        assert project.last_comment == "second"

        project.replace_session(1, project.history[1].with_changes(comment="renamed"))
        assert project.last_comment == "renamed"

    def test_round_trip(self) -> None:
        """Test serialization round trip."""
        project = Project(id=4, name="Tracker", directory="/repo", description="d", created_at=T0)
        project.add(make_session(minutes=30, commits=2, comment="first", project_id=4))

        data = project.to_dict()
        assert data["duration"] == duration_to_ns(timedelta(minutes=30))
        assert data["commits"] == 2
        assert data["unique-id"] == 4
        assert data["working-directory"] == "/repo"

        assert Project.from_dict(data) == project

    def test_from_dict_null_history(self) -> None:
        """Test that a null history list loads as empty."""
        project = Project.from_dict(
            {
                "name": "Old",
                "description": "",
                "created": "2019-05-04T10:00:00+02:00",
                "duration": 0,
                "history-list": None,
                "unique-id": 1,
                "last-comment": "Project created",
                "commits": 0,
                "working-directory": "/repo",
            }
        )

        assert project.history == []
        assert project.last_comment == "Project created"

    def test_from_dict_ignores_stale_totals(self) -> None:
        """Test that stored totals are recomputed from history."""
        project = Project(id=1, name="Tracker", directory="/repo", created_at=T0)
        project.add(make_session(minutes=30, commits=2))
        data = project.to_dict()
        data["commits"] = 99
        data["duration"] = 1

        loaded = Project.from_dict(data)

        assert loaded.total_commits == 2
        assert loaded.total_duration == timedelta(minutes=30)


class TestProjectStore:
    """Test ProjectStore model."""

    def test_empty_store(self) -> None:
        store = ProjectStore()
        assert store.max_id == 0
        assert store.projects == {}
        assert store.next_id() == 1

    def test_key_must_match_id(self) -> None:
        """Test key/id invariant."""
        store = ProjectStore(max_id=2, projects={1: Project(id=2, name="x", directory="/r")})
        with pytest.raises(ValueError, match="does not match"):
            store.check_invariants()

    def test_max_id_covers_keys(self) -> None:
        """Test max-id invariant."""
        store = ProjectStore(max_id=1, projects={2: Project(id=2, name="x", directory="/r")})
        with pytest.raises(ValueError, match="max-id"):
            store.check_invariants()

    def test_round_trip(self) -> None:
        """Test serialization round trip with string keys."""
        project = Project(id=3, name="Tracker", directory="/repo", created_at=T0)
        store = ProjectStore(max_id=5, projects={3: project})

        data = store.to_dict()
        assert data["max-id"] == 5
        assert list(data["project-list"]) == ["3"]

        assert ProjectStore.from_dict(data) == store


class TestConversions:
    """Test duration and timestamp helpers."""

    def test_duration_nanoseconds(self) -> None:
        assert duration_to_ns(timedelta(seconds=1, microseconds=5)) == 1_000_005_000
        assert ns_to_duration(1_000_005_999) == timedelta(seconds=1, microseconds=5)

    def test_naive_timestamp_becomes_aware(self) -> None:
        assert parse_timestamp("2025-11-16T09:00:00").tzinfo is not None
