"""JSON storage manager with atomic writes and validation."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional, Union

from jsonschema import ValidationError as SchemaValidationError  # type: ignore[import-untyped]
from jsonschema import validate  # type: ignore[import-untyped]

from commit_clock.core.errors import (
    ConfigurationError,
    ProjectNotFoundError,
    StorageError,
    ValidationError,
)
from commit_clock.core.git import CommitCounter
from commit_clock.core.models import Project, ProjectStore, Session, now

logger = logging.getLogger(__name__)

_TIMESTAMP = {"type": "string", "minLength": 1}

SESSION_SCHEMA = {
    "type": "object",
    "properties": {
        "Begin": _TIMESTAMP,
        "End": _TIMESTAMP,
        "Duration": {"type": "integer"},
        "ProjectId": {"type": "integer"},
        "Comment": {"type": "string"},
        "Commits": {"type": "integer", "minimum": 0},
    },
    "required": ["Begin", "End", "Duration", "ProjectId"],
}

PROJECT_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "created": _TIMESTAMP,
        "duration": {"type": "integer"},
        "history-list": {"type": ["array", "null"], "items": SESSION_SCHEMA},
        "unique-id": {"type": "integer", "minimum": 1},
        "last-comment": {"type": "string"},
        "commits": {"type": "integer"},
        "working-directory": {"type": "string"},
    },
    "required": ["name", "created", "unique-id", "working-directory"],
}

STORE_SCHEMA = {
    "type": "object",
    "properties": {
        "max-id": {"type": "integer", "minimum": 0},
        "project-list": {
            "type": ["object", "null"],
            "patternProperties": {"^[0-9]+$": PROJECT_SCHEMA},
            "additionalProperties": False,
        },
    },
    "required": ["max-id"],
}


class StorageManager:
    """Owns the project store and keeps the backing JSON file in sync.

    Every mutating operation updates the in-memory store and immediately
    rewrites the whole file. Mutations are serialized by a lock, and a
    mutation whose save fails is rolled back before the error propagates.
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        counter: Optional[CommitCounter] = None,
        save_retries: int = 1,
    ):
        """Initialize storage manager and load the store.

        Args:
            data_file: Backing JSON file. Defaults to ~/.commit-clock/projects.json
            counter: Commit counter used to validate project directories
            save_retries: Extra write attempts before a save is reported failed

        Raises:
            ConfigurationError: If the backing file exists but is invalid
        """
        if data_file is None:
            data_file = Path.home() / ".commit-clock" / "projects.json"

        self.data_file = data_file
        self.counter = counter or CommitCounter()
        self.save_retries = save_retries
        self._lock = threading.RLock()

        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        self.store = self.load()

    def load(self) -> ProjectStore:
        """Read the backing file.

        Returns:
            Loaded store, or an empty store if the file does not exist

        Raises:
            ConfigurationError: If the file is not valid JSON or does not
                describe a consistent store
        """
        if not self.data_file.exists():
            logger.info(f"No project file at {self.data_file}, starting empty")
            return ProjectStore()

        try:
            with open(self.data_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Project file {self.data_file} is not valid JSON: {e}")
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"Project file {self.data_file} is not valid UTF-8: {e}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read project file {self.data_file}: {e}")

        try:
            validate(instance=data, schema=STORE_SCHEMA)
        except SchemaValidationError as e:
            raise ConfigurationError(f"Invalid project file {self.data_file}: {e.message}")

        try:
            store = ProjectStore.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(f"Invalid project file {self.data_file}: {e}")

        logger.debug(f"Loaded {len(store.projects)} projects from {self.data_file}")
        return store

    def _write_json_atomic(self, file_path: Path, data: dict[str, Any]) -> None:
        """Write JSON file atomically using temporary file and rename.

        Args:
            file_path: Target file path
            data: Document to write
        """
        temp_file = file_path.with_suffix(".tmp")

        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent="\t", ensure_ascii=False)

                # Flush to disk
                f.flush()
                os.fsync(f.fileno())

            # Atomic rename
            temp_file.replace(file_path)

        except Exception:
            # Clean up temp file on error
            if temp_file.exists():
                temp_file.unlink()
            raise

    def save(self, store: Optional[ProjectStore] = None) -> None:
        """Serialize the whole store to the backing file.

        Args:
            store: Store to write. Defaults to the managed store

        Raises:
            StorageError: If every write attempt failed
        """
        store = store if store is not None else self.store
        data = store.to_dict()
        last_error: Optional[OSError] = None

        with self._lock:
            for attempt in range(self.save_retries + 1):
                try:
                    self._write_json_atomic(self.data_file, data)
                    logger.debug(f"Saved {len(store.projects)} projects to {self.data_file}")
                    return
                except OSError as e:
                    last_error = e
                    logger.warning(f"Save attempt {attempt + 1} to {self.data_file} failed: {e}")

        raise StorageError(f"Could not save projects to {self.data_file}: {last_error}")

    # Project operations

    def get_project(self, project_id: int) -> Optional[Project]:
        """Get project by ID.

        Args:
            project_id: Project ID

        Returns:
            Project or None if not found
        """
        return self.store.projects.get(project_id)

    def require_project(self, project_id: int) -> Project:
        """Get project by ID, raising if it does not exist.

        Raises:
            ProjectNotFoundError: If no project has this id
        """
        project = self.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def list_projects(self) -> list[Project]:
        """All projects ordered by id."""
        return [self.store.projects[k] for k in sorted(self.store.projects)]

    def create_project(
        self, name: str, description: str, directory: Union[str, Path]
    ) -> Project:
        """Validate and register a new project.

        Args:
            name: Display name (must not be blank)
            description: Free text description
            directory: Path of an existing git working copy

        Returns:
            Created project

        Raises:
            ValidationError: If the name is blank or the directory is not
                an existing git working copy
            StorageError: If the store could not be saved
        """
        name = name.strip()
        if not name:
            raise ValidationError("Project name must not be empty")

        path = Path(directory).expanduser()
        if not path.is_dir():
            raise ValidationError(f"Directory does not exist: {directory}")
        path = path.resolve()
        if not self.counter.is_repository(path):
            raise ValidationError(
                f"{path} is not a git working copy. Run 'git init' there first."
            )

        with self._lock:
            previous_max_id = self.store.max_id
            project = Project(
                id=self.store.next_id(),
                name=name,
                description=description,
                directory=str(path),
                created_at=now(),
            )
            self.store.projects[project.id] = project
            self.store.max_id = project.id
            try:
                self.save()
            except StorageError:
                del self.store.projects[project.id]
                self.store.max_id = previous_max_id
                raise

        logger.info(f"Created project {project.id} ({project.name}) at {project.directory}")
        return project

    def delete_project(self, project_id: int) -> bool:
        """Delete a project by ID. Its id is never handed out again.

        Args:
            project_id: ID of project to delete

        Returns:
            True if project was deleted, False if not found
        """
        with self._lock:
            project = self.store.projects.pop(project_id, None)
            if project is None:
                return False
            try:
                self.save()
            except StorageError:
                self.store.projects[project_id] = project
                raise

        logger.info(f"Deleted project {project_id} ({project.name})")
        return True

    # Session operations

    def add_session(self, project_id: int, session: Session) -> Project:
        """Append a finished session to its project and save.

        Args:
            project_id: Owning project
            session: Completed session

        Returns:
            Updated project
        """
        with self._lock:
            project = self.require_project(project_id)
            previous_comment = project.last_comment
            project.add(session)
            try:
                self.save()
            except StorageError:
                project.history.pop()
                project.last_comment = previous_comment
                raise

        logger.info(
            f"Project {project_id} was updated with a session of {session.duration} "
            f"({session.commits} commits)"
        )
        return project

    def edit_session(self, project_id: int, index: int, **changes: Any) -> Session:
        """Edit a stored session in place and save.

        Args:
            project_id: Owning project
            index: Chronological position in the project's history
            **changes: Any of begin, duration, comment, commits

        Returns:
            The edited session

        Raises:
            ValidationError: If the edit produces an invalid session
            IndexError: If index is outside the history
        """
        with self._lock:
            project = self.require_project(project_id)
            original = project.history[index]
            previous_comment = project.last_comment
            edited = original.with_changes(**changes)
            project.replace_session(index, edited)
            try:
                self.save()
            except StorageError:
                project.history[index] = original
                project.last_comment = previous_comment
                raise

        logger.info(f"Edited session {index} of project {project_id}")
        return edited
