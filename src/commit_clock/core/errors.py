"""Exception hierarchy for Commit Clock."""


class CommitClockError(Exception):
    """Base class for all Commit Clock errors."""


class ConfigurationError(CommitClockError):
    """Backing file or configuration file is unreadable or invalid.

    Fatal: the process cannot continue with data it cannot trust.
    """


class ValidationError(CommitClockError, ValueError):
    """User-supplied input was rejected. No state was mutated."""


class ProjectNotFoundError(CommitClockError, ValueError):
    """Operation referenced a project id that is not in the store."""

    def __init__(self, project_id: int):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class StorageError(CommitClockError):
    """Writing the backing file failed after all retries."""


class ExternalToolError(CommitClockError):
    """The git invocation failed, timed out, or git is not installed."""


class InvalidTransitionError(CommitClockError, RuntimeError):
    """Session tracker operation called from the wrong state."""
