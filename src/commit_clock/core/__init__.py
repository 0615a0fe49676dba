"""Core functionality for project time tracking."""

from commit_clock.core.models import Project, ProjectStore, Session
from commit_clock.core.storage import StorageManager
from commit_clock.core.tracker import SessionTracker, TrackerState

__all__ = ["Project", "ProjectStore", "Session", "StorageManager", "SessionTracker", "TrackerState"]
