"""Session tracking state machine."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from commit_clock.core.errors import ExternalToolError, InvalidTransitionError
from commit_clock.core.git import CommitCounter
from commit_clock.core.models import Session, now
from commit_clock.core.storage import StorageManager

logger = logging.getLogger(__name__)

COUNT_FAILURE_POLICIES = ("zero", "abort")


class TrackerState(Enum):
    """States of a project's work session."""

    IDLE = "idle"
    RUNNING = "running"
    AWAITING_COMMENT = "awaiting_comment"


@dataclass(frozen=True)
class PendingSession:
    """A stopped session waiting for its comment.

    Attributes:
        begin: When the session started
        end: When the session stopped
        commits: Commit count for the window (0 if counting failed)
        count_error: Error raised by the commit counter, if any
    """

    begin: datetime
    end: datetime
    commits: int
    count_error: Optional[ExternalToolError] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.begin


class ElapsedTicker:
    """Background thread reporting elapsed time for display.

    Only reads the clock and the begin time it was given; it never sees the
    tracker or the store.
    """

    def __init__(
        self,
        begin: datetime,
        on_tick: Callable[[timedelta], None],
        interval: float = 1.0,
        clock: Callable[[], datetime] = now,
    ):
        self.begin = begin
        self.on_tick = on_tick
        self.interval = interval
        self.clock = clock
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start ticking in a daemon thread."""
        self._thread = threading.Thread(target=self._run, name="elapsed-ticker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._cancelled.is_set():
            self.on_tick(self.clock() - self.begin)
            self._cancelled.wait(self.interval)

    def cancel(self) -> None:
        """Stop ticking. Safe to call more than once."""
        self._cancelled.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class SessionTracker:
    """Drives one project's sessions: start, stop, comment, record.

    States cycle Idle -> Running -> AwaitingComment -> Idle. Calling an
    operation from any other state raises InvalidTransitionError.
    """

    def __init__(
        self,
        storage: StorageManager,
        project_id: int,
        counter: Optional[CommitCounter] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_count_failure: str = "zero",
        on_tick: Optional[Callable[[timedelta], None]] = None,
        refresh_interval: float = 1.0,
    ):
        """Initialize session tracker.

        Args:
            storage: Storage manager holding the project
            project_id: Project to track
            counter: Commit counter. Defaults to the storage manager's
            clock: Time source. Defaults to local aware now()
            on_count_failure: "zero" to record 0 commits when counting fails,
                "abort" to discard the session and re-raise
            on_tick: Display callback receiving elapsed time while running
            refresh_interval: Seconds between on_tick calls

        Raises:
            ProjectNotFoundError: If project_id is unknown
            ValueError: If on_count_failure is not a known policy
        """
        if on_count_failure not in COUNT_FAILURE_POLICIES:
            raise ValueError(f"Unknown commit count failure policy: {on_count_failure}")

        self.storage = storage
        self.project = storage.require_project(project_id)
        self.counter = counter or storage.counter
        self.clock = clock or now
        self.on_count_failure = on_count_failure
        self.on_tick = on_tick
        self.refresh_interval = refresh_interval

        self._state = TrackerState.IDLE
        self._begin: Optional[datetime] = None
        self._pending: Optional[PendingSession] = None
        self._ticker: Optional[ElapsedTicker] = None

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def pending(self) -> Optional[PendingSession]:
        """Stopped session awaiting a comment, if any."""
        return self._pending

    def _require(self, expected: TrackerState, operation: str) -> None:
        if self._state is not expected:
            raise InvalidTransitionError(
                f"Cannot {operation} while {self._state.value}; "
                f"requires {expected.value}"
            )

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def start(self) -> datetime:
        """Begin a session.

        Returns:
            The begin time
        """
        self._require(TrackerState.IDLE, "start")
        self._begin = self.clock()
        self._state = TrackerState.RUNNING

        if self.on_tick is not None:
            self._ticker = ElapsedTicker(
                self._begin, self.on_tick, self.refresh_interval, self.clock
            )
            self._ticker.start()

        logger.info(f"Started session on project {self.project.id} at {self._begin}")
        return self._begin

    def elapsed(self) -> timedelta:
        """Time since the running session began."""
        self._require(TrackerState.RUNNING, "read elapsed time")
        assert self._begin is not None
        return self.clock() - self._begin

    def stop(self) -> PendingSession:
        """End the running session and count its commits.

        Returns:
            The pending session awaiting a comment

        Raises:
            ExternalToolError: If counting failed and the policy is "abort";
                the tracker is back to Idle and the interval is discarded
        """
        self._require(TrackerState.RUNNING, "stop")
        assert self._begin is not None
        begin = self._begin
        end = self.clock()
        self._stop_ticker()

        # Two clock reads can coincide on coarse clocks
        if end <= begin:
            end = begin + timedelta(microseconds=1)

        count_error: Optional[ExternalToolError] = None
        try:
            commits = self.counter.count_commits(self.project.directory, begin, end)
        except ExternalToolError as e:
            if self.on_count_failure == "abort":
                self._reset()
                logger.error(f"Discarding session on project {self.project.id}: {e}")
                raise
            logger.warning(
                f"Could not count commits for project {self.project.id}, recording 0: {e}"
            )
            commits = 0
            count_error = e

        self._pending = PendingSession(begin=begin, end=end, commits=commits, count_error=count_error)
        self._state = TrackerState.AWAITING_COMMENT
        logger.info(f"Stopped session on project {self.project.id} after {end - begin}")
        return self._pending

    def submit_comment(self, text: str) -> Session:
        """Attach a comment to the stopped session and record it.

        Args:
            text: Comment for the session (may be empty)

        Returns:
            The recorded session

        Raises:
            StorageError: If saving failed; the tracker stays in
                AwaitingComment so the call can be retried
        """
        self._require(TrackerState.AWAITING_COMMENT, "submit a comment")
        assert self._pending is not None
        session = Session(
            begin=self._pending.begin,
            end=self._pending.end,
            project_id=self.project.id,
            comment=text,
            commits=self._pending.commits,
        )
        self.storage.add_session(self.project.id, session)
        self._reset()
        return session

    finish_session = submit_comment

    def cancel(self) -> None:
        """Discard any running or pending session and return to Idle."""
        if self._state is not TrackerState.IDLE:
            logger.info(f"Cancelled {self._state.value} session on project {self.project.id}")
        self._reset()

    def _reset(self) -> None:
        self._stop_ticker()
        self._begin = None
        self._pending = None
        self._state = TrackerState.IDLE
