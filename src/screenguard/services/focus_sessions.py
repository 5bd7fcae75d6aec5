"""Focus sessions: timed periods during which apps are blocked.

The open session is whatever row in storage has no end time, so an open
session survives a restart. A process-wide lock plus a unique index on
open sessions make sure only one `start()` can win.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from ..database.models import FocusSession
from ..database.repository import TrackerStore
from ..exceptions import NoActiveSessionError, SessionAlreadyActiveError, StorageError, ValidationError
from ..utils.clock import Clock, SystemClock, day_bounds, to_millis
from ..utils.helpers import format_duration, minutes_to_millis, normalize_packages
from ..utils.logger import get_logger
from .notifier import Notifier, notify_safely


@dataclass
class FocusStats:
    """Aggregate over one day's closed sessions."""
    total_sessions: int = 0
    successful_sessions: int = 0
    total_focus_millis: int = 0
    average_session_millis: int = 0
    success_rate: float = 0.0


class FocusSessionManager:
    """Start, complete and query focus sessions."""

    def __init__(
        self,
        store: TrackerStore,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.notifier = notifier or Notifier()
        self.logger = logger or get_logger("focus")
        self._lock = threading.Lock()

    def start(self, duration_minutes: int, blocked_packages: Iterable[str] = ()) -> int:
        """
        Open a new session and return its id.

        Raises:
            ValidationError: duration is not a positive number of minutes
            SessionAlreadyActiveError: another session is open
        """
        if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool) or duration_minutes <= 0:
            raise ValidationError("Focus duration must be a positive number of minutes")
        packages = normalize_packages(blocked_packages)

        with self._lock:
            current = self.store.get_open_focus_session()
            if current is not None:
                raise SessionAlreadyActiveError(current.id)
            session = FocusSession(
                start_time=self.clock.now(),
                target_duration_millis=minutes_to_millis(duration_minutes),
                blocked_packages=packages,
            )
            session_id = self.store.insert_focus_session(session)

        notify_safely(self.logger, self.notifier.session_started, duration_minutes)
        self.logger.info(f"Focus session started: {duration_minutes} minutes, blocking {len(packages) or 'all'} apps")
        return session_id

    def complete(self, was_successful: bool, interruption_count: int = 0) -> FocusSession:
        """
        Close the open session and return the closed record.

        Raises:
            NoActiveSessionError: nothing to complete
            StorageError: the closed record could not be written
        """
        if interruption_count < 0:
            raise ValidationError("Interruption count must not be negative")

        with self._lock:
            current = self.store.get_open_focus_session()
            if current is None:
                raise NoActiveSessionError()
            end_time = self.clock.now()
            actual = max(0, to_millis(end_time - current.start_time))
            closed = self.store.complete_focus_session(
                current.id, end_time, actual, was_successful, interruption_count,
            )

        notify_safely(self.logger, self.notifier.session_completed, actual, was_successful)
        self.logger.info(
            f"Focus session completed. Success: {was_successful}, Duration: {format_duration(actual)}"
        )
        return closed

    def cancel(self) -> FocusSession:
        """Give up on the open session; counts as one interruption."""
        return self.complete(was_successful=False, interruption_count=1)

    def current_session(self) -> Optional[FocusSession]:
        return self.store.get_open_focus_session()

    def is_active(self) -> bool:
        try:
            return self.current_session() is not None
        except StorageError as e:
            self.logger.warning(f"Could not read focus session state: {e}")
            return False

    def elapsed_millis(self) -> int:
        """Time since the open session started; 0 when idle."""
        try:
            current = self.current_session()
        except StorageError as e:
            self.logger.warning(f"Could not read focus session state: {e}")
            return 0
        if current is None:
            return 0
        return max(0, to_millis(self.clock.now() - current.start_time))

    def is_app_blocked(self, package_name: str) -> bool:
        """
        Whether the open session blocks a package.

        A session started with a package list blocks only those packages; a
        session started without one blocks everything. Fails open.
        """
        try:
            current = self.current_session()
        except StorageError as e:
            self.logger.warning(f"Could not check focus blocking for {package_name}: {e}")
            return False
        if current is None:
            return False
        blocked = current.blocked_packages
        return not blocked or package_name in blocked

    def sessions_for(self, day: date) -> List[FocusSession]:
        start, end = day_bounds(day)
        return self.store.focus_sessions_between(start, end)

    def stats(self, day: Optional[date] = None) -> FocusStats:
        """Totals for closed sessions that started on `day` (default today)."""
        day = day or self.clock.today()
        sessions = [s for s in self.sessions_for(day) if s.end_time is not None]
        successful = [s for s in sessions if s.was_successful]
        total_focus = sum(s.actual_duration_millis for s in successful)
        return FocusStats(
            total_sessions=len(sessions),
            successful_sessions=len(successful),
            total_focus_millis=total_focus,
            average_session_millis=total_focus // len(successful) if successful else 0,
            success_rate=len(successful) / len(sessions) if sessions else 0.0,
        )
