"""Clock abstraction and calendar helpers.

Everything that reads "now" goes through a Clock so schedules can be
tested against fixed instants (week boundaries, midnight wrap-around).
"""
import threading
from datetime import date, datetime, time, timedelta
from typing import Tuple

MINUTES_PER_DAY = 24 * 60
MILLIS_PER_MINUTE = 60 * 1000
MILLIS_PER_DAY = MINUTES_PER_DAY * MILLIS_PER_MINUTE


class Clock:
    """Wall-clock provider."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Local wall clock."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock pinned to an instant; advance it manually."""

    def __init__(self, instant: datetime):
        self._instant = instant
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._instant

    def set(self, instant: datetime):
        with self._lock:
            self._instant = instant

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta given as keyword arguments."""
        with self._lock:
            self._instant = self._instant + timedelta(**kwargs)
            return self._instant


def minute_of_day(instant: datetime) -> int:
    return instant.hour * 60 + instant.minute


def day_of_week(instant) -> int:
    """Day index with 0 = Sunday and 6 = Saturday."""
    return (instant.weekday() + 1) % 7


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Half-open [start, end) range covering a local day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def to_millis(delta: timedelta) -> int:
    """Whole milliseconds in a timedelta, truncated."""
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def format_minute(minute: int) -> str:
    """Render a minute-of-day as HH:MM."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def parse_minute(value: str) -> int:
    """Parse HH:MM into a minute-of-day."""
    hour, minute = map(int, value.split(':'))
    return hour * 60 + minute
