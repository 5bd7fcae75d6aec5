"""Time-of-day / day-of-week restrictions.

`is_active_at` is the pure evaluator; `RestrictionManager` owns the set
of definitions and answers "is this package blocked right now".
"""
import logging
import threading
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Tuple

from ..database.models import TimeRestriction
from ..database.repository import TrackerStore
from ..exceptions import StorageError, ValidationError
from ..utils.clock import Clock, MINUTES_PER_DAY, SystemClock, day_of_week, format_minute, minute_of_day
from ..utils.helpers import normalize_packages
from ..utils.logger import get_logger
from .notifier import Notifier, notify_safely

CUSTOM = "custom"
BEDTIME_MODE = "bedtime_mode"
WORK_HOURS_FOCUS = "work_hours_focus"
MEAL_TIME_PROTECTION = "meal_time_protection"
MORNING_ROUTINE = "morning_routine"

# Never blocked while a restriction allows emergency apps
EMERGENCY_APPS: FrozenSet[str] = frozenset({
    "com.android.dialer",
    "com.google.android.dialer",
    "com.android.mms",
    "com.google.android.apps.messaging",
    "com.android.emergency",
    "com.google.android.contacts",
})

ALL_DAYS = (0, 1, 2, 3, 4, 5, 6)
WEEKDAYS = (1, 2, 3, 4, 5)

SOCIAL_APPS = (
    "com.instagram.android",
    "com.twitter.android",
    "com.facebook.katana",
    "com.snapchat.android",
    "com.tiktok.android",
)


def is_active_at(definition: TimeRestriction, instant: datetime) -> bool:
    """
    Decide whether a restriction window covers an instant.

    Windows are half-open [start, end). A window with end < start wraps past
    midnight; its after-midnight part belongs to the day the window started,
    so it is checked against the previous day of the week. start == end
    covers the whole day.
    """
    if not definition.is_enabled:
        return False

    days = definition.active_days
    today = day_of_week(instant)
    minute = minute_of_day(instant)
    start, end = definition.start_minute, definition.end_minute

    if start == end:
        return today in days
    if start < end:
        return today in days and start <= minute < end
    if minute >= start:
        return today in days
    if minute < end:
        return (today - 1) % 7 in days
    return False


def blocks_package(definition: TimeRestriction, package_name: str) -> bool:
    """Whether an (already active) restriction blocks a package."""
    if definition.allow_emergency_apps and package_name in EMERGENCY_APPS:
        return False
    blocked = definition.blocked_packages
    return not blocked or package_name in blocked


def _validate_window(start_minute: int, end_minute: int):
    for label, value in (("start", start_minute), ("end", end_minute)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"Restriction {label} minute must be an integer")
        if not 0 <= value < MINUTES_PER_DAY:
            raise ValidationError(
                f"Restriction {label} minute {value} outside 0..{MINUTES_PER_DAY - 1}",
                hint="Use minutes from midnight, e.g. 22:00 -> 1320",
            )


def _validate_days(days: Iterable[int]) -> FrozenSet[int]:
    result = frozenset(days)
    if not result:
        raise ValidationError("A restriction needs at least one active day")
    invalid = sorted(d for d in result if d not in ALL_DAYS)
    if invalid:
        raise ValidationError(f"Invalid day indices {invalid}; use 0=Sunday .. 6=Saturday")
    return result


class RestrictionManager:
    """Owns restriction definitions and evaluates blocking."""

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
        self.logger = logger or get_logger("restrictions")
        self._snapshot: Optional[Tuple[TimeRestriction, ...]] = None
        self._write_lock = threading.Lock()
        self._version = 0
        self._last_active_names: FrozenSet[str] = frozenset()

    # ---------- definitions ----------

    def reload(self) -> Tuple[TimeRestriction, ...]:
        """
        Re-read all definitions from storage into the read snapshot.

        A snapshot read before a concurrent write is discarded in favour of
        the one that write installed.
        """
        with self._write_lock:
            version = self._version
        snapshot = tuple(self.store.list_restrictions())
        with self._write_lock:
            if self._version == version:
                self._install(snapshot)
            return self._snapshot

    def _refresh_locked(self):
        self._install(tuple(self.store.list_restrictions()))

    def _install(self, snapshot: Tuple[TimeRestriction, ...]):
        self._snapshot = snapshot
        self._version += 1

    def _definitions(self) -> Tuple[TimeRestriction, ...]:
        snapshot = self._snapshot
        if snapshot is None:
            snapshot = self.reload()
        return snapshot

    def list_all(self) -> List[TimeRestriction]:
        return list(self._definitions())

    def get(self, restriction_id: int) -> TimeRestriction:
        return self.store.get_restriction(restriction_id)

    # ---------- evaluation ----------

    def active_restrictions_at(self, now: Optional[datetime] = None) -> List[TimeRestriction]:
        """Definitions active at `now`; empty when storage is unavailable."""
        now = now or self.clock.now()
        try:
            definitions = self._definitions()
        except StorageError as e:
            self.logger.warning(f"Could not load time restrictions, treating none as active: {e}")
            return []
        return [d for d in definitions if is_active_at(d, now)]

    def blocking_restriction(self, package_name: str, now: Optional[datetime] = None) -> Optional[TimeRestriction]:
        """First active restriction that blocks the package, if any."""
        for restriction in self.active_restrictions_at(now):
            if blocks_package(restriction, package_name):
                self.logger.debug(f"App {package_name} blocked by {restriction.name}")
                return restriction
        return None

    def is_blocked(self, package_name: str, now: Optional[datetime] = None) -> bool:
        """
        Whether any active restriction blocks the package.

        Fails open: if the definitions cannot be read the app is reported as
        not blocked and a warning is logged.
        """
        return self.blocking_restriction(package_name, now) is not None

    # ---------- mutation ----------

    def set_enabled(self, restriction_id: int, enabled: bool):
        """Enable or disable a restriction. Raises NotFoundError for unknown ids."""
        with self._write_lock:
            self.store.update_restriction_enabled(restriction_id, enabled, self.clock.now())
            self._refresh_locked()
        self.logger.info(f"Time restriction {restriction_id} {'enabled' if enabled else 'disabled'}")

    def create_custom(
        self,
        name: str,
        description: str,
        start_minute: int,
        end_minute: int,
        blocked_packages: Iterable[str],
        active_days: Iterable[int],
        allow_emergency_apps: bool = True,
        show_notifications: bool = True,
    ) -> int:
        """Validate and store a user-defined restriction, returning its id."""
        if not name or not name.strip():
            raise ValidationError("Restriction name must not be empty")
        _validate_window(start_minute, end_minute)
        days = _validate_days(active_days)

        now = self.clock.now()
        restriction = TimeRestriction(
            restriction_type=CUSTOM,
            name=name.strip(),
            description=description or "",
            start_minute=start_minute,
            end_minute=end_minute,
            blocked_packages=normalize_packages(blocked_packages),
            active_days=days,
            allow_emergency_apps=allow_emergency_apps,
            show_notifications=show_notifications,
            created_at=now,
            updated_at=now,
        )
        with self._write_lock:
            restriction_id = self.store.insert_restriction(restriction)
            self._refresh_locked()
        self.logger.info(
            f"Custom time restriction created: {restriction.name} "
            f"({format_minute(start_minute)}-{format_minute(end_minute)})"
        )
        return restriction_id

    def delete(self, restriction_id: int):
        with self._write_lock:
            self.store.delete_restriction(restriction_id)
            self._refresh_locked()
        self.logger.info(f"Time restriction {restriction_id} deleted")

    def create_default_restrictions(self) -> List[int]:
        """Insert the built-in presets once; returns the new ids."""
        presets = [
            TimeRestriction(
                restriction_type=BEDTIME_MODE,
                name="Digital Sunset",
                description="Block distracting apps overnight",
                start_minute=22 * 60,
                end_minute=8 * 60,
                active_days=ALL_DAYS,
            ),
            TimeRestriction(
                restriction_type=WORK_HOURS_FOCUS,
                name="Work Focus Mode",
                description="Block entertainment apps during work hours",
                start_minute=9 * 60,
                end_minute=17 * 60,
                blocked_packages=SOCIAL_APPS + ("com.netflix.mediaclient", "com.spotify.music"),
                active_days=WEEKDAYS,
                show_notifications=False,
                is_enabled=False,
            ),
            TimeRestriction(
                restriction_type=MORNING_ROUTINE,
                name="Morning Routine",
                description="Delay social media until morning tasks are done",
                start_minute=6 * 60,
                end_minute=9 * 60,
                blocked_packages=SOCIAL_APPS,
                active_days=WEEKDAYS,
                is_enabled=False,
            ),
            TimeRestriction(
                restriction_type=MEAL_TIME_PROTECTION,
                name="Mindful Meals",
                description="Block all apps during lunch",
                start_minute=12 * 60,
                end_minute=13 * 60,
                active_days=ALL_DAYS,
                is_enabled=False,
            ),
        ]
        with self._write_lock:
            existing = set(self.store.restriction_types())
            created = [
                self.store.insert_restriction(preset)
                for preset in presets
                if preset.restriction_type not in existing
            ]
            self._refresh_locked()
        if created:
            self.logger.info(f"Default time restrictions created: {len(created)}")
        return created

    # ---------- notifications ----------

    def check_and_notify(self, now: Optional[datetime] = None) -> List[str]:
        """
        Emit `restriction_became_active` when the set of active, notifying
        restrictions changes to a non-empty set. Returns the active names.
        """
        try:
            self.reload()
        except StorageError as e:
            self.logger.warning(f"Could not refresh time restrictions: {e}")

        names = [r.name for r in self.active_restrictions_at(now) if r.show_notifications]
        current = frozenset(names)
        if current and current != self._last_active_names:
            notify_safely(self.logger, self.notifier.restriction_became_active, names)
        self._last_active_names = current
        return names
