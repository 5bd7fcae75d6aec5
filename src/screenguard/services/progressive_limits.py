"""Progressive limits: a per-app daily ceiling that shrinks every week.

All durations are integer milliseconds. Percentages truncate toward zero:
the weekly reduction is `current * pct // 100` and progress is tracked in
whole basis points, so milestone boundaries are deterministic.
"""
import logging
import threading
from datetime import date, timedelta
from typing import List, Optional, Tuple

from ..database.models import MILESTONE_PERCENTAGES, ProgressiveLimit, ProgressiveMilestone
from ..database.repository import TrackerStore
from ..exceptions import InvalidTargetError, LimitAlreadyActiveError, StorageError, ValidationError
from ..utils.clock import Clock, SystemClock
from ..utils.helpers import format_duration
from ..utils.logger import get_logger
from .notifier import Notifier, notify_safely

REDUCTION_INTERVAL = timedelta(weeks=1)
BUFFER_PERCENT = 110  # original ceiling = 7-day average + 10%
FULL_PROGRESS_BP = 10_000

MILESTONE_REWARDS = {
    25: ("Quarter Way There! 🎯", "You've reduced your {package} usage by 25%! Keep it up!"),
    50: ("Halfway Champion! 🏆", "Amazing! You've cut your {package} time in half!"),
    75: ("Digital Warrior! ⚡", "Incredible progress! 75% reduction achieved!"),
    100: ("Limit Master! 🌟", "You've reached your target! Digital wellness achieved!"),
}


def original_limit_for(average_usage_millis: int) -> int:
    """Average usage plus the 10% buffer, rounded half up."""
    return (average_usage_millis * BUFFER_PERCENT + 50) // 100


def progress_basis_points(original: int, current: int, target: int) -> int:
    """Share of the original-to-target distance already covered, 0..10000."""
    span = original - target
    if span <= 0:
        return FULL_PROGRESS_BP
    covered = (original - current) * FULL_PROGRESS_BP // span
    return max(0, min(FULL_PROGRESS_BP, covered))


def reduce_once(limit: ProgressiveLimit, today: date) -> Tuple[int, int, date]:
    """
    Compute one weekly step for a limit.

    Returns (new_limit_millis, progress_basis_points, next_reduction_date).
    The next date moves forward in whole weeks until it is after `today`,
    so a limit that missed several weeks is reduced once, not repeatedly.
    """
    current = limit.current_limit_millis
    reduction = max(1, current * limit.reduction_percentage // 100)
    new_limit = max(current - reduction, limit.target_limit_millis)

    if new_limit == limit.target_limit_millis:
        progress = FULL_PROGRESS_BP
    else:
        progress = progress_basis_points(limit.original_limit_millis, new_limit, limit.target_limit_millis)

    next_date = limit.next_reduction_date + REDUCTION_INTERVAL
    while next_date <= today:
        next_date += REDUCTION_INTERVAL
    return new_limit, progress, next_date


class ProgressiveLimitEngine:
    """Creates progressive limits and applies the weekly reductions."""

    def __init__(
        self,
        store: TrackerStore,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        logger: Optional[logging.Logger] = None,
        default_reduction_percentage: int = 10,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.notifier = notifier or Notifier()
        self.logger = logger or get_logger("progressive_limits")
        self.default_reduction_percentage = default_reduction_percentage
        self._reduction_lock = threading.RLock()

    def create(
        self,
        package_name: str,
        target_limit_millis: int,
        average_usage_millis_last_7_days: Optional[int] = None,
        reduction_percentage: Optional[int] = None,
    ) -> ProgressiveLimit:
        """
        Start a progressive limit for an app.

        Args:
            package_name: App identifier
            target_limit_millis: Daily ceiling to reach eventually
            average_usage_millis_last_7_days: Usage baseline; read from the
                usage tracker when omitted
            reduction_percentage: Weekly cut applied to the current ceiling

        Raises:
            ValidationError: bad arguments
            InvalidTargetError: target at or above the starting ceiling
            LimitAlreadyActiveError: the app already has an active limit
        """
        if not package_name or not package_name.strip():
            raise ValidationError("Package name must not be empty")
        package_name = package_name.strip()
        if reduction_percentage is None:
            reduction_percentage = self.default_reduction_percentage
        if not 1 <= reduction_percentage <= 99:
            raise ValidationError("Reduction percentage must be between 1 and 99")
        if target_limit_millis < 0:
            raise ValidationError("Target limit must not be negative")

        today = self.clock.today()
        if average_usage_millis_last_7_days is None:
            average_usage_millis_last_7_days = self.store.average_usage_last_7_days(package_name, today)
        if average_usage_millis_last_7_days <= 0:
            raise ValidationError(
                f"No recent usage recorded for {package_name}",
                hint="A progressive limit needs a usage baseline",
            )

        original = original_limit_for(average_usage_millis_last_7_days)
        if target_limit_millis >= original:
            raise InvalidTargetError(
                f"Target {format_duration(target_limit_millis)} is not below the starting "
                f"limit {format_duration(original)}",
                hint="Choose a target lower than your current average usage",
            )
        if self.store.get_active_limit(package_name) is not None:
            raise LimitAlreadyActiveError(package_name)

        limit = ProgressiveLimit(
            package_name=package_name,
            original_limit_millis=original,
            target_limit_millis=target_limit_millis,
            current_limit_millis=original,
            reduction_percentage=reduction_percentage,
            start_date=today,
            next_reduction_date=today + REDUCTION_INTERVAL,
            is_active=True,
            progress_percentage=0.0,
            created_at=self.clock.now(),
        )
        milestones = []
        for percentage in MILESTONE_PERCENTAGES:
            title, description = MILESTONE_REWARDS[percentage]
            milestones.append(ProgressiveMilestone(
                percentage=percentage,
                reward_title=title,
                reward_description=description.format(package=package_name),
            ))
        limit = self.store.insert_limit_with_milestones(limit, milestones)
        self.logger.info(
            f"Progressive limit created for {package_name}: "
            f"{format_duration(original)} -> {format_duration(target_limit_millis)}"
        )
        return limit

    def process_weekly_reductions(self, today: Optional[date] = None) -> List[ProgressiveLimit]:
        """
        Reduce every active limit whose reduction date has come.

        Runs are serialized; a limit is written together with the milestones
        it crossed. Returns the updated limits. Storage failures propagate.
        """
        today = today or self.clock.today()
        updated = []
        with self._reduction_lock:
            for limit in self.store.limits_due_for_reduction(today):
                due_date = limit.next_reduction_date
                new_limit, progress, next_date = reduce_once(limit, today)

                limit.current_limit_millis = new_limit
                limit.next_reduction_date = next_date
                limit.progress_percentage = progress / 100
                if new_limit == limit.target_limit_millis:
                    limit.is_active = False

                achieved = [p for p in MILESTONE_PERCENTAGES if p * 100 <= progress]
                if not self.store.save_reduction(limit, due_date, achieved, today):
                    self.logger.info(f"Skipped {limit.package_name}: limit changed during the reduction run")
                    continue
                updated.append(limit)

                if limit.is_active:
                    self.logger.info(
                        f"Reduced {limit.package_name} to {format_duration(new_limit)} "
                        f"({limit.progress_percentage:.2f}% of the way)"
                    )
                else:
                    self.logger.info(f"{limit.package_name} reached its target of {format_duration(new_limit)}")
        return updated

    def cancel(self, package_name: str) -> bool:
        """Deactivate the app's limit. Returns False when none was active."""
        with self._reduction_lock:
            cancelled = self.store.deactivate_limit(package_name)
        if cancelled:
            self.logger.info(f"Progressive limit cancelled for {package_name}")
        return cancelled

    def list_active(self) -> List[ProgressiveLimit]:
        return self.store.list_active_limits()

    def get_active_limit(self, package_name: str) -> Optional[ProgressiveLimit]:
        return self.store.get_active_limit(package_name)

    def milestones_for(self, limit_id: int) -> List[ProgressiveMilestone]:
        return self.store.milestones_for_limit(limit_id)

    def uncelebrated_milestones(self) -> List[ProgressiveMilestone]:
        return self.store.uncelebrated_milestones()

    def mark_celebration_shown(self, milestone_id: int):
        self.store.mark_celebration_shown(milestone_id)

    def celebrate_milestones(self) -> List[ProgressiveMilestone]:
        """Announce each achieved, uncelebrated milestone once."""
        celebrated = []
        for milestone in self.store.uncelebrated_milestones():
            notify_safely(
                self.logger, self.notifier.milestone_achieved,
                milestone.reward_title, milestone.reward_description,
            )
            self.store.mark_celebration_shown(milestone.id)
            milestone.celebration_shown = True
            celebrated.append(milestone)
        return celebrated

    def is_over_limit(self, package_name: str, today: Optional[date] = None) -> bool:
        """Whether today's usage has reached the app's current ceiling. Fails open."""
        today = today or self.clock.today()
        try:
            limit = self.store.get_active_limit(package_name)
            if limit is None:
                return False
            used = self.store.usage_for_day(package_name, today)
        except StorageError as e:
            self.logger.warning(f"Could not check progressive limit for {package_name}: {e}")
            return False
        return used >= limit.current_limit_millis
