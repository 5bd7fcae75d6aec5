"""Background jobs: daily reduction tick and restriction-change checks."""
import logging
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..exceptions import ScreenGuardError
from ..utils.logger import get_logger
from .progressive_limits import ProgressiveLimitEngine
from .restrictions import RestrictionManager

REDUCTION_JOB_ID = "progressive_reductions"
RESTRICTION_JOB_ID = "restriction_check"


class SchedulerService:
    """Drive the engines on a fixed cadence."""

    def __init__(
        self,
        limits: ProgressiveLimitEngine,
        restrictions: RestrictionManager,
        reduction_hour: int = 0,
        restriction_check_seconds: int = 60,
        scheduler: Optional[BackgroundScheduler] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.limits = limits
        self.restrictions = restrictions
        self.reduction_hour = reduction_hour
        self.restriction_check_seconds = restriction_check_seconds
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = logger or get_logger("scheduler")

    def schedule_jobs(self):
        """Register both jobs; safe to call again."""
        # daily, since limits come due on different weekdays
        self.scheduler.add_job(
            func=self.run_reduction_tick,
            trigger=CronTrigger(hour=self.reduction_hour, minute=5),
            id=REDUCTION_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            func=self.run_restriction_check,
            trigger=IntervalTrigger(seconds=self.restriction_check_seconds),
            id=RESTRICTION_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.logger.info(
            f"📅 Scheduled reductions daily at {self.reduction_hour:02d}:05, "
            f"restriction checks every {self.restriction_check_seconds}s"
        )

    def start(self):
        self.schedule_jobs()
        self.scheduler.start()

    def run_reduction_tick(self) -> int:
        """Apply due reductions, then celebrate new milestones. Returns limits reduced."""
        try:
            reduced = self.limits.process_weekly_reductions()
            self.limits.celebrate_milestones()
        except ScreenGuardError as e:
            self.logger.error(f"Weekly reduction run failed: {e}")
            return 0
        if reduced:
            self.logger.info(f"📉 Reduced {len(reduced)} progressive limit(s)")
        return len(reduced)

    def run_restriction_check(self) -> List[str]:
        return self.restrictions.check_and_notify()

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
