from datetime import date

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from screenguard.exceptions import StorageError
from screenguard.services import SchedulerService
from screenguard.services.restrictions import ALL_DAYS

MINUTE = 60_000


@pytest.fixture
def scheduler_service(limits, restrictions):
    service = SchedulerService(
        limits, restrictions,
        reduction_hour=3,
        restriction_check_seconds=30,
        scheduler=BackgroundScheduler(),
    )
    yield service
    service.shutdown()


def test_jobs_registered(scheduler_service):
    scheduler_service.schedule_jobs()
    # scheduling twice replaces instead of duplicating
    scheduler_service.schedule_jobs()

    jobs = {job.id: job for job in scheduler_service.scheduler.get_jobs()}
    assert set(jobs) == {"progressive_reductions", "restriction_check"}
    assert isinstance(jobs["progressive_reductions"].trigger, CronTrigger)
    assert isinstance(jobs["restriction_check"].trigger, IntervalTrigger)
    assert jobs["restriction_check"].trigger.interval.total_seconds() == 30


def test_reduction_tick_reduces_due_limits(scheduler_service, limits, clock, notifier):
    limits.create("com.app", 30 * MINUTE, 60 * MINUTE)
    assert scheduler_service.run_reduction_tick() == 0

    clock.set(clock.now().replace(day=11))
    assert scheduler_service.run_reduction_tick() == 1
    assert limits.get_active_limit("com.app").next_reduction_date == date(2025, 3, 18)

    clock.set(clock.now().replace(day=18))
    scheduler_service.run_reduction_tick()
    # 25% crossed on the second reduction, celebrated by the same tick
    assert [e[0] for e in notifier.events] == ["milestone_achieved"]
    assert scheduler_service.run_reduction_tick() == 0


def test_reduction_tick_logs_storage_failures(scheduler_service, limits, monkeypatch, caplog):
    def broken(today=None):
        raise StorageError("database is locked")

    monkeypatch.setattr(limits, "process_weekly_reductions", broken)
    assert scheduler_service.run_reduction_tick() == 0
    assert "database is locked" in caplog.text


def test_restriction_check_reports_active_names(scheduler_service, restrictions, clock):
    restrictions.create_custom("Morning", "", 9 * 60, 10 * 60, [], ALL_DAYS)
    assert scheduler_service.run_restriction_check() == ["Morning"]
