from datetime import datetime, timedelta

import pytest

from screenguard.database import TimeRestriction
from screenguard.services.restrictions import ALL_DAYS, is_active_at

TUESDAY = datetime(2025, 3, 4)  # day index 2
WEDNESDAY = datetime(2025, 3, 5)  # day index 3


def _restriction(start, end, days=ALL_DAYS, enabled=True, packages=()):
    return TimeRestriction(
        name="test",
        start_minute=start,
        end_minute=end,
        active_days=days,
        blocked_packages=packages,
        is_enabled=enabled,
    )


def _at(day, minute):
    return day + timedelta(minutes=minute)


@pytest.mark.parametrize("start,end", [(0, 1), (540, 1020), (0, 1439), (720, 780)])
def test_regular_window_is_half_open(start, end):
    restriction = _restriction(start, end)
    for minute in range(1440):
        assert is_active_at(restriction, _at(TUESDAY, minute)) == (start <= minute < end)


@pytest.mark.parametrize("start,end", [(1320, 480), (1439, 0), (1, 0), (720, 60)])
def test_wrap_around_window_spans_midnight(start, end):
    restriction = _restriction(start, end)
    for minute in range(1440):
        expected = minute >= start or minute < end
        assert is_active_at(restriction, _at(TUESDAY, minute)) == expected


@pytest.mark.parametrize("minute", [0, 1, 479, 480, 720, 1439])
def test_equal_start_and_end_covers_whole_day(minute):
    assert is_active_at(_restriction(600, 600), _at(TUESDAY, minute))


def test_bedtime_example():
    bedtime = _restriction(22 * 60, 8 * 60)
    assert is_active_at(bedtime, datetime(2025, 3, 4, 23, 30))
    assert is_active_at(bedtime, datetime(2025, 3, 5, 7, 59))
    assert not is_active_at(bedtime, datetime(2025, 3, 5, 8, 0))


def test_disabled_restriction_is_never_active():
    restriction = _restriction(0, 0, enabled=False)
    assert not is_active_at(restriction, _at(TUESDAY, 600))


def test_day_mask_rejects_other_days():
    tuesday_only = _restriction(540, 1020, days={2})
    assert is_active_at(tuesday_only, _at(TUESDAY, 600))
    assert not is_active_at(tuesday_only, _at(WEDNESDAY, 600))


def test_sunday_is_day_zero():
    sunday = datetime(2025, 3, 2, 12, 0)
    assert is_active_at(_restriction(0, 0, days={0}), sunday)
    assert not is_active_at(_restriction(0, 0, days={6}), sunday)


def test_after_midnight_part_uses_the_start_day():
    # window starts Tuesday night only
    tuesday_night = _restriction(22 * 60, 8 * 60, days={2})
    assert is_active_at(tuesday_night, datetime(2025, 3, 4, 23, 0))
    assert is_active_at(tuesday_night, datetime(2025, 3, 5, 6, 0))
    # Tuesday early morning belongs to Monday's window
    assert not is_active_at(tuesday_night, datetime(2025, 3, 4, 6, 0))


def test_saturday_night_window_continues_into_sunday():
    saturday_night = _restriction(23 * 60, 2 * 60, days={6})
    assert is_active_at(saturday_night, datetime(2025, 3, 9, 1, 0))


def test_empty_day_set_is_never_active():
    restriction = _restriction(0, 0, days=())
    assert not is_active_at(restriction, _at(TUESDAY, 600))
