import logging
from datetime import datetime

import pytest

from screenguard.exceptions import NotFoundError, StorageError, ValidationError
from screenguard.services.restrictions import (
    ALL_DAYS, BEDTIME_MODE, EMERGENCY_APPS, RestrictionManager,
)

NIGHT = datetime(2025, 3, 4, 23, 30)
NOON = datetime(2025, 3, 4, 12, 0)


def _bedtime(restrictions, packages=(), allow_emergency=True):
    return restrictions.create_custom(
        name="Bedtime",
        description="",
        start_minute=22 * 60,
        end_minute=8 * 60,
        blocked_packages=packages,
        active_days=ALL_DAYS,
        allow_emergency_apps=allow_emergency,
    )


def test_empty_blocked_set_blocks_every_non_emergency_app(restrictions):
    _bedtime(restrictions)
    for package in ("com.instagram.android", "org.example.reader", "x"):
        assert restrictions.is_blocked(package, NIGHT)
    for package in EMERGENCY_APPS:
        assert not restrictions.is_blocked(package, NIGHT)


def test_emergency_apps_blocked_when_not_allowed(restrictions):
    _bedtime(restrictions, allow_emergency=False)
    assert restrictions.is_blocked("com.android.dialer", NIGHT)


def test_listed_packages_only(restrictions):
    _bedtime(restrictions, packages=["com.instagram.android", "com.android.dialer"])
    assert restrictions.is_blocked("com.instagram.android", NIGHT)
    assert not restrictions.is_blocked("com.spotify.music", NIGHT)
    # emergency exemption still applies to a listed package
    assert not restrictions.is_blocked("com.android.dialer", NIGHT)


def test_not_blocked_outside_window(restrictions):
    _bedtime(restrictions)
    assert not restrictions.is_blocked("com.instagram.android", NOON)


def test_uses_clock_when_no_instant_given(restrictions, clock):
    _bedtime(restrictions)
    clock.set(NIGHT)
    assert restrictions.is_blocked("com.instagram.android")
    clock.set(NOON)
    assert not restrictions.is_blocked("com.instagram.android")


def test_set_enabled_is_idempotent(restrictions):
    restriction_id = _bedtime(restrictions)
    restrictions.set_enabled(restriction_id, False)
    restrictions.set_enabled(restriction_id, False)
    assert not restrictions.is_blocked("com.instagram.android", NIGHT)
    restrictions.set_enabled(restriction_id, True)
    assert restrictions.is_blocked("com.instagram.android", NIGHT)


def test_set_enabled_unknown_id(restrictions):
    with pytest.raises(NotFoundError):
        restrictions.set_enabled(999, True)


def test_create_custom_stores_definition(restrictions):
    restriction_id = restrictions.create_custom(
        "Study", "No games", 9 * 60, 12 * 60, [" com.game ", ""], [1, 3, 5],
    )
    stored = restrictions.get(restriction_id)
    assert stored.restriction_type == "custom"
    assert stored.blocked_packages == frozenset({"com.game"})
    assert stored.active_days == frozenset({1, 3, 5})
    assert stored.is_enabled


@pytest.mark.parametrize("start,end", [(-1, 60), (0, 1440), (1440, 0)])
def test_create_custom_rejects_bad_minutes(restrictions, start, end):
    with pytest.raises(ValidationError):
        restrictions.create_custom("Bad", "", start, end, [], ALL_DAYS)


@pytest.mark.parametrize("days", [[], [7], [-1, 2]])
def test_create_custom_rejects_bad_days(restrictions, days):
    with pytest.raises(ValidationError):
        restrictions.create_custom("Bad", "", 0, 60, [], days)


def test_create_custom_rejects_blank_name(restrictions):
    with pytest.raises(ValidationError):
        restrictions.create_custom("  ", "", 0, 60, [], ALL_DAYS)


def test_active_restrictions_at(restrictions):
    _bedtime(restrictions)
    restrictions.create_custom("Lunch", "", 12 * 60, 13 * 60, [], ALL_DAYS)
    assert [r.name for r in restrictions.active_restrictions_at(NIGHT)] == ["Bedtime"]
    assert [r.name for r in restrictions.active_restrictions_at(NOON)] == ["Lunch"]


def test_delete(restrictions):
    restriction_id = _bedtime(restrictions)
    restrictions.delete(restriction_id)
    assert restrictions.list_all() == []
    with pytest.raises(NotFoundError):
        restrictions.delete(restriction_id)


def test_default_restrictions_created_once(restrictions):
    created = restrictions.create_default_restrictions()
    assert len(created) == 4
    assert restrictions.create_default_restrictions() == []

    enabled = [r for r in restrictions.list_all() if r.is_enabled]
    assert [r.restriction_type for r in enabled] == [BEDTIME_MODE]
    assert restrictions.is_blocked("com.instagram.android", NIGHT)


class BrokenStore:
    def list_restrictions(self, enabled_only=False):
        raise StorageError("database is locked")


def test_storage_failure_fails_open(clock, caplog):
    manager = RestrictionManager(BrokenStore(), clock=clock)
    with caplog.at_level(logging.WARNING, logger="screenguard.restrictions"):
        assert manager.is_blocked("com.instagram.android", NIGHT) is False
        assert manager.active_restrictions_at(NIGHT) == []
    assert "database is locked" in caplog.text


def test_check_and_notify_on_change_only(restrictions, notifier, clock):
    _bedtime(restrictions)
    clock.set(NIGHT)
    assert restrictions.check_and_notify() == ["Bedtime"]
    assert restrictions.check_and_notify() == ["Bedtime"]
    assert notifier.events == [("restriction_became_active", ["Bedtime"])]

    clock.set(NOON)
    assert restrictions.check_and_notify() == []
    clock.set(NIGHT)
    restrictions.check_and_notify()
    assert len(notifier.events) == 2


def test_check_and_notify_skips_silent_restrictions(restrictions, notifier):
    restrictions.create_custom(
        "Quiet", "", 22 * 60, 8 * 60, [], ALL_DAYS, show_notifications=False,
    )
    assert restrictions.check_and_notify(NIGHT) == []
    assert notifier.events == []


def test_write_during_reload_is_not_reverted(restrictions, store, monkeypatch):
    restriction_id = _bedtime(restrictions)
    list_rows = store.list_restrictions
    calls = []

    def list_then_disable(enabled_only=False):
        rows = list_rows(enabled_only)
        if not calls:
            calls.append(1)
            restrictions.set_enabled(restriction_id, False)
        return rows

    monkeypatch.setattr(store, "list_restrictions", list_then_disable)
    restrictions.check_and_notify(NIGHT)

    assert not store.get_restriction(restriction_id).is_enabled
    assert not restrictions.is_blocked("com.instagram.android", NIGHT)


def test_package_string_is_one_package(restrictions):
    restriction_id = restrictions.create_custom("Games", "", 0, 60, "com.game", ALL_DAYS)
    assert restrictions.get(restriction_id).blocked_packages == frozenset({"com.game"})
