from datetime import datetime

import pytest

from screenguard.database import TrackerStore
from screenguard.services import (
    FocusSessionManager,
    Notifier,
    ProgressiveLimitEngine,
    RestrictionManager,
)
from screenguard.utils.clock import FixedClock

# Tuesday
START = datetime(2025, 3, 4, 9, 30)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def session_started(self, duration_minutes):
        self.events.append(("session_started", duration_minutes))

    def session_completed(self, duration_millis, was_successful):
        self.events.append(("session_completed", duration_millis, was_successful))

    def restriction_became_active(self, names):
        self.events.append(("restriction_became_active", list(names)))

    def milestone_achieved(self, title, description):
        self.events.append(("milestone_achieved", title, description))


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def store():
    return TrackerStore.from_url("sqlite://")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def restrictions(store, clock, notifier):
    return RestrictionManager(store, clock=clock, notifier=notifier)


@pytest.fixture
def limits(store, clock, notifier):
    return ProgressiveLimitEngine(store, clock=clock, notifier=notifier)


@pytest.fixture
def focus(store, clock, notifier):
    return FocusSessionManager(store, clock=clock, notifier=notifier)
