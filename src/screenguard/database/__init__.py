"""Database package initialization."""
from .models import (
    Base,
    TimeRestriction,
    ProgressiveLimit,
    ProgressiveMilestone,
    FocusSession,
    AppUsage,
    MILESTONE_PERCENTAGES,
    create_db_engine,
    init_database,
)
from .repository import TrackerStore

__all__ = [
    'Base',
    'TimeRestriction',
    'ProgressiveLimit',
    'ProgressiveMilestone',
    'FocusSession',
    'AppUsage',
    'MILESTONE_PERCENTAGES',
    'create_db_engine',
    'init_database',
    'TrackerStore',
]
