"""Services package initialization."""
from .notifier import Notifier, LoggingNotifier
from .restrictions import EMERGENCY_APPS, RestrictionManager, is_active_at
from .progressive_limits import ProgressiveLimitEngine
from .focus_sessions import FocusSessionManager, FocusStats
from .scheduler import SchedulerService

__all__ = [
    'Notifier',
    'LoggingNotifier',
    'EMERGENCY_APPS',
    'RestrictionManager',
    'is_active_at',
    'ProgressiveLimitEngine',
    'FocusSessionManager',
    'FocusStats',
    'SchedulerService',
]
