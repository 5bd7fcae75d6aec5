"""Notifier collaborator: fire-and-forget events emitted by the managers."""
import logging
from typing import Callable, List, Optional

from ..utils.helpers import format_duration
from ..utils.logger import get_logger


class Notifier:
    """Receives events from the core. The default implementation ignores them."""

    def session_started(self, duration_minutes: int):
        pass

    def session_completed(self, duration_millis: int, was_successful: bool):
        pass

    def restriction_became_active(self, names: List[str]):
        pass

    def milestone_achieved(self, title: str, description: str):
        pass


class LoggingNotifier(Notifier):
    """Writes every event to the log; used when no UI is attached."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("notifier")

    def session_started(self, duration_minutes: int):
        self.logger.info(f"🎯 Focus session started ({duration_minutes} min)")

    def session_completed(self, duration_millis: int, was_successful: bool):
        outcome = "completed" if was_successful else "ended early"
        self.logger.info(f"⏹️ Focus session {outcome} after {format_duration(duration_millis)}")

    def restriction_became_active(self, names: List[str]):
        self.logger.info(f"⏰ Time restriction active: {', '.join(names)}")

    def milestone_achieved(self, title: str, description: str):
        self.logger.info(f"🏆 {title} {description}")


def notify_safely(logger: logging.Logger, event: Callable, *args):
    """Call a notifier event; a failing notifier never reaches the caller."""
    try:
        event(*args)
    except Exception as e:
        logger.warning(f"Notifier error in {getattr(event, '__name__', event)}: {e}")
