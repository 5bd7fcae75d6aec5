"""Main application entry point."""
from typing import Optional

from .api import set_services, start as start_api
from .config import AppConfig, load_config
from .database import TrackerStore
from .services import (
    FocusSessionManager,
    LoggingNotifier,
    ProgressiveLimitEngine,
    RestrictionManager,
    SchedulerService,
)
from .utils.clock import Clock, SystemClock
from .utils.logger import get_logger, setup_logging


def ensure_data_directory(config: AppConfig):
    """Ensure the SQLite data directory exists."""
    if config.database.url.startswith("sqlite:///"):
        config.database.data_dir.mkdir(parents=True, exist_ok=True)
    return config.database.data_dir


def build_services(config: AppConfig, clock: Optional[Clock] = None):
    """Create the store and the three managers sharing one clock and notifier."""
    clock = clock or SystemClock()
    store = TrackerStore.from_url(config.database.url)
    notifier = LoggingNotifier()

    restrictions = RestrictionManager(store, clock=clock, notifier=notifier)
    limits = ProgressiveLimitEngine(
        store,
        clock=clock,
        notifier=notifier,
        default_reduction_percentage=config.default_reduction_percentage,
    )
    focus = FocusSessionManager(store, clock=clock, notifier=notifier)
    return store, restrictions, limits, focus


def main():
    """Main application entry point."""
    config = load_config()
    setup_logging(config.log_dir, config.log_level)
    logger = get_logger("main")
    logger.info("🚀 Starting ScreenGuard...")

    ensure_data_directory(config)

    logger.info("📦 Initializing database...")
    store, restrictions, limits, focus = build_services(config)
    restrictions.create_default_restrictions()

    scheduler = SchedulerService(
        limits,
        restrictions,
        reduction_hour=config.scheduler.reduction_hour,
        restriction_check_seconds=config.scheduler.restriction_check_seconds,
    )
    scheduler.start()
    # catch up on reductions missed while the host was down
    scheduler.run_reduction_tick()
    logger.info("✅ Scheduler started")

    set_services(store, restrictions, limits, focus)
    logger.info(f"🌐 API server on http://{config.server.host}:{config.server.port}")

    try:
        start_api(config.server.host, config.server.port)
    except KeyboardInterrupt:
        logger.info("👋 Shutting down ScreenGuard...")
    finally:
        scheduler.shutdown()
        logger.info("✅ Shutdown complete")


if __name__ == "__main__":
    main()
