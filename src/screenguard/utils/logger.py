"""
Logging setup for ScreenGuard.

- logs/system.log: normal operation (INFO+)
- logs/error.log: stack traces (ERROR+)
- console: what the operator should see (WARNING+)

Files rotate so long-running hosts do not grow them without bound.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "screenguard"

MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3


def setup_logging(
    log_dir: Union[str, Path] = "logs",
    log_level: int = logging.INFO,
    console_level: int = logging.WARNING,
) -> logging.Logger:
    """
    Configure the screenguard logger.

    Args:
        log_dir: Directory for the rotating log files
        log_level: Level for system.log
        console_level: Level for stderr output

    Returns:
        The configured root logger of the package
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    file_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_format = logging.Formatter("[%(levelname)s] %(message)s")

    system_handler = RotatingFileHandler(
        log_dir / "system.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    system_handler.setLevel(log_level)
    system_handler.setFormatter(file_format)
    logger.addHandler(system_handler)

    error_handler = RotatingFileHandler(
        log_dir / "error.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_format)
    logger.addHandler(error_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for a module, e.g. get_logger("focus") -> screenguard.focus."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)
