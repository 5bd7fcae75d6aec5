"""Runtime configuration loaded from environment variables."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ValidationError


@dataclass
class DatabaseConfig:
    """Database location."""
    url: str
    data_dir: Path


@dataclass
class ServerConfig:
    """HTTP API binding."""
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class SchedulerConfig:
    """Background job cadence."""
    reduction_hour: int = 0
    restriction_check_seconds: int = 60


@dataclass
class AppConfig:
    """Top-level configuration."""
    database: DatabaseConfig
    server: ServerConfig
    scheduler: SchedulerConfig
    log_dir: Path
    log_level: int = logging.INFO
    default_reduction_percentage: int = 10


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an integer, got {raw!r}")


def _get_log_level(env: Mapping[str, str]) -> int:
    name = env.get("SCREENGUARD_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValidationError(f"Unknown log level {name!r}")
    return level


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the configuration from the environment (or a given mapping)."""
    env = os.environ if env is None else env

    data_dir = Path(env.get("SCREENGUARD_DATA_DIR", "data"))
    db_url = env.get("SCREENGUARD_DB_URL") or f"sqlite:///{data_dir / 'screenguard.db'}"

    reduction_hour = _get_int(env, "SCREENGUARD_REDUCTION_HOUR", 0)
    if not 0 <= reduction_hour <= 23:
        raise ValidationError("SCREENGUARD_REDUCTION_HOUR must be between 0 and 23")

    check_seconds = _get_int(env, "SCREENGUARD_RESTRICTION_CHECK_SECONDS", 60)
    if check_seconds <= 0:
        raise ValidationError("SCREENGUARD_RESTRICTION_CHECK_SECONDS must be positive")

    percentage = _get_int(env, "SCREENGUARD_DEFAULT_REDUCTION_PERCENTAGE", 10)
    if not 1 <= percentage <= 99:
        raise ValidationError("SCREENGUARD_DEFAULT_REDUCTION_PERCENTAGE must be between 1 and 99")

    return AppConfig(
        database=DatabaseConfig(url=db_url, data_dir=data_dir),
        server=ServerConfig(
            host=env.get("SCREENGUARD_API_HOST", "127.0.0.1"),
            port=_get_int(env, "SCREENGUARD_API_PORT", 8765),
        ),
        scheduler=SchedulerConfig(
            reduction_hour=reduction_hour,
            restriction_check_seconds=check_seconds,
        ),
        log_dir=Path(env.get("SCREENGUARD_LOG_DIR", "logs")),
        log_level=_get_log_level(env),
        default_reduction_percentage=percentage,
    )
