import logging
from pathlib import Path

import pytest

from screenguard.config import load_config
from screenguard.exceptions import ValidationError


def test_defaults():
    config = load_config({})
    assert config.database.url == f"sqlite:///{Path('data') / 'screenguard.db'}"
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 8765
    assert config.scheduler.reduction_hour == 0
    assert config.scheduler.restriction_check_seconds == 60
    assert config.log_level == logging.INFO
    assert config.default_reduction_percentage == 10


def test_environment_overrides(tmp_path):
    config = load_config({
        "SCREENGUARD_DATA_DIR": str(tmp_path),
        "SCREENGUARD_API_PORT": "9000",
        "SCREENGUARD_LOG_LEVEL": "debug",
        "SCREENGUARD_REDUCTION_HOUR": "4",
        "SCREENGUARD_DEFAULT_REDUCTION_PERCENTAGE": "15",
    })
    assert config.database.url == f"sqlite:///{tmp_path / 'screenguard.db'}"
    assert config.server.port == 9000
    assert config.log_level == logging.DEBUG
    assert config.scheduler.reduction_hour == 4
    assert config.default_reduction_percentage == 15


def test_explicit_database_url_wins():
    config = load_config({"SCREENGUARD_DB_URL": "postgresql://localhost/screenguard"})
    assert config.database.url == "postgresql://localhost/screenguard"


@pytest.mark.parametrize("env", [
    {"SCREENGUARD_API_PORT": "eighty"},
    {"SCREENGUARD_REDUCTION_HOUR": "24"},
    {"SCREENGUARD_RESTRICTION_CHECK_SECONDS": "0"},
    {"SCREENGUARD_DEFAULT_REDUCTION_PERCENTAGE": "100"},
    {"SCREENGUARD_LOG_LEVEL": "chatty"},
])
def test_invalid_values_are_rejected(env):
    with pytest.raises(ValidationError):
        load_config(env)
