"""
Pytest configuration for v2stat tests.
Keeps settings, log files and databases inside each test's tmp_path.
"""
import calendar
import logging

import pytest

import config
import logger
from stat_keys import RawCounter
from traffic_storage import TrafficStorage


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings.json and the log file at tmp_path; drop env overrides."""
    monkeypatch.setattr(config, 'SETTINGS_FILE', str(tmp_path / 'settings.json'))
    monkeypatch.setattr(config, 'LOG_FILE', str(tmp_path / 'v2stat.log'))
    for env_name in config.ENV_OVERRIDES:
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setattr(logger, '_logger', None)
    yield


@pytest.fixture
def test_logger():
    """A propagating logger so caplog sees records."""
    return logging.getLogger('test.v2stat')


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'traffic.db')


@pytest.fixture
def storage(db_path, test_logger):
    return TrafficStorage(db_path, logger=test_logger)


def utc(year, month, day, hour=0, minute=0, second=0):
    """Epoch seconds for a UTC wall-clock time."""
    return calendar.timegm((year, month, day, hour, minute, second))


def counter(scope, name, direction, value):
    return RawCounter(f"{scope}>>>{name}>>>traffic>>>{direction}", value)
