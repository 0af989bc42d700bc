"""
Shared test fixtures for station telemetry tests.

All settings environment variables are cleaned before each test to ensure
isolation, and the working directory is moved to tmp_path so no stray .env
file is loaded.

CHANGELOG:
- 2026-10-05: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

# All StationSettings environment variable names, used for cleanup.
_ALL_STATION_ENV_VARS = (
    "USE_MOCK_DATA",
    "COLLECTION_NAME",
    "LIVE_SOURCE_URL",
    "LIVE_POLL_INTERVAL_S",
    "LIVE_TIMEOUT_S",
    "SIMULATED_TICK_S",
    "STATION_ID",
    "SLOT_COUNT",
    "VOLTAGE_MIN",
    "VOLTAGE_MAX",
    "FULL_VOLTAGE",
    "CURRENT_DEADBAND_MA",
    "ROVER_BUFFER_SIZE",
    "ROVER_TICK_S",
    "ROVER_COUNT",
    "HISTORY_DB_PATH",
    "HEALTH_PATH",
)


@pytest.fixture(autouse=True)
def _clean_station_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all station env vars and isolate from .env files before each test."""
    for var in _ALL_STATION_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def restore_root_logger() -> Iterator[None]:
    """Restore root logger handlers and level after configure_logging()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def base_ts() -> datetime:
    return datetime(2026, 10, 14, 12, 0, 0, tzinfo=UTC)
