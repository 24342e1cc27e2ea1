"""Shared fixtures for weeksync tests."""

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from tests.helpers import FakeCalendarProvider, FakeTaskProvider, dt
from weeksync.config import WeekSyncSettings, reset_settings
from weeksync.timezone_utils import FixedClock

UTC_ZONE = "UTC"


def pytest_configure(config: Any) -> None:
    """Register weeksync test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests that finish in milliseconds")
    config.addinivalue_line("markers", "integration: Tests spanning several modules")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure WEEKSYNC_* environment variables do not leak into tests.

    Settings are read from the environment, so a developer's shell or a
    previous test could otherwise change defaults under test.
    """
    import os

    for key in list(os.environ):
        if key.startswith("WEEKSYNC_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def cache_file(tmp_path: Path) -> Path:
    """Return a cache file location inside a not-yet-existing directory."""
    return tmp_path / "state" / "cache.json"


@pytest.fixture
def settings(cache_file: Path) -> WeekSyncSettings:
    """Deterministic settings: UTC, one calendar, one task list."""
    return WeekSyncSettings(
        timezone=UTC_ZONE,
        calendar_id="primary",
        view_calendars=["primary"],
        lists={"Inbox": "inbox"},
        cache_path=cache_file,
    )


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to Monday 2026-01-05 08:00 UTC."""
    return FixedClock(dt(2026, 1, 5, 8))


@pytest.fixture
def calendar_provider() -> FakeCalendarProvider:
    return FakeCalendarProvider()


@pytest.fixture
def task_provider() -> FakeTaskProvider:
    return FakeTaskProvider()
