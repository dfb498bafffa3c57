"""Shared test fixtures for WorkPulse tests.

This module provides common fixtures used across all test modules:
- A fixed base time so tests never depend on the clock
- Factories for observations and sessions
- Database isolation with temporary files

Usage:
    def test_something(make_obs, base_time):
        obs = make_obs("Code", 0, 40)
        ...
"""

import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from workpulse.analytics.models import ActivityObservation, ContextCategory, WorkSession


# ─────────────────────────────────────────────────────────────────────────────
# Time Fixtures
# ─────────────────────────────────────────────────────────────────────────────

BASE_TIME = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time() -> datetime:
    """09:00 UTC on a fixed day. Offsets in tests are seconds from here."""
    return BASE_TIME


@pytest.fixture
def day_bounds() -> tuple[datetime, datetime]:
    """Midnight-to-midnight bounds of the day containing base_time."""
    start = BASE_TIME.replace(hour=0)
    return start, start + timedelta(days=1)


# ─────────────────────────────────────────────────────────────────────────────
# Data Factories
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_obs():
    """Factory for ActivityObservation at an offset (seconds) from base_time."""

    def _make(
        app_id: str,
        offset: float,
        duration: float,
        window_title: str = "main.py",
        is_idle: bool = False,
    ) -> ActivityObservation:
        return ActivityObservation(
            app_id=app_id,
            window_title=window_title,
            timestamp=BASE_TIME + timedelta(seconds=offset),
            duration=duration,
            is_idle=is_idle,
        )

    return _make


@pytest.fixture
def make_record():
    """Factory for raw capture records (dicts) as the capture service sends them."""

    def _make(
        app_id: str | None,
        offset: float,
        duration: float | None,
        window_title: str = "main.py",
        is_idle: bool = False,
    ) -> dict:
        record = {
            "app_id": app_id,
            "window_title": window_title,
            "timestamp": (BASE_TIME + timedelta(seconds=offset)).isoformat(),
            "duration": duration,
        }
        if is_idle:
            record["is_idle"] = True
        return record

    return _make


@pytest.fixture
def make_session():
    """Factory for WorkSession at an offset (seconds) from base_time."""

    def _make(
        app_id: str,
        offset: float,
        duration: float,
        category: ContextCategory = ContextCategory.DEVELOPMENT,
        window_title: str = "main.py",
    ) -> WorkSession:
        start = BASE_TIME + timedelta(seconds=offset)
        return WorkSession(
            start=start,
            end=start + timedelta(seconds=duration),
            app_id=app_id,
            window_title=window_title,
            duration=duration,
            event_count=1,
            category=category,
        )

    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database path for testing.

    The directory and database file are removed after the test completes.
    """
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir) / "test_workpulse.db"
