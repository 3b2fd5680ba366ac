"""Shared fixtures for scheduler tests"""
from datetime import datetime, timedelta

import pytest

from nxc_notifier.storage.database import Database

NOW = datetime(2026, 3, 14, 12, 0, 0)


class FakeClock:
    """Manually advanced stand-in for now_utc"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def database(tmp_path):
    return Database(db_path=str(tmp_path / "bot.db"))


@pytest.fixture
def clock():
    return FakeClock()
