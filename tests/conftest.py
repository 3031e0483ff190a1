# SPDX-License-Identifier: MIT
"""Pytest configuration and shared fixtures."""

import logging
import os

import pytest
import yaml

from dashboard_sync.cache import CacheStore, SQLitePersistenceMedium
from dashboard_sync.config import ConfigManager, reset_config_manager, set_config_manager
from dashboard_sync.logging_config import DETAIL_LOGGER_NAME, STATUS_LOGGER_NAME
from dashboard_sync.models import FeedItem, Notification


class FakeClock:
    """Manually advanced time source, in epoch seconds."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function", autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """
    Automatically isolate configuration for every test.

    This fixture:
    1. Runs the test from a temporary working directory
    2. Removes DASHBOARD_SYNC_* environment overrides
    3. Installs a global ConfigManager whose cache lives under tmp_path

    This prevents tests from touching a real cache.db or log directory.
    """
    for key in list(os.environ):
        if key.startswith("DASHBOARD_SYNC_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)

    config_path = tmp_path / "test_config.yaml"
    config_path.write_text(
        yaml.safe_dump({"cache": {"db_path": str(tmp_path / "test_cache.db")}}),
        encoding="utf-8",
    )
    manager = ConfigManager(config_path)
    set_config_manager(manager)

    yield manager

    reset_config_manager()


@pytest.fixture(autouse=True)
def reset_logging():
    """Detach handlers so a test's closed streams never leak into the next."""
    yield
    for name in (DETAIL_LOGGER_NAME, STATUS_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in logger.handlers[:]:
            handler.close()
        logger.handlers.clear()


@pytest.fixture
def clock():
    """Fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    """Memory-only cache store on the fake clock."""
    return CacheStore(clock=clock)


@pytest.fixture
def sqlite_medium(tmp_path):
    """SQLite persistence medium in a temporary database."""
    return SQLitePersistenceMedium(tmp_path / "medium.db")


@pytest.fixture
def make_items():
    """Build FeedItems from ids."""

    def _make(*ids: str) -> list[FeedItem]:
        return [FeedItem(id=item_id, payload={"id": item_id}) for item_id in ids]

    return _make


@pytest.fixture
def sample_notifications():
    """Three notifications: two unread (orders, stock), one read (orders)."""
    return [
        Notification(id="n1", is_read=False, category="orders", title="New order"),
        Notification(id="n2", is_read=False, category="stock", title="Low stock"),
        Notification(id="n3", is_read=True, category="orders", title="Shipped"),
    ]
