# SPDX-License-Identifier: MIT
"""Tests for the SQLite persistence medium and its connection helpers."""

import sqlite3
from unittest.mock import patch

import pytest

from dashboard_sync.cache import SQLitePersistenceMedium
from dashboard_sync.cache.connection_utils import get_configured_connection
from dashboard_sync.cache.schema import init_database


class TestSQLitePersistenceMedium:
    """Test cases for SQLitePersistenceMedium."""

    def test_write_read_delete(self, sqlite_medium):
        """Values round through the kv_store table."""
        sqlite_medium.write("a", "1")
        assert sqlite_medium.read("a") == "1"

        sqlite_medium.write("a", "2")
        assert sqlite_medium.read("a") == "2"

        sqlite_medium.delete("a")
        assert sqlite_medium.read("a") is None

    def test_keys_sorted_and_clear(self, sqlite_medium):
        """keys() lists every stored key; clear() removes them."""
        sqlite_medium.write("b", "x")
        sqlite_medium.write("a", "y")
        assert sqlite_medium.keys() == ["a", "b"]

        sqlite_medium.clear()
        assert sqlite_medium.keys() == []

    def test_db_path_from_config(self, tmp_path):
        """Without a path the medium uses cache.db_path from the config."""
        medium = SQLitePersistenceMedium()
        assert medium.db_path == tmp_path / "test_cache.db"
        assert medium.db_path.exists()

    def test_creates_parent_directory(self, tmp_path):
        """Missing parent directories are created."""
        db_path = tmp_path / "nested" / "dir" / "cache.db"
        SQLitePersistenceMedium(db_path)
        assert db_path.exists()

    def test_init_failure_raises_runtime_error(self, tmp_path):
        """Schema initialization errors surface as RuntimeError."""
        with patch(
            "dashboard_sync.cache.persistence.init_database",
            side_effect=sqlite3.OperationalError("unable to open database file"),
        ):
            with pytest.raises(RuntimeError, match="Failed to initialize database"):
                SQLitePersistenceMedium(tmp_path / "cache.db")


class TestConnectionUtils:
    """Test cases for get_configured_connection."""

    def test_wal_mode_enabled(self, tmp_path):
        """Connections run in WAL journal mode."""
        db_path = tmp_path / "wal.db"
        init_database(db_path)
        with get_configured_connection(db_path) as conn:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_rollback_on_error(self, tmp_path):
        """A failing block leaves no partial writes behind."""
        db_path = tmp_path / "rollback.db"
        init_database(db_path)

        with pytest.raises(RuntimeError):
            with get_configured_connection(db_path) as conn:
                conn.execute("INSERT INTO kv_store (key, value) VALUES ('k', 'v')")
                raise RuntimeError("boom")

        with get_configured_connection(db_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM kv_store").fetchone()[0]
        assert count == 0
