# SPDX-License-Identifier: MIT
"""Durable string key-value media for the cache store."""

import sqlite3
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..logging_config import get_detail_logger, get_status_logger
from ..utils.dead_code import code_is_used
from .connection_utils import get_configured_connection
from .schema import init_database


detail_logger = get_detail_logger()
status_logger = get_status_logger()


@runtime_checkable
class PersistenceMedium(Protocol):
    """Durable string key -> value storage that survives process restarts.

    Implementations may raise ``sqlite3.Error`` or ``OSError`` from any
    method; the cache store turns those into a logged ``PersistenceError``.
    """

    @code_is_used
    def read(self, key: str) -> str | None:
        """Return the stored value or None if the key is absent."""
        ...

    @code_is_used
    def write(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    @code_is_used
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    @code_is_used
    def keys(self) -> list[str]:
        """Return every stored key."""
        ...

    @code_is_used
    def clear(self) -> None:
        """Remove every stored key."""
        ...


class SQLitePersistenceMedium:
    """Persistence medium backed by a single SQLite table."""

    def __init__(self, db_path: Path | None = None):
        """Initialize the medium and its schema.

        Args:
            db_path: Path to the SQLite database file. If None, gets from config.

        Raises:
            RuntimeError: If the config is invalid or the database cannot be initialized.
        """
        if db_path is None:
            # Local import to avoid circular dependency (config -> cache)
            from ..config import get_config_manager

            try:
                db_path = Path(get_config_manager().load_config().cache.db_path)
                detail_logger.debug(f"Using database path from config: {db_path}")
            except AttributeError as e:
                error_msg = (
                    "Invalid config structure: missing 'cache.db_path' configuration"
                )
                status_logger.error(error_msg)
                detail_logger.exception(f"{error_msg}: {e}")
                raise RuntimeError(error_msg) from e

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error_msg = f"Failed to create database directory: {db_path.parent}"
            status_logger.error(error_msg)
            detail_logger.exception(f"{error_msg}: {e}")
            raise RuntimeError(error_msg) from e

        try:
            init_database(db_path)
            detail_logger.debug(f"Database schema initialized: {db_path}")
        except (sqlite3.Error, OSError) as e:
            error_msg = f"Failed to initialize database at {db_path}"
            status_logger.error(error_msg)
            detail_logger.exception(f"{error_msg}: {e}")
            raise RuntimeError(error_msg) from e

        self.db_path = db_path

    def read(self, key: str) -> str | None:
        with get_configured_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return str(row[0]) if row else None

    def write(self, key: str, value: str) -> None:
        with get_configured_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                """,
                (key, value),
            )

    def delete(self, key: str) -> None:
        with get_configured_connection(self.db_path) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        with get_configured_connection(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [str(row[0]) for row in rows]

    def clear(self) -> None:
        with get_configured_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM kv_store")
            detail_logger.debug(f"Cleared {cursor.rowcount} persisted cache entries")
