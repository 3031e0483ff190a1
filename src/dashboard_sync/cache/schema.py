# SPDX-License-Identifier: MIT
"""Database schema initialization for the durable cache medium."""

import sqlite3
from pathlib import Path


def init_database(db_path: Path) -> None:
    """Create the key-value table used by the persistent cache medium.

    Safe to call repeatedly.

    Args:
        db_path: Path to the SQLite database file
    """
    with sqlite3.connect(db_path) as conn:
        conn.executescript(
            """
            -- Durable string key -> value storage
            -- Values are JSON documents of serialized cache entries
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY NOT NULL,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_kv_store_updated_at ON kv_store(updated_at);
        """
        )
