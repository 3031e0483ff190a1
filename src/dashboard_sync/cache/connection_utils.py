# SPDX-License-Identifier: MIT
"""Centralized SQLite connection configuration for the durable cache medium.

Every read and write of the persistent cache goes through
``get_configured_connection()`` so all connections share WAL mode, the busy
timeout and the same PRAGMA settings. The medium is process-wide and shared
between dashboard sessions; WAL keeps concurrent readers from blocking writers.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..logging_config import get_detail_logger


detail_logger = get_detail_logger()


def configure_sqlite_connection(
    conn: sqlite3.Connection,
    enable_wal: bool = True,
) -> None:
    """Apply the standard PRAGMA settings to a connection.

    Args:
        conn: SQLite database connection to configure
        enable_wal: Whether to enable WAL mode (default: True)
    """
    if enable_wal:
        conn.execute("PRAGMA journal_mode = WAL")

    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA temp_store = MEMORY")
    detail_logger.debug(f"Configured SQLite connection (wal={enable_wal})")


@contextmanager
def get_configured_connection(
    db_path: str | Path,
    timeout: float = 5.0,
    enable_wal: bool = True,
) -> Iterator[sqlite3.Connection]:
    """Get a configured SQLite connection that is closed on exit.

    Changes are committed when the block exits without an exception and
    rolled back otherwise.

    Args:
        db_path: Path to the SQLite database file
        timeout: Busy timeout in seconds (default: 5.0)
        enable_wal: Whether to enable WAL mode (default: True)

    Yields:
        Configured SQLite connection

    Example:
        ```python
        with get_configured_connection(medium.db_path) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        ```
    """
    conn = sqlite3.connect(str(db_path), timeout=timeout)

    try:
        configure_sqlite_connection(conn, enable_wal=enable_wal)
        with conn:
            yield conn
    finally:
        conn.close()
