# SPDX-License-Identifier: MIT
"""Logging configuration for the dashboard sync layer.

This module provides a dual-logger system:
1. Detail Logger: Captures cache hits, poll ticks, discards and rollbacks to file only
2. Status Logger: Outputs user-facing progress/status to console (stderr) and file

Library modules only fetch the loggers. Entry points (the CLI) call
``setup_logging`` once to attach handlers.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Logger names
DETAIL_LOGGER_NAME = "dashboard_sync.detail"
STATUS_LOGGER_NAME = "dashboard_sync.status"

LOG_FILE_NAME = "dashboard-sync.log"


class FlushingStreamHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler that flushes after every record."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        # Only flush if the stream is not closed
        if self.stream and not self.stream.closed:
            self.flush()


def setup_logging(log_dir: Path | None = None) -> tuple[logging.Logger, logging.Logger]:
    """Configure dual logging system with detail and status loggers.

    Detail Logger:
        - Captures all DEBUG and above messages
        - Writes to file only
        - Used for cache lookups, poll ticks, stale-response discards, rollbacks

    Status Logger:
        - Outputs user-facing progress and status information
        - Writes to both stderr (console) and file
        - Used for new feed items, badge updates, warnings, and errors

    Args:
        log_dir: Directory for log file. If None, uses .dashboard-sync/ in current directory

    Returns:
        Tuple of (detail_logger, status_logger)
    """
    if log_dir is None:
        log_dir = Path.cwd() / ".dashboard-sync"

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    # Shared file handler for both loggers, overwritten on each run
    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    detail_logger = logging.getLogger(DETAIL_LOGGER_NAME)
    detail_logger.setLevel(logging.DEBUG)
    _close_handlers(detail_logger)
    detail_logger.addHandler(file_handler)
    detail_logger.propagate = False

    status_logger = logging.getLogger(STATUS_LOGGER_NAME)
    status_logger.setLevel(logging.INFO)
    _close_handlers(status_logger)

    console_handler = FlushingStreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
    )

    status_logger.addHandler(console_handler)
    status_logger.addHandler(file_handler)
    status_logger.propagate = False

    detail_logger.info(f"Dashboard-Sync logging to {log_file}")

    return detail_logger, status_logger


def _close_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:
        handler.close()
    logger.handlers.clear()


def get_detail_logger() -> logging.Logger:
    """Get the detail logger for verbose technical logging.

    Use this logger for:
    - Cache hits, misses and evictions
    - Poll ticks and skipped ticks
    - Stale-response discards
    - Optimistic mutations and rollbacks

    Returns:
        The detail logger instance
    """
    return logging.getLogger(DETAIL_LOGGER_NAME)


def get_status_logger() -> logging.Logger:
    """Get the status logger for user-facing progress and status.

    Use this logger for:
    - Newly arrived feed items
    - Badge count changes
    - User-facing warnings
    - Error messages

    Returns:
        The status logger instance
    """
    return logging.getLogger(STATUS_LOGGER_NAME)
