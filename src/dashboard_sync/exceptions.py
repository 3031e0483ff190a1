# SPDX-License-Identifier: MIT
"""Standard exceptions for the dashboard sync layer."""

from typing import Any

from dashboard_sync.utils.dead_code import code_is_used


class SyncError(Exception):
    """Base class for all sync-layer exceptions."""

    @code_is_used  # Called via super().__init__() from subclasses
    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class TransientFetchError(SyncError):
    """Raised when a remote read fails on a poll tick.

    Never retried by the scheduler; the next scheduled tick supersedes it.
    """

    @code_is_used  # Raised in api_client.py and scheduler.py
    def __init__(
        self,
        message: str = "Remote fetch failed",
        status: int | None = None,
        key: str | None = None,
    ) -> None:
        self.status = status
        msg = f"{message} (HTTP {status})" if status else message
        super().__init__(msg, key)


class ComputeError(SyncError):
    """Raised when an insight computation fails. Failures are never cached."""

    @code_is_used  # Raised in insights.py
    def __init__(
        self,
        message: str,
        key: str | None = None,
        stale_payload: Any = None,
    ) -> None:
        # Previously cached, possibly expired, value the caller may keep showing
        self.stale_payload = stale_payload
        super().__init__(message, key)


class PersistenceError(SyncError):
    """Raised when the durable cache medium fails to read or write.

    Only ever logged; the cache degrades to memory-only for the entry.
    """

    pass


class RemoteSyncError(SyncError):
    """Raised when a notification mutation is rejected or fails remotely."""

    @code_is_used  # Raised in notifications.py
    def __init__(
        self,
        message: str,
        notification_id: str | None = None,
        resynced: bool = False,
    ) -> None:
        self.notification_id = notification_id
        self.resynced = resynced
        super().__init__(message, notification_id)


class StaleResponseDiscard(SyncError):
    """Internal: a response stamped with an outdated generation was dropped."""

    @code_is_used  # Built in scheduler.py for logging only
    def __init__(self, handle: int, stamped: int, current: int) -> None:
        self.handle = handle
        self.stamped = stamped
        self.current = current
        super().__init__(
            f"Discarded response for subscription {handle}: "
            f"generation {stamped} is older than {current}"
        )


class ApiResponseError(SyncError):
    """Raised when the API answers with a client error that retrying cannot fix."""

    @code_is_used  # Raised in api_client.py
    def __init__(self, message: str, status: int, key: str | None = None) -> None:
        self.status = status
        super().__init__(f"{message} (HTTP {status})", key)
