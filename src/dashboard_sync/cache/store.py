# SPDX-License-Identifier: MIT
"""Expiring key-value store with an optional durable medium."""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Callable
from types import TracebackType
from typing import Any

from ..constants import MAX_CACHE_KEY_LENGTH
from ..exceptions import PersistenceError
from ..logging_config import get_detail_logger, get_status_logger
from ..models import CacheEntry
from .persistence import PersistenceMedium


detail_logger = get_detail_logger()
status_logger = get_status_logger()

# Failures of the durable medium and of (de)serializing a payload for it
_PERSISTENCE_FAILURES = (sqlite3.Error, OSError, TypeError, ValueError)


class CacheStore:
    """Manages cache entries with TTL in memory, mirrored to a durable medium.

    Entries are read lazily: ``get`` evicts an expired entry instead of
    relying on a background sweep. The medium is best effort. When it fails,
    the entry stays in memory only and the failure is kept in
    ``last_persistence_error`` and logged; it never reaches the caller.
    """

    def __init__(
        self,
        medium: PersistenceMedium | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            medium: Durable key-value medium; None keeps the store memory-only
            clock: Returns the current time as epoch seconds
        """
        self.medium = medium
        self.clock = clock
        self.last_persistence_error: PersistenceError | None = None
        self._entries: dict[str, CacheEntry] = {}
        # Keys whose latest value could not be persisted; the medium is not
        # consulted for them until a later write succeeds.
        self._memory_only: set[str] = set()

    def open(self) -> CacheStore:
        """Load every persisted entry into memory.

        Optional: entries are otherwise read from the medium on first access.
        """
        for key in self.keys():
            self.peek(key)
        detail_logger.debug(f"Cache store opened with {len(self._entries)} entries")
        return self

    def __enter__(self) -> CacheStore:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def is_persistent(self) -> bool:
        return self.medium is not None

    def get(self, key: str) -> CacheEntry | None:
        """Get a fresh cache entry.

        Args:
            key: Cache key

        Returns:
            The entry, or None if not found or expired

        Raises:
            ValueError: If key is empty or too long
        """
        entry = self.peek(key)
        if entry is None:
            detail_logger.debug(f"Cache miss for key '{key}'")
            return None

        if not entry.is_fresh(self.clock()):
            detail_logger.debug(f"Cache entry for key '{key}' expired, evicting")
            self.invalidate(key)
            return None

        detail_logger.debug(f"Cache hit for key '{key}'")
        return entry

    def peek(self, key: str) -> CacheEntry | None:
        """Get an entry regardless of freshness, without evicting it.

        Lets callers keep showing an expired value while a refresh is pending
        or after it failed.

        Raises:
            ValueError: If key is empty or too long
        """
        self._validate_key(key)

        entry = self._entries.get(key)
        if entry is None and key not in self._memory_only:
            entry = self._load(key)
            if entry is not None:
                self._entries[key] = entry
        return entry

    def set(self, key: str, payload: Any, ttl: float) -> CacheEntry:
        """Store a payload under ``key``, replacing any previous entry.

        Args:
            key: Cache key
            payload: Value to cache
            ttl: Time-to-live in seconds; 0 stores an entry that is never fresh

        Returns:
            The stored entry

        Raises:
            ValueError: If key is empty or too long, or TTL is negative
        """
        self._validate_key(key)
        if ttl < 0:
            raise ValueError("TTL cannot be negative")

        entry = CacheEntry(key=key, payload=payload, fetched_at=self.clock(), ttl=ttl)
        self._entries[key] = entry
        detail_logger.debug(f"Storing cache entry: key='{key}', ttl={ttl}")
        self._persist(entry)
        return entry

    def invalidate(self, key: str) -> None:
        """Remove an entry from memory and from the durable medium.

        Raises:
            ValueError: If key is empty or too long
        """
        self._validate_key(key)
        self._entries.pop(key, None)
        self._memory_only.discard(key)

        if self.medium is None:
            return
        try:
            self.medium.delete(key)
        except (sqlite3.Error, OSError) as e:
            self._record_failure(f"Failed to delete persisted entry '{key}'", key, e)

    def invalidate_prefix(self, prefix: str) -> int:
        """Invalidate every entry whose key starts with ``prefix``.

        Returns:
            Number of entries invalidated
        """
        matching = [key for key in self.keys() if key.startswith(prefix)]
        for key in matching:
            self.invalidate(key)
        detail_logger.debug(f"Invalidated {len(matching)} entries with prefix '{prefix}'")
        return len(matching)

    def cleanup_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        removed = 0
        for key in self.keys():
            entry = self.peek(key)
            if entry is not None and not entry.is_fresh(now):
                self.invalidate(key)
                removed += 1
        detail_logger.debug(f"Cleaned up {removed} expired cache entries")
        return removed

    def keys(self) -> list[str]:
        """Return the keys held in memory or in the medium."""
        keys = set(self._entries)
        if self.medium is not None:
            try:
                keys.update(self.medium.keys())
            except (sqlite3.Error, OSError) as e:
                self._record_failure("Failed to list persisted cache keys", None, e)
        return sorted(keys)

    def clear(self) -> None:
        """Remove every entry from memory and the medium."""
        self._entries.clear()
        self._memory_only.clear()
        if self.medium is None:
            return
        try:
            self.medium.clear()
        except (sqlite3.Error, OSError) as e:
            self._record_failure("Failed to clear persisted cache", None, e)

    def close(self) -> None:
        """Drop the in-memory entries. Persisted entries stay on disk."""
        self._entries.clear()
        self._memory_only.clear()
        detail_logger.debug("Cache store closed")

    def _load(self, key: str) -> CacheEntry | None:
        if self.medium is None:
            return None
        try:
            raw = self.medium.read(key)
            if raw is None:
                return None
            return CacheEntry.model_validate(json.loads(raw))
        except _PERSISTENCE_FAILURES as e:
            self._record_failure(f"Failed to read persisted entry '{key}'", key, e)
            return None

    def _persist(self, entry: CacheEntry) -> None:
        if self.medium is None:
            return
        try:
            self.medium.write(entry.key, json.dumps(entry.model_dump(mode="json")))
            self._memory_only.discard(entry.key)
        except _PERSISTENCE_FAILURES as e:
            self._memory_only.add(entry.key)
            self._record_failure(
                f"Failed to persist entry '{entry.key}', keeping it in memory only",
                entry.key,
                e,
            )
            # An older persisted value must not resurface after a restart
            try:
                self.medium.delete(entry.key)
            except (sqlite3.Error, OSError):
                detail_logger.debug(f"Could not drop persisted copy of '{entry.key}'")

    def _record_failure(
        self, message: str, key: str | None, cause: BaseException
    ) -> None:
        error = PersistenceError(f"{message}: {cause}", key)
        error.__cause__ = cause
        self.last_persistence_error = error
        status_logger.warning(message)
        detail_logger.debug(f"{type(cause).__name__}: {cause}")

    @staticmethod
    def _validate_key(key: str) -> None:
        if not key or not key.strip():
            raise ValueError("Cache key cannot be empty")
        if len(key) > MAX_CACHE_KEY_LENGTH:
            raise ValueError(
                f"Cache key exceeds maximum length ({MAX_CACHE_KEY_LENGTH} characters)"
            )
