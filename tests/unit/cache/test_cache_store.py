# SPDX-License-Identifier: MIT
"""Tests for the expiring cache store."""

import sqlite3
from unittest.mock import Mock

import pytest

from dashboard_sync.cache import CacheStore, PersistenceMedium, SQLitePersistenceMedium
from dashboard_sync.exceptions import PersistenceError


class FailingMedium:
    """Medium whose writes always fail."""

    def __init__(self):
        self.deleted: list[str] = []

    def read(self, key):
        return None

    def write(self, key, value):
        raise sqlite3.OperationalError("disk I/O error")

    def delete(self, key):
        self.deleted.append(key)

    def keys(self):
        return []

    def clear(self):
        pass


class TestCacheStoreTTL:
    """Freshness and eviction."""

    def test_get_hits_within_ttl_and_misses_after(self, clock, memory_store):
        """An entry set with ttl=1.0 hits at +0.5s and misses at +1.5s."""
        memory_store.set("sales:today", {"total": 10}, ttl=1.0)

        clock.advance(0.5)
        entry = memory_store.get("sales:today")
        assert entry is not None
        assert entry.payload == {"total": 10}

        clock.advance(1.0)
        assert memory_store.get("sales:today") is None

    def test_ttl_boundary_is_exclusive(self, clock, memory_store):
        """At exactly fetched_at + ttl the entry is stale."""
        memory_store.set("k", "v", ttl=2.0)
        clock.advance(2.0)
        assert memory_store.get("k") is None

    def test_expired_entry_is_evicted(self, clock, memory_store):
        """get() removes an expired entry; peek() then finds nothing."""
        memory_store.set("k", "v", ttl=1.0)
        clock.advance(5.0)

        assert memory_store.peek("k") is not None
        assert memory_store.get("k") is None
        assert memory_store.peek("k") is None

    def test_zero_ttl_is_never_fresh(self, memory_store):
        """An entry stored with ttl=0 is stored but never served."""
        memory_store.set("k", "v", ttl=0)
        assert memory_store.get("k") is None

    def test_negative_ttl_rejected(self, memory_store):
        """Negative TTLs raise ValueError."""
        with pytest.raises(ValueError, match="TTL cannot be negative"):
            memory_store.set("k", "v", ttl=-1)

    def test_set_replaces_and_restamps(self, clock, memory_store):
        """A second set replaces the payload and restarts its lifetime."""
        memory_store.set("k", "old", ttl=1.0)
        clock.advance(0.9)
        memory_store.set("k", "new", ttl=1.0)
        clock.advance(0.9)

        entry = memory_store.get("k")
        assert entry is not None
        assert entry.payload == "new"


class TestCacheStoreKeys:
    """Key validation, listing and invalidation."""

    @pytest.mark.parametrize("key", ["", "   "])
    def test_empty_key_rejected(self, memory_store, key):
        """Blank keys raise ValueError."""
        with pytest.raises(ValueError, match="cannot be empty"):
            memory_store.get(key)

    def test_long_key_rejected(self, memory_store):
        """Keys over 255 characters raise ValueError."""
        with pytest.raises(ValueError, match="maximum length"):
            memory_store.set("k" * 256, "v", ttl=1)

    def test_invalidate_prefix(self, memory_store):
        """Only keys starting with the prefix are removed."""
        memory_store.set("notifications:aggregate", 3, ttl=60)
        memory_store.set("notifications:list", [], ttl=60)
        memory_store.set("insights:default", [], ttl=60)

        removed = memory_store.invalidate_prefix("notifications:")

        assert removed == 2
        assert memory_store.keys() == ["insights:default"]

    def test_cleanup_expired(self, clock, memory_store):
        """cleanup_expired removes stale entries and keeps fresh ones."""
        memory_store.set("short", 1, ttl=1)
        memory_store.set("long", 2, ttl=100)
        clock.advance(10)

        assert memory_store.cleanup_expired() == 1
        assert memory_store.keys() == ["long"]

    def test_clear(self, memory_store):
        """clear() empties the store."""
        memory_store.set("a", 1, ttl=10)
        memory_store.clear()
        assert memory_store.keys() == []


class TestCacheStorePersistence:
    """Durable medium behaviour."""

    def test_entries_survive_restart(self, clock, tmp_path):
        """A fresh entry written by one store is served by the next."""
        db_path = tmp_path / "cache.db"
        with CacheStore(SQLitePersistenceMedium(db_path), clock=clock) as first:
            first.set("insights:default", [{"id": "i1"}], ttl=3600)

        clock.advance(60)
        second = CacheStore(SQLitePersistenceMedium(db_path), clock=clock)
        entry = second.get("insights:default")

        assert entry is not None
        assert entry.payload == [{"id": "i1"}]

    def test_open_loads_persisted_entries(self, clock, tmp_path):
        """open() hydrates memory with every persisted entry."""
        db_path = tmp_path / "cache.db"
        writer = CacheStore(SQLitePersistenceMedium(db_path), clock=clock)
        writer.set("insights:a", 1, ttl=60)
        writer.set("insights:b", 2, ttl=60)

        reader = CacheStore(SQLitePersistenceMedium(db_path), clock=clock).open()

        assert sorted(reader._entries) == ["insights:a", "insights:b"]
        assert reader.get("insights:b").payload == 2

    def test_expired_persisted_entry_is_evicted_from_medium(self, clock, sqlite_medium):
        """Reading an expired persisted entry deletes it from the medium."""
        store = CacheStore(sqlite_medium, clock=clock)
        store.set("k", "v", ttl=1)
        store.close()

        clock.advance(5)
        assert store.get("k") is None
        assert sqlite_medium.keys() == []

    def test_write_failure_degrades_to_memory(self, clock):
        """A failing medium keeps the entry in memory and records the error."""
        medium = FailingMedium()
        store = CacheStore(medium, clock=clock)

        store.set("k", "v", ttl=10)

        entry = store.get("k")
        assert entry is not None
        assert entry.payload == "v"
        assert isinstance(store.last_persistence_error, PersistenceError)
        assert isinstance(store.last_persistence_error.__cause__, sqlite3.Error)
        assert medium.deleted == ["k"]

    def test_unserializable_payload_stays_in_memory(self, clock, sqlite_medium):
        """Payloads JSON cannot encode are cached in memory only."""
        store = CacheStore(sqlite_medium, clock=clock)
        payload = object()

        store.set("k", payload, ttl=10)

        assert store.get("k").payload is payload
        assert store.last_persistence_error is not None
        assert sqlite_medium.read("k") is None

    def test_read_failure_is_a_miss(self, clock):
        """A medium read error is logged and treated as a miss."""
        medium = Mock(spec=["read", "write", "delete", "keys", "clear"])
        medium.read.side_effect = sqlite3.DatabaseError("corrupt")
        store = CacheStore(medium, clock=clock)

        assert store.get("k") is None
        assert store.last_persistence_error is not None

    def test_corrupt_persisted_value_is_a_miss(self, clock, sqlite_medium):
        """Unparseable persisted JSON is treated as a miss."""
        sqlite_medium.write("k", "{not json")
        store = CacheStore(sqlite_medium, clock=clock)

        assert store.get("k") is None
        assert store.last_persistence_error is not None

    def test_sqlite_medium_satisfies_protocol(self, sqlite_medium):
        """SQLitePersistenceMedium implements PersistenceMedium."""
        assert isinstance(sqlite_medium, PersistenceMedium)
        assert CacheStore(sqlite_medium).is_persistent
        assert not CacheStore().is_persistent
