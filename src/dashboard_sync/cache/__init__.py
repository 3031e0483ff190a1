# SPDX-License-Identifier: MIT
"""Cache module for the dashboard sync layer.

Components:
- CacheStore: Expiring key-value store, memory first with a durable mirror
- PersistenceMedium: Protocol for durable string key-value storage
- SQLitePersistenceMedium: PersistenceMedium backed by SQLite
"""

from .persistence import PersistenceMedium, SQLitePersistenceMedium
from .store import CacheStore


__all__ = [
    "CacheStore",
    "PersistenceMedium",
    "SQLitePersistenceMedium",
]
