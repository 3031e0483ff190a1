# SPDX-License-Identifier: MIT
"""Constants used throughout the dashboard sync layer.

This module centralizes the default cadences and lifetimes:

- **Poll intervals**: how often each dashboard widget re-reads the remote API
- **Cache TTLs**: how long cached reads and derived insights stay fresh
- **Effects**: how long a newly arrived feed item stays highlighted
- **Retry policy**: backoff for remote reads, capped like the dashboard's query client
- **Cache keys**: key prefixes shared between writers and invalidators

All durations are in seconds.
"""

# Poll intervals
LIVE_FEED_INTERVAL: float = 5.0
UNREAD_COUNT_INTERVAL: float = 30.0
NOTIFICATIONS_INTERVAL: float = 60.0
NOTIFICATION_STATS_INTERVAL: float = 60.0
INSIGHTS_INTERVAL: float = 300.0

# Cache TTLs
INSIGHT_CACHE_TTL: float = 3600.0  # 1 hour
UNREAD_COUNT_CACHE_TTL: float = 10.0  # badge counts go stale quickly
NOTIFICATIONS_CACHE_TTL: float = 30.0
NOTIFICATION_STATS_CACHE_TTL: float = 60.0

# Cache key limits
MAX_CACHE_KEY_LENGTH: int = 255

# Effects
HIGHLIGHT_DURATION: float = 2.0
DEFAULT_MUTED: bool = True

# Retry policy for remote reads
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_INITIAL_DELAY: float = 1.0
DEFAULT_RETRY_MAX_DELAY: float = 30.0
DEFAULT_RETRY_EXPONENTIAL_BASE: float = 2.0

# Remote API
DEFAULT_API_BASE_URL: str = "http://localhost:8000/api"
DEFAULT_API_TIMEOUT: float = 30.0
DEFAULT_FEED_PAGE_SIZE: int = 100

# Cache keys
NOTIFICATION_CACHE_PREFIX: str = "notifications:"
NOTIFICATION_AGGREGATE_KEY: str = "notifications:aggregate"
NOTIFICATION_LIST_KEY: str = "notifications:list"
NOTIFICATION_STATS_KEY: str = "notifications:stats"
INSIGHT_CACHE_PREFIX: str = "insights:"

# Notification defaults
DEFAULT_NOTIFICATION_CATEGORY: str = "general"
