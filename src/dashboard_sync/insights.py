# SPDX-License-Identifier: MIT
"""Read-through cache for expensive derived-analysis calls."""

from collections.abc import Awaitable, Callable
from typing import Any

from .cache import CacheStore
from .constants import INSIGHT_CACHE_TTL
from .exceptions import ComputeError
from .logging_config import get_detail_logger, get_status_logger


ComputeOp = Callable[[], Awaitable[Any]]


class InsightCache:
    """Cache-aside wrapper for slow, read-only insight computations.

    Concurrent calls for the same key are not coalesced: each one that misses
    invokes ``compute_op``. This is tolerated because the computations are
    idempotent reads.
    """

    def __init__(self, store: CacheStore) -> None:
        self.store = store
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()

    async def get_or_compute(
        self, key: str, compute_op: ComputeOp, ttl: float = INSIGHT_CACHE_TTL
    ) -> Any:
        """Return the cached payload for ``key`` or compute and cache it.

        Args:
            key: Cache key
            compute_op: Zero-argument coroutine function producing the payload
            ttl: Seconds the computed payload stays fresh; 0 disables caching

        Returns:
            The cached or freshly computed payload

        Raises:
            ComputeError: If ``compute_op`` fails. The previous payload for the
                key, possibly expired, is attached as ``stale_payload``.
        """
        # Expired entries stay in the store as the fallback for failed computes
        entry = self.store.peek(key)
        if entry is not None and entry.is_fresh(self.store.clock()):
            self.detail_logger.debug(f"Insight cache hit for '{key}'")
            return entry.payload

        stale_payload = entry.payload if entry is not None else None
        return await self._compute_and_store(key, compute_op, ttl, stale_payload)

    async def refresh(
        self, key: str, compute_op: ComputeOp, ttl: float = INSIGHT_CACHE_TTL
    ) -> Any:
        """Recompute ``key`` even if a fresh payload is cached.

        Raises:
            ComputeError: If ``compute_op`` fails; the cached entry is kept
        """
        previous = self.store.peek(key)
        stale_payload = previous.payload if previous is not None else None
        return await self._compute_and_store(key, compute_op, ttl, stale_payload)

    def invalidate(self, key: str) -> None:
        self.store.invalidate(key)

    async def _compute_and_store(
        self, key: str, compute_op: ComputeOp, ttl: float, stale_payload: Any
    ) -> Any:
        self.detail_logger.debug(f"Computing insight '{key}'")
        try:
            result = await compute_op()
        except ComputeError:
            raise
        except Exception as e:  # compute collaborators may fail in any way
            self.status_logger.warning(f"Insight computation for '{key}' failed: {e}")
            raise ComputeError(
                f"Computing '{key}' failed: {e}", key, stale_payload=stale_payload
            ) from e

        self.store.set(key, result, ttl)
        return result
