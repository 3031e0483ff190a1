# SPDX-License-Identifier: MIT
"""Lifetime owner of the cache, the scheduler and the dashboard services."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any

from .api_client import DashboardApiClient
from .cache import CacheStore, SQLitePersistenceMedium
from .config import AppConfig, get_config_manager
from .constants import INSIGHT_CACHE_PREFIX
from .effects import AudioAlert, EffectDispatcher
from .insights import InsightCache
from .logging_config import get_detail_logger, get_status_logger
from .notifications import NotificationSync
from .scheduler import PollScheduler
from .services import CachedInsightQuery, LiveFeedSubscription, NotificationBadgeService


class DashboardSession:
    """One dashboard view: a cache store, a scheduler and the widgets' services.

    Use as an async context manager. Leaving the context unsubscribes every
    poll, cancels fetches still in flight and closes the API client and the
    cache store.

    Example:
        >>> async with DashboardSession() as session:
        ...     feed = session.live_feed(query_params={"period": "today"})
        ...     feed.start()
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        client: Any = None,
        store: CacheStore | None = None,
        clock: Callable[[], float] = time.time,
        audio_alert: AudioAlert | None = None,
        focus_predicate: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Application configuration; the global config if None
            client: Fetch/mutation collaborator; a DashboardApiClient if None
            store: Cache store; built from ``config.cache`` if None
            clock: Time source shared by the store and the scheduler
            audio_alert: Called once per batch of new feed items
            focus_predicate: Returns False while the dashboard is backgrounded
        """
        self.config = config or get_config_manager().load_config()
        self.clock = clock
        self.audio_alert = audio_alert
        self.focus_predicate = focus_predicate
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()
        self._owns_client = client is None
        self.client = client or DashboardApiClient(self.config.api, self.config.retry)
        self.store = store if store is not None else self._build_store()
        self.insight_cache = InsightCache(self.store)
        self.scheduler: PollScheduler | None = None
        self.notification_sync = NotificationSync(
            self.client.mutate_notification,
            fetch=self.client.fetch_notifications,
            store=self.store,
            fetch_counts=self.client.fetch_notification_stats,
        )
        self._services: list[Any] = []

    async def __aenter__(self) -> DashboardSession:
        self.scheduler = PollScheduler(clock=self.clock)
        if self._owns_client:
            await self.client.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Tear down services, the scheduler, the client and the store."""
        for service in reversed(self._services):
            await service.close()
        self._services.clear()
        if self.scheduler is not None:
            await self.scheduler.aclose()
        if self._owns_client:
            await self.client.close()
        self.store.close()
        self.detail_logger.debug("Dashboard session closed")

    def live_feed(
        self,
        query_params: dict[str, Any] | None = None,
        interval: float | None = None,
        muted: bool | None = None,
    ) -> LiveFeedSubscription:
        """Create the live sales feed service. Call ``start()`` to poll."""
        effects_config = self.config.effects
        effects = EffectDispatcher(
            audio_alert=self.audio_alert,
            highlight_duration=effects_config.highlight_duration,
            focus_predicate=(
                self.focus_predicate
                if effects_config.suppress_audio_when_unfocused
                else None
            ),
        )
        feed = LiveFeedSubscription(
            self.client.fetch_feed,
            self._require_scheduler(),
            query_params=query_params,
            interval=(
                self.config.polling.live_feed_interval if interval is None else interval
            ),
            muted=effects_config.muted if muted is None else muted,
            effects=effects,
        )
        self._services.append(feed)
        return feed

    def insight_query(
        self, query_params: dict[str, Any] | None = None
    ) -> CachedInsightQuery:
        """Create the AI insight query, cached per query shape."""
        params = dict(query_params or {})
        key = INSIGHT_CACHE_PREFIX + (
            "&".join(f"{k}={params[k]}" for k in sorted(params)) or "default"
        )

        async def compute() -> Any:
            return await self.client.fetch_insights(params)

        query = CachedInsightQuery(
            self.insight_cache, key, compute, ttl=self.config.cache.insight_ttl
        )
        self._services.append(query)
        return query

    def notification_badge(
        self, poll_list: bool = True, poll_stats: bool = True
    ) -> NotificationBadgeService:
        """Create the notification badge service. Call ``start()`` to poll."""
        polling = self.config.polling
        cache_config = self.config.cache
        badge = NotificationBadgeService(
            self.notification_sync,
            self._require_scheduler(),
            self.insight_cache,
            fetch_count=self.client.fetch_unread_count,
            fetch_list=self.client.fetch_notifications if poll_list else None,
            fetch_stats=self.client.fetch_notification_stats if poll_stats else None,
            count_interval=polling.unread_count_interval,
            list_interval=polling.notifications_interval,
            stats_interval=polling.notification_stats_interval,
            count_ttl=cache_config.unread_count_ttl,
            list_ttl=cache_config.notifications_ttl,
            stats_ttl=cache_config.notification_stats_ttl,
        )
        self._services.append(badge)
        return badge

    def _build_store(self) -> CacheStore:
        if not self.config.cache.persistent:
            return CacheStore(clock=self.clock)
        try:
            medium = SQLitePersistenceMedium(Path(self.config.cache.db_path))
        except RuntimeError as e:
            self.status_logger.warning(f"{e}; continuing with a memory-only cache")
            return CacheStore(clock=self.clock)
        return CacheStore(medium, clock=self.clock)

    def _require_scheduler(self) -> PollScheduler:
        if self.scheduler is None:
            raise RuntimeError("DashboardSession must be entered before use")
        return self.scheduler
