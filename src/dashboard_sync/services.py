# SPDX-License-Identifier: MIT
"""Presentation services: what the dashboard widgets bind to."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from .constants import (
    DEFAULT_MUTED,
    INSIGHT_CACHE_TTL,
    LIVE_FEED_INTERVAL,
    NOTIFICATION_AGGREGATE_KEY,
    NOTIFICATION_LIST_KEY,
    NOTIFICATION_STATS_CACHE_TTL,
    NOTIFICATION_STATS_INTERVAL,
    NOTIFICATION_STATS_KEY,
    NOTIFICATIONS_CACHE_TTL,
    NOTIFICATIONS_INTERVAL,
    UNREAD_COUNT_CACHE_TTL,
    UNREAD_COUNT_INTERVAL,
)
from .effects import EffectDispatcher
from .exceptions import ComputeError
from .insights import ComputeOp, InsightCache
from .logging_config import get_detail_logger, get_status_logger
from .models import (
    BadgeSnapshot,
    FeedItem,
    FeedSnapshot,
    Insight,
    InsightQueryState,
)
from .normalizer import PayloadNormalizer, payload_normalizer
from .notifications import NotificationSync
from .reconciler import DeltaReconciler
from .scheduler import FetchEvent, PollScheduler


FeedFetchOp = Callable[[dict[str, Any]], Awaitable[Any]]

# Query values naming a window that can still receive new records
LIVE_WINDOWS = frozenset({"today", "live"})


def is_live_window(query_params: dict[str, Any]) -> bool:
    """Return True if the query shape covers the current day.

    The window is read from ``period`` (or ``date_range``); a query naming
    neither is treated as live.
    """
    window = query_params.get("period", query_params.get("date_range"))
    return window is None or str(window).lower() in LIVE_WINDOWS


class _QueueConsumer:
    """Owns a FetchEvent queue and the task draining it."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[FetchEvent] = asyncio.Queue()
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()
        self._consumer: asyncio.Task[None] | None = None

    def _start_consumer(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())

    async def _stop_consumer(self) -> None:
        if self._consumer is None:
            return
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                self._handle_event(event)
            except Exception as e:  # a bad event must not stop the consumer
                self.status_logger.error(f"Failed to apply fetch result: {e}")
            finally:
                self.queue.task_done()

    def _handle_event(self, event: FetchEvent) -> None:
        raise NotImplementedError


class LiveFeedSubscription(_QueueConsumer):
    """Polls a transaction feed and signals records that appear between polls.

    Recurring polls only run while the query covers a live window (see
    ``is_live_window``); historical windows are fetched once per query.
    Changing the query starts a new reconciliation session, so the first
    result for the new query never signals.
    """

    def __init__(
        self,
        fetch: FeedFetchOp,
        scheduler: PollScheduler,
        query_params: dict[str, Any] | None = None,
        interval: float | None = LIVE_FEED_INTERVAL,
        muted: bool = DEFAULT_MUTED,
        effects: EffectDispatcher | None = None,
        normalizer: PayloadNormalizer = payload_normalizer,
        live_predicate: Callable[[dict[str, Any]], bool] = is_live_window,
    ) -> None:
        """Initialize the subscription.

        Args:
            fetch: Feed collaborator, called with the current query parameters
            scheduler: Scheduler driving the polls
            query_params: Initial query shape (date window, filters)
            interval: Seconds between polls; None or 0 fetches once
            muted: Initial mute flag; muted feeds never highlight or alert
            effects: Dispatcher for highlights and the audio alert
            normalizer: Maps feed payloads onto FeedItem records
            live_predicate: Decides whether a query shape is polled recurrently
        """
        super().__init__()
        self.fetch = fetch
        self.scheduler = scheduler
        self.query_params = dict(query_params or {})
        self.interval = interval
        self.muted = muted
        self.effects = effects or EffectDispatcher()
        self.normalizer = normalizer
        self.live_predicate = live_predicate
        self.reconciler = DeltaReconciler()
        self.handle: int | None = None
        self.last_added: list[FeedItem] = []
        self._items: list[FeedItem] = []
        self._last_error: str | None = None
        self._is_loading = False

    @property
    def items(self) -> list[FeedItem]:
        return list(self._items)

    def start(self) -> None:
        """Begin polling. Must be called from a running event loop."""
        if self.handle is not None:
            return
        self._start_consumer()
        self._is_loading = True
        self.handle = self.scheduler.subscribe(
            self._fetch_current,
            self.interval,
            enabled=self._is_live,
            queue=self.queue,
        )

    def set_query(self, query_params: dict[str, Any]) -> None:
        """Switch to a new query shape and fetch it right away.

        Known ids are forgotten, pending highlights are dropped, and any
        response still in flight for the old query is discarded.
        """
        self.query_params = dict(query_params)
        self.reconciler.reset()
        self.effects.clear()
        self.last_added = []
        self._items = []
        self._last_error = None
        self.detail_logger.debug(f"Feed query changed to {self.query_params}")

        if self.handle is None:
            return
        self._is_loading = True
        self.scheduler.reschedule(self.handle, self.interval)
        self.scheduler.refresh(self.handle)

    def set_muted(self, muted: bool) -> None:
        self.muted = muted
        if muted:
            self.effects.clear()

    def tick(self) -> bool:
        """Poll once as a timer firing would; skipped for historical windows.

        Returns:
            True if a fetch started
        """
        if self.handle is None:
            return False
        return self.scheduler.tick(self.handle)

    def refresh(self) -> bool:
        """Fetch now, even for a historical window.

        Returns:
            True if a fetch started immediately
        """
        if self.handle is None:
            return False
        return self.scheduler.refresh(self.handle)

    def snapshot(self) -> FeedSnapshot:
        return FeedSnapshot(
            items=list(self._items),
            highlighted_ids=self.effects.highlighted_ids,
            is_loading=self._is_loading,
            last_error=self._last_error,
        )

    async def wait_idle(self) -> None:
        """Wait for the fetch in flight and for its result to be applied."""
        if self.handle is not None:
            await self.scheduler.wait_idle(self.handle)
        await self.queue.join()

    async def close(self) -> None:
        if self.handle is not None:
            self.scheduler.unsubscribe(self.handle)
            self.handle = None
        await self._stop_consumer()
        self.effects.close()

    async def _fetch_current(self) -> Any:
        return await self.fetch(dict(self.query_params))

    def _is_live(self) -> bool:
        return self.live_predicate(self.query_params)

    def _handle_event(self, event: FetchEvent) -> None:
        if not self.scheduler.is_current(event):
            self.detail_logger.debug(f"Ignoring superseded feed result {event.generation}")
            return
        self._is_loading = False

        if event.error is not None:
            self._last_error = str(event.error)
            return

        try:
            items = self.normalizer.normalize_feed_items(event.result)
        except ValueError as e:
            self._last_error = str(e)
            self.status_logger.warning(f"Unusable feed payload: {e}")
            return

        self._items = items
        self._last_error = None
        added = self.reconciler.reconcile(items)
        self.last_added = added
        if added:
            self.detail_logger.debug(
                f"{len(added)} new feed items: {[item.id for item in added]}"
            )
            self.effects.dispatch(added, self.muted)


class CachedInsightQuery(_QueueConsumer):
    """An insight widget's query: cached computation plus last good value."""

    def __init__(
        self,
        cache: InsightCache,
        key: str,
        compute_op: ComputeOp,
        ttl: float = INSIGHT_CACHE_TTL,
        normalizer: PayloadNormalizer = payload_normalizer,
    ) -> None:
        super().__init__()
        self.cache = cache
        self.key = key
        self.compute_op = compute_op
        self.ttl = ttl
        self.normalizer = normalizer
        self.handle: int | None = None
        self._scheduler: PollScheduler | None = None
        self._data: Any = None
        self._error: str | None = None
        self._is_loading = False

    @property
    def state(self) -> InsightQueryState:
        return InsightQueryState(
            data=self._data, is_loading=self._is_loading, error=self._error
        )

    @property
    def insights(self) -> list[Insight]:
        """The current payload as Insight records, or [] if it has none."""
        if self._data is None:
            return []
        try:
            return self.normalizer.normalize_insights(self._data)
        except ValueError:
            return []

    async def load(self) -> InsightQueryState:
        """Serve from cache or compute. Failures keep the last value visible."""
        return await self._run(self.cache.get_or_compute)

    async def refetch(self) -> InsightQueryState:
        """Recompute, bypassing a fresh cache entry."""
        return await self._run(self.cache.refresh)

    def start(self, scheduler: PollScheduler, interval: float | None) -> None:
        """Reload through the cache every ``interval`` seconds."""
        if self.handle is not None:
            return
        self._scheduler = scheduler
        self._start_consumer()
        self.handle = scheduler.subscribe(self.load, interval, queue=self.queue)

    async def close(self) -> None:
        if self._scheduler is not None and self.handle is not None:
            self._scheduler.unsubscribe(self.handle)
        self.handle = None
        await self._stop_consumer()

    async def _run(
        self, operation: Callable[[str, ComputeOp, float], Awaitable[Any]]
    ) -> InsightQueryState:
        self._is_loading = True
        try:
            self._data = await operation(self.key, self.compute_op, self.ttl)
            self._error = None
        except ComputeError as e:
            self._error = str(e)
            if self._data is None and e.stale_payload is not None:
                self._data = e.stale_payload
        finally:
            self._is_loading = False
        return self.state

    def _handle_event(self, event: FetchEvent) -> None:
        # load() records its own outcome; only unexpected failures arrive here
        if event.error is not None:
            self._error = str(event.error)


class NotificationBadgeService(_QueueConsumer):
    """Unread badge: polled server counts plus optimistic local changes."""

    def __init__(
        self,
        sync: NotificationSync,
        scheduler: PollScheduler,
        cache: InsightCache,
        fetch_count: Callable[[], Awaitable[Any]],
        fetch_list: Callable[[], Awaitable[Any]] | None = None,
        fetch_stats: Callable[[], Awaitable[Any]] | None = None,
        count_interval: float | None = UNREAD_COUNT_INTERVAL,
        list_interval: float | None = NOTIFICATIONS_INTERVAL,
        stats_interval: float | None = NOTIFICATION_STATS_INTERVAL,
        count_ttl: float = UNREAD_COUNT_CACHE_TTL,
        list_ttl: float = NOTIFICATIONS_CACHE_TTL,
        stats_ttl: float = NOTIFICATION_STATS_CACHE_TTL,
    ) -> None:
        """Initialize the badge service.

        Args:
            sync: Local notification state
            scheduler: Scheduler driving the polls
            cache: Cache for the polled payloads
            fetch_count: Reads the server unread count
            fetch_list: Reads the notification list; not polled if None
            fetch_stats: Reads unread totals by category; not polled if None
            count_interval: Seconds between unread-count polls
            list_interval: Seconds between notification-list polls
            stats_interval: Seconds between category-stats polls
            count_ttl: Freshness of a cached unread count
            list_ttl: Freshness of a cached notification list
            stats_ttl: Freshness of cached category stats
        """
        super().__init__()
        self.sync = sync
        self.scheduler = scheduler
        self.cache = cache
        self.fetch_count = fetch_count
        self.fetch_list = fetch_list
        self.fetch_stats = fetch_stats
        self.count_interval = count_interval
        self.list_interval = list_interval
        self.stats_interval = stats_interval
        self.count_ttl = count_ttl
        self.list_ttl = list_ttl
        self.stats_ttl = stats_ttl
        self.count_handle: int | None = None
        self.list_handle: int | None = None
        self.stats_handle: int | None = None
        self._last_error: str | None = None
        self._is_loading = False

    @property
    def unread_count(self) -> int:
        return self.sync.unread_count

    @property
    def counts_by_category(self) -> dict[str, int]:
        return dict(self.sync.aggregate.counts_by_category)

    def start(self) -> None:
        """Begin polling. Must be called from a running event loop."""
        if self.count_handle is not None:
            return
        self._start_consumer()
        self._is_loading = True
        if self.fetch_list is not None:
            self.list_handle = self.scheduler.subscribe(
                self._poll_list, self.list_interval, queue=self.queue
            )
        if self.fetch_stats is not None:
            self.stats_handle = self.scheduler.subscribe(
                self._poll_stats, self.stats_interval, queue=self.queue
            )
        self.count_handle = self.scheduler.subscribe(
            self._poll_count, self.count_interval, queue=self.queue
        )

    async def mark_read(self, notification_id: str) -> None:
        await self.sync.mark_read(notification_id)
        self._refresh_count()

    async def mark_unread(self, notification_id: str) -> None:
        await self.sync.mark_unread(notification_id)
        self._refresh_count()

    async def mark_all_read(self) -> None:
        await self.sync.mark_all_read()
        self._refresh_count()

    def snapshot(self) -> BadgeSnapshot:
        return BadgeSnapshot(
            unread_count=self.unread_count,
            counts_by_category=self.counts_by_category,
            is_loading=self._is_loading,
            last_error=self._last_error,
        )

    async def wait_idle(self) -> None:
        """Wait for polls in flight and for their results to be applied."""
        for handle in self._handles():
            await self.scheduler.wait_idle(handle)
        await self.queue.join()

    async def close(self) -> None:
        for handle in self._handles():
            self.scheduler.unsubscribe(handle)
        self.count_handle = None
        self.list_handle = None
        self.stats_handle = None
        await self._stop_consumer()

    async def _poll_count(self) -> Any:
        return await self.cache.get_or_compute(
            NOTIFICATION_AGGREGATE_KEY, self.fetch_count, self.count_ttl
        )

    async def _poll_list(self) -> Any:
        if self.fetch_list is None:
            raise RuntimeError("No notification list collaborator configured")
        return await self.cache.get_or_compute(
            NOTIFICATION_LIST_KEY, self.fetch_list, self.list_ttl
        )

    async def _poll_stats(self) -> Any:
        if self.fetch_stats is None:
            raise RuntimeError("No notification stats collaborator configured")
        return await self.cache.get_or_compute(
            NOTIFICATION_STATS_KEY, self.fetch_stats, self.stats_ttl
        )

    def _handles(self) -> list[int]:
        return [
            handle
            for handle in (self.list_handle, self.stats_handle, self.count_handle)
            if handle is not None
        ]

    def _refresh_count(self) -> None:
        for handle in (self.count_handle, self.stats_handle):
            if handle is not None:
                self.scheduler.refresh(handle)

    def _handle_event(self, event: FetchEvent) -> None:
        if event.error is not None:
            self._last_error = str(event.error)
            if event.handle == self.count_handle:
                self._is_loading = False
            return

        try:
            self.sync.apply_remote(event.result)
        except ValueError as e:
            self._last_error = str(e)
            self.status_logger.warning(f"Unusable notification payload: {e}")
            return

        self._last_error = None
        if event.handle == self.count_handle:
            self._is_loading = False
