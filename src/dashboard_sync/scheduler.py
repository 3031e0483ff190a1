# SPDX-License-Identifier: MIT
"""Timer-driven polling of fetch operations with stale-response protection."""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .exceptions import StaleResponseDiscard, TransientFetchError
from .logging_config import get_detail_logger


FetchOp = Callable[[], Awaitable[Any]]


def _always_enabled() -> bool:
    return True


@dataclass
class FetchEvent:
    """Completion of one fetch, posted to the subscription's queue."""

    handle: int
    generation: int
    result: Any = None
    error: TransientFetchError | None = None
    completed_at: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Subscription:
    """A fetch operation polled at a fixed interval."""

    id: int
    fetch_op: FetchOp
    interval: float | None
    enabled: Callable[[], bool]
    queue: asyncio.Queue[FetchEvent]
    generation: int = 0
    last_run_at: float | None = None
    refresh_requested: bool = False
    in_flight: asyncio.Task[None] | None = field(default=None, repr=False)
    timer: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def is_in_flight(self) -> bool:
        return self.in_flight is not None and not self.in_flight.done()


class PollScheduler:
    """Invokes fetch operations on a cadence and posts results onto queues.

    Guarantees per subscription:

    - at most one fetch in flight; a tick that finds one running does nothing
    - every fetch is stamped with the subscription's generation, and
      ``unsubscribe``/``reschedule`` bump it, so a result stamped with an older
      generation is dropped on arrival and never reaches the queue

    Fetch failures are not raised. They are posted as events carrying a
    ``TransientFetchError`` and the next tick simply tries again.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self.events: asyncio.Queue[FetchEvent] = asyncio.Queue()
        self.detail_logger = get_detail_logger()
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        fetch_op: FetchOp,
        interval: float | None,
        enabled: Callable[[], bool] | None = None,
        queue: asyncio.Queue[FetchEvent] | None = None,
    ) -> int:
        """Start polling ``fetch_op``.

        The operation runs once immediately, then every ``interval`` seconds
        for as long as ``enabled()`` returns True. Must be called from a
        running event loop.

        Args:
            fetch_op: Zero-argument coroutine function performing the fetch
            interval: Seconds between runs; None or 0 polls only once
            enabled: Predicate checked before each recurring run
            queue: Queue to post FetchEvents on; defaults to ``self.events``

        Returns:
            Handle identifying the subscription
        """
        sub = Subscription(
            id=next(self._ids),
            fetch_op=fetch_op,
            interval=interval or None,
            enabled=enabled or _always_enabled,
            queue=queue if queue is not None else self.events,
        )
        self._subscriptions[sub.id] = sub
        self.detail_logger.debug(
            f"Subscription {sub.id} created with interval {sub.interval}"
        )

        self._start_invocation(sub)
        self._start_timer(sub)
        return sub.id

    def unsubscribe(self, handle: int) -> bool:
        """Stop polling. An in-flight fetch completes but its result is dropped.

        Returns:
            True if the handle was subscribed
        """
        sub = self._subscriptions.pop(handle, None)
        if sub is None:
            return False

        sub.generation += 1
        self._stop_timer(sub)
        self.detail_logger.debug(f"Subscription {handle} removed")
        return True

    def reschedule(self, handle: int, new_interval: float | None) -> None:
        """Change the cadence of a subscription.

        A None or 0 interval stops recurring runs while the subscription stays
        addressable for ``refresh`` and later ``reschedule`` calls. Any fetch
        in flight becomes stale.

        Raises:
            KeyError: If the handle is unknown
        """
        sub = self._get(handle)
        sub.generation += 1
        self._stop_timer(sub)
        sub.interval = new_interval or None
        self._start_timer(sub)
        self.detail_logger.debug(
            f"Subscription {handle} rescheduled to {sub.interval} "
            f"(generation {sub.generation})"
        )

    def tick(self, handle: int) -> bool:
        """Run one timer firing for ``handle``.

        Returns:
            True if a fetch was started, False if disabled or one is in flight
        """
        sub = self._subscriptions.get(handle)
        if sub is None:
            return False
        if not sub.enabled():
            self.detail_logger.debug(f"Subscription {handle} disabled, skipping tick")
            return False
        return self._start_invocation(sub)

    def refresh(self, handle: int) -> bool:
        """Fetch now, regardless of the enabled predicate.

        Still honours the one-in-flight rule: if a fetch is running, the
        refresh is queued and starts as soon as that fetch completes.

        Returns:
            True if a fetch was started immediately

        Raises:
            KeyError: If the handle is unknown
        """
        sub = self._get(handle)
        if sub.is_in_flight:
            sub.refresh_requested = True
            self.detail_logger.debug(f"Subscription {handle} refresh queued")
            return False
        return self._start_invocation(sub)

    def is_current(self, event: FetchEvent) -> bool:
        """Whether an event still belongs to the live generation of its handle."""
        sub = self._subscriptions.get(event.handle)
        return sub is not None and sub.generation == event.generation

    def generation(self, handle: int) -> int:
        return self._get(handle).generation

    def is_in_flight(self, handle: int) -> bool:
        return self._get(handle).is_in_flight

    async def wait_idle(self, handle: int) -> None:
        """Wait until ``handle`` has no fetch in flight, queued refreshes included."""
        sub = self._get(handle)
        while sub.is_in_flight:
            await asyncio.wait({sub.in_flight})  # type: ignore[arg-type]

    def close(self) -> None:
        """Unsubscribe everything. In-flight fetches finish and are dropped."""
        for handle in list(self._subscriptions):
            self.unsubscribe(handle)

    async def aclose(self) -> None:
        """Unsubscribe everything and cancel fetches still in flight."""
        subscriptions = list(self._subscriptions.values())
        self.close()
        pending = [sub.in_flight for sub in subscriptions if sub.is_in_flight]
        for task in pending:
            task.cancel()  # type: ignore[union-attr]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _get(self, handle: int) -> Subscription:
        try:
            return self._subscriptions[handle]
        except KeyError:
            raise KeyError(f"Unknown subscription handle: {handle}") from None

    def _start_invocation(self, sub: Subscription) -> bool:
        if sub.is_in_flight:
            self.detail_logger.debug(
                f"Subscription {sub.id} still has a fetch in flight, skipping"
            )
            return False

        sub.last_run_at = self.clock()
        sub.in_flight = asyncio.create_task(self._invoke(sub, sub.generation))
        return True

    async def _invoke(self, sub: Subscription, generation: int) -> None:
        try:
            result = await sub.fetch_op()
            event = FetchEvent(
                sub.id, generation, result=result, completed_at=self.clock()
            )
        except TransientFetchError as e:
            event = FetchEvent(sub.id, generation, error=e, completed_at=self.clock())
        except Exception as e:  # any collaborator failure is a transient fetch error
            error = TransientFetchError(f"{type(e).__name__}: {e}")
            error.__cause__ = e
            event = FetchEvent(
                sub.id, generation, error=error, completed_at=self.clock()
            )

        if sub.in_flight is asyncio.current_task():
            sub.in_flight = None

        if generation != sub.generation:
            discard = StaleResponseDiscard(sub.id, generation, sub.generation)
            self.detail_logger.debug(str(discard))
        else:
            if event.error is not None:
                self.detail_logger.debug(
                    f"Subscription {sub.id} fetch failed: {event.error}"
                )
            sub.queue.put_nowait(event)

        if sub.refresh_requested and sub.id in self._subscriptions:
            sub.refresh_requested = False
            self._start_invocation(sub)

    def _start_timer(self, sub: Subscription) -> None:
        if sub.interval:
            sub.timer = asyncio.create_task(self._timer_loop(sub.id, sub.interval))

    @staticmethod
    def _stop_timer(sub: Subscription) -> None:
        if sub.timer is not None:
            sub.timer.cancel()
            sub.timer = None

    async def _timer_loop(self, handle: int, interval: float) -> None:
        while handle in self._subscriptions:
            await asyncio.sleep(interval)
            self.tick(handle)
