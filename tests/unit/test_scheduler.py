# SPDX-License-Identifier: MIT
"""Tests for the poll scheduler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from dashboard_sync.exceptions import TransientFetchError
from dashboard_sync.scheduler import FetchEvent, PollScheduler

# Long enough that no timer fires during a test
NEVER = 3600.0


class GatedFetch:
    """Fetch operation that blocks until released, then returns its call number."""

    def __init__(self):
        self.calls = 0
        self.gate = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        call = self.calls
        await self.gate.wait()
        return call

    def release(self):
        self.gate.set()


def drain(queue: asyncio.Queue) -> list[FetchEvent]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestSubscribe:
    """Subscription lifecycle."""

    @pytest.mark.asyncio
    async def test_subscribe_fetches_immediately(self, clock):
        """The first fetch runs right away and posts a current event."""
        scheduler = PollScheduler(clock=clock)
        fetch = AsyncMock(return_value=["S1"])

        handle = scheduler.subscribe(fetch, NEVER)
        await scheduler.wait_idle(handle)

        events = drain(scheduler.events)
        assert len(events) == 1
        assert events[0].ok
        assert events[0].result == ["S1"]
        assert events[0].completed_at == clock.now
        assert scheduler.is_current(events[0])
        fetch.assert_awaited_once()
        scheduler.close()

    @pytest.mark.asyncio
    async def test_events_go_to_given_queue(self):
        """A subscription may post onto its own queue."""
        scheduler = PollScheduler()
        queue: asyncio.Queue[FetchEvent] = asyncio.Queue()

        handle = scheduler.subscribe(AsyncMock(return_value=1), NEVER, queue=queue)
        await scheduler.wait_idle(handle)

        assert queue.qsize() == 1
        assert scheduler.events.empty()
        scheduler.close()

    @pytest.mark.asyncio
    async def test_handles_are_distinct(self):
        """Each subscription gets its own handle."""
        scheduler = PollScheduler()
        first = scheduler.subscribe(AsyncMock(), NEVER)
        second = scheduler.subscribe(AsyncMock(), NEVER)

        assert first != second
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_timer_polls_repeatedly(self):
        """With a short interval the fetch runs again on its own."""
        scheduler = PollScheduler()
        fetch = AsyncMock(return_value=[])

        scheduler.subscribe(fetch, 0.01)
        await asyncio.sleep(0.1)

        assert fetch.await_count >= 2
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_none_interval_polls_once(self):
        """Without an interval only the initial fetch runs."""
        scheduler = PollScheduler()
        fetch = AsyncMock(return_value=[])

        handle = scheduler.subscribe(fetch, None)
        await scheduler.wait_idle(handle)
        await asyncio.sleep(0.05)

        fetch.assert_awaited_once()
        scheduler.close()


class TestTicks:
    """Tick gating."""

    @pytest.mark.asyncio
    async def test_tick_while_in_flight_is_noop(self):
        """A tick that finds a fetch running starts nothing."""
        scheduler = PollScheduler()
        fetch = GatedFetch()
        handle = scheduler.subscribe(fetch, NEVER)
        await asyncio.sleep(0)

        assert scheduler.is_in_flight(handle)
        assert scheduler.tick(handle) is False
        assert fetch.calls == 1
        assert scheduler.events.empty()

        fetch.release()
        await scheduler.wait_idle(handle)
        assert scheduler.tick(handle) is True
        await scheduler.wait_idle(handle)

        assert fetch.calls == 2
        assert len(drain(scheduler.events)) == 2
        scheduler.close()

    @pytest.mark.asyncio
    async def test_disabled_predicate_skips_ticks(self):
        """Ticks respect the enabled predicate; refresh does not."""
        scheduler = PollScheduler()
        fetch = AsyncMock(return_value=[])
        handle = scheduler.subscribe(fetch, NEVER, enabled=lambda: False)
        await scheduler.wait_idle(handle)

        assert scheduler.tick(handle) is False
        assert fetch.await_count == 1

        assert scheduler.refresh(handle) is True
        await scheduler.wait_idle(handle)
        assert fetch.await_count == 2
        scheduler.close()

    @pytest.mark.asyncio
    async def test_tick_unknown_handle(self):
        """Ticking an unknown handle does nothing."""
        scheduler = PollScheduler()
        assert scheduler.tick(99) is False

    @pytest.mark.asyncio
    async def test_refresh_while_in_flight_is_queued(self):
        """A refresh during a fetch starts once that fetch completes."""
        scheduler = PollScheduler()
        fetch = GatedFetch()
        handle = scheduler.subscribe(fetch, NEVER)
        await asyncio.sleep(0)

        assert scheduler.refresh(handle) is False
        assert fetch.calls == 1

        fetch.release()
        await scheduler.wait_idle(handle)

        assert fetch.calls == 2
        assert [event.result for event in drain(scheduler.events)] == [1, 2]
        scheduler.close()


class TestStaleResponses:
    """Generation stamping."""

    @pytest.mark.asyncio
    async def test_reschedule_drops_in_flight_result(self):
        """A response issued before reschedule never reaches the queue."""
        scheduler = PollScheduler()
        fetch = GatedFetch()
        handle = scheduler.subscribe(fetch, NEVER)
        await asyncio.sleep(0)

        scheduler.reschedule(handle, NEVER * 2)
        assert scheduler.generation(handle) == 1

        fetch.release()
        await scheduler.wait_idle(handle)

        assert scheduler.events.empty()
        scheduler.close()

    @pytest.mark.asyncio
    async def test_reschedule_then_refresh_delivers_only_new_generation(self):
        """After reschedule and refresh only the new query's result arrives."""
        scheduler = PollScheduler()
        fetch = GatedFetch()
        handle = scheduler.subscribe(fetch, NEVER)
        await asyncio.sleep(0)

        scheduler.reschedule(handle, NEVER)
        scheduler.refresh(handle)
        fetch.release()
        await scheduler.wait_idle(handle)

        events = drain(scheduler.events)
        assert fetch.calls == 2
        assert [(event.generation, event.result) for event in events] == [(1, 2)]
        scheduler.close()

    @pytest.mark.asyncio
    async def test_unsubscribe_ignores_in_flight_result(self):
        """Unsubscribing lets the fetch finish but drops its result."""
        scheduler = PollScheduler()
        fetch = GatedFetch()
        handle = scheduler.subscribe(fetch, NEVER)
        await asyncio.sleep(0)

        assert scheduler.unsubscribe(handle) is True
        fetch.release()
        await asyncio.sleep(0.01)

        assert fetch.calls == 1
        assert scheduler.events.empty()
        assert scheduler.unsubscribe(handle) is False
        with pytest.raises(KeyError):
            scheduler.refresh(handle)

    @pytest.mark.asyncio
    async def test_reschedule_unknown_handle(self):
        """Rescheduling an unknown handle raises KeyError."""
        scheduler = PollScheduler()
        with pytest.raises(KeyError, match="Unknown subscription handle"):
            scheduler.reschedule(7, 1.0)

    @pytest.mark.asyncio
    async def test_reschedule_to_none_stops_timer(self):
        """A None interval stops recurring runs but keeps the handle."""
        scheduler = PollScheduler()
        fetch = AsyncMock(return_value=[])
        handle = scheduler.subscribe(fetch, 0.01)

        scheduler.reschedule(handle, None)
        await scheduler.wait_idle(handle)
        calls = fetch.await_count
        await asyncio.sleep(0.05)

        assert fetch.await_count == calls
        assert scheduler.refresh(handle) is True
        await scheduler.aclose()


class TestFailures:
    """Fetch errors travel as events."""

    @pytest.mark.asyncio
    async def test_collaborator_error_wrapped(self):
        """Arbitrary exceptions become TransientFetchError events."""
        scheduler = PollScheduler()
        fetch = AsyncMock(side_effect=ConnectionResetError("reset by peer"))

        handle = scheduler.subscribe(fetch, NEVER)
        await scheduler.wait_idle(handle)

        (event,) = drain(scheduler.events)
        assert not event.ok
        assert isinstance(event.error, TransientFetchError)
        assert isinstance(event.error.__cause__, ConnectionResetError)
        assert "reset by peer" in str(event.error)
        scheduler.close()

    @pytest.mark.asyncio
    async def test_transient_error_passed_through(self):
        """TransientFetchError from the collaborator is posted unchanged."""
        scheduler = PollScheduler()
        error = TransientFetchError("Server busy", status=503)

        handle = scheduler.subscribe(AsyncMock(side_effect=error), NEVER)
        await scheduler.wait_idle(handle)

        (event,) = drain(scheduler.events)
        assert event.error is error
        assert event.error.status == 503
        scheduler.close()

    @pytest.mark.asyncio
    async def test_aclose_cancels_in_flight(self):
        """aclose() cancels running fetches and posts nothing."""
        scheduler = PollScheduler()
        fetch = GatedFetch()
        scheduler.subscribe(fetch, NEVER)
        await asyncio.sleep(0)

        await scheduler.aclose()

        assert scheduler.events.empty()
