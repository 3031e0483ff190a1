# SPDX-License-Identifier: MIT
"""Integration tests for a full dashboard session.

INTEGRATION TEST FILE: These tests drive DashboardSession through the real
API client, scheduler, reconciler, effects and SQLite-backed cache. Only the
HTTP transport is replaced, by patching ``aiohttp.ClientSession.request``.
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from dashboard_sync.config import AppConfig, CacheConfig, EffectsConfig, RetryConfig
from dashboard_sync.exceptions import RemoteSyncError
from dashboard_sync.session import DashboardSession

NEVER = 3600.0
SHORT_HIGHLIGHT = 0.2


def json_response(data, status=200):
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=data)
    return response


def transactions(*ids):
    return {
        "success": True,
        "data": {
            "data": [{"id": i, "amount": 10.0, "status": "paid"} for i in ids],
            "current_page": 1,
        },
    }


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        cache=CacheConfig(db_path=str(tmp_path / "dashboard.db")),
        effects=EffectsConfig(muted=False),
        retry=RetryConfig(max_retries=0),
    )


class TestLiveFeedIntegration:
    """New sales surface once, with one alert per batch."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_new_transaction_highlighted_once(self, app_config, clock):
        """S1,S2 then S1,S2,S3 then unchanged: only S3 signals, exactly once."""
        audio = Mock()
        app_config.effects = EffectsConfig(
            highlight_duration=SHORT_HIGHLIGHT, muted=False
        )

        with patch("aiohttp.ClientSession.request") as mock_request:
            mock_request.return_value.__aenter__.side_effect = [
                json_response(transactions("S1", "S2")),
                json_response(transactions("S1", "S2", "S3")),
                json_response(transactions("S1", "S2", "S3")),
            ]

            async with DashboardSession(
                app_config, clock=clock, audio_alert=audio
            ) as session:
                feed = session.live_feed(
                    query_params={"period": "today"}, interval=NEVER
                )
                feed.start()
                await feed.wait_idle()

                assert feed.snapshot().highlighted_ids == frozenset()
                audio.assert_not_called()

                feed.tick()
                await feed.wait_idle()

                assert feed.snapshot().highlighted_ids == frozenset({"S3"})
                assert audio.call_count == 1

                feed.tick()
                await feed.wait_idle()

                assert feed.last_added == []
                assert audio.call_count == 1
                assert len(feed.items) == 3

                await asyncio.sleep(SHORT_HIGHLIGHT * 2)
                assert feed.snapshot().highlighted_ids == frozenset()

        assert mock_request.call_count == 3
        _, kwargs = mock_request.call_args
        assert kwargs["params"]["period"] == "today"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_failed_poll_keeps_feed(self, app_config, clock):
        """A 503 between polls is reported and the feed recovers on the next tick."""
        with patch("aiohttp.ClientSession.request") as mock_request:
            mock_request.return_value.__aenter__.side_effect = [
                json_response(transactions("S1")),
                json_response(None, status=503),
                json_response(transactions("S1", "S2")),
            ]

            async with DashboardSession(app_config, clock=clock) as session:
                feed = session.live_feed(interval=NEVER, muted=True)
                feed.start()
                await feed.wait_idle()

                feed.tick()
                await feed.wait_idle()
                assert "503" in feed.snapshot().last_error
                assert [item.id for item in feed.items] == ["S1"]

                feed.tick()
                await feed.wait_idle()
                assert feed.snapshot().last_error is None
                assert [item.id for item in feed.last_added] == ["S2"]


class TestNotificationIntegration:
    """Optimistic changes against the REST endpoints."""

    NOTIFICATIONS = {
        "success": True,
        "data": {
            "data": [
                {"uuid": "n1", "category": "orders", "read_at": None},
                {"uuid": "n2", "category": "stock", "read_at": None},
            ]
        },
    }
    STATS = {
        "success": True,
        "data": {
            "total_notifications": 2,
            "unread_count": 2,
            "critical_unread": 0,
            "by_category": {"orders": 1, "stock": 1},
        },
    }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rejected_mark_read_rolls_back(self, app_config, clock):
        """A rejected change restores the notification and the badge count."""
        with patch("aiohttp.ClientSession.request") as mock_request:
            mock_request.return_value.__aenter__.side_effect = [
                json_response(self.NOTIFICATIONS),
                json_response(self.STATS),
                json_response({"success": False, "message": "Forbidden"}),
            ]

            async with DashboardSession(app_config, clock=clock) as session:
                sync = session.notification_sync
                await sync.resync()
                assert sync.unread_count == 2

                with pytest.raises(RemoteSyncError, match="Forbidden"):
                    await sync.mark_read("n1")

                assert sync.get("n1").is_read is False
                assert sync.get("n1").pending is False
                assert sync.unread_count == 2

        method, url = mock_request.call_args.args
        assert method == "PUT"
        assert url.endswith("/notifications/n1/read")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_failed_mark_all_read_resyncs(self, app_config, clock):
        """A failed bulk change reloads the authoritative list."""
        with patch("aiohttp.ClientSession.request") as mock_request:
            mock_request.return_value.__aenter__.side_effect = [
                json_response(self.NOTIFICATIONS),
                json_response(self.STATS),
                json_response(None, status=500),
                json_response(self.NOTIFICATIONS),
                json_response(self.STATS),
            ]

            async with DashboardSession(app_config, clock=clock) as session:
                sync = session.notification_sync
                await sync.resync()

                with pytest.raises(RemoteSyncError) as exc_info:
                    await sync.mark_all_read()

                assert exc_info.value.resynced is True
                assert sync.unread_count == 2
                assert sync.aggregate.counts_by_category == {"orders": 1, "stock": 1}
                assert not sync.has_pending


class TestPersistentCacheIntegration:
    """Cached insights survive a session restart."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_insights_served_from_disk(self, app_config, clock):
        """A second session reads the insight from SQLite without a request."""
        insights = {"success": True, "data": [{"id": "i1", "title": "Revenue up"}]}

        with patch("aiohttp.ClientSession.request") as mock_request:
            mock_request.return_value.__aenter__.return_value = json_response(insights)

            async with DashboardSession(app_config, clock=clock) as session:
                first = await session.insight_query({"range": "7d"}).load()

            async with DashboardSession(app_config, clock=clock) as session:
                query = session.insight_query({"range": "7d"})
                second = await query.load()

        assert first.data == second.data == insights
        assert [insight.title for insight in query.insights] == ["Revenue up"]
        assert mock_request.call_count == 1
