# SPDX-License-Identifier: MIT
"""aiohttp client for the dashboard REST API."""

import asyncio
from typing import Any

import aiohttp

from .config import ApiConfig, RetryConfig
from .enums import MutationAction
from .exceptions import ApiResponseError, TransientFetchError
from .logging_config import get_detail_logger
from .retry_utils import async_retry_with_backoff


detail_logger = get_detail_logger()


class DashboardApiClient:
    """Fetch and mutation collaborator backed by the dashboard API.

    Connection errors, timeouts, 5xx and 429 responses raise
    ``TransientFetchError`` after the configured retries. Other 4xx responses
    raise ``ApiResponseError`` immediately.
    """

    FEED_PATH = "/sales/transactions"
    INSIGHTS_PATH = "/dashboard/ai-insights"
    NOTIFICATIONS_PATH = "/notifications"
    UNREAD_COUNT_PATH = "/notifications/unread-count"
    STATS_PATH = "/notifications/stats"
    MARK_ALL_READ_PATH = "/notifications/mark-all-read"

    def __init__(
        self,
        api_config: ApiConfig | None = None,
        retry_config: RetryConfig | None = None,
    ):
        """Initialize the API client.

        Args:
            api_config: Base URL, token and timeout; defaults apply if None
            retry_config: Backoff policy for retryable failures
        """
        self.api_config = api_config or ApiConfig()
        self.retry_config = retry_config or RetryConfig()
        self.base_url = self.api_config.base_url.rstrip("/")
        self.headers = {"Accept": "application/json"}
        if self.api_config.token:
            self.headers["Authorization"] = f"Bearer {self.api_config.token}"
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "DashboardApiClient":
        """Async context manager entry."""
        self._ensure_session()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch_feed(self, query_params: dict[str, Any] | None = None) -> Any:
        """Fetch sales transactions for the live feed."""
        params = {"per_page": self.api_config.feed_page_size}
        params.update(query_params or {})
        return await self.request("GET", self.FEED_PATH, params=params)

    async def fetch_insights(self, query_params: dict[str, Any] | None = None) -> Any:
        """Fetch AI-generated dashboard insights."""
        return await self.request("GET", self.INSIGHTS_PATH, params=query_params)

    async def fetch_notifications(
        self, query_params: dict[str, Any] | None = None
    ) -> Any:
        """Fetch the notification list."""
        return await self.request("GET", self.NOTIFICATIONS_PATH, params=query_params)

    async def fetch_unread_count(self) -> Any:
        """Fetch the server-side unread notification count."""
        return await self.request("GET", self.UNREAD_COUNT_PATH)

    async def fetch_notification_stats(self) -> Any:
        """Fetch unread totals broken down by category."""
        return await self.request("GET", self.STATS_PATH)

    async def mutate_notification(
        self, notification_id: str | None, action: MutationAction
    ) -> Any:
        """Apply a read-state change or deletion remotely.

        Args:
            notification_id: Notification uuid; None addresses all notifications
            action: The mutation to perform

        Returns:
            The server acknowledgement payload

        Raises:
            ValueError: If a single-item action is given no id
        """
        if action == MutationAction.READ_ALL:
            return await self.request("POST", self.MARK_ALL_READ_PATH, retry=False)
        if not notification_id:
            raise ValueError(f"Action '{action.value}' requires a notification id")

        item_path = f"{self.NOTIFICATIONS_PATH}/{notification_id}"
        if action == MutationAction.DELETE:
            return await self.request("DELETE", item_path, retry=False)
        return await self.request("PUT", f"{item_path}/{action.value}", retry=False)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Mutations are sent once; reads are retried with exponential backoff.
        """
        if not retry:
            return await self._request_once(method, path, params)

        retrying = async_retry_with_backoff(
            max_retries=self.retry_config.max_retries,
            initial_delay=self.retry_config.initial_delay,
            max_delay=self.retry_config.max_delay,
            exponential_base=self.retry_config.exponential_base,
            exceptions=(TransientFetchError,),
        )(self._request_once)
        return await retrying(method, path, params)

    async def _request_once(
        self, method: str, path: str, params: dict[str, Any] | None
    ) -> Any:
        session = self._ensure_session()
        url = f"{self.base_url}{path}"
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            async with session.request(method, url, params=query) as response:
                if response.status == 429 or response.status >= 500:
                    raise TransientFetchError(
                        f"{method} {path} failed", status=response.status, key=path
                    )
                if response.status >= 400:
                    raise ApiResponseError(
                        f"{method} {path} rejected", response.status, key=path
                    )
                if response.status == 204:
                    return {"success": True}
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TransientFetchError(f"{method} {path} timed out", key=path) from e
        except aiohttp.ClientError as e:
            raise TransientFetchError(f"{method} {path} failed: {e}", key=path) from e
        except ValueError as e:
            raise TransientFetchError(
                f"{method} {path} returned invalid JSON", key=path
            ) from e
        finally:
            detail_logger.debug(f"{method} {url} params={query}")

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.api_config.timeout),
            )
        return self.session
