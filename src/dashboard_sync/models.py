# SPDX-License-Identifier: MIT
"""Core data models for the dashboard sync layer."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_NOTIFICATION_CATEGORY
from .enums import InsightImpact, InsightType, NotificationPriority, NotificationType


class CacheEntry(BaseModel):
    """A cached payload with the time it was fetched and its lifetime."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Cache key")
    payload: Any = Field(None, description="Opaque cached value")
    fetched_at: float = Field(..., description="Fetch time as epoch seconds")
    ttl: float = Field(..., ge=0.0, description="Time-to-live in seconds")

    def is_fresh(self, now: float) -> bool:
        """Return True while ``now - fetched_at < ttl``."""
        return now - self.fetched_at < self.ttl


class FeedItem(BaseModel):
    """A single record of a live feed, keyed by an id stable across fetches."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier")
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Upstream record as received"
    )
    observed_at: datetime = Field(
        default_factory=datetime.now, description="When the record was created"
    )


class FeedState(BaseModel):
    """Identifiers already observed by one view session."""

    model_config = ConfigDict(frozen=True)

    known_ids: frozenset[str] = Field(
        default_factory=frozenset, description="Every id seen so far"
    )
    has_completed_initial_load: bool = Field(
        False, description="Whether the first fetch has been absorbed"
    )


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation."""

    model_config = ConfigDict(frozen=True)

    added: list[FeedItem] = Field(default_factory=list)
    state: FeedState


class Notification(BaseModel):
    """A notification as shown in the dashboard's notification center."""

    id: str = Field(..., description="Notification identifier (uuid upstream)")
    is_read: bool = Field(False, description="Read status")
    priority: NotificationPriority = Field(NotificationPriority.NORMAL)
    category: str = Field(DEFAULT_NOTIFICATION_CATEGORY)
    type: NotificationType = Field(NotificationType.INFO)
    title: str = Field("", description="Short headline")
    message: str = Field("", description="Body text")
    created_at: datetime | None = Field(None, description="Server creation time")
    pending: bool = Field(
        False, description="True while an optimistic change awaits confirmation"
    )


class NotificationAggregate(BaseModel):
    """Unread counters derived from a notification set or reported by the server."""

    unread_count: int = Field(0, ge=0)
    counts_by_category: dict[str, int] = Field(
        default_factory=dict, description="Unread notifications per category"
    )

    @classmethod
    def from_notifications(
        cls, notifications: Iterable[Notification]
    ) -> "NotificationAggregate":
        counts: dict[str, int] = {}
        unread = 0
        for notification in notifications:
            if notification.is_read:
                continue
            unread += 1
            counts[notification.category] = counts.get(notification.category, 0) + 1
        return cls(unread_count=unread, counts_by_category=counts)


class Insight(BaseModel):
    """AI-derived business insight."""

    id: str = Field(..., description="Insight identifier")
    type: InsightType = Field(InsightType.INFO)
    title: str = Field("", description="Headline")
    description: str = Field("", description="Explanation")
    impact: InsightImpact = Field(InsightImpact.MEDIUM)
    confidence: float = Field(0.0, ge=0.0, le=100.0, description="Percent")
    actionable: bool = Field(False)
    timeframe: str | None = Field(None)
    recommendation: str | None = Field(None)


class FeedSnapshot(BaseModel):
    """What a live feed widget renders."""

    items: list[FeedItem] = Field(default_factory=list)
    highlighted_ids: frozenset[str] = Field(default_factory=frozenset)
    is_loading: bool = Field(False)
    last_error: str | None = Field(None, description="Most recent fetch error")


class InsightQueryState(BaseModel):
    """What an insight widget renders."""

    data: Any = Field(None, description="Last successfully computed payload")
    is_loading: bool = Field(False)
    error: str | None = Field(None)


class BadgeSnapshot(BaseModel):
    """What the notification badge renders."""

    unread_count: int = Field(0, ge=0)
    counts_by_category: dict[str, int] = Field(default_factory=dict)
    is_loading: bool = Field(False)
    last_error: str | None = Field(None)
