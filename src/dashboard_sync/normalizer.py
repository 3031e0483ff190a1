# SPDX-License-Identifier: MIT
"""Normalization of upstream API payloads into canonical records.

The dashboard API wraps collections in different envelopes depending on the
endpoint: bare lists, ``{"data": [...]}``, paginated
``{"data": {"data": [...], "current_page": 1}}`` and a few named keys. Records
identify themselves by ``uuid``, ``id`` or ``transaction_id``. All of that is
resolved here, once, so the rest of the package only sees ``FeedItem``,
``Notification``, ``NotificationAggregate`` and ``Insight``.
"""

from datetime import datetime
from typing import Any

from pydantic import ValidationError

from .constants import DEFAULT_NOTIFICATION_CATEGORY
from .enums import InsightImpact, InsightType, NotificationPriority, NotificationType
from .logging_config import get_detail_logger
from .models import FeedItem, Insight, Notification, NotificationAggregate


class PayloadNormalizer:
    """Maps heterogeneous upstream payloads onto canonical models."""

    # Keys that may hold the record list inside an envelope, in lookup order
    COLLECTION_KEYS = ("data", "items", "results", "notifications", "insights")
    # Identifier fields, in order of preference
    ID_FIELDS = ("uuid", "id", "transaction_id")
    TIMESTAMP_FIELDS = ("created_at", "transaction_date", "timestamp")
    COUNT_FIELDS = ("unread_count", "count")
    CATEGORY_COUNT_FIELDS = ("counts_by_category", "by_category")

    def __init__(self) -> None:
        self.detail_logger = get_detail_logger()

    def extract_records(self, payload: Any) -> list[dict[str, Any]]:
        """Unwrap a collection payload into a list of record dicts.

        Args:
            payload: Raw upstream payload

        Returns:
            The records, skipping entries that are not mappings

        Raises:
            ValueError: If no record list can be found in the payload
        """
        found = self._find_list(payload, depth=0)
        if found is None:
            raise ValueError(
                f"Unrecognized collection payload of type {type(payload).__name__}"
            )

        records = [record for record in found if isinstance(record, dict)]
        if len(records) != len(found):
            self.detail_logger.debug(
                f"Skipped {len(found) - len(records)} non-mapping records"
            )
        return records

    def _find_list(self, payload: Any, depth: int) -> list[Any] | None:
        if isinstance(payload, list):
            return payload
        if not isinstance(payload, dict) or depth > 3:
            return None
        for key in self.COLLECTION_KEYS:
            if key in payload:
                found = self._find_list(payload[key], depth + 1)
                if found is not None:
                    return found
        return None

    def record_id(self, record: dict[str, Any]) -> str | None:
        """Return the record's identifier as a string, or None."""
        for field in self.ID_FIELDS:
            value = record.get(field)
            if value is not None and str(value).strip():
                return str(value)
        return None

    def record_timestamp(self, record: dict[str, Any]) -> datetime | None:
        """Return the first parseable timestamp field of a record."""
        for field in self.TIMESTAMP_FIELDS:
            value = record.get(field)
            if isinstance(value, datetime):
                return value
            if isinstance(value, str) and value:
                try:
                    return datetime.fromisoformat(value.replace("Z", "+00:00"))
                except ValueError:
                    self.detail_logger.debug(f"Unparseable {field}: {value!r}")
        return None

    def normalize_feed_items(self, payload: Any) -> list[FeedItem]:
        """Normalize a feed payload. Records without an identifier are dropped.

        Raises:
            ValueError: If the payload holds no record list
        """
        items: list[FeedItem] = []
        for record in self.extract_records(payload):
            item_id = self.record_id(record)
            if item_id is None:
                self.detail_logger.debug(f"Dropping feed record without id: {record}")
                continue
            observed_at = self.record_timestamp(record) or datetime.now()
            items.append(FeedItem(id=item_id, payload=record, observed_at=observed_at))
        return items

    def normalize_notification(self, record: dict[str, Any]) -> Notification | None:
        """Normalize one notification record, or return None if it is unusable."""
        notification_id = self.record_id(record)
        if notification_id is None:
            self.detail_logger.debug(f"Dropping notification without id: {record}")
            return None

        if "is_read" in record:
            is_read = bool(record["is_read"])
        elif "read" in record:
            is_read = bool(record["read"])
        else:
            is_read = record.get("read_at") is not None

        try:
            return Notification(
                id=notification_id,
                is_read=is_read,
                priority=self._coerce_enum(
                    NotificationPriority, record.get("priority"), NotificationPriority.NORMAL
                ),
                category=str(record.get("category") or DEFAULT_NOTIFICATION_CATEGORY),
                type=self._coerce_enum(
                    NotificationType, record.get("type"), NotificationType.INFO
                ),
                title=str(record.get("title") or ""),
                message=str(record.get("message") or ""),
                created_at=self.record_timestamp(record),
            )
        except ValidationError as e:
            self.detail_logger.debug(f"Invalid notification {notification_id}: {e}")
            return None

    def normalize_notifications(self, payload: Any) -> list[Notification]:
        """Normalize a notification collection payload.

        Raises:
            ValueError: If the payload holds no record list
        """
        notifications = []
        for record in self.extract_records(payload):
            notification = self.normalize_notification(record)
            if notification is not None:
                notifications.append(notification)
        return notifications

    def normalize_notification_aggregate(
        self, payload: Any
    ) -> NotificationAggregate | None:
        """Read server-reported unread counters, if the payload carries any.

        Accepts ``{"count": 3}``, ``{"unread_count": 3, "by_category": {...}}``
        and either form nested under ``data``.

        Returns:
            The aggregate, or None if the payload has no unread count
        """
        if isinstance(payload, int) and not isinstance(payload, bool):
            return NotificationAggregate(unread_count=max(payload, 0))
        if not isinstance(payload, dict):
            return None

        for field in self.COUNT_FIELDS:
            value = payload.get(field)
            if isinstance(value, int) and not isinstance(value, bool):
                counts: dict[str, int] = {}
                for category_field in self.CATEGORY_COUNT_FIELDS:
                    raw_counts = payload.get(category_field)
                    if isinstance(raw_counts, dict):
                        counts = {
                            str(k): int(v)
                            for k, v in raw_counts.items()
                            if isinstance(v, int) and v > 0
                        }
                        break
                return NotificationAggregate(
                    unread_count=max(value, 0), counts_by_category=counts
                )

        if "data" in payload:
            return self.normalize_notification_aggregate(payload["data"])
        return None

    def normalize_insights(self, payload: Any) -> list[Insight]:
        """Normalize an AI insight collection payload.

        Raises:
            ValueError: If the payload holds no record list
        """
        insights = []
        for index, record in enumerate(self.extract_records(payload)):
            insight_id = self.record_id(record) or f"insight-{index}"
            try:
                insights.append(
                    Insight(
                        id=insight_id,
                        type=self._coerce_enum(
                            InsightType, record.get("type"), InsightType.INFO
                        ),
                        title=str(record.get("title") or ""),
                        description=str(record.get("description") or ""),
                        impact=self._coerce_enum(
                            InsightImpact, record.get("impact"), InsightImpact.MEDIUM
                        ),
                        confidence=float(record.get("confidence") or 0.0),
                        actionable=bool(record.get("actionable", False)),
                        timeframe=record.get("timeframe"),
                        recommendation=record.get("recommendation"),
                    )
                )
            except (ValidationError, TypeError, ValueError) as e:
                self.detail_logger.debug(f"Dropping invalid insight {insight_id}: {e}")
        return insights

    @staticmethod
    def _coerce_enum(enum_cls: Any, value: Any, default: Any) -> Any:
        try:
            return enum_cls(str(value).lower()) if value is not None else default
        except ValueError:
            return default


# Global normalizer instance
payload_normalizer = PayloadNormalizer()
