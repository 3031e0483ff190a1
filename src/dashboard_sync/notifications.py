# SPDX-License-Identifier: MIT
"""Optimistic notification read-state with remote confirmation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from .cache import CacheStore
from .constants import NOTIFICATION_CACHE_PREFIX
from .enums import MutationAction
from .exceptions import RemoteSyncError
from .logging_config import get_detail_logger, get_status_logger
from .models import Notification, NotificationAggregate
from .normalizer import PayloadNormalizer, payload_normalizer


MutationOp = Callable[[str | None, MutationAction], Awaitable[Any]]
NotificationFetchOp = Callable[[], Awaitable[Any]]


class NotificationSync:
    """Local notification state, changed optimistically and confirmed remotely.

    Each notification lives in two phases: the working copy the user sees
    (flagged ``pending`` while a change awaits confirmation) and the last
    committed snapshot. A failed single-item change restores the snapshot and
    reverses its effect on the aggregate. A failed bulk change resynchronizes
    everything from the remote source instead.

    Every completed change invalidates the cached notification aggregates so
    the next poll recomputes them from the server.
    """

    def __init__(
        self,
        mutate: MutationOp,
        fetch: NotificationFetchOp | None = None,
        store: CacheStore | None = None,
        normalizer: PayloadNormalizer = payload_normalizer,
        fetch_counts: NotificationFetchOp | None = None,
    ) -> None:
        """Initialize notification sync.

        Args:
            mutate: Remote write, called as ``mutate(id, action)``; id is None
                for bulk actions
            fetch: Remote read returning the authoritative notification payload
            store: Cache holding aggregates to invalidate after changes
            normalizer: Maps remote payloads onto Notification records
            fetch_counts: Remote read of the server counters, used by resync
        """
        self.mutate = mutate
        self.fetch = fetch
        self.fetch_counts = fetch_counts
        self.store = store
        self.normalizer = normalizer
        self.aggregate = NotificationAggregate()
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()
        self._notifications: dict[str, Notification] = {}
        self._committed: dict[str, Notification] = {}
        self._pending_ops = 0
        self._server_counts = False

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications.values())

    @property
    def unread_count(self) -> int:
        return self.aggregate.unread_count

    @property
    def has_pending(self) -> bool:
        return self._pending_ops > 0

    def get(self, notification_id: str) -> Notification | None:
        return self._notifications.get(notification_id)

    def load(
        self,
        notifications: Iterable[Notification],
        aggregate: NotificationAggregate | None = None,
    ) -> None:
        """Replace local state with confirmed notifications.

        Args:
            notifications: Authoritative notification set
            aggregate: Server-reported counters; recomputed from the set if None
        """
        committed = {
            n.id: n.model_copy(update={"pending": False}) for n in notifications
        }
        self._notifications = dict(committed)
        self._committed = committed
        self.aggregate = (
            aggregate
            if aggregate is not None
            else NotificationAggregate.from_notifications(committed.values())
        )
        self.detail_logger.debug(
            f"Loaded {len(committed)} notifications, "
            f"{self.aggregate.unread_count} unread"
        )

    def apply_remote(self, payload: Any, force: bool = False) -> bool:
        """Apply a polled payload: a notification list, an unread count, or both.

        Skipped while a local change awaits confirmation, unless forced, so a
        poll issued before the change cannot undo it.

        Server counters win over the list: once a payload carrying counts has
        been applied, a list without counts replaces the notifications but
        keeps the current aggregate. Counts are derived from the list only
        while the server has never reported any.

        Returns:
            True if local state was replaced

        Raises:
            ValueError: If the payload holds neither notifications nor counts
        """
        if self.has_pending and not force:
            self.detail_logger.debug("Change pending, ignoring polled notifications")
            return False

        server_aggregate = self.normalizer.normalize_notification_aggregate(payload)
        try:
            notifications = self.normalizer.normalize_notifications(payload)
        except ValueError:
            if server_aggregate is None:
                raise
            if not server_aggregate.counts_by_category:
                # A bare count keeps the last per-category breakdown
                server_aggregate = server_aggregate.model_copy(
                    update={"counts_by_category": self.aggregate.counts_by_category}
                )
            self.aggregate = server_aggregate
            self._server_counts = True
            return True

        if server_aggregate is not None:
            self._server_counts = True
        elif self._server_counts:
            server_aggregate = self.aggregate
        self.load(notifications, server_aggregate)
        return True

    async def resync(self) -> None:
        """Replace local state with the authoritative remote state.

        The counters are re-read from ``fetch_counts`` when given; otherwise
        they are derived from the fetched list.

        Raises:
            RuntimeError: If no fetch collaborator was given
        """
        if self.fetch is None:
            raise RuntimeError("No fetch collaborator configured for resync")
        payload = await self.fetch()
        if self.fetch_counts is None:
            self._server_counts = False
        self.apply_remote(payload, force=True)
        if self.fetch_counts is not None:
            self.apply_remote(await self.fetch_counts(), force=True)
        self._invalidate_aggregates()
        self.status_logger.info(
            f"Notifications resynchronized: {self.aggregate.unread_count} unread"
        )

    async def mark_read(self, notification_id: str) -> None:
        """Mark one notification read.

        Raises:
            KeyError: If the notification is unknown
            RemoteSyncError: If the change was not confirmed; local state is rolled back
        """
        await self._set_read(notification_id, True)

    async def mark_unread(self, notification_id: str) -> None:
        """Mark one notification unread.

        Raises:
            KeyError: If the notification is unknown
            RemoteSyncError: If the change was not confirmed; local state is rolled back
        """
        await self._set_read(notification_id, False)

    async def mark_all_read(self) -> None:
        """Mark every notification read.

        On failure, local state is resynchronized from the remote source
        rather than rolled back item by item. Without a fetch collaborator the
        committed snapshot is restored instead.

        Raises:
            RemoteSyncError: If the change was not confirmed
        """
        aggregate_before = self.aggregate
        self._notifications = {
            key: n.model_copy(update={"is_read": True, "pending": True})
            for key, n in self._notifications.items()
        }
        self.aggregate = NotificationAggregate()

        self._pending_ops += 1
        try:
            await self._confirm(None, MutationAction.READ_ALL)
        except RemoteSyncError as e:
            self._pending_ops -= 1
            resynced = await self._recover_bulk_failure(aggregate_before)
            raise RemoteSyncError(
                f"Marking all notifications read failed: {e}", resynced=resynced
            ) from e
        self._pending_ops -= 1

        for key in list(self._notifications):
            self._commit(key)
        self._invalidate_aggregates()

    async def delete(self, notification_id: str) -> None:
        """Delete one notification.

        Raises:
            KeyError: If the notification is unknown
            RemoteSyncError: If the change was not confirmed; the notification is restored
        """
        current = self._require(notification_id)
        order = list(self._notifications)
        del self._notifications[notification_id]
        applied = (0, 0)
        if not current.is_read:
            applied = self._shift(current.category, -1, -1)

        self._pending_ops += 1
        try:
            await self._confirm(notification_id, MutationAction.DELETE)
        except RemoteSyncError:
            restored = self._committed.get(notification_id, current)
            self._notifications[notification_id] = restored
            self._notifications = {
                key: self._notifications[key]
                for key in order
                if key in self._notifications
            }
            self._shift(current.category, -applied[0], -applied[1])
            self.detail_logger.debug(f"Rolled back delete of {notification_id}")
            raise
        finally:
            self._pending_ops -= 1

        self._committed.pop(notification_id, None)
        self._invalidate_aggregates()

    def create(self, notification: Notification) -> None:
        """Add a notification created on the server.

        Increments the unread count only for unread notifications and
        invalidates cached aggregates.
        """
        existing = self._notifications.get(notification.id)
        if existing is not None and not existing.is_read:
            self._shift(existing.category, -1, -1)

        confirmed = notification.model_copy(update={"pending": False})
        self._notifications[confirmed.id] = confirmed
        self._committed[confirmed.id] = confirmed
        if not confirmed.is_read:
            self._shift(confirmed.category, 1, 1)

        self._invalidate_aggregates()

    async def _set_read(self, notification_id: str, is_read: bool) -> None:
        current = self._require(notification_id)
        if current.is_read == is_read:
            self.detail_logger.debug(
                f"Notification {notification_id} already has is_read={is_read}"
            )
            return

        self._notifications[notification_id] = current.model_copy(
            update={"is_read": is_read, "pending": True}
        )
        delta = -1 if is_read else 1
        applied = self._shift(current.category, delta, delta)
        action = MutationAction.READ if is_read else MutationAction.UNREAD

        self._pending_ops += 1
        try:
            await self._confirm(notification_id, action)
        except RemoteSyncError:
            self._notifications[notification_id] = self._committed.get(
                notification_id, current
            )
            self._shift(current.category, -applied[0], -applied[1])
            self.detail_logger.debug(
                f"Rolled back {action.value} of {notification_id}"
            )
            raise
        finally:
            self._pending_ops -= 1

        self._commit(notification_id)
        self._invalidate_aggregates()

    async def _confirm(self, notification_id: str | None, action: MutationAction) -> None:
        target = notification_id or "all notifications"
        try:
            ack = await self.mutate(notification_id, action)
        except RemoteSyncError:
            raise
        except Exception as e:  # any collaborator failure means "not confirmed"
            self.status_logger.warning(f"Could not {action.value} {target}: {e}")
            raise RemoteSyncError(
                f"Remote {action.value} of {target} failed: {e}", notification_id
            ) from e

        if ack is False or (isinstance(ack, dict) and ack.get("success") is False):
            message = ack.get("message") if isinstance(ack, dict) else None
            self.status_logger.warning(f"Server rejected {action.value} of {target}")
            raise RemoteSyncError(
                f"Remote {action.value} of {target} rejected"
                + (f": {message}" if message else ""),
                notification_id,
            )

    async def _recover_bulk_failure(self, aggregate_before: NotificationAggregate) -> bool:
        if self.fetch is not None:
            try:
                await self.resync()
                return True
            except Exception as e:  # fall back to the local snapshot below
                self.status_logger.warning(f"Resync after failed bulk change failed: {e}")

        self._notifications = dict(self._committed)
        self.aggregate = aggregate_before
        self.detail_logger.debug("Restored committed notifications after bulk failure")
        return False

    def _commit(self, notification_id: str) -> None:
        working = self._notifications.get(notification_id)
        if working is None:
            return
        confirmed = working.model_copy(update={"pending": False})
        self._notifications[notification_id] = confirmed
        self._committed[notification_id] = confirmed

    def _shift(
        self, category: str, total_delta: int, category_delta: int
    ) -> tuple[int, int]:
        """Move the aggregate counters, clamped at zero.

        Returns:
            The deltas actually applied, for exact reversal
        """
        unread_before = self.aggregate.unread_count
        counts = dict(self.aggregate.counts_by_category)
        category_before = counts.get(category, 0)

        unread_after = max(unread_before + total_delta, 0)
        category_after = max(category_before + category_delta, 0)
        if category_after:
            counts[category] = category_after
        else:
            counts.pop(category, None)

        self.aggregate = NotificationAggregate(
            unread_count=unread_after, counts_by_category=counts
        )
        return unread_after - unread_before, category_after - category_before

    def _require(self, notification_id: str) -> Notification:
        try:
            return self._notifications[notification_id]
        except KeyError:
            raise KeyError(f"Unknown notification: {notification_id}") from None

    def _invalidate_aggregates(self) -> None:
        if self.store is not None:
            self.store.invalidate_prefix(NOTIFICATION_CACHE_PREFIX)
