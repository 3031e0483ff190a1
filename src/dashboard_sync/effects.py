# SPDX-License-Identifier: MIT
"""Transient UI signals for newly arrived feed items."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Sequence
from typing import Any

from .constants import HIGHLIGHT_DURATION
from .logging_config import get_detail_logger, get_status_logger
from .models import FeedItem
from .utils.dead_code import code_is_used


AudioAlert = Callable[[], Any]


class EffectDispatcher:
    """Turns a reconciliation delta into highlights and an audio alert.

    Every added id is highlighted for ``highlight_duration`` seconds by its
    own one-shot timer. The audio collaborator is called at most once per
    batch, however many items arrived. Audio failures are logged, never
    raised.
    """

    def __init__(
        self,
        audio_alert: AudioAlert | None = None,
        highlight_duration: float = HIGHLIGHT_DURATION,
        focus_predicate: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            audio_alert: Fire-and-forget playback trigger, sync or async
            highlight_duration: Seconds an id stays highlighted
            focus_predicate: Returns False while the view is backgrounded;
                audio is then suppressed but highlights are still recorded
        """
        self.audio_alert = audio_alert
        self.highlight_duration = highlight_duration
        self.focus_predicate = focus_predicate
        self.alerts_fired = 0
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()
        self._highlighted: set[str] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._audio_tasks: set[asyncio.Task[Any]] = set()

    @property
    def highlighted_ids(self) -> frozenset[str]:
        return frozenset(self._highlighted)

    def dispatch(self, added: Sequence[FeedItem], muted: bool) -> bool:
        """Signal a batch of newly arrived items.

        Must be called from a running event loop.

        Args:
            added: Items reported new by the reconciler
            muted: When True nothing is signalled

        Returns:
            True if the batch produced signals
        """
        if muted or not added:
            return False

        loop = asyncio.get_running_loop()
        for item in added:
            self._highlighted.add(item.id)
            previous = self._timers.pop(item.id, None)
            if previous is not None:
                previous.cancel()
            self._timers[item.id] = loop.call_later(
                self.highlight_duration, self._clear_highlight, item.id
            )

        self.detail_logger.debug(
            f"Highlighting {len(added)} items for {self.highlight_duration}s"
        )
        self._fire_audio_alert()
        return True

    def clear(self) -> None:
        """Drop every highlight and cancel pending timers."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._highlighted.clear()

    def close(self) -> None:
        self.clear()
        for task in self._audio_tasks:
            task.cancel()
        self._audio_tasks.clear()

    @code_is_used  # Scheduled through loop.call_later
    def _clear_highlight(self, item_id: str) -> None:
        self._timers.pop(item_id, None)
        self._highlighted.discard(item_id)

    def _fire_audio_alert(self) -> None:
        if self.audio_alert is None:
            return
        if self.focus_predicate is not None and not self.focus_predicate():
            self.detail_logger.debug("View not focused, audio alert suppressed")
            return

        self.alerts_fired += 1
        try:
            outcome = self.audio_alert()
        except Exception as e:  # playback is best effort
            self._log_audio_failure(e)
            return

        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._audio_tasks.add(task)
            task.add_done_callback(self._on_audio_done)

    @code_is_used  # Registered with Task.add_done_callback
    def _on_audio_done(self, task: asyncio.Future[Any]) -> None:
        self._audio_tasks.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log_audio_failure(error)

    def _log_audio_failure(self, error: BaseException) -> None:
        self.status_logger.warning(f"Audio alert failed: {error}")
        self.detail_logger.debug(f"Audio alert failure: {type(error).__name__}: {error}")
