# SPDX-License-Identifier: MIT
"""Delta reconciliation between a fetched feed and the ids already observed."""

from collections.abc import Iterable

from .logging_config import get_detail_logger
from .models import FeedItem, FeedState, ReconcileResult


detail_logger = get_detail_logger()


def reconcile(state: FeedState, fetched_items: Iterable[FeedItem]) -> ReconcileResult:
    """Compute the items that appeared since the previous reconciliation.

    The first reconciliation of a state only records the ids it sees and
    reports nothing, so opening a view never announces existing records as
    new. After that, every id not seen before is reported once, in fetch
    order, and ids are never forgotten even if they drop out of a later fetch.

    The reconciler cannot tell when the underlying query changes shape. A
    caller switching queries (a different date window, say) must ``reset``
    the state first, or records of the new window will surface as new.

    Args:
        state: Ids observed so far
        fetched_items: Freshly fetched, normalized items

    Returns:
        The newly appeared items and the next state
    """
    items = list(fetched_items)
    current_ids = frozenset(item.id for item in items)

    if not state.has_completed_initial_load:
        detail_logger.debug(
            f"Initial load absorbed {len(current_ids)} ids without reporting a delta"
        )
        return ReconcileResult(
            added=[],
            state=FeedState(known_ids=current_ids, has_completed_initial_load=True),
        )

    added: list[FeedItem] = []
    reported: set[str] = set()
    for item in items:
        if item.id in state.known_ids or item.id in reported:
            continue
        added.append(item)
        reported.add(item.id)

    next_state = FeedState(
        known_ids=state.known_ids | current_ids, has_completed_initial_load=True
    )
    if added:
        detail_logger.debug(
            f"Reconciliation found {len(added)} new items: {[i.id for i in added]}"
        )
    return ReconcileResult(added=added, state=next_state)


def reset(state: FeedState | None = None) -> FeedState:
    """Return a state that will absorb the next fetch silently.

    The given state, if any, is discarded.
    """
    return FeedState()


class DeltaReconciler:
    """Holds one view session's FeedState and reconciles fetches against it."""

    def __init__(self) -> None:
        self.state = FeedState()

    def reconcile(self, fetched_items: Iterable[FeedItem]) -> list[FeedItem]:
        result = reconcile(self.state, fetched_items)
        self.state = result.state
        return result.added

    def reset(self) -> None:
        self.state = reset()
