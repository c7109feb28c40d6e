"""
Denormalized counters kept on parent rows (likes, comments_count,
current_submissions).

The parent counter is adjusted after the child row is written. There is no
transaction spanning both writes, so ``ConsistencyMode`` decides what happens
when the adjustment fails:

* ``best_effort`` - keep the child write, log the failure, report success.
* ``compensate``  - undo the child write and fail the request.
* ``reconcile``   - recount the children instead of incrementing, so a retry
  or a later call repairs any drift.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from pymongo.errors import PyMongoError

from database import Store

logger = logging.getLogger(__name__)


class ConsistencyMode(str, Enum):
    BEST_EFFORT = "best_effort"
    COMPENSATE = "compensate"
    RECONCILE = "reconcile"


class CounterSyncError(Exception):
    """The counter could not be updated and the primary write was rolled back."""


@dataclass(frozen=True)
class Counter:
    table: str
    field: str
    source: str
    source_key: str

    @property
    def name(self) -> str:
        return f"{self.table}.{self.field}"


POST_LIKES = Counter("board_posts", "likes", "post_likes", "post_id")
POST_COMMENTS = Counter("board_posts", "comments_count", "comments", "post_id")
COMMENT_LIKES = Counter("comments", "likes", "comment_likes", "comment_id")
ASSIGNMENT_SUBMISSIONS = Counter(
    "assignments", "current_submissions", "assignment_submissions", "assignment_id"
)

ALL_COUNTERS = (POST_LIKES, POST_COMMENTS, COMMENT_LIKES, ASSIGNMENT_SUBMISSIONS)


def recount(store: Store, counter: Counter, parent_id: str) -> int:
    total = store.count(counter.source, {counter.source_key: parent_id})
    store.update(counter.table, {"_id": parent_id}, {counter.field: total}, touch=False)
    return total


def reconcile_all(store: Store, counter: Counter) -> int:
    """Recount ``counter`` on every parent row. Returns how many rows changed."""
    changed = 0
    for parent in store.select(counter.table):
        actual = store.count(counter.source, {counter.source_key: parent["_id"]})
        if parent.get(counter.field) != actual:
            store.update(counter.table, {"_id": parent["_id"]}, {counter.field: actual}, touch=False)
            changed += 1
    if changed:
        logger.warning("Reconciled %s on %d row(s)", counter.name, changed)
    return changed


class CounterSync:
    def __init__(self, store: Store, mode: ConsistencyMode = ConsistencyMode.BEST_EFFORT):
        self.store = store
        self.mode = ConsistencyMode(mode)

    def adjust(
        self,
        counter: Counter,
        parent_id: str,
        delta: int,
        undo: Optional[Callable[[], None]] = None,
    ) -> None:
        try:
            if self.mode is ConsistencyMode.RECONCILE:
                recount(self.store, counter, parent_id)
            else:
                self.store.increment(counter.table, parent_id, counter.field, delta)
        except PyMongoError:
            logger.exception("Counter %s update failed for %s (delta=%d)", counter.name, parent_id, delta)
            if self.mode is ConsistencyMode.COMPENSATE:
                if undo is not None:
                    undo()
                raise CounterSyncError(f"{counter.name} could not be updated")

    def reconcile(self) -> Dict[str, int]:
        return {c.name: reconcile_all(self.store, c) for c in ALL_COUNTERS}
