"""
Round-robin assignee allocator.

The cursor is process-local and resets on restart. For a pool that does not
change between calls, N calls visit each of the N members once, in order.
"""
import logging
import threading

from leadflow.config import ADMIN_ROLES
from leadflow.models.user import User

logger = logging.getLogger('automation.round_robin')


class RoundRobinAllocator:
    """Cyclic cursor over an ordered pool of assignee ids."""

    def __init__(self):
        self._cursor = -1
        self._lock = threading.Lock()

    @property
    def cursor(self):
        return self._cursor

    def next_assignee(self, pool):
        """
        Return the next id from `pool`, or None when the pool is empty.

        An empty pool leaves the cursor where it is.
        """
        pool = list(pool or [])
        if not pool:
            logger.warning("No eligible assignees — round-robin skipped")
            return None
        with self._lock:
            self._cursor = (self._cursor + 1) % len(pool)
            return pool[self._cursor]

    def reset(self):
        with self._lock:
            self._cursor = -1


def eligible_assignee_ids(session):
    """Active admin users, ordered by creation so the rotation is stable."""
    rows = (
        session.query(User.id)
        .filter(User.role.in_(ADMIN_ROLES), User.is_active.is_(True))
        .order_by(User.created_at, User.id)
        .all()
    )
    return [row.id for row in rows]
