from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from taskcycle.domain.filters import InstanceFilter
from taskcycle.domain.ports import TaskStore

from .clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DAYS_PAST_DUE = 7


class ExpirationCleaner:
    """Removes open instances that stayed overdue past the retention window."""

    def __init__(self, store: TaskStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def cleanup_expired_instances(self, days_past_due: int = DEFAULT_DAYS_PAST_DUE) -> int:
        cutoff = self._clock() - timedelta(days=days_past_due)
        try:
            deleted = self._store.delete_instances(InstanceFilter(is_completed=False, due_before=cutoff))
        except Exception:
            logger.exception("cleanup_expired_instances failed cutoff=%s", cutoff.isoformat())
            raise
        logger.info("Cleaned up %s expired recurring instances (due before %s)", deleted, cutoff.isoformat())
        return deleted
