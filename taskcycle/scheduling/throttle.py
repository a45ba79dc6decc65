from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import redis

from taskcycle.domain.ports import ThrottleStore

logger = logging.getLogger(__name__)

MIN_GAP_SECONDS = 6 * 60 * 60
ENTRY_TTL_SECONDS = 24 * 60 * 60


class InMemoryThrottleStore:
    """Process-local store; entries disappear once their TTL has passed."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> float | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: float, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)


class RedisThrottleStore:
    """Shared store so several processes see the same generation times."""

    def __init__(self, client, prefix: str = "taskcycle:last-generation:") -> None:
        self._client = client
        self._prefix = prefix

    def get(self, key: str) -> float | None:
        raw = self._client.get(self._prefix + key)
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed throttle entry key=%s value=%r", key, raw)
            return None

    def set(self, key: str, value: float, ttl_seconds: int) -> None:
        self._client.set(self._prefix + key, repr(value), ex=ttl_seconds)


class GenerationThrottle:
    def __init__(
            self,
            store: ThrottleStore | None = None,
            *,
            min_gap_seconds: int = MIN_GAP_SECONDS,
            ttl_seconds: int = ENTRY_TTL_SECONDS,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store or InMemoryThrottleStore(clock)
        self._min_gap = min_gap_seconds
        self._ttl = ttl_seconds
        self._clock = clock

    def is_due(self, user_id: str) -> bool:
        last = self._store.get(user_id)
        return last is None or self._clock() - last > self._min_gap

    def mark(self, user_id: str) -> None:
        self._store.set(user_id, self._clock(), self._ttl)


def build_throttle_store(backend: str, redis_url: str | None) -> ThrottleStore:
    if backend == "redis":
        if not redis_url:
            logger.warning("THROTTLE_BACKEND=redis but REDIS_URL is not set; using in-memory throttle")
            return InMemoryThrottleStore()
        return RedisThrottleStore(redis.from_url(redis_url))
    return InMemoryThrottleStore()
