from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Generic, Optional, TypedDict, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheEntry(TypedDict):
    data: Any
    timestamp: int


class CacheStats(TypedDict):
    name: str
    ttl_ms: int
    entries: int
    hits: int
    misses: int
    last_refresh: Optional[int]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TTLCache(Generic[T]):
    """Read-through cache keyed by platform id with a fixed time-to-live.

    Concurrent misses for one key may each call the fetcher; the slot is
    replaced whole, so the last write wins.
    """

    def __init__(self, name: str, ttl_ms: int, clock: Callable[[], int] = _now_ms) -> None:
        self.name = name
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._store: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._last_refresh: Optional[int] = None

    def _is_live(self, entry: CacheEntry, now: int) -> bool:
        return now - entry["timestamp"] < self.ttl_ms

    def get(self, key: str, fetcher: Callable[[str], T]) -> T:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and self._is_live(entry, now):
                self._hits += 1
                return entry["data"]
            self._misses += 1

        data = fetcher(key)
        self.set(key, data)
        return data

    def set(self, key: str, data: T) -> None:
        now = self._clock()
        with self._lock:
            self._store[key] = {"data": data, "timestamp": now}
            self._last_refresh = now
        logger.debug("%s cache refreshed %s", self.name, key)

    def prune(self, now: Optional[int] = None) -> int:
        now = self._clock() if now is None else now
        with self._lock:
            expired = [key for key, entry in self._store.items() if not self._is_live(entry, now)]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug("Pruned %s expired %s cache entries", len(expired), self.name)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> CacheStats:
        with self._lock:
            return {
                "name": self.name,
                "ttl_ms": self.ttl_ms,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "last_refresh": self._last_refresh,
            }
