"""
In-memory TTL cache for query results.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar, Any

from shared.logging import get_logger


# Entry lifetime is fixed at five minutes.
DEFAULT_TTL_SECONDS = 300.0

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A stored value and the moment it was written."""

    key: str
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """Time-bounded key/value memo.

    Semantics:
    - ``get`` treats an entry as absent once ``now - stored_at >= ttl``; the
      expired entry stays in the map until the next ``set`` or ``clear``.
    - ``set`` overwrites unconditionally. There is no per-key locking and no
      in-flight deduplication: two pipelines that miss on the same key both
      fetch, and whichever calls ``set`` last wins the slot.
    """

    def __init__(
        self,
        name: str = "query",
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self._hits = 0
        self._misses = 0
        self._disposed = False
        self.logger = get_logger(f"datasource.cache.{name}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.stored_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[V]:
        """Return the live value for ``key`` or ``None``."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._is_expired(entry, self._clock()):
            self._misses += 1
            self.logger.debug("Cache entry expired", key=key, stored_at=entry.stored_at)
            return None

        self._hits += 1
        return entry.value

    def set(self, key: str, value: V) -> CacheEntry[V]:
        """Store ``value`` under ``key``, replacing any previous entry."""
        if self._disposed:
            self.logger.warning("Write to disposed cache ignored", key=key)
            return CacheEntry(key=key, value=value, stored_at=self._clock())

        now = self._clock()
        self._purge_expired(now)
        entry = CacheEntry(key=key, value=value, stored_at=now)
        self._entries[key] = entry
        self.logger.debug("Cached value", key=key, ttl=self.ttl_seconds)
        return entry

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self.logger.debug("Purged expired cache entries", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        """Drop every entry."""
        count = len(self._entries)
        self._entries.clear()
        self.logger.info("Cache cleared", entries=count)

    def dispose(self) -> None:
        """Clear the cache and refuse further writes."""
        self.clear()
        self._disposed = True

    def get_stats(self) -> Dict[str, Any]:
        """Entry and hit/miss counters."""
        now = self._clock()
        live = sum(1 for entry in self._entries.values() if not self._is_expired(entry, now))
        return {
            "name": self.name,
            "entries": len(self._entries),
            "live_entries": live,
            "hits": self._hits,
            "misses": self._misses,
            "ttl_seconds": self.ttl_seconds,
        }
