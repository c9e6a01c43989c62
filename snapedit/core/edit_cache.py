"""
Content Cache
=============

In-memory cache mapping a (normalised image identity, instruction) pair to a
previously computed successful EditResult.

Features:
- Time-based expiry (default: 24 hours), purged lazily on lookup
- Maximum entry count (default: 50) with batch eviction of the oldest entries
- Access counting for observability
- A single lock serialises every read-modify-write so concurrent edits
  cannot lose updates or double-evict
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from snapedit.core import config
from snapedit.core.identity import cache_key
from snapedit.core.models import EditResult

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    result: EditResult
    stored_at: float
    access_count: int = 1


class ContentCache:
    """
    Bounded, expiring cache of successful edit results.

    Attributes:
        max_size: Maximum number of entries kept
        ttl_seconds: Age after which an entry is treated as absent
        eviction_batch: Number of oldest entries dropped per eviction pass
    """

    def __init__(
        self,
        max_size: int = config.CACHE_MAX_ENTRIES,
        ttl_seconds: float = config.CACHE_TTL_SECONDS,
        eviction_batch: int = config.CACHE_EVICTION_BATCH,
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.eviction_batch = max(1, eviction_batch)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def lookup(self, identity: str, instruction: str) -> Optional[EditResult]:
        """
        Return the cached result for an (identity, instruction) pair.

        Stale entries are deleted and reported as a miss.
        """
        key = str(cache_key(identity, instruction))
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            if self._clock() - entry.stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                logger.debug(f"Cache entry {key} expired and was purged")
                return None

            entry.access_count += 1
            self.hits += 1

        logger.info(f"Cache hit for prompt: \"{instruction}\"")
        return entry.result

    def store(self, identity: str, instruction: str, result: EditResult) -> None:
        """
        Insert or overwrite the entry for an (identity, instruction) pair.

        Only successful results are cached. When a new key arrives while the
        cache is full, the oldest `eviction_batch` entries are removed first.
        """
        if not result.success:
            logger.debug("Refusing to cache a failed edit result")
            return

        key = str(cache_key(identity, instruction))
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_oldest_locked()

            self._entries[key] = CacheEntry(key=key, result=result, stored_at=self._clock())

        logger.info(f"Cached edit result for: \"{instruction}\"")

    def _evict_oldest_locked(self) -> int:
        oldest = sorted(self._entries.values(), key=lambda e: e.stored_at)[:self.eviction_batch]
        for entry in oldest:
            del self._entries[entry.key]
        logger.info(f"Evicted {len(oldest)} cache entries")
        return len(oldest)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.info("Content cache cleared")

    def stats(self) -> Dict[str, Any]:
        """
        Snapshot of the cache for monitoring.

        Returns:
            Dict with `size`, `max_size`, `hits`, `misses` and `entries`
            (key, access_count, age_ms per entry)
        """
        now = self._clock()
        with self._lock:
            entries = [
                {
                    "key": entry.key,
                    "access_count": entry.access_count,
                    "age_ms": int((now - entry.stored_at) * 1000),
                }
                for entry in self._entries.values()
            ]
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "entries": entries,
            }
