"""In-memory TTL cache for extracted video metadata and chosen formats.

Entries age from insertion only: a hit never refreshes an entry, so YouTube's
signed stream URLs are re-extracted once the TTL passes no matter how hot a
video is. Expired entries are dropped lazily when looked up.

When a put would push the cache past capacity, the globally-oldest entry is
evicted (linear scan) repeatedly until the cache is below 80% of capacity.
Entries inserted on the same clock tick tie, and the scan keeps whichever it
met first.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from ytaudio.services import logger


V = TypeVar("V")

# Fraction of capacity an eviction sweep drains down to
EVICTION_LOW_WATERMARK = 0.8


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its insertion time."""
    key: str
    value: V
    inserted_at: float


class TTLCache(Generic[V]):
    """
    Bounded TTL cache keyed by video id.

    Usage:
        cache = TTLCache(ttl_seconds=3600, max_size=500, name="metadata")
        info = cache.get(video_id)
        if info is None:
            info = await extract(video_id)
            cache.put(video_id, info)
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self._stats = {
            "hits": 0,
            "misses": 0,
            "expirations": 0,
            "evictions": 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry[V]) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[V]:
        """
        Get a cached value.

        Returns:
            The value if present and younger than the TTL, None otherwise.
            An expired entry is removed as a side effect.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        if self._is_expired(entry):
            del self._entries[key]
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            logger.debug(f"Expired {self.name} entry for {key}", "cache", {"video_id": key})
            return None

        self._stats["hits"] += 1
        return entry.value

    def put(self, key: str, value: V) -> None:
        """Insert or replace a value, evicting the oldest entries when full."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict()

        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())

    def _evict(self) -> None:
        """Drop globally-oldest entries until below the low watermark."""
        target = int(self.max_size * EVICTION_LOW_WATERMARK)
        evicted = 0
        while self._entries and len(self._entries) >= max(target, 1):
            oldest_key = None
            oldest_at = None
            for key, entry in self._entries.items():
                if oldest_at is None or entry.inserted_at < oldest_at:
                    oldest_key = key
                    oldest_at = entry.inserted_at
            del self._entries[oldest_key]
            evicted += 1

        self._stats["evictions"] += evicted
        logger.debug(
            f"Evicted {evicted} {self.name} entries",
            "cache",
            {"size": len(self._entries), "max_size": self.max_size},
        )

    def delete(self, key: str) -> bool:
        """Remove a single entry. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Clear the entire cache and return how many entries were dropped."""
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} {self.name} entries", "cache")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            "name": self.name,
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "hit_rate": round(self._stats["hits"] / max(1, lookups) * 100, 1),
            "expirations": self._stats["expirations"],
            "evictions": self._stats["evictions"],
        }
