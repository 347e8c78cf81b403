"""
Result cache for ranking pipeline outputs.

Entries are keyed by request shape (subject id, variant, kind) and hold
the RecommendationResult by reference until their TTL expires. The
catalog can change underneath a cached entry; staleness up to the TTL
is accepted and nothing invalidates entries early.

The cache is constructed once at service start-up and injected into
the RecommendationService. It does not survive restarts.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, NamedTuple, Optional

from ..config.settings import CacheSettings
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


class CacheKey(NamedTuple):
    """Cache key: (subject id or "all", variant, recommendation kind)."""

    subject: str
    variant: str
    kind: str

    def __str__(self) -> str:
        return f"recommendations:{self.kind}:{self.subject}:{self.variant}"


@dataclass
class ResultCacheConfig:
    """Configuration for the result cache."""

    enabled: bool = True

    # TTL settings
    similar_items_ttl_seconds: int = 3600
    new_arrivals_ttl_seconds: int = 14400
    personalized_ttl_seconds: int = 900

    # 0 means unbounded (TTL expiry only); otherwise LRU eviction beyond this size
    max_entries: int = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "ResultCacheConfig":
        return cls(
            enabled=settings.enabled,
            similar_items_ttl_seconds=settings.similar_items_ttl_seconds,
            new_arrivals_ttl_seconds=settings.new_arrivals_ttl_seconds,
            personalized_ttl_seconds=settings.personalized_ttl_seconds,
            max_entries=settings.max_entries,
        )


class _Entry(NamedTuple):
    value: Any
    expires_at: float


class ResultCache(ABC):
    """Abstract base class for result caches."""

    @abstractmethod
    def get(self, key: CacheKey) -> Optional[Any]:
        """Get a cached value.

        Args:
            key: Cache key.

        Returns:
            The stored value, or None when absent or expired.
        """
        pass

    @abstractmethod
    def set(self, key: CacheKey, value: Any, ttl_seconds: float) -> None:
        """Store a value until now + ttl_seconds.

        Args:
            key: Cache key.
            value: Value to store (by reference).
            ttl_seconds: Time to live in seconds.
        """
        pass

    @abstractmethod
    def delete(self, key: CacheKey) -> bool:
        """Remove an entry. Returns True if one was present."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        pass

    def get_or_set(
        self,
        key: CacheKey,
        factory: Callable[[], Any],
        ttl_seconds: float,
    ) -> Any:
        """Return the cached value, computing and storing it on a miss.

        Concurrent misses on the same key may each call factory; the
        last write wins.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = factory()
        self.set(key, value, ttl_seconds)
        return value


class InMemoryResultCache(ResultCache):
    """Thread-safe in-memory TTL cache.

    All reads and writes go through one lock, so a reader never observes
    a partially written entry. Expired entries are dropped lazily on
    access or by purge_expired().

    Example:
        >>> cache = InMemoryResultCache(ResultCacheConfig())
        >>> cache.set(CacheKey("r1", "control", "similar"), result, 3600)
        >>> cache.get(CacheKey("r1", "control", "similar")) is result
        True
    """

    def __init__(
        self,
        config: Optional[ResultCacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the cache.

        Args:
            config: Cache configuration.
            clock: Returns the current time in seconds.
        """
        self.config = config or ResultCacheConfig()
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, _Entry]" = OrderedDict()
        self._lock = threading.RLock()

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._expirations = 0
        self._evictions = 0

    def get(self, key: CacheKey) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.expires_at <= self._clock():
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: CacheKey, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)
            self._entries.move_to_end(key)
            self._sets += 1

            max_entries = self.config.max_entries
            if max_entries > 0:
                while len(self._entries) > max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    logger.debug(f"Evicted cache entry {evicted}")

    def delete(self, key: CacheKey) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)

        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "sets": self._sets,
                "expirations": self._expirations,
                "evictions": self._evictions,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "max_entries": self.config.max_entries,
            }


class NullResultCache(ResultCache):
    """Cache that stores nothing; used when caching is disabled."""

    def __init__(self):
        self._misses = 0

    def get(self, key: CacheKey) -> Optional[Any]:
        self._misses += 1
        return None

    def set(self, key: CacheKey, value: Any, ttl_seconds: float) -> None:
        return None

    def delete(self, key: CacheKey) -> bool:
        return False

    def clear(self) -> None:
        return None

    def get_stats(self) -> Dict[str, Any]:
        return {"size": 0, "hits": 0, "misses": self._misses, "enabled": False}


def create_result_cache(
    config: Optional[ResultCacheConfig] = None,
    clock: Callable[[], float] = time.time,
) -> ResultCache:
    """Factory function to create a result cache.

    Args:
        config: Cache configuration.
        clock: Time source for TTL computation.

    Returns:
        ResultCache instance.
    """
    config = config or ResultCacheConfig()
    if not config.enabled:
        logger.info("Recommendation result cache disabled")
        return NullResultCache()
    return InMemoryResultCache(config, clock=clock)
