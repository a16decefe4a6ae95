"""In-memory cache tier with per-entry TTL."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from conncache.cache.base import CacheService
from conncache.cache.keys import CacheKey
from conncache.cache.models import CacheSource, ConnectionCache

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_TTL = 3600  # 1 hour


@dataclass
class _Entry:
    value: ConnectionCache
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryCacheService(CacheService):
    """Thread-safe map from cache key value to connection cache.

    Every entry expires ttl seconds after it was inserted; reading an entry
    does not extend its life. Expired entries are dropped lazily on read and
    by :meth:`purge_expired`.
    """

    def __init__(
        self,
        ttl: int = DEFAULT_MEMORY_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the memory tier.

        Args:
            ttl: Time-to-live of each entry in seconds
            clock: Monotonic clock returning seconds, injectable for tests
        """
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.RLock()

    def put(self, key: CacheKey, connection_cache: ConnectionCache) -> None:
        connection_cache.cache_source = CacheSource.MEMORY
        expires_at = self._clock() + self.ttl
        with self._lock:
            self._entries[key.value] = _Entry(connection_cache, expires_at)

    def get(self, key: CacheKey) -> Optional[ConnectionCache]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key.value)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key.value]
                logger.debug("Memory cache entry expired")
                return None
            return entry.value

    def remove(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key.value, None)

    def purge_expired(self) -> int:
        """Drop all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        """Number of unexpired entries."""
        self.purge_expired()
        with self._lock:
            return len(self._entries)
