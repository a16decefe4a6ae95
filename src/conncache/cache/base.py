"""Cache service contract and backend errors."""

from abc import ABC, abstractmethod
from typing import Optional

from conncache.cache.keys import CacheKey
from conncache.cache.models import ConnectionCache


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CachePermissionError(CacheError):
    """Raised when cache directory permissions are insufficient."""

    pass


class CacheClosedError(CacheError):
    """Raised when a cache service is used after it was closed."""

    pass


class CacheService(ABC):
    """Caches connection data per cache key.

    Ordinary misses (unknown key, expired or invalid entry) are reported as
    None. CacheError is only raised when the backend cannot be used at all.
    """

    @abstractmethod
    def put(self, key: CacheKey, connection_cache: ConnectionCache) -> None:
        """Save an entry, overwriting any existing entry for the key.

        Raises:
            CacheError: If the cache backend cannot be used
        """
        pass

    @abstractmethod
    def get(self, key: CacheKey) -> Optional[ConnectionCache]:
        """Return the cached entry for the key, or None.

        Raises:
            CacheError: If the cache backend cannot be used
        """
        pass

    @abstractmethod
    def remove(self, key: CacheKey) -> None:
        """Remove the entry for the key if present."""
        pass
