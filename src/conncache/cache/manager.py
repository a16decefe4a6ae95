"""Two-tier cache: memory first, encrypted disk files behind it."""

import logging
from datetime import timedelta
from typing import Optional

from conncache.cache.base import CacheService
from conncache.cache.disk import DiskPersistenceService
from conncache.cache.keys import CacheKey
from conncache.cache.memory import InMemoryCacheService
from conncache.cache.models import (
    AutoPersistingConnectionCache,
    CacheSource,
    ConnectionCache,
)
from conncache.cache.validation import CacheValidationError, TTLExpiredError

logger = logging.getLogger(__name__)

# tokens are valid for 2 hours, keep cache files 10 minutes less
DEFAULT_DISK_TTL = 110 * 60


class TwoTierCacheService(CacheService):
    """Cache service backed by a memory tier and the disk.

    Writes go to memory synchronously and to disk in the background. Reads
    are served from memory when possible; on a memory miss the disk file is
    checked for age and validated, and a valid entry is promoted into memory.
    Stale, corrupted or tampered files are deleted on the way.

    The disk only ever caches what memory holds. Since background writes are
    not ordered, a file may briefly hold an older value; it is still
    validated before use.
    """

    def __init__(
        self,
        memory_cache: InMemoryCacheService,
        disk_service: DiskPersistenceService,
        disk_ttl: int = DEFAULT_DISK_TTL,
    ):
        """Initialize the two-tier cache.

        Args:
            memory_cache: Memory tier, possibly shared with other services
            disk_service: Disk persistence service
            disk_ttl: Maximum age of cache files in seconds
        """
        self.memory_cache = memory_cache
        self.disk_service = disk_service
        self.disk_ttl = timedelta(seconds=disk_ttl)

    def put(self, key: CacheKey, connection_cache: ConnectionCache) -> None:
        self.memory_cache.put(key, connection_cache)
        self.save_to_disk_async(key, connection_cache)

    def get(self, key: CacheKey) -> Optional[ConnectionCache]:
        connection_cache = self.memory_cache.get(key)
        if connection_cache is not None:
            connection_cache.cache_source = CacheSource.MEMORY
            return connection_cache

        cache_file = self.disk_service.find_file(key)
        if cache_file is None:
            logger.error("Failed to generate the cache file name")
            return None

        if not cache_file.exists():
            logger.debug("Cache file does not exist")
            return None

        try:
            self.disk_service.check_age(cache_file, self.disk_ttl)
            connection_cache = self.disk_service.read(key, cache_file)
        except TTLExpiredError:
            logger.debug("Cache file is too old, deleting it")
            self.disk_service.delete(cache_file)
            return None
        except CacheValidationError as e:
            logger.warning(f"Cache file is invalid, deleting it: {e}")
            self.disk_service.delete(cache_file)
            return None

        if connection_cache is None:
            return None

        connection_cache = self._bind(key, connection_cache)
        # promotion tags the entry as MEMORY, this read was served from disk
        self.memory_cache.put(key, connection_cache)
        connection_cache.cache_source = CacheSource.DISK
        return connection_cache

    def remove(self, key: CacheKey) -> None:
        self.memory_cache.remove(key)
        self.disk_service.delete(self.disk_service.find_file(key))

    def save_to_disk_async(self, key: CacheKey, connection_cache: ConnectionCache):
        """Schedule a background write of the entry to disk."""
        return self.disk_service.save_async(key, connection_cache)

    def new_cache_object(
        self, key: CacheKey, connection_id: str
    ) -> AutoPersistingConnectionCache:
        """Create a connection cache that is saved to disk on every change.

        Args:
            key: Key the connection cache will be stored under
            connection_id: Id of the connection

        Returns:
            AutoPersistingConnectionCache bound to this service
        """
        return AutoPersistingConnectionCache(
            connection_id,
            on_change=lambda cache: self.save_to_disk_async(key, cache),
        )

    def _bind(
        self, key: CacheKey, connection_cache: ConnectionCache
    ) -> AutoPersistingConnectionCache:
        """Copy a loaded connection cache into one that is saved on change."""
        return AutoPersistingConnectionCache(
            connection_cache.connection_id,
            on_change=lambda cache: self.save_to_disk_async(key, cache),
            access_token=connection_cache.access_token,
            system_engine_url=connection_cache.system_engine_url,
            database_options=connection_cache.database_options,
            engine_options=connection_cache.engine_options,
        )

    def close(self, wait: bool = True) -> None:
        """Drain pending disk writes and stop the writer pool."""
        self.disk_service.shutdown(wait=wait)
