"""Registry of the cache services available to connections.

The application creates one provider for the process and passes it to the
code that needs a cache. Both services share one memory tier, so entries
warmed through the memory-only service are visible through the disk-backed
one and the other way around.
"""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from conncache.cache.base import CacheClosedError, CachePermissionError, CacheService
from conncache.cache.config import CacheConfig
from conncache.cache.disk import DirectoryPathResolver, DiskPersistenceService
from conncache.cache.manager import TwoTierCacheService
from conncache.cache.memory import InMemoryCacheService

logger = logging.getLogger(__name__)


class CacheType(str, Enum):
    """Kinds of cache service a provider hands out."""

    MEMORY = "MEMORY"
    DISK = "DISK"


class CacheServiceProvider:
    """Builds the MEMORY and DISK cache services once and hands them out.

    Example:
        >>> with CacheServiceProvider(CacheConfig(cache_dir=tmp)) as provider:
        ...     cache = provider.get_cache_service(CacheType.DISK)
        ...     cache.put(key, connection_cache)
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        directory_resolver: Optional[DirectoryPathResolver] = None,
    ):
        """Initialize the provider.

        Args:
            config: Cache configuration (defaults if None)
            directory_resolver: Resolver for the cache directory when the
                config does not set one

        Raises:
            CachePermissionError: If an explicit cache directory cannot be
                created
        """
        self.config = config or CacheConfig()
        if self.config.cache_dir is not None:
            _ensure_directory(self.config.cache_dir)

        self.memory_cache = InMemoryCacheService(ttl=self.config.memory_ttl)
        self.disk_service = DiskPersistenceService(
            cache_dir=self.config.cache_dir,
            directory_resolver=directory_resolver,
            filename_extension=self.config.filename_extension,
            write_workers=self.config.write_workers,
            max_pending_writes=self.config.max_pending_writes,
        )
        self.disk_cache = TwoTierCacheService(
            self.memory_cache, self.disk_service, disk_ttl=self.config.disk_ttl
        )
        self._services: Dict[CacheType, CacheService] = {
            CacheType.MEMORY: self.memory_cache,
            CacheType.DISK: self.disk_cache,
        }
        self._lock = threading.Lock()
        self._closed = False

    def get_cache_service(self, cache_type: Union[CacheType, str]) -> CacheService:
        """Return the cache service for a cache type.

        Args:
            cache_type: CacheType or its name ("MEMORY", "DISK")

        Raises:
            ValueError: If the cache type is unknown
            CacheClosedError: If the provider was closed
        """
        if isinstance(cache_type, str) and not isinstance(cache_type, CacheType):
            cache_type = cache_type.upper()
        try:
            resolved = CacheType(cache_type)
        except ValueError:
            raise ValueError(f"Unknown cache type: {cache_type!r}") from None

        with self._lock:
            if self._closed:
                raise CacheClosedError("Cache service provider is closed")
            return self._services[resolved]

    def close(self, wait: bool = True) -> None:
        """Drain pending disk writes and stop the writer pool.

        Args:
            wait: Block until pending writes have completed
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.disk_cache.close(wait=wait)

    def __enter__(self) -> "CacheServiceProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _ensure_directory(cache_dir: Path) -> None:
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        raise CachePermissionError(
            f"Cannot create cache directory at {cache_dir}: {e}"
        ) from e
    except OSError as e:
        logger.warning(f"Error creating cache directory {cache_dir}: {e}")
