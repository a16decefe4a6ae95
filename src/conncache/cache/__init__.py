"""Two-tier cache for connection authentication and routing data.

Key components:
- CacheServiceProvider: Hands out the MEMORY and DISK cache services
- TwoTierCacheService: Memory tier with encrypted disk files behind it
- InMemoryCacheService: Per-entry TTL memory tier
- DiskPersistenceService: Encrypted, checksum validated cache files
- CacheKey / ConnectionCache: Cache key and cached value
"""

from conncache.cache.base import (
    CacheClosedError,
    CacheError,
    CachePermissionError,
    CacheService,
)
from conncache.cache.config import CacheConfig
from conncache.cache.disk import DirectoryPathResolver, DiskPersistenceService
from conncache.cache.keys import CacheKey
from conncache.cache.manager import TwoTierCacheService
from conncache.cache.memory import InMemoryCacheService
from conncache.cache.models import (
    AutoPersistingConnectionCache,
    CacheSource,
    ConnectionCache,
    DatabaseOptions,
    EngineOptions,
)
from conncache.cache.provider import CacheServiceProvider, CacheType

__all__ = [
    "AutoPersistingConnectionCache",
    "CacheClosedError",
    "CacheConfig",
    "CacheError",
    "CacheKey",
    "CachePermissionError",
    "CacheService",
    "CacheServiceProvider",
    "CacheSource",
    "CacheType",
    "ConnectionCache",
    "DatabaseOptions",
    "DirectoryPathResolver",
    "DiskPersistenceService",
    "EngineOptions",
    "InMemoryCacheService",
    "TwoTierCacheService",
]
