"""conncache: Memory and encrypted on-disk cache of database connection state."""

__version__ = "0.1.0"

from conncache.cache import (
    CacheConfig,
    CacheKey,
    CacheServiceProvider,
    CacheType,
    ConnectionCache,
    DatabaseOptions,
    EngineOptions,
)

__all__ = [
    "CacheConfig",
    "CacheKey",
    "CacheServiceProvider",
    "CacheType",
    "ConnectionCache",
    "DatabaseOptions",
    "EngineOptions",
    "__version__",
]
