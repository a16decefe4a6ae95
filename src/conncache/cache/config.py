"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from conncache.cache.crypto import DEFAULT_FILENAME_EXTENSION
from conncache.cache.disk import DEFAULT_MAX_PENDING_WRITES, DEFAULT_WRITE_WORKERS
from conncache.cache.manager import DEFAULT_DISK_TTL
from conncache.cache.memory import DEFAULT_MEMORY_TTL


@dataclass
class CacheConfig:
    """Configuration for the connection cache.

    Attributes:
        cache_dir: Directory for cache files. None means the OS-specific
            per-user cache directory.
        memory_ttl: Time-to-live of memory entries in seconds (1 hour)
        disk_ttl: Maximum age of cache files in seconds (110 minutes)
        write_workers: Number of background disk writer threads
        max_pending_writes: Disk writes queued beyond this are dropped
        filename_extension: Extension of cache files
    """

    cache_dir: Optional[Path] = None
    memory_ttl: int = DEFAULT_MEMORY_TTL
    disk_ttl: int = DEFAULT_DISK_TTL
    write_workers: int = DEFAULT_WRITE_WORKERS
    max_pending_writes: int = DEFAULT_MAX_PENDING_WRITES
    filename_extension: str = DEFAULT_FILENAME_EXTENSION

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path and limits are sane."""
        if self.cache_dir is not None and not isinstance(self.cache_dir, Path):
            self.cache_dir = Path(self.cache_dir)
        if self.cache_dir is not None:
            self.cache_dir = self.cache_dir.expanduser()

        for name in ("memory_ttl", "disk_ttl", "write_workers", "max_pending_writes"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def load(cls, config_path: Path) -> "CacheConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file

        Returns:
            CacheConfig instance, defaults if the file does not exist
        """
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if data.get("cache_dir"):
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to a JSON file.

        Args:
            config_path: Path to config file
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir) if self.cache_dir else None,
            "memory_ttl": self.memory_ttl,
            "disk_ttl": self.disk_ttl,
            "write_workers": self.write_workers,
            "max_pending_writes": self.max_pending_writes,
            "filename_extension": self.filename_extension,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            CONNCACHE_DIR: Cache directory path
            CONNCACHE_MEMORY_TTL: Memory TTL in seconds
            CONNCACHE_DISK_TTL: Maximum cache file age in seconds
            CONNCACHE_WRITE_WORKERS: Number of disk writer threads
            CONNCACHE_MAX_PENDING_WRITES: Maximum queued disk writes

        Returns:
            CacheConfig instance
        """
        kwargs = {}

        if os.getenv("CONNCACHE_DIR"):
            kwargs["cache_dir"] = Path(os.getenv("CONNCACHE_DIR"))

        if os.getenv("CONNCACHE_MEMORY_TTL"):
            kwargs["memory_ttl"] = int(os.getenv("CONNCACHE_MEMORY_TTL"))

        if os.getenv("CONNCACHE_DISK_TTL"):
            kwargs["disk_ttl"] = int(os.getenv("CONNCACHE_DISK_TTL"))

        if os.getenv("CONNCACHE_WRITE_WORKERS"):
            kwargs["write_workers"] = int(os.getenv("CONNCACHE_WRITE_WORKERS"))

        if os.getenv("CONNCACHE_MAX_PENDING_WRITES"):
            kwargs["max_pending_writes"] = int(
                os.getenv("CONNCACHE_MAX_PENDING_WRITES")
            )

        return cls(**kwargs)
