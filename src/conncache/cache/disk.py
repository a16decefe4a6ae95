"""On-disk persistence of connection caches.

Each cache key maps to one file in the per-user cache directory. The file
holds the JSON record of the connection cache (access token encrypted,
checksum included), encrypted as a whole with the key's secret. Writes happen
on a small background pool so the caller never waits for the disk; reads are
synchronous and fully validated.
"""

import json
import logging
import os
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path
from typing import Optional

from conncache.cache import crypto
from conncache.cache.keys import CacheKey
from conncache.cache.models import (
    CacheSource,
    ConnectionCache,
    from_record,
    to_record,
)
from conncache.cache.validation import (
    DeserializationError,
    TTLExpiredError,
    is_file_older_than,
)

logger = logging.getLogger(__name__)

APP_NAME = "conncache"
DEFAULT_WRITE_WORKERS = 2
DEFAULT_MAX_PENDING_WRITES = 64


class DirectoryPathResolver:
    """Resolves the per-user directory where cache files are written."""

    def __init__(self, app_name: str = APP_NAME):
        self.app_name = app_name

    def default_directory(self) -> Path:
        """OS-specific cache directory, without creating it."""
        if sys.platform.startswith("win"):
            local_app_data = os.environ.get("LOCALAPPDATA")
            base = Path(local_app_data) if local_app_data else Path.home() / "AppData" / "Local"
            return base / self.app_name / "cache"

        if sys.platform == "darwin":
            return Path.home() / "Library" / "Caches" / self.app_name

        xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
        base = Path(xdg_cache_home) if xdg_cache_home else Path.home() / ".cache"
        return base / self.app_name

    def resolve(self) -> Path:
        """Resolve and create the cache directory.

        Failure to create the directory is logged; writes to it will then fail
        and be dropped.
        """
        directory = self.default_directory()
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create the cache directory {directory}: {e}")
        return directory


class DiskPersistenceService:
    """Reads, writes and deletes cache files.

    Every operation is failure tolerant: write failures are logged and
    dropped, read failures are reported as misses. Failed validation is
    signalled with CacheValidationError so callers can delete the file.

    Attributes:
        reads: Number of cache files read so far
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        directory_resolver: Optional[DirectoryPathResolver] = None,
        filename_extension: str = crypto.DEFAULT_FILENAME_EXTENSION,
        write_workers: int = DEFAULT_WRITE_WORKERS,
        max_pending_writes: int = DEFAULT_MAX_PENDING_WRITES,
    ):
        """Initialize the disk service.

        Args:
            cache_dir: Directory for cache files. If None, the directory
                resolver picks the OS-specific default on first use.
            directory_resolver: Resolver used when cache_dir is None
            filename_extension: Extension of cache files
            write_workers: Number of background writer threads
            max_pending_writes: Writes queued beyond this are dropped
        """
        self._cache_dir = Path(cache_dir).expanduser() if cache_dir else None
        self._directory_resolver = directory_resolver or DirectoryPathResolver()
        self.filename_extension = filename_extension
        self._executor = ThreadPoolExecutor(
            max_workers=write_workers, thread_name_prefix="conncache-writer"
        )
        self._pending = threading.BoundedSemaphore(max_pending_writes)
        self._dir_lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._closed = False
        self.reads = 0

    @property
    def cache_dir(self) -> Path:
        """Cache directory, resolved lazily."""
        with self._dir_lock:
            if self._cache_dir is None:
                self._cache_dir = self._directory_resolver.resolve()
            return self._cache_dir

    def find_file(self, cache_key: CacheKey) -> Optional[Path]:
        """Path of the cache file for a key, whether it exists or not.

        Returns:
            Path, or None if no filename can be derived for the key
        """
        filename = crypto.filename_for(cache_key, self.filename_extension)
        if filename is None:
            return None
        return self.cache_dir / filename

    def check_age(self, path: Path, max_age: timedelta) -> None:
        """Raise TTLExpiredError if a cache file is older than max_age."""
        if is_file_older_than(path, max_age):
            raise TTLExpiredError(f"Cache file is older than {max_age}")

    def read(self, cache_key: CacheKey, path: Path) -> Optional[ConnectionCache]:
        """Read and validate a cache file.

        Args:
            cache_key: Key the file belongs to
            path: Cache file

        Returns:
            ConnectionCache tagged as coming from disk, or None if the file
            cannot be read (missing, permissions)

        Raises:
            CacheValidationError: If the content cannot be decrypted, decoded
                or fails the checksum check
        """
        with self._counter_lock:
            self.reads += 1

        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise DeserializationError(f"Cache file is not valid text: {e}") from e
        except OSError as e:
            logger.warning(f"Failed to read cache file {path.name}: {e}")
            return None

        decrypted = crypto.decrypt(content, cache_key.encryption_key)
        if decrypted is None:
            raise DeserializationError("Cannot decrypt the cache file content")

        try:
            record = json.loads(decrypted)
        except ValueError as e:
            raise DeserializationError(f"Cache file is not valid JSON: {e}") from e

        connection_cache = from_record(record, cache_key.encryption_key)
        connection_cache.cache_source = CacheSource.DISK
        return connection_cache

    def save_async(
        self, cache_key: CacheKey, connection_cache: ConnectionCache
    ) -> Optional[Future]:
        """Schedule a write of the connection cache to its file.

        Returns:
            Future of the write, or None if the write was dropped because the
            service is closed or too many writes are pending
        """
        if self._closed:
            logger.debug("Disk service is closed, not saving connection cache")
            return None

        if not self._pending.acquire(blocking=False):
            logger.warning("Too many pending cache writes, dropping this one")
            return None

        try:
            future = self._executor.submit(self.save, cache_key, connection_cache)
        except RuntimeError:
            # executor shut down concurrently
            self._pending.release()
            logger.debug("Disk service is closed, not saving connection cache")
            return None

        future.add_done_callback(lambda _: self._pending.release())
        return future

    def save(self, cache_key: CacheKey, connection_cache: ConnectionCache) -> bool:
        """Write the connection cache to its file synchronously.

        Never raises; failures are logged.

        Returns:
            True if the file was written
        """
        try:
            return self._save(cache_key, connection_cache)
        except Exception as e:
            logger.warning(f"Unexpected error saving connection cache to disk: {e}")
            return False

    def _save(self, cache_key: CacheKey, connection_cache: ConnectionCache) -> bool:
        path = self.find_file(cache_key)
        if path is None:
            logger.warning("Cannot save the connection cache to disk")
            return False

        record = to_record(connection_cache, cache_key.encryption_key)
        if record is None:
            logger.warning("Failed to encode the connection cache, not saving it")
            return False

        content = crypto.encrypt(json.dumps(record), cache_key.encryption_key)
        if content is None:
            logger.warning("Failed to encrypt the connection cache, not saving it")
            return False

        return self._write_atomically(path, content)

    def _write_atomically(self, path: Path, content: str) -> bool:
        """Write to a temp file and move it over the cache file.

        Readers see either the previous content or the new one. An existing
        file keeps its timestamps: the age of a cache file is measured from
        when it was first created, so rewriting it does not extend its life.
        """
        # one temp file per writer thread, two writes of the same key may overlap
        temp_path = path.with_name(f"{path.name}.{threading.get_ident()}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                stat = path.stat()
            except FileNotFoundError:
                logger.debug("Creating a new file for on disk caching")
                stat = None

            temp_path.write_text(content, encoding="utf-8")
            if stat is not None:
                os.utime(temp_path, ns=(stat.st_atime_ns, stat.st_mtime_ns))
            os.replace(temp_path, path)
        except OSError as e:
            logger.warning(f"Failed to write to cache file: {e}")
            self._discard_temp_file(temp_path)
            return False
        return True

    def _discard_temp_file(self, temp_path: Path) -> None:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove temp cache file {temp_path.name}: {e}")

    def delete(self, path: Optional[Path]) -> None:
        """Delete a cache file; missing files are ignored."""
        if path is None:
            return
        try:
            path.unlink()
            logger.debug(f"Deleted cache file {path.name}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete the cache file {path.name}: {e}")

    def list_files(self):
        """Cache files currently in the cache directory."""
        directory = self.cache_dir
        if not directory.is_dir():
            return []
        return sorted(directory.glob(f"*.{self.filename_extension}"))

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting writes and stop the writer pool.

        Args:
            wait: Block until pending writes have completed
        """
        self._closed = True
        self._executor.shutdown(wait=wait)
