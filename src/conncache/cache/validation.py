"""Checksum and age validation for cached connection data."""

import hashlib
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

CHECKSUM_ALGORITHM = "sha256"


class CacheValidationError(Exception):
    """Base exception for cache validation errors."""

    pass


class TTLExpiredError(CacheValidationError):
    """Raised when a cache file is older than the allowed age."""

    pass


class ChecksumMismatchError(CacheValidationError):
    """Raised when checksum validation fails."""

    pass


class DeserializationError(CacheValidationError):
    """Raised when a cache file cannot be decrypted or decoded."""

    pass


def compute_checksum(connection_cache) -> Optional[str]:
    """Compute the checksum of a connection cache.

    Only the significant fields take part: connection id, access token,
    system engine url, database options and engine options. The cache source
    does not.

    Args:
        connection_cache: ConnectionCache to fingerprint

    Returns:
        Hex digest, or None if connection_cache is None or the hash algorithm
        is unavailable
    """
    if connection_cache is None:
        logger.error("Cannot generate checksum for a missing connection cache")
        return None

    try:
        hasher = hashlib.new(CHECKSUM_ALGORITHM)
    except ValueError:
        logger.error(f"Hash algorithm {CHECKSUM_ALGORITHM} is not available")
        return None

    hasher.update(connection_cache.as_checksum_string().encode("utf-8"))
    return hasher.hexdigest()


def verify_checksum(
    connection_cache, expected_checksum: Optional[str], strict: bool = False
) -> bool:
    """Verify the checksum of a connection cache matches the expected value.

    Args:
        connection_cache: ConnectionCache to verify
        expected_checksum: Checksum read from the persisted record
        strict: If True, raise exception on mismatch; if False, return False

    Returns:
        True if checksums match, False otherwise

    Raises:
        ChecksumMismatchError: If strict=True and checksums don't match
    """
    actual_checksum = compute_checksum(connection_cache)

    if actual_checksum is None or actual_checksum != expected_checksum:
        if strict:
            raise ChecksumMismatchError(
                "Checksum mismatch for connection cache "
                f"{getattr(connection_cache, 'connection_id', None)!r}"
            )
        return False

    return True


def file_age(path: Union[str, Path]) -> timedelta:
    """Age of a file, measured from its modification time.

    Raises:
        OSError: If the file cannot be stat'ed
    """
    modified = datetime.fromtimestamp(os.stat(path).st_mtime, tz=timezone.utc)
    return datetime.now(timezone.utc) - modified


def is_file_older_than(path: Union[str, Path], max_age: timedelta) -> bool:
    """Check whether a file is older than max_age.

    A file whose age cannot be determined is reported as too old, so callers
    never use it.

    Args:
        path: File to check
        max_age: Maximum allowed age

    Returns:
        True if the file is older than max_age or cannot be inspected
    """
    try:
        return file_age(path) > max_age
    except OSError as e:
        logger.warning(f"Failed to check the age of cache file {path}: {e}")
        return True


def get_age_remaining(path: Union[str, Path], max_age: timedelta) -> Optional[int]:
    """Seconds left before a file becomes too old.

    Returns:
        Seconds remaining (0 if already stale), or None if the file cannot be
        inspected
    """
    try:
        remaining = max_age - file_age(path)
    except OSError:
        return None
    return max(0, int(remaining.total_seconds()))
