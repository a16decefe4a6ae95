"""Connection cache data model and its persisted record form."""

import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from conncache.cache import crypto
from conncache.cache.validation import (
    ChecksumMismatchError,
    DeserializationError,
    compute_checksum,
    verify_checksum,
)

logger = logging.getLogger(__name__)

Parameter = Tuple[str, str]


class CacheSource(str, Enum):
    """Tier a connection cache was served from."""

    MEMORY = "MEMORY"
    DISK = "DISK"


def _as_parameters(parameters: Optional[Iterable[Any]]) -> Tuple[Parameter, ...]:
    if parameters is None:
        return ()
    return tuple((str(key), str(value)) for key, value in parameters)


@dataclass(frozen=True)
class DatabaseOptions:
    """Parameters learned from a "USE DATABASE" response, in server order."""

    parameters: Tuple[Parameter, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "parameters", _as_parameters(self.parameters))


@dataclass(frozen=True)
class EngineOptions:
    """Engine url and parameters learned from a "USE ENGINE" response."""

    engine_url: Optional[str] = None
    parameters: Tuple[Parameter, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, "parameters", _as_parameters(self.parameters))


class ConnectionCache:
    """Authentication and routing facts cached for one logical connection.

    Holds the access token in plaintext; it is only encrypted when the cache
    is written to disk. Equality is structural over the fields that take part
    in the checksum.
    """

    def __init__(
        self,
        connection_id: str,
        access_token: Optional[str] = None,
        system_engine_url: Optional[str] = None,
        database_options: Optional[Dict[str, DatabaseOptions]] = None,
        engine_options: Optional[Dict[str, EngineOptions]] = None,
    ):
        self._lock = threading.RLock()
        self.connection_id = connection_id
        self._access_token = access_token
        self._system_engine_url = system_engine_url
        self._database_options: Dict[str, DatabaseOptions] = dict(
            database_options or {}
        )
        self._engine_options: Dict[str, EngineOptions] = dict(engine_options or {})
        self.cache_source: Optional[CacheSource] = None

    def _changed(self) -> None:
        """Hook called after every mutation of a significant field."""

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @access_token.setter
    def access_token(self, value: Optional[str]) -> None:
        with self._lock:
            self._access_token = value
        self._changed()

    @property
    def system_engine_url(self) -> Optional[str]:
        return self._system_engine_url

    @system_engine_url.setter
    def system_engine_url(self, value: Optional[str]) -> None:
        with self._lock:
            self._system_engine_url = value
        self._changed()

    @property
    def database_options(self) -> Dict[str, DatabaseOptions]:
        """Copy of the database name to options mapping."""
        with self._lock:
            return dict(self._database_options)

    @property
    def engine_options(self) -> Dict[str, EngineOptions]:
        """Copy of the engine name to options mapping."""
        with self._lock:
            return dict(self._engine_options)

    def get_database_options(self, database_name: str) -> Optional[DatabaseOptions]:
        with self._lock:
            return self._database_options.get(database_name)

    def set_database_options(
        self, database_name: str, database_options: DatabaseOptions
    ) -> None:
        with self._lock:
            self._database_options[database_name] = database_options
        self._changed()

    def get_engine_options(self, engine_name: str) -> Optional[EngineOptions]:
        with self._lock:
            return self._engine_options.get(engine_name)

    def set_engine_options(self, engine_name: str, engine_options: EngineOptions) -> None:
        with self._lock:
            self._engine_options[engine_name] = engine_options
        self._changed()

    def as_checksum_string(self) -> str:
        """Canonical string over the significant fields.

        Map entries are sorted by name, parameter lists keep their order.
        """
        with self._lock:
            data = {
                "connectionId": self.connection_id,
                "accessToken": self._access_token,
                "systemEngineUrl": self._system_engine_url,
                "databaseOptionsMap": {
                    name: [list(p) for p in options.parameters]
                    for name, options in self._database_options.items()
                },
                "engineOptionsMap": {
                    name: {
                        "engineUrl": options.engine_url,
                        "parameters": [list(p) for p in options.parameters],
                    }
                    for name, options in self._engine_options.items()
                },
            }
        return json.dumps(data, sort_keys=True, separators=(",", ":"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionCache):
            return NotImplemented
        return self.as_checksum_string() == other.as_checksum_string()

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(connection_id={self.connection_id!r}, "
            f"databases={sorted(self._database_options)}, "
            f"engines={sorted(self._engine_options)}, "
            f"cache_source={self.cache_source})"
        )


class AutoPersistingConnectionCache(ConnectionCache):
    """Connection cache that schedules a disk write after every mutation.

    The callback is called with the cache itself and is expected to be
    non-blocking (a write-behind).
    """

    def __init__(
        self,
        connection_id: str,
        on_change: Optional[Callable[[ConnectionCache], Any]] = None,
        **kwargs,
    ):
        super().__init__(connection_id, **kwargs)
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)


# ==================== Persisted record ====================


def _parameters_to_record(parameters: Tuple[Parameter, ...]) -> list:
    return [{"key": key, "value": value} for key, value in parameters]


def _parameters_from_record(data: Dict[str, Any]) -> Tuple[Parameter, ...]:
    return tuple((item["key"], item["value"]) for item in data.get("parameters") or [])


def to_record(
    connection_cache: ConnectionCache, encryption_key: str
) -> Optional[Dict[str, Any]]:
    """Build the persisted record for a connection cache.

    The checksum is computed over the plaintext fields, then the access token
    is replaced by its encrypted form. The cache source is not persisted.

    Args:
        connection_cache: Cache to persist
        encryption_key: Secret of the cache key

    Returns:
        JSON-ready dict, or None if the checksum or the token encryption fails
    """
    checksum = compute_checksum(connection_cache)
    if checksum is None:
        return None

    encrypted_access_token = None
    if connection_cache.access_token:
        encrypted_access_token = crypto.encrypt(
            connection_cache.access_token, encryption_key
        )
        if encrypted_access_token is None:
            logger.warning("Failed to encrypt the access token")
            return None

    return {
        "connectionId": connection_cache.connection_id,
        "encryptedAccessToken": encrypted_access_token,
        "systemEngineUrl": connection_cache.system_engine_url,
        "databaseOptionsMap": {
            name: {"parameters": _parameters_to_record(options.parameters)}
            for name, options in connection_cache.database_options.items()
        },
        "engineOptionsMap": {
            name: {
                "engineUrl": options.engine_url,
                "parameters": _parameters_to_record(options.parameters),
            }
            for name, options in connection_cache.engine_options.items()
        },
        "checksum": checksum,
    }


def from_record(record: Dict[str, Any], encryption_key: str) -> ConnectionCache:
    """Rebuild a connection cache from its persisted record.

    Args:
        record: Decoded record
        encryption_key: Secret of the cache key

    Returns:
        ConnectionCache whose checksum matches the stored one

    Raises:
        DeserializationError: If fields are missing or malformed, or the token
            cannot be decrypted
        ChecksumMismatchError: If the recomputed checksum differs
    """
    if not isinstance(record, dict) or not record.get("connectionId"):
        raise DeserializationError("Record has no connection id")

    stored_checksum = record.get("checksum")
    if not stored_checksum:
        raise ChecksumMismatchError("Record has no checksum")

    access_token = None
    encrypted_access_token = record.get("encryptedAccessToken")
    if encrypted_access_token:
        access_token = crypto.decrypt(encrypted_access_token, encryption_key)
        if access_token is None:
            raise DeserializationError("Cannot decrypt the access token")

    try:
        database_options = {
            name: DatabaseOptions(_parameters_from_record(data))
            for name, data in (record.get("databaseOptionsMap") or {}).items()
        }
        engine_options = {
            name: EngineOptions(data.get("engineUrl"), _parameters_from_record(data))
            for name, data in (record.get("engineOptionsMap") or {}).items()
        }
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise DeserializationError(f"Malformed options in record: {e}") from e

    connection_cache = ConnectionCache(
        str(record["connectionId"]),
        access_token=access_token,
        system_engine_url=record.get("systemEngineUrl"),
        database_options=database_options,
        engine_options=engine_options,
    )
    verify_checksum(connection_cache, stored_checksum, strict=True)
    return connection_cache
