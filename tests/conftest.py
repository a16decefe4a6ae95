"""Shared fixtures for conncache tests."""

import pytest

from conncache.cache.disk import DiskPersistenceService
from conncache.cache.keys import CacheKey
from conncache.cache.models import ConnectionCache, DatabaseOptions, EngineOptions


@pytest.fixture
def cache_key():
    """Create a service account cache key."""
    return CacheKey.for_client_secret("client-id", "client-secret", "my-account")


@pytest.fixture
def connection_cache():
    """Create a populated connection cache."""
    cache = ConnectionCache(
        "connection-1",
        access_token="eyJhbGciOiJIUzI1NiJ9.token",
        system_engine_url="https://system.engine.example.com",
    )
    cache.set_database_options(
        "sales", DatabaseOptions([("database", "sales"), ("compute_region", "eu")])
    )
    cache.set_engine_options(
        "reporting",
        EngineOptions(
            "https://reporting.engine.example.com", [("engine", "reporting")]
        ),
    )
    return cache


@pytest.fixture
def disk_service(tmp_path):
    """Create a disk service writing to a temporary directory."""
    service = DiskPersistenceService(cache_dir=tmp_path / "cache")
    yield service
    service.shutdown()
