"""Unit tests for cache configuration."""

from pathlib import Path

import pytest

from conncache.cache.config import CacheConfig


class TestCacheConfig:
    """Test configuration defaults and sources."""

    def test_defaults(self):
        """Test default values."""
        config = CacheConfig()

        assert config.cache_dir is None
        assert config.memory_ttl == 3600
        assert config.disk_ttl == 110 * 60
        assert config.write_workers == 2
        assert config.filename_extension == "txt"

    def test_string_cache_dir_is_converted(self):
        """Test cache_dir strings become expanded paths."""
        config = CacheConfig(cache_dir="~/conncache-test")

        assert isinstance(config.cache_dir, Path)
        assert "~" not in str(config.cache_dir)

    @pytest.mark.parametrize(
        "field", ["memory_ttl", "disk_ttl", "write_workers", "max_pending_writes"]
    )
    def test_non_positive_values_rejected(self, field):
        """Test limits must be positive."""
        with pytest.raises(ValueError, match=field):
            CacheConfig(**{field: 0})

    def test_from_env(self, tmp_path, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("CONNCACHE_DIR", str(tmp_path))
        monkeypatch.setenv("CONNCACHE_MEMORY_TTL", "60")
        monkeypatch.setenv("CONNCACHE_DISK_TTL", "900")
        monkeypatch.setenv("CONNCACHE_WRITE_WORKERS", "4")
        monkeypatch.setenv("CONNCACHE_MAX_PENDING_WRITES", "8")

        config = CacheConfig.from_env()

        assert config.cache_dir == tmp_path
        assert config.memory_ttl == 60
        assert config.disk_ttl == 900
        assert config.write_workers == 4
        assert config.max_pending_writes == 8

    def test_from_env_defaults(self, monkeypatch):
        """Test missing environment variables keep defaults."""
        for name in (
            "CONNCACHE_DIR",
            "CONNCACHE_MEMORY_TTL",
            "CONNCACHE_DISK_TTL",
            "CONNCACHE_WRITE_WORKERS",
            "CONNCACHE_MAX_PENDING_WRITES",
        ):
            monkeypatch.delenv(name, raising=False)

        assert CacheConfig.from_env() == CacheConfig()

    def test_save_and_load(self, tmp_path):
        """Test configuration survives a save/load cycle."""
        config_path = tmp_path / "config.json"
        config = CacheConfig(cache_dir=tmp_path / "cache", memory_ttl=120)

        config.save(config_path)
        loaded = CacheConfig.load(config_path)

        assert loaded == config

    def test_load_missing_file(self, tmp_path):
        """Test a missing file gives defaults."""
        assert CacheConfig.load(tmp_path / "missing.json") == CacheConfig()
