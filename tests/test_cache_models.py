"""Unit tests for the connection cache model and its persisted record."""

import threading

import pytest

from conncache.cache.models import (
    AutoPersistingConnectionCache,
    ConnectionCache,
    DatabaseOptions,
    EngineOptions,
    from_record,
    to_record,
)
from conncache.cache.validation import ChecksumMismatchError, DeserializationError


class TestOptions:
    """Test database and engine options value objects."""

    def test_database_options_structural_equality(self):
        """Test options with the same parameters are equal."""
        assert DatabaseOptions([("a", "1")]) == DatabaseOptions((("a", "1"),))
        assert DatabaseOptions([("a", "1")]) != DatabaseOptions([("a", "2")])

    def test_engine_options_structural_equality(self):
        """Test options compare url and parameters."""
        assert EngineOptions("url", [("a", "1")]) == EngineOptions("url", [("a", "1")])
        assert EngineOptions("url", []) != EngineOptions("other", [])

    def test_options_are_immutable(self):
        """Test options cannot be modified after creation."""
        options = DatabaseOptions([("a", "1")])

        with pytest.raises(AttributeError):
            options.parameters = ()


class TestConnectionCache:
    """Test the connection cache aggregate."""

    def test_get_missing_options_returns_none(self):
        """Test unknown databases and engines are None."""
        cache = ConnectionCache("c1")

        assert cache.get_database_options("missing") is None
        assert cache.get_engine_options("missing") is None

    def test_set_and_get_options(self, connection_cache):
        """Test options are stored per name."""
        assert connection_cache.get_database_options("sales") == DatabaseOptions(
            [("database", "sales"), ("compute_region", "eu")]
        )
        assert (
            connection_cache.get_engine_options("reporting").engine_url
            == "https://reporting.engine.example.com"
        )

    def test_options_mappings_are_copies(self, connection_cache):
        """Test callers cannot mutate the internal maps."""
        connection_cache.database_options["other"] = DatabaseOptions()

        assert connection_cache.get_database_options("other") is None

    def test_equality_is_structural(self, connection_cache):
        """Test two caches with the same fields are equal."""
        other = ConnectionCache(
            "connection-1",
            access_token=connection_cache.access_token,
            system_engine_url=connection_cache.system_engine_url,
            database_options=connection_cache.database_options,
            engine_options=connection_cache.engine_options,
        )

        assert other == connection_cache
        other.access_token = "changed"
        assert other != connection_cache

    def test_repr_hides_token(self, connection_cache):
        """Test the access token is not shown in repr."""
        assert connection_cache.access_token not in repr(connection_cache)

    @pytest.mark.parametrize("field", ["access_token", "system_engine_url"])
    def test_field_setters_wait_for_lock(self, connection_cache, field):
        """Test a field update cannot interleave with a locked checksum read."""
        done = threading.Event()

        def update():
            setattr(connection_cache, field, "updated")
            done.set()

        with connection_cache._lock:
            before = connection_cache.as_checksum_string()
            writer = threading.Thread(target=update)
            writer.start()
            assert not done.wait(timeout=0.2)
            assert connection_cache.as_checksum_string() == before

        writer.join(timeout=5)
        assert done.is_set()
        assert getattr(connection_cache, field) == "updated"


class TestAutoPersistingConnectionCache:
    """Test change notifications of the auto persisting cache."""

    def test_every_mutation_notifies(self):
        """Test setters call the change callback."""
        calls = []
        cache = AutoPersistingConnectionCache("c1", on_change=calls.append)

        cache.access_token = "token"
        cache.system_engine_url = "https://system"
        cache.set_database_options("db", DatabaseOptions())
        cache.set_engine_options("engine", EngineOptions("https://engine"))

        assert len(calls) == 4
        assert all(c is cache for c in calls)

    def test_construction_does_not_notify(self):
        """Test initial values do not trigger a write."""
        calls = []
        AutoPersistingConnectionCache("c1", on_change=calls.append, access_token="t")

        assert calls == []


class TestPersistedRecord:
    """Test conversion to and from the persisted record."""

    def test_record_fields(self, connection_cache):
        """Test the record carries the persisted field names."""
        record = to_record(connection_cache, "secret")

        assert set(record) == {
            "connectionId",
            "encryptedAccessToken",
            "systemEngineUrl",
            "databaseOptionsMap",
            "engineOptionsMap",
            "checksum",
        }
        assert record["databaseOptionsMap"]["sales"] == {
            "parameters": [
                {"key": "database", "value": "sales"},
                {"key": "compute_region", "value": "eu"},
            ]
        }
        assert record["engineOptionsMap"]["reporting"]["engineUrl"] == (
            "https://reporting.engine.example.com"
        )

    def test_record_encrypts_access_token(self, connection_cache):
        """Test the plaintext token never appears in the record."""
        record = to_record(connection_cache, "secret")

        assert record["encryptedAccessToken"]
        assert connection_cache.access_token not in str(record)

    def test_record_without_token(self):
        """Test a cache without token persists a null token."""
        record = to_record(ConnectionCache("c1"), "secret")

        assert record["encryptedAccessToken"] is None
        assert from_record(record, "secret") == ConnectionCache("c1")

    def test_record_round_trip(self, connection_cache):
        """Test a record rebuilds an equal connection cache."""
        rebuilt = from_record(to_record(connection_cache, "secret"), "secret")

        assert rebuilt == connection_cache
        assert rebuilt.access_token == connection_cache.access_token

    def test_wrong_key_fails(self, connection_cache):
        """Test the token cannot be decrypted with another key."""
        record = to_record(connection_cache, "secret")

        with pytest.raises(DeserializationError):
            from_record(record, "other-secret")

    def test_altered_field_fails_checksum(self, connection_cache):
        """Test tampering with a field is detected."""
        record = to_record(connection_cache, "secret")
        record["systemEngineUrl"] = "https://attacker.example.com"

        with pytest.raises(ChecksumMismatchError):
            from_record(record, "secret")

    def test_altered_checksum_fails(self, connection_cache):
        """Test tampering with the checksum is detected."""
        record = to_record(connection_cache, "secret")
        record["checksum"] = "0" * 64

        with pytest.raises(ChecksumMismatchError):
            from_record(record, "secret")

    def test_missing_checksum_fails(self, connection_cache):
        """Test records without checksum are never trusted."""
        record = to_record(connection_cache, "secret")
        del record["checksum"]

        with pytest.raises(ChecksumMismatchError):
            from_record(record, "secret")

    @pytest.mark.parametrize(
        "record",
        [
            [],
            {},
            {"checksum": "abc"},
            {"connectionId": "c1", "checksum": "abc", "databaseOptionsMap": {"db": 1}},
            {
                "connectionId": "c1",
                "checksum": "abc",
                "engineOptionsMap": {"e": {"parameters": [{"key": "k"}]}},
            },
        ],
    )
    def test_malformed_record_fails(self, record):
        """Test malformed records raise DeserializationError."""
        with pytest.raises(DeserializationError):
            from_record(record, "secret")
