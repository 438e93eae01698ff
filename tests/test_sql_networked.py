"""
Tests for the networked SQL backends (PostgreSQL, MySQL).

Construction and URL handling are tested everywhere; the round-trip tests
need a reachable server (see conftest.py for the environment variables) and
skip otherwise.
"""

import uuid
from unittest.mock import patch

import pytest

from polykv.collection import Collection
from polykv.error_handling import ConfigurationError, InvalidKeyError
from polykv.storage.backends import MysqlBackend, PostgresBackend, StoredEntry
from polykv.storage.backends import sql_backend


def unique_table(prefix):
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class TestConstruction:
    def test_postgres_missing_driver(self):
        with patch.object(sql_backend, "PSYCOPG_AVAILABLE", False):
            with pytest.raises(ConfigurationError, match="psycopg"):
                PostgresBackend("users", connection_url="postgresql://u:p@localhost/db")

    def test_mysql_missing_driver(self):
        with patch.object(sql_backend, "PYMYSQL_AVAILABLE", False):
            with pytest.raises(ConfigurationError, match="pymysql"):
                MysqlBackend("users", connection_url="mysql://u:p@localhost/db")

    @pytest.mark.skipif(not sql_backend.PSYCOPG_AVAILABLE, reason="psycopg not installed")
    def test_postgres_url_dialect(self):
        backend = PostgresBackend("users", connection_url="postgresql://u:secret@db:5432/app")
        assert backend.connection_url.startswith(sql_backend.PSYCOPG_DIALECT + "://")
        assert backend.engine_options["pool_size"] == 10
        assert "secret" not in backend._safe_url()
        assert backend._safe_url().endswith("@db:5432/app")

    @pytest.mark.skipif(not sql_backend.PYMYSQL_AVAILABLE, reason="pymysql not installed")
    def test_mysql_url_dialect(self):
        backend = MysqlBackend("users", connection_url="mysql://u:p@db/app", pool_size=3)
        assert backend.connection_url == "mysql+pymysql://u:p@db/app"
        assert backend.engine_options["pool_size"] == 3

    @pytest.mark.skipif(not sql_backend.PSYCOPG_AVAILABLE, reason="psycopg not installed")
    def test_sql_table_names(self):
        with pytest.raises(InvalidKeyError):
            PostgresBackend("user-profiles", connection_url="postgresql://u:p@db/app")


class TestNetworkedRoundTrip:
    @pytest.fixture(params=["postgresql", "mysql"])
    def backend(self, request):
        if request.param == "postgresql":
            url = request.getfixturevalue("postgres_url")
            backend = PostgresBackend(unique_table("pg"), connection_url=url, pool_size=2)
        else:
            url = request.getfixturevalue("mysql_url")
            backend = MysqlBackend(unique_table("my"), connection_url=url, pool_size=2)
        backend.connect()
        yield backend
        backend.clear()
        backend._Model.__table__.drop(backend.engine, checkfirst=True)
        backend.disconnect()

    def test_crud(self, backend):
        entry = StoredEntry(value='{"age":30}', type="object", ttl=4_102_444_800_000)
        backend.set("alice", entry)
        assert backend.get("alice") == entry
        assert backend.has("alice") is True
        assert backend.delete("alice") is True
        assert backend.delete("alice") is False

    def test_upsert(self, backend):
        backend.set("k", StoredEntry(value="1", type="number"))
        backend.set("k", StoredEntry(value="2", type="number", ttl=7))
        assert backend.get("k") == StoredEntry(value="2", type="number", ttl=7)
        assert len(backend.all()) == 1

    def test_through_collection(self, backend):
        collection = Collection(backend.table, backend)
        collection.push("queue", "a", "b")
        assert collection.shift("queue") == "a"
        assert collection.increment("n", 2) == 2
        assert sorted(collection.keys()) == ["n", "queue"]
