"""
Cassandra Storage Backend
=========================

Wide-column backend: one CQL table per collection.

Table layout::

    CREATE TABLE "<table>" (key text PRIMARY KEY, value text, "type" text, "ttl" bigint)

The ``ttl`` column holds the absolute expiry managed by the collection layer.
Cassandra's native ``USING TTL`` is not applied; expiry is evaluated lazily on
read like every other backend.

Requirements:
    pip install polykv[cassandra]
    # or
    pip install cassandra-driver
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...error_handling import handle_import_errors, with_error_handling
from .base import StorageBackend, StoredEntry

logger = logging.getLogger(__name__)


# Check for cassandra-driver availability
try:
    from cassandra.auth import PlainTextAuthProvider
    from cassandra.cluster import Cluster

    CASSANDRA_AVAILABLE = True
except ImportError:
    CASSANDRA_AVAILABLE = False
    Cluster = None
    PlainTextAuthProvider = None

# Cassandra table names: alphanumerics and underscores, at most 48 characters
# Names are quoted in CQL so "Users" and "users" stay distinct tables
CQL_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,47}$")


class CassandraBackend(StorageBackend):
    """
    Cassandra backend for one collection.

    Args:
        table: Collection (table) name
        contact_points: Cluster contact points
        keyspace: Keyspace holding the collection tables (must exist)
        username: Optional username for PlainTextAuthProvider
        password: Optional password for PlainTextAuthProvider
        port: Native protocol port
        session: Pre-built session; the backend will not shut it down
    """

    table_name_pattern = CQL_TABLE_NAME_PATTERN

    @handle_import_errors("cassandra-driver", "Cassandra backend")
    def __init__(
        self,
        table: str,
        contact_points: Sequence[str] = ("127.0.0.1",),
        keyspace: str = "polykv",
        username: Optional[str] = None,
        password: Optional[str] = None,
        port: int = 9042,
        session: Optional[Any] = None,
    ):
        if session is None and not CASSANDRA_AVAILABLE:
            raise ImportError("cassandra-driver is required for the Cassandra backend")

        super().__init__(table)
        self.contact_points = list(contact_points)
        self.keyspace = keyspace
        self.username = username
        self.password = password
        self.port = port

        self._session = session
        self._cluster = None
        self._owns_session = session is None
        self._statements: Dict[str, Any] = {}

    @property
    def _cql_table(self) -> str:
        return f'"{self.table}"'

    @with_error_handling()
    def connect(self) -> "CassandraBackend":
        if self._connected:
            return self

        if self._session is None:
            auth_provider = None
            if self.username is not None:
                auth_provider = PlainTextAuthProvider(
                    username=self.username, password=self.password
                )
            self._cluster = Cluster(
                self.contact_points, port=self.port, auth_provider=auth_provider
            )
            self._session = self._cluster.connect(self.keyspace)

        self._session.execute(
            f"CREATE TABLE IF NOT EXISTS {self._cql_table} "
            f'(key text PRIMARY KEY, value text, "type" text, "ttl" bigint)'
        )
        self._prepare_statements()
        self._connected = True

        logger.info(f"CassandraBackend connected: {self.keyspace}.{self.table}")
        return self

    def _prepare_statements(self) -> None:
        table = self._cql_table
        queries = {
            "set": f'INSERT INTO {table} (key, value, "type", "ttl") VALUES (?, ?, ?, ?)',
            "get": f'SELECT key, value, "type", "ttl" FROM {table} WHERE key = ?',
            "has": f"SELECT key FROM {table} WHERE key = ?",
            "delete": f"DELETE FROM {table} WHERE key = ?",
        }
        self._statements = {
            name: self._session.prepare(query) for name, query in queries.items()
        }

    def disconnect(self) -> None:
        if self._owns_session:
            if self._cluster is not None:
                self._cluster.shutdown()
                logger.debug(f"Cassandra cluster connection closed ({self.table})")
            self._cluster = None
            self._session = None
        self._statements = {}
        super().disconnect()

    @staticmethod
    def _to_entry(row) -> StoredEntry:
        return StoredEntry(value=row.value, type=row.type, ttl=row.ttl)

    @with_error_handling()
    def set(self, key: str, entry: StoredEntry) -> bool:
        self._ensure_connected()
        self._session.execute(
            self._statements["set"], (key, entry.value, entry.type, entry.ttl)
        )
        return True

    @with_error_handling()
    def get(self, key: str) -> Optional[StoredEntry]:
        self._ensure_connected()
        row = self._session.execute(self._statements["get"], (key,)).one()
        return self._to_entry(row) if row is not None else None

    @with_error_handling()
    def delete(self, key: str) -> bool:
        self._ensure_connected()
        # CQL DELETE does not report whether a row existed
        existed = self._session.execute(self._statements["has"], (key,)).one() is not None
        if existed:
            self._session.execute(self._statements["delete"], (key,))
        return existed

    @with_error_handling()
    def clear(self) -> bool:
        self._ensure_connected()
        self._session.execute(f"TRUNCATE {self._cql_table}")
        return True

    @with_error_handling()
    def has(self, key: str) -> bool:
        self._ensure_connected()
        return self._session.execute(self._statements["has"], (key,)).one() is not None

    @with_error_handling()
    def all(self) -> List[Tuple[str, StoredEntry]]:
        self._ensure_connected()
        rows = self._session.execute(f'SELECT key, value, "type", "ttl" FROM {self._cql_table}')
        return [(row.key, self._to_entry(row)) for row in rows]
