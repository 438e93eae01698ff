"""
Storage Backends
================

Pluggable backends persisting the entries of one collection each.

Built-in backends:
- memory: MemoryBackend, process-local dict (optional LRU bound)
- json / yaml: JsonFileBackend / YamlFileBackend, one plain file per collection
- encrypted_file: EncryptedFileBackend, compressed + encrypted file with backup
- sqlite: SqliteBackend, embedded SQLite via SQLAlchemy
- postgresql / mysql: PostgresBackend / MysqlBackend (require psycopg / pymysql)
- mongodb: MongoBackend (requires pymongo)
- cassandra: CassandraBackend (requires cassandra-driver)

Registry APIs:
- register_backend(), unregister_backend(), get_backend(), list_backends()

Usage:
    from polykv.storage.backends import get_backend, register_backend

    backend = get_backend("sqlite", "users", db_file="polykv.db")

    # Register a custom backend
    register_backend("redis", MyRedisBackend)
    backend = get_backend("redis", "users", url="redis://localhost")
"""

import logging
from typing import Dict, Type

from .base import StorageBackend, StoredEntry
from .cassandra_backend import CassandraBackend
from .encrypted_file import EncryptedFileBackend
from .file_backends import FlatFileBackend, JsonFileBackend, YamlFileBackend
from .memory_backend import MemoryBackend
from .mongodb_backend import MongoBackend
from .sql_backend import MysqlBackend, PostgresBackend, SqlBackend, SqliteBackend

logger = logging.getLogger(__name__)


# Registry storage
_backend_registry: Dict[str, Type[StorageBackend]] = {}
_builtin_backends = {
    "memory",
    "json",
    "yaml",
    "encrypted_file",
    "sqlite",
    "postgresql",
    "mysql",
    "mongodb",
    "cassandra",
}


def _initialize_builtin_backends():
    """Initialize registry with built-in backends."""
    global _backend_registry

    _backend_registry["memory"] = MemoryBackend
    _backend_registry["json"] = JsonFileBackend
    _backend_registry["yaml"] = YamlFileBackend
    _backend_registry["encrypted_file"] = EncryptedFileBackend
    _backend_registry["sqlite"] = SqliteBackend

    # Driver availability is checked when an instance is created
    _backend_registry["postgresql"] = PostgresBackend
    _backend_registry["mysql"] = MysqlBackend
    _backend_registry["mongodb"] = MongoBackend
    _backend_registry["cassandra"] = CassandraBackend


# Initialize on module load
_initialize_builtin_backends()


def register_backend(
    name: str, backend_class: Type[StorageBackend], force: bool = False
) -> None:
    """
    Register a custom storage backend.

    Args:
        name: Unique name for the backend (e.g., "redis")
        backend_class: Class that implements the StorageBackend interface
        force: If True, overwrite existing registration

    Raises:
        ValueError: If name already registered and force=False
        ValueError: If backend_class doesn't inherit from StorageBackend
    """
    if not isinstance(backend_class, type):
        raise ValueError(f"backend_class must be a class, got {type(backend_class)}")

    if not issubclass(backend_class, StorageBackend):
        raise ValueError(
            f"Backend class {backend_class.__name__} must inherit from StorageBackend"
        )

    if name in _backend_registry and not force:
        raise ValueError(
            f"Storage backend '{name}' already registered. "
            f"Use force=True to overwrite or unregister_backend() first."
        )

    _backend_registry[name] = backend_class
    logger.info(f"Registered storage backend '{name}' ({backend_class.__name__})")


def unregister_backend(name: str) -> bool:
    """
    Unregister a storage backend.

    Returns:
        True if backend was unregistered, False if not found
    """
    if name in _backend_registry:
        del _backend_registry[name]
        logger.info(f"Unregistered storage backend '{name}'")
        return True

    logger.warning(f"Storage backend '{name}' not found for unregistration")
    return False


def get_backend(name: str, table: str, **options) -> StorageBackend:
    """
    Get a storage backend instance by name.

    Args:
        name: Name of the registered backend
        table: Collection the backend instance serves
        **options: Backend-specific configuration options

    Returns:
        Unconnected StorageBackend instance

    Raises:
        ValueError: If backend name not registered or options are rejected
    """
    if name not in _backend_registry:
        available = list(_backend_registry.keys())
        raise ValueError(
            f"Unknown storage backend: '{name}'. Available backends: {available}"
        )

    backend_class = _backend_registry[name]

    try:
        return backend_class(table, **options)
    except TypeError as e:
        raise ValueError(
            f"Failed to create backend '{name}' with options {sorted(options)}: {e}"
        ) from e


def list_backends() -> list:
    """
    List all registered storage backends.

    Returns:
        List of dictionaries with backend information:
        - name: Backend name
        - class: Backend class name
        - is_builtin: Whether it's a built-in backend
    """
    return [
        {
            "name": name,
            "class": backend_class.__name__,
            "is_builtin": name in _builtin_backends,
        }
        for name, backend_class in _backend_registry.items()
    ]


__all__ = [
    # Base interface
    "StorageBackend",
    "StoredEntry",
    # Built-in backends
    "MemoryBackend",
    "FlatFileBackend",
    "JsonFileBackend",
    "YamlFileBackend",
    "EncryptedFileBackend",
    "SqlBackend",
    "SqliteBackend",
    "PostgresBackend",
    "MysqlBackend",
    "MongoBackend",
    "CassandraBackend",
    # Registry API
    "register_backend",
    "unregister_backend",
    "get_backend",
    "list_backends",
]
