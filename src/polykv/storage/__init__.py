"""
Storage Layer
=============

Backend infrastructure behind every collection:
- The StorageBackend contract and StoredEntry record
- Built-in backends (memory, flat files, encrypted file, SQL, MongoDB, Cassandra)
- The backend registry used by Database to build backends by name

Usage:
    from polykv.storage import get_backend, StoredEntry

    backend = get_backend("memory", "users").connect()
    backend.set("alice", StoredEntry(value='"hi"', type="string"))
"""

from .backends import (
    EncryptedFileBackend,
    JsonFileBackend,
    MemoryBackend,
    SqliteBackend,
    StorageBackend,
    StoredEntry,
    YamlFileBackend,
    get_backend,
    list_backends,
    register_backend,
    unregister_backend,
)

__all__ = [
    # Contract
    "StorageBackend",
    "StoredEntry",
    # Common backends
    "MemoryBackend",
    "JsonFileBackend",
    "YamlFileBackend",
    "EncryptedFileBackend",
    "SqliteBackend",
    # Registry
    "register_backend",
    "unregister_backend",
    "get_backend",
    "list_backends",
]
