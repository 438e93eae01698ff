"""
Database Handle
===============

Entry point tying configuration, backends and collections together.

The Database owns one backend instance per collection name, built lazily
through the backend registry and connected when first requested. It is the
only component that tears backends down.

Usage:
    from polykv import Database

    with Database(backend="sqlite", data_dir="./data") as db:
        users = db.collection("users")
        users.set("alice", {"age": 30})

        # Table-first convenience calls
        db.push("queues", "jobs", "build")
        db.increment("counters", "visits")
"""

import dataclasses
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .codec import ValueCodec
from .collection import Collection
from .config import DatabaseConfig
from .error_handling import ConfigurationError
from .security import SecretCipher, load_or_generate_secret
from .storage.backends import EncryptedFileBackend, get_backend
from .storage.backends.base import StorageBackend

logger = logging.getLogger(__name__)

SQLITE_DB_FILE = "polykv.db"

# Backends whose whole file is already encrypted
_FILE_ENCRYPTED_BACKENDS = {"encrypted_file"}


class Database:
    """
    Handle over a set of named collections sharing one configuration.

    Args:
        config: DatabaseConfig, a data directory path, or None for defaults
        **overrides: Flat configuration overrides (``backend``, ``secret``, ...)
    """

    def __init__(
        self,
        config: Optional[Union[DatabaseConfig, str, Path]] = None,
        **overrides,
    ):
        if isinstance(config, (str, Path)):
            overrides.setdefault("data_dir", str(config))
            config = None

        if config is None:
            config = DatabaseConfig(**overrides)
        elif isinstance(config, DatabaseConfig):
            if overrides:
                # Never mutate the caller's configuration
                config = DatabaseConfig(
                    storage=dataclasses.replace(config.storage),
                    codec=dataclasses.replace(config.codec),
                    security=dataclasses.replace(config.security),
                    concurrency=dataclasses.replace(config.concurrency),
                    **overrides,
                )
        else:
            raise TypeError(
                f"Expected str, Path, or DatabaseConfig, got {type(config)}"
            )

        self.config = config
        self.codec = ValueCodec(config.codec)
        self.cipher = self._init_cipher()

        if config.backend in _FILE_ENCRYPTED_BACKENDS and self.cipher is None:
            raise ConfigurationError(
                f"Backend '{config.backend}' requires a secret or key_file",
                {"backend": config.backend},
            )

        self._collections: Dict[str, Collection] = {}
        self._lock = threading.RLock()
        self._connected = False

        logger.info(
            f"Database initialized (backend: {config.backend}, data_dir: {config.data_dir})"
        )

    def _init_cipher(self) -> Optional[SecretCipher]:
        security = self.config.security
        secret = security.secret
        if secret is None and security.key_file is not None:
            secret = load_or_generate_secret(security.key_file)
        if secret is None:
            return None
        return SecretCipher(secret, kdf_iterations=security.kdf_iterations)

    def __repr__(self) -> str:
        return f"Database(backend={self.config.backend!r}, collections={self.collections()})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> "Database":
        """Mark the database ready; collections connect their backends on first use."""
        with self._lock:
            if not self._connected:
                self._connected = True
                logger.debug(f"Database connected (backend: {self.config.backend})")
        return self

    def disconnect(self) -> None:
        """Disconnect every collection backend. Safe to call more than once."""
        with self._lock:
            for name, collection in self._collections.items():
                collection.backend.disconnect()
                logger.debug(f"Disconnected collection {name!r}")
            self._collections.clear()
            if self._connected:
                self._connected = False
                logger.info("Database disconnected")

    def close(self) -> None:
        """Alias for disconnect()."""
        self.disconnect()

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _backend_options(self) -> Dict[str, Any]:
        """Constructor options for the configured backend."""
        storage = self.config.storage
        backend = storage.backend
        options: Dict[str, Any] = {}

        if backend in ("json", "yaml"):
            options["data_dir"] = storage.data_dir
        elif backend == "encrypted_file":
            options.update(
                data_dir=storage.data_dir,
                cipher=self.cipher,
                backup=storage.backup,
                compression=storage.compression_codec,
                compression_level=storage.compression_level,
            )
        elif backend == "sqlite":
            options["db_file"] = str(Path(storage.data_dir) / SQLITE_DB_FILE)

        options.update(storage.backend_options)
        return options

    def _create_backend(self, name: str) -> StorageBackend:
        backend = get_backend(self.config.backend, name, **self._backend_options())
        backend.connect()
        return backend

    def _open_collection(self, name: str, backend: StorageBackend) -> Collection:
        encrypt_values = (
            self.config.security.encrypt_values
            and self.config.backend not in _FILE_ENCRYPTED_BACKENDS
        )
        collection = Collection(
            name,
            backend,
            codec=self.codec,
            cipher=self.cipher,
            encrypt_values=encrypt_values,
            serialize_key_access=self.config.concurrency.serialize_key_access,
        )
        self._collections[name] = collection
        logger.info(f"Opened collection {name!r} ({type(backend).__name__})")
        return collection

    def collection(self, name: str) -> Collection:
        """
        Get the collection called ``name``, creating its backend on first use.

        Raises:
            InvalidKeyError: If the name is not a valid identifier for the backend
        """
        with self._lock:
            if not self._connected:
                self.connect()

            collection = self._collections.get(name)
            if collection is None:
                collection = self._open_collection(name, self._create_backend(name))
            return collection

    def restore(self, name: str) -> Collection:
        """
        Rebuild the collection ``name`` from its backup file.

        Any open handle on the collection is torn down first; the restored
        collection replaces it.

        Raises:
            ConfigurationError: If the configured backend keeps no backup
            BackendUnavailableError: If the backup file does not exist
            CryptoError: If the backup cannot be decrypted
        """
        if self.config.backend != "encrypted_file":
            raise ConfigurationError(
                f"Backend '{self.config.backend}' does not support restore",
                {"backend": self.config.backend, "collection": name},
            )

        with self._lock:
            if not self._connected:
                self.connect()

            previous = self._collections.pop(name, None)
            if previous is not None:
                previous.backend.disconnect()

            backend = EncryptedFileBackend.from_backup(name, **self._backend_options())
            backend.connect()
            collection = self._open_collection(name, backend)

        logger.info(f"Restored collection {name!r} ({collection.count()} entries)")
        return collection

    def drop(self, name: str) -> bool:
        """Clear a collection and tear down its backend."""
        with self._lock:
            collection = self.collection(name)
            collection.clear()
            collection.backend.disconnect()
            del self._collections[name]
        logger.info(f"Dropped collection {name!r}")
        return True

    def collections(self) -> List[str]:
        """Names of the collections opened through this handle."""
        with self._lock:
            return list(self._collections)

    # ------------------------------------------------------------------
    # Table-first convenience API
    # ------------------------------------------------------------------

    def set(self, table: str, key: str, value: Any, ttl: Optional[float] = None) -> Any:
        return self.collection(table).set(key, value, ttl=ttl)

    def get(self, table: str, key: str, default: Any = None) -> Any:
        return self.collection(table).get(key, default)

    def delete(self, table: str, key: str) -> bool:
        return self.collection(table).delete(key)

    def clear(self, table: str) -> bool:
        return self.collection(table).clear()

    def has(self, table: str, key: str) -> bool:
        return self.collection(table).has(key)

    def all(self, table: str) -> List[Dict[str, Any]]:
        return self.collection(table).all()

    def fetch(self, table: str, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return self.collection(table).fetch(predicate)

    def push(self, table: str, key: str, *values: Any) -> List[Any]:
        return self.collection(table).push(key, *values)

    def unshift(self, table: str, key: str, *values: Any) -> List[Any]:
        return self.collection(table).unshift(key, *values)

    def shift(self, table: str, key: str) -> Any:
        return self.collection(table).shift(key)

    def update(self, table: str, key: str, partial: Mapping) -> Dict[str, Any]:
        return self.collection(table).update(key, partial)

    def increment(self, table: str, key: str, amount: float = 1) -> float:
        return self.collection(table).increment(key, amount)

    def decrement(self, table: str, key: str, amount: float = 1) -> float:
        return self.collection(table).decrement(key, amount)
