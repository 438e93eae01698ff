"""
polykv - Key-value collections over interchangeable storage backends.

One CRUD + TTL contract for embedded files, relational engines, document and
wide-column stores, and process memory.

Key Features:
- Type-preserving value encoding (null, boolean, number, bigint, string, array, object)
- Per-key expiry evaluated lazily on read
- Encrypted, compressed file store with backup/restore
- SQLite, PostgreSQL and MySQL through SQLAlchemy; MongoDB; Cassandra
- List, object and counter helpers that never lose concurrent updates
- Synchronous change events

Quick Start:
    >>> from polykv import Database
    >>>
    >>> db = Database(backend="encrypted_file", data_dir="./data", secret="s3cret")
    >>> users = db.collection("users")
    >>> users.set("alice", {"age": 30})
    >>> users.update("alice", {"city": "Oslo"})
    >>> users.get("alice")
    {'age': 30, 'city': 'Oslo'}
    >>> db.disconnect()
"""

from .codec import ValueCodec, determine_type
from .collection import Collection
from .config import (
    CodecConfig,
    ConcurrencyConfig,
    DatabaseConfig,
    SecurityConfig,
    StorageConfig,
    create_database_config,
)
from .database import Database
from .error_handling import (
    BackendUnavailableError,
    CodecError,
    ConfigurationError,
    CryptoError,
    InvalidKeyError,
    InvalidValueError,
    PolykvError,
    TypeMismatchError,
)
from .security import SecretCipher, load_or_generate_secret
from .storage.backends import (
    StorageBackend,
    StoredEntry,
    get_backend,
    list_backends,
    register_backend,
    unregister_backend,
)

__version__ = "0.1.0"

__all__ = [
    # Core classes
    "Database",
    "Collection",
    "ValueCodec",
    "determine_type",
    # Configuration
    "DatabaseConfig",
    "StorageConfig",
    "CodecConfig",
    "SecurityConfig",
    "ConcurrencyConfig",
    "create_database_config",
    # Security
    "SecretCipher",
    "load_or_generate_secret",
    # Backends
    "StorageBackend",
    "StoredEntry",
    "register_backend",
    "unregister_backend",
    "get_backend",
    "list_backends",
    # Errors
    "PolykvError",
    "ConfigurationError",
    "InvalidKeyError",
    "InvalidValueError",
    "TypeMismatchError",
    "CodecError",
    "CryptoError",
    "BackendUnavailableError",
    # Version info
    "__version__",
]
