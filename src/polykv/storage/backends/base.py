"""
Abstract Base Class for Storage Backends
========================================

Defines the contract every storage medium implements for one collection.

Backends persist ``StoredEntry`` records keyed by string and nothing more:
they never evaluate expiry, never encode values and never validate them.
Those concerns belong to the collection layer.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from ...error_handling import BackendUnavailableError, InvalidKeyError

logger = logging.getLogger(__name__)

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]{0,62}$")


@dataclass
class StoredEntry:
    """One persisted record: the stored string, its type tag and absolute expiry."""

    value: str
    type: str
    ttl: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredEntry":
        """
        Build an entry from a persisted ``{value, type, ttl}`` mapping.

        Raises:
            ValueError: If the mapping is missing fields
        """
        try:
            ttl = data.get("ttl")
            return cls(
                value=data["value"],
                type=data["type"],
                ttl=int(ttl) if ttl is not None else None,
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed stored entry: {data!r}") from e


class StorageBackend(ABC):
    """
    Abstract base class for collection storage backends.

    One instance serves exactly one collection (``table``). Implementations
    can use various storage mechanisms:
    - Process memory (fast, ephemeral)
    - Flat files, plain or encrypted (simple, portable)
    - Relational engines through SQLAlchemy
    - Document and wide-column stores

    All implementations must be safe to call from multiple threads.
    """

    # Backends with stricter identifier rules override this
    table_name_pattern = TABLE_NAME_PATTERN

    def __init__(self, table: str):
        self.table = self.validate_table_name(table)
        self._connected = False

    @classmethod
    def validate_table_name(cls, table: str) -> str:
        """
        Validate a collection name against this backend's identifier rules.

        Raises:
            InvalidKeyError: If the name is not a valid identifier
        """
        if not isinstance(table, str) or not cls.table_name_pattern.match(table):
            raise InvalidKeyError(
                f"Invalid collection name: {table!r}",
                {"backend": cls.__name__, "pattern": cls.table_name_pattern.pattern},
            )
        return table

    def validate_key(self, key: str) -> None:
        """
        Validate a key against this backend's rules.

        Raises:
            InvalidKeyError: If the key is not a non-empty string
        """
        if not isinstance(key, str) or not key:
            raise InvalidKeyError(
                "Key must be a non-empty string",
                {"key_type": type(key).__name__, "table": self.table},
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> "StorageBackend":
        """
        Acquire the resources the backend needs.

        Default implementation only marks the backend connected. Override in
        backends that open engines, clients or sessions.
        """
        self._connected = True
        return self

    def disconnect(self) -> None:
        """Release resources; safe to call more than once."""
        self._connected = False

    def close(self) -> None:
        """Alias for disconnect()."""
        self.disconnect()

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise BackendUnavailableError(
                f"{type(self).__name__} is not connected",
                {"table": self.table},
            )

    def __enter__(self):
        """Support context manager protocol."""
        if not self._connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Ensure resources are cleaned up."""
        self.disconnect()
        return False

    # ------------------------------------------------------------------
    # Primitive surface
    # ------------------------------------------------------------------

    @abstractmethod
    def set(self, key: str, entry: StoredEntry) -> bool:
        """
        Insert or replace the entry stored under a key.

        Returns:
            True once the write is durable for this medium
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[StoredEntry]:
        """
        Get the raw entry stored under a key.

        Returns:
            The entry, or None if absent. Expiry is not evaluated.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if something was removed, False if the key was absent
        """
        pass

    @abstractmethod
    def clear(self) -> bool:
        """Remove every entry of the collection."""
        pass

    @abstractmethod
    def has(self, key: str) -> bool:
        """Check whether a key is stored, regardless of expiry."""
        pass

    @abstractmethod
    def all(self) -> List[Tuple[str, StoredEntry]]:
        """List every stored ``(key, entry)`` pair, regardless of expiry."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(table={self.table!r})"
