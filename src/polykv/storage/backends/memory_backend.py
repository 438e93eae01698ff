"""
In-Memory Storage Backend
=========================

Process-local dictionary storage. Useful for tests, ephemeral caches and as
the reference implementation of the backend contract. Data lives as long as
the backend instance.

With ``maxsize`` set, the store is bounded by a cachetools ``LRUCache``:
inserting past the limit evicts the least recently used key.
"""

import logging
import threading
from typing import List, MutableMapping, Optional, Tuple

from cachetools import LRUCache

from .base import StorageBackend, StoredEntry

logger = logging.getLogger(__name__)


class MemoryBackend(StorageBackend):
    """Dictionary-backed storage for one collection."""

    def __init__(self, table: str, maxsize: Optional[int] = None):
        """
        Initialize in-memory backend.

        Args:
            table: Collection name
            maxsize: Optional entry limit enabling LRU eviction
        """
        super().__init__(table)
        if maxsize is not None and maxsize < 1:
            raise ValueError("maxsize must be a positive integer")

        self.maxsize = maxsize
        self._storage: MutableMapping[str, StoredEntry] = (
            LRUCache(maxsize=maxsize) if maxsize else {}
        )
        self._lock = threading.Lock()
        logger.debug(f"MemoryBackend initialized for {table!r} (maxsize={maxsize})")

    def set(self, key: str, entry: StoredEntry) -> bool:
        self._ensure_connected()
        with self._lock:
            self._storage[key] = entry
        return True

    def get(self, key: str) -> Optional[StoredEntry]:
        self._ensure_connected()
        with self._lock:
            # LRUCache.get refreshes recency
            return self._storage.get(key)

    def delete(self, key: str) -> bool:
        self._ensure_connected()
        with self._lock:
            if key in self._storage:
                del self._storage[key]
                return True
            return False

    def clear(self) -> bool:
        self._ensure_connected()
        with self._lock:
            count = len(self._storage)
            self._storage.clear()
        logger.debug(f"Cleared {count} entries from memory table {self.table!r}")
        return True

    def has(self, key: str) -> bool:
        self._ensure_connected()
        with self._lock:
            return key in self._storage

    def all(self) -> List[Tuple[str, StoredEntry]]:
        self._ensure_connected()
        with self._lock:
            return list(self._storage.items())

