"""
Collection
==========

The uniform key-value surface over one storage backend.

A Collection owns everything the backends do not:
- key and value validation, performed before any backend I/O
- value encoding through the ValueCodec (and optional value encryption)
- lazy expiry: an expired entry is evicted by the read that observes it
- read-modify-write helpers (push, shift, unshift, update, increment,
  decrement), serialized per key so concurrent callers never lose updates
- synchronous change events (``set``, ``delete``, ``clear``)

Usage:
    users = db.collection("users")
    users.set("alice", {"age": 30})
    users.update("alice", {"city": "Oslo"})
    users.get("alice")        # {"age": 30, "city": "Oslo"}
    users.set("session", "tok", ttl=60_000)
"""

import contextlib
import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from . import ttl as ttl_policy
from .codec import ValueCodec
from .error_handling import InvalidValueError, TypeMismatchError
from .security import SecretCipher
from .storage.backends.base import StorageBackend, StoredEntry

logger = logging.getLogger(__name__)

EVENTS = ("set", "delete", "clear")

# Keys hash onto a fixed set of re-entrant locks; one key always maps to one lock
_LOCK_STRIPES = 64

_MISSING = object()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Collection:
    """
    Named collection of key-value entries stored in one backend.

    Args:
        name: Collection name
        backend: Connected storage backend serving this collection
        codec: Value codec (defaults to a ValueCodec with default settings)
        cipher: Cipher used to encrypt stored strings
        encrypt_values: Encrypt stored strings when a cipher is given
        serialize_key_access: Serialize mutations of the same key
    """

    def __init__(
        self,
        name: str,
        backend: StorageBackend,
        codec: Optional[ValueCodec] = None,
        cipher: Optional[SecretCipher] = None,
        encrypt_values: bool = True,
        serialize_key_access: bool = True,
    ):
        self.name = name
        self.backend = backend
        self.codec = codec or ValueCodec()
        self.cipher = cipher if encrypt_values else None
        self.serialize_key_access = serialize_key_access

        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], Any]]] = {
            event: [] for event in EVENTS
        }
        self._listeners_lock = threading.Lock()
        self._key_locks = [threading.RLock() for _ in range(_LOCK_STRIPES)]

        logger.debug(
            f"Collection {name!r} ready on {type(backend).__name__} "
            f"(encrypted values: {self.cipher is not None}, "
            f"serialized keys: {serialize_key_access})"
        )

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, backend={type(self.backend).__name__})"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _key_lock(self, key: str):
        if not self.serialize_key_access:
            return contextlib.nullcontext()
        return self._key_locks[hash(key) % _LOCK_STRIPES]

    def _validate_key(self, key: Any) -> None:
        self.backend.validate_key(key)

    def _seal(self, stored: str) -> str:
        return self.cipher.encrypt_text(stored) if self.cipher else stored

    def _open(self, stored: str) -> str:
        return self.cipher.decrypt_text(stored) if self.cipher else stored

    def _decode(self, entry: StoredEntry, default: Any = None) -> Any:
        return self.codec.decode(self._open(entry.value), entry.type, fallback=default)

    def _evict(self, key: str) -> None:
        if self.backend.delete(key):
            logger.debug(f"Evicted expired key {key!r} from {self.name!r}")
            self._emit("delete", {"key": key})

    def _evict_expired(self, key: str) -> Optional[StoredEntry]:
        """Delete ``key`` if it is still expired; return the live entry otherwise."""
        with self._key_lock(key):
            # Another writer may have replaced the entry in the meantime
            current = self.backend.get(key)
            if current is not None and ttl_policy.is_expired(current.ttl):
                self._evict(key)
                return None
            return current

    def _read(self, key: str, default: Any) -> Tuple[Any, Optional[int]]:
        """Return ``(value, absolute_expiry)``; absent or expired gives ``(default, None)``."""
        entry = self.backend.get(key)
        if entry is None:
            return default, None
        if ttl_policy.is_expired(entry.ttl):
            self._evict(key)
            return default, None
        return self._decode(entry, default), entry.ttl

    def _write(self, key: str, value: Any, expiry: Optional[int]) -> None:
        stored, type_tag = self.codec.encode(value)
        self.backend.set(key, StoredEntry(value=self._seal(stored), type=type_tag, ttl=expiry))
        self._emit("set", {"key": key, "value": value})

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, listener: Callable[[Dict[str, Any]], Any]) -> None:
        """
        Subscribe to a change event.

        Args:
            event: One of ``set``, ``delete``, ``clear``
            listener: Called synchronously with the event payload
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {list(EVENTS)}")
        with self._listeners_lock:
            self._listeners[event].append(listener)

    def off(self, event: str, listener: Callable[[Dict[str, Any]], Any]) -> bool:
        """Unsubscribe a listener. Returns False if it was not subscribed."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {list(EVENTS)}")
        with self._listeners_lock:
            try:
                self._listeners[event].remove(listener)
                return True
            except ValueError:
                return False

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners[event])
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.warning(f"Listener for {event!r} on {self.name!r} failed: {e}")

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> Any:
        """
        Store a value.

        Args:
            key: Non-empty string key
            value: JSON-shaped value (None, bool, number, str, list, dict)
            ttl: Optional lifetime in milliseconds; 0 expires immediately

        Returns:
            The stored value

        Raises:
            InvalidKeyError: If the key is rejected
            InvalidValueError: If the value or ttl is rejected
        """
        self._validate_key(key)
        stored, type_tag = self.codec.encode(value)
        expiry = ttl_policy.compute_expiry(ttl)

        with self._key_lock(key):
            self.backend.set(
                key, StoredEntry(value=self._seal(stored), type=type_tag, ttl=expiry)
            )
        self._emit("set", {"key": key, "value": value})
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` when absent or expired."""
        self._validate_key(key)
        entry = self.backend.get(key)
        if entry is None:
            return default
        if ttl_policy.is_expired(entry.ttl):
            entry = self._evict_expired(key)
            if entry is None:
                return default
        return self._decode(entry, default)

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry was removed."""
        self._validate_key(key)
        with self._key_lock(key):
            removed = self.backend.delete(key)
        if removed:
            self._emit("delete", {"key": key})
        return removed

    def clear(self) -> bool:
        """Remove every entry in the collection."""
        self.backend.clear()
        self._emit("clear", {"collection": self.name})
        logger.debug(f"Cleared collection {self.name!r}")
        return True

    def has(self, key: str) -> bool:
        """
        Check whether ``key`` is stored.

        Expiry is not evaluated: an expired entry that no read has evicted yet
        still reports True.
        """
        self._validate_key(key)
        return self.backend.has(key)

    def all(self) -> List[Dict[str, Any]]:
        """
        List non-expired entries as ``{key, value, type, ttl}`` dicts.

        Expired entries are skipped but left in place.
        """
        now = ttl_policy.now_ms()
        return [
            {"key": key, "value": self._decode(entry), "type": entry.type, "ttl": entry.ttl}
            for key, entry in self.backend.all()
            if not ttl_policy.is_expired(entry.ttl, now)
        ]

    def fetch(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        """Scan-and-filter: entries from ``all()`` for which ``predicate`` is true."""
        return [item for item in self.all() if predicate(item)]

    def keys(self) -> List[str]:
        now = ttl_policy.now_ms()
        return [
            key for key, entry in self.backend.all() if not ttl_policy.is_expired(entry.ttl, now)
        ]

    def count(self) -> int:
        return len(self.keys())

    # ------------------------------------------------------------------
    # Read-modify-write helpers (existing expiry is preserved)
    # ------------------------------------------------------------------

    def push(self, key: str, *values: Any) -> List[Any]:
        """
        Append values to the list stored at ``key`` (absent is an empty list).

        Returns:
            The updated list

        Raises:
            TypeMismatchError: If the stored value is not a list
        """
        self._validate_key(key)
        with self._key_lock(key):
            current, expiry = self._read(key, [])
            if not isinstance(current, list):
                raise TypeMismatchError(
                    f"Value at {key!r} is not an array",
                    {"collection": self.name, "actual_type": type(current).__name__},
                )
            updated = current + list(values)
            self._write(key, updated, expiry)
        return updated

    def unshift(self, key: str, *values: Any) -> List[Any]:
        """Prepend values to the list stored at ``key``; returns the updated list."""
        self._validate_key(key)
        with self._key_lock(key):
            current, expiry = self._read(key, [])
            if not isinstance(current, list):
                raise TypeMismatchError(
                    f"Value at {key!r} is not an array",
                    {"collection": self.name, "actual_type": type(current).__name__},
                )
            updated = list(values) + current
            self._write(key, updated, expiry)
        return updated

    def shift(self, key: str) -> Any:
        """
        Remove and return the first element of the list stored at ``key``.

        Returns None when the key is absent or the list is empty.
        """
        self._validate_key(key)
        with self._key_lock(key):
            current, expiry = self._read(key, _MISSING)
            if current is _MISSING:
                return None
            if not isinstance(current, list):
                raise TypeMismatchError(
                    f"Value at {key!r} is not an array",
                    {"collection": self.name, "actual_type": type(current).__name__},
                )
            if not current:
                return None
            first, remaining = current[0], current[1:]
            self._write(key, remaining, expiry)
        return first

    def update(self, key: str, partial: Mapping) -> Dict[str, Any]:
        """
        Shallow-merge ``partial`` into the object stored at ``key``.

        An absent key is treated as an empty object.

        Returns:
            The merged object

        Raises:
            InvalidValueError: If ``partial`` is not a mapping
            TypeMismatchError: If the stored value is not an object
        """
        self._validate_key(key)
        if not isinstance(partial, Mapping):
            raise InvalidValueError(
                "update() expects a mapping", {"partial_type": type(partial).__name__}
            )

        with self._key_lock(key):
            current, expiry = self._read(key, {})
            if not isinstance(current, dict):
                raise TypeMismatchError(
                    f"Value at {key!r} is not an object",
                    {"collection": self.name, "actual_type": type(current).__name__},
                )
            merged = {**current, **partial}
            self._write(key, merged, expiry)
        return merged

    def increment(self, key: str, amount: float = 1) -> float:
        """
        Add ``amount`` to the number stored at ``key``.

        An absent or non-numeric value counts as 0.

        Returns:
            The new value
        """
        self._validate_key(key)
        if not _is_number(amount):
            raise InvalidValueError(
                "amount must be a number", {"amount_type": type(amount).__name__}
            )

        with self._key_lock(key):
            current, expiry = self._read(key, 0)
            if not _is_number(current):
                current = 0
            updated = current + amount
            self._write(key, updated, expiry)
        return updated

    def decrement(self, key: str, amount: float = 1) -> float:
        """Subtract ``amount`` from the number stored at ``key``; returns the new value."""
        if not _is_number(amount):
            raise InvalidValueError(
                "amount must be a number", {"amount_type": type(amount).__name__}
            )
        return self.increment(key, -amount)

    # ------------------------------------------------------------------
    # Batches (sequential, no cross-entry atomicity)
    # ------------------------------------------------------------------

    def batch_set(self, items, ttl: Optional[float] = None) -> int:
        """
        Store several entries one after the other.

        Args:
            items: Mapping of key -> value, or iterable of ``(key, value)`` pairs
            ttl: Optional lifetime in milliseconds applied to every entry

        Returns:
            Number of entries written
        """
        pairs: Iterable[Tuple[str, Any]] = items.items() if isinstance(items, Mapping) else items
        written = 0
        for key, value in pairs:
            self.set(key, value, ttl=ttl)
            written += 1
        return written

    def batch_delete(self, keys: Iterable[str]) -> int:
        """Remove several keys; returns how many entries were removed."""
        return sum(1 for key in keys if self.delete(key))
