"""
Flat-File Storage Backends
==========================

One file per collection holding the whole ``{key: {value, type, ttl}}``
mapping.

- The mapping is loaded once at construction; a missing file is an empty
  collection.
- Every mutation rewrites the whole file atomically (temp file + replace), so
  a reader never observes a partial write.

Variants:
- JsonFileBackend: orjson document, ``<table>.json``
- YamlFileBackend: PyYAML document, ``<table>.yml``

The encrypted file store builds on FlatFileBackend and only changes how the
mapping is turned into bytes.
"""

import logging
import threading
from abc import abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ...error_handling import (
    BackendUnavailableError,
    PolykvError,
    safe_file_operation,
    validate_file_path,
)
from ...json_utils import dumps as json_dumps
from ...json_utils import dumps_bytes as json_dumps_bytes
from ...json_utils import loads as json_loads
from .base import StorageBackend, StoredEntry

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes to ``path`` through a temp file and an atomic replace."""
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        temp_path.write_bytes(data)
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


class FlatFileBackend(StorageBackend):
    """
    Base class for backends persisting a collection as a single file.

    Subclasses implement ``_encode_mapping`` / ``_decode_mapping`` to turn
    the plain ``{key: entry_dict}`` mapping into file bytes and back.
    """

    extension = ".dat"

    def __init__(
        self,
        table: str,
        path: Optional[Union[str, Path]] = None,
        data_dir: Union[str, Path] = "./polykv_data",
    ):
        """
        Initialize the backend and load the collection file.

        Args:
            table: Collection name
            path: Explicit file path (defaults to ``<data_dir>/<table><extension>``)
            data_dir: Directory used when no explicit path is given
        """
        super().__init__(table)
        self.path = validate_file_path(
            Path(path) if path is not None else Path(data_dir) / f"{table}{self.extension}"
        )
        self._lock = threading.RLock()
        self._entries: Dict[str, StoredEntry] = self._load_file(self.path)

        logger.info(
            f"{type(self).__name__} initialized: {self.path} ({len(self._entries)} entries)"
        )

    # ------------------------------------------------------------------
    # Serialization hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _encode_mapping(self, mapping: Dict[str, Dict[str, Any]]) -> bytes:
        pass

    @abstractmethod
    def _decode_mapping(self, raw: bytes) -> Dict[str, Any]:
        pass

    # ------------------------------------------------------------------
    # File handling
    # ------------------------------------------------------------------

    def _load_file(self, path: Path) -> Dict[str, StoredEntry]:
        if not path.exists():
            logger.debug(f"No file at {path}, starting with an empty collection")
            return {}

        raw = safe_file_operation("read collection file", path, path.read_bytes)
        return self._parse(raw, path)

    def _parse(self, raw: bytes, path: Path) -> Dict[str, StoredEntry]:
        try:
            mapping = self._decode_mapping(raw) if raw.strip() else {}
        except PolykvError:
            raise
        except Exception as e:
            raise BackendUnavailableError(
                f"Collection file is corrupt: {e}", {"path": str(path)}
            ) from e

        if mapping is None:
            mapping = {}
        if not isinstance(mapping, dict):
            raise BackendUnavailableError(
                "Collection file does not hold a mapping", {"path": str(path)}
            )

        try:
            return {
                str(key): StoredEntry.from_dict(data) for key, data in mapping.items()
            }
        except ValueError as e:
            raise BackendUnavailableError(str(e), {"path": str(path)}) from e

    def _snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {key: entry.to_dict() for key, entry in self._entries.items()}

    def _write_file(self, path: Path, data: bytes) -> None:
        safe_file_operation("write collection file", path, atomic_write_bytes, path, data)

    def _persist(self) -> None:
        """Rewrite the collection file from the in-memory mapping."""
        self._write_file(self.path, self._encode_mapping(self._snapshot()))

    # ------------------------------------------------------------------
    # Primitive surface
    # ------------------------------------------------------------------

    def set(self, key: str, entry: StoredEntry) -> bool:
        self._ensure_connected()
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = entry
            try:
                self._persist()
            except Exception:
                # Keep memory consistent with what is on disk
                if previous is None:
                    self._entries.pop(key, None)
                else:
                    self._entries[key] = previous
                raise
        return True

    def get(self, key: str) -> Optional[StoredEntry]:
        self._ensure_connected()
        with self._lock:
            return self._entries.get(key)

    def delete(self, key: str) -> bool:
        self._ensure_connected()
        with self._lock:
            if key not in self._entries:
                return False
            previous = self._entries.pop(key)
            try:
                self._persist()
            except Exception:
                self._entries[key] = previous
                raise
        return True

    def clear(self) -> bool:
        self._ensure_connected()
        with self._lock:
            previous = self._entries
            self._entries = {}
            try:
                self._persist()
            except Exception:
                self._entries = previous
                raise
        logger.debug(f"Cleared collection file {self.path}")
        return True

    def has(self, key: str) -> bool:
        self._ensure_connected()
        with self._lock:
            return key in self._entries

    def all(self) -> List[Tuple[str, StoredEntry]]:
        self._ensure_connected()
        with self._lock:
            return list(self._entries.items())


class JsonFileBackend(FlatFileBackend):
    """Plain JSON file per collection."""

    extension = ".json"

    def __init__(self, table: str, path=None, data_dir="./polykv_data", pretty: bool = False):
        self.pretty = pretty
        super().__init__(table, path=path, data_dir=data_dir)

    def _encode_mapping(self, mapping):
        if self.pretty:
            return json_dumps(mapping, indent=True).encode("utf-8")
        return json_dumps_bytes(mapping)

    def _decode_mapping(self, raw):
        return json_loads(raw)


class YamlFileBackend(FlatFileBackend):
    """Plain YAML file per collection."""

    extension = ".yml"

    def _encode_mapping(self, mapping):
        return yaml.safe_dump(
            mapping, allow_unicode=True, sort_keys=False, default_flow_style=False
        ).encode("utf-8")

    def _decode_mapping(self, raw):
        return yaml.safe_load(raw.decode("utf-8"))
