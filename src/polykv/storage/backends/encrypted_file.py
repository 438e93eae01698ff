"""
Encrypted File Store
====================

A flat-file backend whose file bytes are compressed and encrypted, with a
parallel backup copy.

Write path (every ``set``/``delete``/``clear``):

    mapping -> JSON -> compress -> encrypt -> atomic write to primary
                    -> compress -> encrypt -> atomic write to backup

Each mutation rewrites both files in full. The backup is encrypted
independently (fresh nonce), so the two files never share ciphertext.

Read path: the mapping is decrypted once at construction and served from
memory afterwards. A missing primary is an empty collection; a primary that
is empty or cannot be decrypted or decompressed is a CryptoError, and only an explicit
``restore()`` from the backup recovers from it.

Usage:
    backend = EncryptedFileBackend("users", data_dir="./data", secret="s3cret")
    backend.connect()
    ...
    # After the primary file was damaged:
    backend = EncryptedFileBackend.from_backup("users", data_dir="./data", secret="s3cret")
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from ...compression import DecompressionError, compress, decompress, list_available_codecs
from ...error_handling import (
    BackendUnavailableError,
    ConfigurationError,
    CryptoError,
    safe_file_operation,
    validate_file_path,
)
from ...json_utils import dumps_bytes as json_dumps_bytes, loads as json_loads
from ...security import DEFAULT_KDF_ITERATIONS, SecretCipher
from .base import StoredEntry
from .file_backends import FlatFileBackend

logger = logging.getLogger(__name__)


class EncryptedFileBackend(FlatFileBackend):
    """
    Compressed, encrypted single-file store with backup/restore.

    Args:
        table: Collection name
        path: Primary file path (defaults to ``<data_dir>/<table>.enc``)
        secret: Secret the encryption key is derived from
        data_dir: Directory used when no explicit path is given
        backup: Whether to maintain the backup copy
        backup_path: Backup file path (defaults to ``<path>.bak``)
        compression: Codec name, see ``polykv.compression.list_available_codecs``
        compression_level: Compression level 0-9
        kdf_iterations: PBKDF2 iteration count for key derivation
        cipher: Pre-built SecretCipher (takes precedence over ``secret``)
        load: Read the primary file at construction (``from_backup`` skips it)
    """

    extension = ".enc"

    def __init__(
        self,
        table: str,
        path: Optional[Union[str, Path]] = None,
        secret: Optional[str] = None,
        data_dir: Union[str, Path] = "./polykv_data",
        backup: bool = True,
        backup_path: Optional[Union[str, Path]] = None,
        compression: str = "gzip",
        compression_level: int = 6,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
        cipher: Optional[SecretCipher] = None,
        load: bool = True,
    ):
        if cipher is None:
            if not secret:
                raise ConfigurationError(
                    "EncryptedFileBackend requires a secret", {"table": table}
                )
            cipher = SecretCipher(secret, kdf_iterations=kdf_iterations)

        if compression not in list_available_codecs():
            raise ConfigurationError(
                f"Unknown compression codec: {compression}",
                {"available": list_available_codecs()},
            )

        self.cipher = cipher
        self.compression = compression
        self.compression_level = compression_level
        self.backup = backup
        self._load_primary = load
        self._backup_path = Path(backup_path) if backup_path is not None else None

        super().__init__(table, path=path, data_dir=data_dir)
        if backup:
            validate_file_path(self.backup_path)

    @property
    def backup_path(self) -> Path:
        if self._backup_path is not None:
            return self._backup_path
        return self.path.with_name(self.path.name + ".bak")

    @classmethod
    def from_backup(cls, table: str, **options) -> "EncryptedFileBackend":
        """
        Build a backend from its backup file, rewriting the primary.

        Used when the primary file can no longer be decrypted.
        """
        backend = cls(table, load=False, **options)
        backend.restore()
        return backend

    # ------------------------------------------------------------------
    # Serialization hooks
    # ------------------------------------------------------------------

    def _encode_mapping(self, mapping) -> bytes:
        packed = compress(
            json_dumps_bytes(mapping), codec=self.compression, level=self.compression_level
        )
        return self.cipher.encrypt(packed)

    def _decode_mapping(self, raw: bytes):
        packed = self.cipher.decrypt(raw.strip())
        try:
            plain = decompress(packed)
        except DecompressionError as e:
            raise CryptoError(f"Failed to decompress decrypted payload: {e}") from e
        return json_loads(plain)

    # ------------------------------------------------------------------
    # File handling
    # ------------------------------------------------------------------

    def _load_file(self, path: Path) -> Dict[str, StoredEntry]:
        if not self._load_primary:
            return {}
        return super()._load_file(path)

    def _parse(self, raw: bytes, path: Path) -> Dict[str, StoredEntry]:
        # An existing file always holds a token; empty content is damage
        if not raw.strip():
            raise CryptoError("Encrypted collection file is empty", {"path": str(path)})
        return super()._parse(raw, path)

    def _persist(self) -> None:
        """Rewrite the primary file, then the independently encrypted backup."""
        snapshot = self._snapshot()
        previous = None
        if self.path.exists():
            previous = safe_file_operation(
                "read collection file", self.path, self.path.read_bytes
            )
        self._write_file(self.path, self._encode_mapping(snapshot))
        if not self.backup:
            return
        try:
            self._write_file(self.backup_path, self._encode_mapping(snapshot))
        except Exception:
            # Put the primary back so it matches the rolled-back mapping
            if previous is None:
                self.path.unlink()
            else:
                self._write_file(self.path, previous)
            raise

    def restore(self) -> int:
        """
        Replace the in-memory mapping with the backup and rewrite the primary.

        Returns:
            Number of entries restored

        Raises:
            BackendUnavailableError: If the backup file does not exist
            CryptoError: If the backup cannot be decrypted or decompressed
        """
        with self._lock:
            backup_path = self.backup_path
            if not backup_path.exists():
                raise BackendUnavailableError(
                    "No backup file to restore from", {"backup_path": str(backup_path)}
                )

            raw = safe_file_operation("read backup file", backup_path, backup_path.read_bytes)
            entries = self._parse(raw, backup_path)

            self._entries = entries
            self._write_file(self.path, self._encode_mapping(self._snapshot()))

        logger.info(f"Restored {len(entries)} entries into {self.path} from {backup_path}")
        return len(entries)
