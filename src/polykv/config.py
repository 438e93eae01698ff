"""
Configuration Management for polykv
===================================

Configuration is split into focused sub-configurations (storage, codec,
security, concurrency) combined by DatabaseConfig. Flat keyword overrides are
accepted for convenience and mapped onto the matching sub-configuration.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

VALID_BACKENDS = {
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

VALID_COMPRESSION_CODECS = {"gzip", "lz4", "zstd"}


@dataclass
class StorageConfig:
    """Configuration for backend selection and on-disk layout."""

    backend: str = "encrypted_file"
    data_dir: str = "./polykv_data"
    backup: bool = True
    compression_codec: str = "gzip"
    compression_level: int = 6
    # Extra keyword arguments forwarded to every backend constructor
    # (connection_url, uri, contact_points, maxsize, ...)
    backend_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate storage configuration."""
        if not isinstance(self.backend, str) or not self.backend:
            raise ValueError("backend must be a non-empty string")

        if self.compression_codec not in VALID_COMPRESSION_CODECS:
            raise ValueError(
                f"compression_codec must be one of {sorted(VALID_COMPRESSION_CODECS)}"
            )

        if not (0 <= self.compression_level <= 9):
            raise ValueError("compression_level must be between 0 and 9")

        if self.backend not in VALID_BACKENDS:
            # Custom backends may be registered later; only warn here
            logger.warning(f"Backend '{self.backend}' is not a built-in backend")

        logger.debug(
            f"Storage configured: backend={self.backend}, dir={self.data_dir}, "
            f"compression={self.compression_codec}@{self.compression_level}"
        )


@dataclass
class CodecConfig:
    """Configuration for value encoding and decoding."""

    allow_bigint: bool = True
    allow_max_safe_integer: bool = True
    fallback_type: str = "primitive"  # "primitive" or "object"

    def __post_init__(self):
        """Validate codec configuration."""
        if self.fallback_type not in ("primitive", "object"):
            raise ValueError("fallback_type must be 'primitive' or 'object'")

        logger.debug(
            f"Codec configured: bigint={self.allow_bigint}, "
            f"max_safe_integer={self.allow_max_safe_integer}, fallback={self.fallback_type}"
        )


@dataclass
class SecurityConfig:
    """Configuration for encryption of persisted data."""

    secret: Optional[str] = None
    key_file: Optional[str] = None
    encrypt_values: bool = True
    kdf_iterations: int = 200_000

    def __post_init__(self):
        """Validate security configuration."""
        if self.secret is not None and (not isinstance(self.secret, str) or not self.secret):
            raise ValueError("secret must be a non-empty string")

        if self.kdf_iterations < 1:
            raise ValueError("kdf_iterations must be at least 1")

        # Never log the secret itself
        logger.debug(
            f"Security configured: secret={'set' if self.secret else 'unset'}, "
            f"key_file={self.key_file}, encrypt_values={self.encrypt_values}"
        )


@dataclass
class ConcurrencyConfig:
    """Configuration for read-modify-write coordination."""

    serialize_key_access: bool = True

    def __post_init__(self):
        logger.debug(f"Concurrency configured: serialize_key_access={self.serialize_key_access}")


_FLAT_OVERRIDES = {
    "backend": "storage",
    "data_dir": "storage",
    "backup": "storage",
    "compression_codec": "storage",
    "compression_level": "storage",
    "backend_options": "storage",
    "allow_bigint": "codec",
    "allow_max_safe_integer": "codec",
    "fallback_type": "codec",
    "secret": "security",
    "key_file": "security",
    "encrypt_values": "security",
    "kdf_iterations": "security",
    "serialize_key_access": "concurrency",
}


class DatabaseConfig:
    """Main configuration class that combines all sub-configurations."""

    def __init__(
        self,
        storage: Optional[StorageConfig] = None,
        codec: Optional[CodecConfig] = None,
        security: Optional[SecurityConfig] = None,
        concurrency: Optional[ConcurrencyConfig] = None,
        **kwargs,
    ):
        """Initialize configuration, applying flat keyword overrides."""
        self.storage = storage or StorageConfig()
        self.codec = codec or CodecConfig()
        self.security = security or SecurityConfig()
        self.concurrency = concurrency or ConcurrencyConfig()

        for key, value in kwargs.items():
            target = _FLAT_OVERRIDES.get(key)
            if target is None:
                logger.warning(f"Unknown configuration parameter ignored: {key}={value!r}")
                continue
            setattr(getattr(self, target), key, value)

        # Re-run validation after overrides were applied
        for sub_config in (self.storage, self.codec, self.security, self.concurrency):
            sub_config.__post_init__()

        logger.info(f"Database configuration initialized (backend: {self.storage.backend})")

    @property
    def backend(self) -> str:
        return self.storage.backend

    @property
    def data_dir(self) -> str:
        return self.storage.data_dir

    @property
    def secret(self) -> Optional[str]:
        return self.security.secret

    @classmethod
    def create_in_memory(cls) -> "DatabaseConfig":
        """Create a configuration for an ephemeral in-memory database."""
        return cls(storage=StorageConfig(backend="memory", backup=False))

    @classmethod
    def create_encrypted(
        cls, data_dir: Union[str, Path], secret: str, codec: str = "gzip"
    ) -> "DatabaseConfig":
        """Create a configuration for the encrypted file store."""
        return cls(
            storage=StorageConfig(
                backend="encrypted_file", data_dir=str(data_dir), compression_codec=codec
            ),
            security=SecurityConfig(secret=secret),
        )


def create_database_config(
    backend: Optional[str] = None,
    data_dir: Optional[Union[str, Path]] = None,
    **overrides,
) -> DatabaseConfig:
    """
    Factory function for creating configurations with convenience parameters.

    Args:
        backend: Registered backend name
        data_dir: Directory for file-based backends
        **overrides: Flat override values for any sub-configuration field

    Returns:
        Configured DatabaseConfig instance
    """
    if backend is not None:
        overrides["backend"] = backend
    if data_dir is not None:
        overrides["data_dir"] = str(data_dir)
    return DatabaseConfig(**overrides)
