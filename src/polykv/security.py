"""
Secret-Based Encryption
=======================

Authenticated encryption for everything polykv persists under a secret: the
encrypted file payload and, optionally, individual stored values.

Token layout (base64 text):

    salt (16 bytes) || nonce (12 bytes) || ciphertext + Poly1305 tag

The 32-byte key is derived from the secret with PBKDF2-HMAC-SHA256 over the
salt. ChaCha20-Poly1305 is a stream cipher carrying an authentication tag, so
a wrong secret or a modified token is detected instead of decrypting to
garbage.

Key material:
- One random salt per SecretCipher instance is used for encryption, so the
  expensive derivation runs once per instance rather than once per write.
- Keys derived while decrypting are cached per salt.
- ``load_or_generate_secret`` manages a 32-byte key file (chmod 600) for
  deployments that do not want to pass a secret around.
"""

import base64
import binascii
import logging
import secrets
import threading
from pathlib import Path
from typing import Dict, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .error_handling import CryptoError

logger = logging.getLogger(__name__)

SALT_SIZE = 16
NONCE_SIZE = 12
KEY_SIZE = 32
TAG_SIZE = 16
DEFAULT_KDF_ITERATIONS = 200_000


def derive_key(secret: str, salt: bytes, iterations: int = DEFAULT_KDF_ITERATIONS) -> bytes:
    """Derive a 32-byte cipher key from a secret and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


class SecretCipher:
    """
    ChaCha20-Poly1305 cipher keyed by a secret string.

    Provides encryption of byte payloads to base64 tokens and back. Any
    failure to decrypt (bad base64, truncated token, authentication failure)
    raises CryptoError.
    """

    def __init__(self, secret: str, kdf_iterations: int = DEFAULT_KDF_ITERATIONS):
        """
        Initialize the cipher.

        Args:
            secret: Secret string the key is derived from
            kdf_iterations: PBKDF2 iteration count
        """
        if not isinstance(secret, str) or not secret:
            raise CryptoError("Secret must be a non-empty string")

        self._secret = secret
        self.kdf_iterations = kdf_iterations
        self._keys: Dict[bytes, bytes] = {}
        self._lock = threading.Lock()
        self._salt = secrets.token_bytes(SALT_SIZE)

        logger.debug(f"Secret cipher initialized: kdf_iterations={kdf_iterations}")

    def _key_for(self, salt: bytes) -> bytes:
        with self._lock:
            key = self._keys.get(salt)
            if key is None:
                key = derive_key(self._secret, salt, self.kdf_iterations)
                self._keys[salt] = key
            return key

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt bytes into an ASCII base64 token."""
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = ChaCha20Poly1305(self._key_for(self._salt)).encrypt(
            nonce, bytes(data), None
        )
        return base64.b64encode(self._salt + nonce + ciphertext)

    def decrypt(self, token: Union[str, bytes]) -> bytes:
        """
        Decrypt a token produced by ``encrypt``.

        Raises:
            CryptoError: If the token is malformed or fails authentication
        """
        if isinstance(token, str):
            token = token.encode("ascii", errors="replace")

        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CryptoError(f"Encrypted payload is not valid base64: {e}") from e

        if len(raw) < SALT_SIZE + NONCE_SIZE + TAG_SIZE:
            raise CryptoError(
                "Encrypted payload is truncated", {"length": len(raw)}
            )

        salt = raw[:SALT_SIZE]
        nonce = raw[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
        ciphertext = raw[SALT_SIZE + NONCE_SIZE:]

        try:
            return ChaCha20Poly1305(self._key_for(salt)).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise CryptoError(
                "Decryption failed: wrong secret or corrupted data"
            ) from e

    def encrypt_text(self, text: str) -> str:
        """Encrypt a string into a base64 token string."""
        return self.encrypt(text.encode("utf-8")).decode("ascii")

    def decrypt_text(self, token: str) -> str:
        """Decrypt a token string produced by ``encrypt_text``."""
        plain = self.decrypt(token)
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError("Decrypted payload is not UTF-8 text") from e


def load_or_generate_secret(key_file: Union[str, Path]) -> str:
    """
    Load a 32-byte key file, generating one when it does not exist.

    The key is returned as a hex string suitable for SecretCipher. New key
    files are written with owner-only permissions.

    Raises:
        CryptoError: If an existing key file has the wrong length or cannot be read
    """
    key_file = Path(key_file)

    if key_file.exists():
        try:
            key = key_file.read_bytes()
        except OSError as e:
            raise CryptoError(f"Failed to read key file: {e}", {"key_file": str(key_file)}) from e
        if len(key) != KEY_SIZE:
            raise CryptoError(
                f"Invalid key length ({len(key)} bytes)", {"key_file": str(key_file)}
            )
        logger.debug(f"Loaded secret key from {key_file}")
        return key.hex()

    key = secrets.token_bytes(KEY_SIZE)
    try:
        key_file.parent.mkdir(parents=True, exist_ok=True)
        key_file.write_bytes(key)
    except OSError as e:
        raise CryptoError(f"Failed to write key file: {e}", {"key_file": str(key_file)}) from e

    # Owner read/write only
    try:
        key_file.chmod(0o600)
    except OSError as e:
        logger.warning(f"Failed to set restrictive permissions on key file: {e}")

    logger.info(f"Generated new secret key: {key_file}")
    return key.hex()
