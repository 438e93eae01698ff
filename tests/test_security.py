"""
Tests for secret-based encryption and key file management.
"""

import base64
import os
import stat
import sys

import pytest

from conftest import TEST_KDF_ITERATIONS, TEST_SECRET
from polykv.error_handling import CryptoError
from polykv.security import (
    KEY_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    SecretCipher,
    derive_key,
    load_or_generate_secret,
)


class TestDeriveKey:
    def test_key_length(self):
        key = derive_key("secret", b"\x00" * SALT_SIZE, iterations=TEST_KDF_ITERATIONS)
        assert len(key) == KEY_SIZE

    def test_deterministic_for_same_salt(self):
        salt = os.urandom(SALT_SIZE)
        assert derive_key("s", salt, 1000) == derive_key("s", salt, 1000)

    def test_salt_changes_key(self):
        assert derive_key("s", b"a" * SALT_SIZE, 1000) != derive_key("s", b"b" * SALT_SIZE, 1000)


class TestSecretCipher:
    def test_round_trip(self, cipher):
        token = cipher.encrypt(b"hello world")
        assert cipher.decrypt(token) == b"hello world"

    def test_token_is_base64_with_expected_layout(self, cipher):
        plain = b"x" * 10
        token = cipher.encrypt(plain)
        raw = base64.b64decode(token, validate=True)
        assert len(raw) == SALT_SIZE + NONCE_SIZE + len(plain) + TAG_SIZE

    def test_nonce_differs_per_encryption(self, cipher):
        assert cipher.encrypt(b"same") != cipher.encrypt(b"same")

    def test_other_instance_with_same_secret_decrypts(self, cipher):
        other = SecretCipher(TEST_SECRET, kdf_iterations=TEST_KDF_ITERATIONS)
        assert other.decrypt(cipher.encrypt(b"shared")) == b"shared"

    def test_accepts_str_token(self, cipher):
        token = cipher.encrypt(b"text").decode("ascii")
        assert cipher.decrypt(token) == b"text"

    def test_text_helpers(self, cipher):
        token = cipher.encrypt_text("héllo")
        assert isinstance(token, str)
        assert cipher.decrypt_text(token) == "héllo"

    def test_empty_payload(self, cipher):
        assert cipher.decrypt(cipher.encrypt(b"")) == b""

    @pytest.mark.parametrize("secret", ["", None, 123])
    def test_rejects_invalid_secret(self, secret):
        with pytest.raises(CryptoError):
            SecretCipher(secret, kdf_iterations=TEST_KDF_ITERATIONS)


class TestDecryptFailures:
    def test_wrong_secret(self, cipher):
        token = cipher.encrypt(b"classified")
        other = SecretCipher("wrong secret", kdf_iterations=TEST_KDF_ITERATIONS)
        with pytest.raises(CryptoError):
            other.decrypt(token)

    def test_tampered_ciphertext(self, cipher):
        raw = bytearray(base64.b64decode(cipher.encrypt(b"classified")))
        raw[-1] ^= 0x01
        with pytest.raises(CryptoError):
            cipher.decrypt(base64.b64encode(bytes(raw)))

    def test_not_base64(self, cipher):
        with pytest.raises(CryptoError):
            cipher.decrypt("this is *not* base64!")

    def test_truncated(self, cipher):
        with pytest.raises(CryptoError):
            cipher.decrypt(base64.b64encode(b"short"))

    def test_non_utf8_text(self, cipher):
        token = cipher.encrypt(b"\xff\xfe\xfd").decode("ascii")
        with pytest.raises(CryptoError):
            cipher.decrypt_text(token)


class TestKeyFile:
    def test_generates_key_file(self, tmp_path):
        key_file = tmp_path / "keys" / "polykv.key"
        secret = load_or_generate_secret(key_file)

        assert key_file.exists()
        assert len(key_file.read_bytes()) == KEY_SIZE
        assert secret == key_file.read_bytes().hex()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_key_file_permissions(self, tmp_path):
        key_file = tmp_path / "polykv.key"
        load_or_generate_secret(key_file)
        assert stat.S_IMODE(key_file.stat().st_mode) == 0o600

    def test_reloads_existing_key(self, tmp_path):
        key_file = tmp_path / "polykv.key"
        first = load_or_generate_secret(key_file)
        assert load_or_generate_secret(key_file) == first

    def test_invalid_key_length(self, tmp_path):
        key_file = tmp_path / "polykv.key"
        key_file.write_bytes(b"too short")
        with pytest.raises(CryptoError):
            load_or_generate_secret(key_file)
        # The bad key is left for the operator to inspect
        assert key_file.read_bytes() == b"too short"
