"""
Tests for the encrypted file store: on-disk format, wrong secrets, codecs and
backup/restore.
"""

import base64

import pytest

from conftest import TEST_KDF_ITERATIONS, TEST_SECRET
from polykv.compression import GZIP_MAGIC, decompress
from polykv.error_handling import BackendUnavailableError, ConfigurationError, CryptoError
from polykv.json_utils import loads
from polykv.security import SecretCipher
from polykv.storage.backends import EncryptedFileBackend, StoredEntry

ALICE = StoredEntry(value='{"name":"alice","age":30}', type="object")


@pytest.fixture
def store(tmp_path, cipher):
    backend = EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher).connect()
    yield backend
    backend.disconnect()


class TestOnDiskFormat:
    def test_file_is_base64_not_plaintext(self, store):
        store.set("alice", ALICE)
        raw = store.path.read_bytes()

        assert b"alice" not in raw
        base64.b64decode(raw, validate=True)

    def test_payload_is_gzip_compressed_json(self, store, cipher):
        store.set("alice", ALICE)
        packed = cipher.decrypt(store.path.read_bytes())

        assert packed[:2] == GZIP_MAGIC
        assert loads(decompress(packed)) == {"alice": ALICE.to_dict()}

    def test_default_paths(self, store, tmp_path):
        assert store.path == tmp_path / "users.enc"
        assert store.backup_path == tmp_path / "users.enc.bak"

    def test_backup_written_alongside(self, store):
        store.set("alice", ALICE)
        assert store.backup_path.exists()
        # Independently encrypted: fresh nonce
        assert store.backup_path.read_bytes() != store.path.read_bytes()

    def test_backup_disabled(self, tmp_path, cipher):
        with EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher, backup=False) as b:
            b.set("alice", ALICE)
            assert not b.backup_path.exists()

    def test_custom_backup_path(self, tmp_path, cipher):
        backup = tmp_path / "backups" / "users.bak"
        backend = EncryptedFileBackend(
            "users", data_dir=tmp_path, cipher=cipher, backup_path=backup
        ).connect()
        backend.set("alice", ALICE)
        assert backup.exists()

    def test_no_temp_files_left_behind(self, store, tmp_path):
        store.set("alice", ALICE)
        store.delete("alice")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["users.enc", "users.enc.bak"]


class TestSecrets:
    def test_secret_string(self, tmp_path):
        options = dict(data_dir=tmp_path, secret=TEST_SECRET, kdf_iterations=TEST_KDF_ITERATIONS)
        with EncryptedFileBackend("users", **options) as backend:
            backend.set("alice", ALICE)
        with EncryptedFileBackend("users", **options) as backend:
            assert backend.get("alice") == ALICE

    def test_missing_secret(self, tmp_path):
        with pytest.raises(ConfigurationError):
            EncryptedFileBackend("users", data_dir=tmp_path)

    def test_wrong_secret(self, store, tmp_path):
        store.set("alice", ALICE)
        wrong = SecretCipher("not the secret", kdf_iterations=TEST_KDF_ITERATIONS)
        with pytest.raises(CryptoError):
            EncryptedFileBackend("users", data_dir=tmp_path, cipher=wrong)

    def test_corrupted_primary(self, store, tmp_path, cipher):
        store.set("alice", ALICE)
        store.path.write_bytes(b"garbage that is not base64!")
        with pytest.raises(CryptoError):
            EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher)

    @pytest.mark.parametrize("content", [b"", b"  \n"])
    def test_empty_primary_is_rejected(self, store, tmp_path, cipher, content):
        store.set("alice", ALICE)
        store.path.write_bytes(content)
        with pytest.raises(CryptoError):
            EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher)

    def test_encrypted_non_compressed_payload(self, tmp_path, cipher):
        (tmp_path / "users.enc").write_bytes(cipher.encrypt(b"plain bytes"))
        with pytest.raises(CryptoError):
            EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher)


class TestCompressionCodecs:
    @pytest.mark.parametrize("codec", ["gzip", "lz4", "zstd"])
    def test_codec_round_trip(self, tmp_path, cipher, codec):
        options = dict(data_dir=tmp_path, cipher=cipher, compression=codec)
        with EncryptedFileBackend("users", **options) as backend:
            backend.set("alice", ALICE)
        with EncryptedFileBackend("users", **options) as backend:
            assert backend.get("alice") == ALICE

    def test_codec_is_detected_on_read(self, tmp_path, cipher):
        with EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher, compression="zstd") as b:
            b.set("alice", ALICE)
        with EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher) as b:
            assert b.get("alice") == ALICE

    def test_unknown_codec(self, tmp_path, cipher):
        with pytest.raises(ConfigurationError):
            EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher, compression="rar")


class TestBackupRestore:
    def test_restore_after_primary_corruption(self, store, tmp_path, cipher):
        store.set("alice", ALICE)
        store.set("bob", StoredEntry(value="41", type="number"))
        store.path.write_bytes(b"corrupted")

        restored = EncryptedFileBackend.from_backup("users", data_dir=tmp_path, cipher=cipher)
        restored.connect()

        assert dict(restored.all()) == {
            "alice": ALICE,
            "bob": StoredEntry(value="41", type="number"),
        }
        # Primary was rewritten and loads again
        reopened = EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher).connect()
        assert reopened.get("bob") == StoredEntry(value="41", type="number")

    def test_restore_discards_unsaved_memory(self, store):
        store.set("alice", ALICE)
        store._entries["phantom"] = StoredEntry(value="1", type="number")
        assert store.restore() == 1
        assert store.has("phantom") is False

    def test_restore_without_backup(self, tmp_path, cipher):
        backend = EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher, backup=False)
        with pytest.raises(BackendUnavailableError):
            backend.restore()

    def test_restore_with_wrong_secret(self, store, tmp_path):
        store.set("alice", ALICE)
        wrong = SecretCipher("not the secret", kdf_iterations=TEST_KDF_ITERATIONS)
        with pytest.raises(CryptoError):
            EncryptedFileBackend.from_backup("users", data_dir=tmp_path, cipher=wrong)

    def test_backup_tracks_deletes_and_clear(self, store, tmp_path, cipher):
        store.set("alice", ALICE)
        store.set("bob", ALICE)
        store.delete("alice")
        assert store.restore() == 1

        store.clear()
        assert store.restore() == 0

    def test_empty_primary_leaves_backup_recoverable(self, store, tmp_path, cipher):
        store.set("alice", ALICE)
        store.path.write_bytes(b"")

        restored = EncryptedFileBackend.from_backup("users", data_dir=tmp_path, cipher=cipher)
        restored.connect()
        restored.set("bob", ALICE)

        assert restored.restore() == 2
        assert restored.get("alice") == ALICE


class TestBackupWriteFailure:
    @pytest.fixture
    def blocked_backup(self, tmp_path):
        # A directory cannot be replaced by the backup file
        path = tmp_path / "blocked.bak"
        path.mkdir()
        return path

    def test_first_write_leaves_no_primary(self, tmp_path, cipher, blocked_backup):
        backend = EncryptedFileBackend(
            "users", data_dir=tmp_path, cipher=cipher, backup_path=blocked_backup
        ).connect()
        with pytest.raises(BackendUnavailableError):
            backend.set("alice", ALICE)

        assert backend.has("alice") is False
        assert not backend.path.exists()

    def test_primary_matches_memory_after_failed_update(self, tmp_path, cipher, blocked_backup):
        with EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher, backup=False) as b:
            b.set("alice", ALICE)

        backend = EncryptedFileBackend(
            "users", data_dir=tmp_path, cipher=cipher, backup_path=blocked_backup
        ).connect()
        with pytest.raises(BackendUnavailableError):
            backend.set("bob", ALICE)
        with pytest.raises(BackendUnavailableError):
            backend.delete("alice")

        reopened = EncryptedFileBackend("users", data_dir=tmp_path, cipher=cipher, backup=False)
        assert dict(reopened.connect().all()) == dict(backend.all()) == {"alice": ALICE}
