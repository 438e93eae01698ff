#!/usr/bin/env python3
"""
Encrypted File Store Example
============================

Persists collections as compressed, encrypted files with a backup copy, then
recovers from a damaged primary file.

Usage:
    python encrypted_store_demo.py
"""

import tempfile
from pathlib import Path

from polykv import CryptoError, Database

SECRET = "change me"


def main():
    print("=== Encrypted File Store Demo ===\n")

    with tempfile.TemporaryDirectory() as data_dir:
        with Database(data_dir=data_dir, secret=SECRET, compression_codec="zstd") as db:
            db.set("accounts", "alice", {"balance": 120, "currency": "EUR"})
            db.increment("accounts", "transactions")

        files = sorted(p.name for p in Path(data_dir).iterdir())
        print(f"📁 Files on disk: {files}")
        print(f"🔒 Primary starts with: {(Path(data_dir) / 'accounts.enc').read_bytes()[:24]!r}\n")

        with Database(data_dir=data_dir, secret=SECRET) as db:
            print(f"✅ Reopened: {db.get('accounts', 'alice')}")

        try:
            Database(data_dir=data_dir, secret="wrong").collection("accounts")
        except CryptoError:
            print("❌ Wrong secret rejected\n")

        # Damage the primary file, then recover it from the backup
        (Path(data_dir) / "accounts.enc").write_bytes(b"oops")
        with Database(data_dir=data_dir, secret=SECRET, compression_codec="zstd") as db:
            accounts = db.restore("accounts")
            print(f"🛟 Restored {accounts.count()} entries from backup")

        with Database(data_dir=data_dir, secret=SECRET) as db:
            print(f"✅ After restore: {db.get('accounts', 'alice')}")


if __name__ == "__main__":
    main()
