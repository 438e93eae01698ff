#!/usr/bin/env python3
"""
Simple Backend Example
======================

Same collection code, three different storage media. Swap the backend name
and nothing else changes.

Usage:
    python simple_backend_demo.py
"""

import tempfile

from polykv import Database


def exercise(db):
    """Run the same workload against any backend."""
    users = db.collection("users")

    users.set("alice", {"name": "Alice", "age": 30})
    users.update("alice", {"city": "Oslo"})
    users.push("alice_logins", "2024-01-01", "2024-01-02")
    users.increment("visits", 3)
    users.set("session", "tok-123", ttl=0)  # expires immediately

    print(f"   alice    -> {users.get('alice')}")
    print(f"   logins   -> {users.get('alice_logins')}")
    print(f"   visits   -> {users.get('visits')}")
    print(f"   session  -> {users.get('session', 'expired')}")
    print(f"   keys     -> {sorted(users.keys())}\n")


def main():
    print("=== Simple Backend Demo ===\n")

    with tempfile.TemporaryDirectory() as data_dir:
        print("🧠 MEMORY: process-local, gone when the process exits")
        with Database(backend="memory") as db:
            exercise(db)

        print("📄 JSON: one readable file per collection")
        with Database(backend="json", data_dir=data_dir) as db:
            exercise(db)

        print("🗃️  SQLITE: one embedded database, one table per collection")
        with Database(backend="sqlite", data_dir=data_dir) as db:
            exercise(db)


if __name__ == "__main__":
    main()
