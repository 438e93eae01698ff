"""
Concurrency Stress Tests for Collection key locking
===================================================

Tests that per-key serialization in Collection actually prevents lost
updates when several threads run read-modify-write helpers on the same key.

Covers:
- Concurrent increment() on one key (no lost increments)
- Concurrent push() on one key (every element lands exactly once)
- Concurrent update() on one key (every field lands)
- Concurrent push() + shift() (no element duplicated or lost)
- Concurrent set() to distinct keys (all succeed)
- Lock re-entrancy via decrement -> increment and expired-read eviction
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from polykv import Database
from polykv.collection import Collection
from polykv.storage.backends import JsonFileBackend, MemoryBackend, SqliteBackend

THREADS = 8
ITERATIONS = 50


@pytest.fixture(params=["memory", "json", "sqlite"])
def stress_collection(request, tmp_path):
    """Collections over backends exercising different locking paths."""
    if request.param == "memory":
        backend = MemoryBackend("stress")
    elif request.param == "json":
        backend = JsonFileBackend("stress", data_dir=tmp_path)
    else:
        backend = SqliteBackend("stress", db_file=tmp_path / "stress.db")
    backend.connect()
    yield Collection("stress", backend)
    backend.disconnect()


def run_concurrently(worker, threads=THREADS):
    """Start ``threads`` workers at the same instant and re-raise any failure."""
    barrier = threading.Barrier(threads)

    def wrapped(index):
        barrier.wait()
        worker(index)

    with ThreadPoolExecutor(max_workers=threads) as pool:
        for future in [pool.submit(wrapped, i) for i in range(threads)]:
            future.result()


class TestConcurrentIncrement:
    def test_no_lost_increments(self, stress_collection):
        def worker(_):
            for _ in range(ITERATIONS):
                stress_collection.increment("counter")

        run_concurrently(worker)
        assert stress_collection.get("counter") == THREADS * ITERATIONS

    def test_mixed_increment_decrement(self, stress_collection):
        stress_collection.set("balance", 1000)

        def worker(index):
            for _ in range(ITERATIONS):
                if index % 2:
                    stress_collection.increment("balance", 2)
                else:
                    stress_collection.decrement("balance", 1)

        run_concurrently(worker)
        half = THREADS // 2
        assert stress_collection.get("balance") == 1000 + half * ITERATIONS * 2 - half * ITERATIONS


class TestConcurrentLists:
    def test_no_lost_pushes(self, stress_collection):
        def worker(index):
            for i in range(ITERATIONS):
                stress_collection.push("queue", f"{index}-{i}")

        run_concurrently(worker)
        items = stress_collection.get("queue")
        assert len(items) == THREADS * ITERATIONS
        assert set(items) == {f"{t}-{i}" for t in range(THREADS) for i in range(ITERATIONS)}

    def test_per_thread_order_preserved(self, stress_collection):
        def worker(index):
            for i in range(ITERATIONS):
                stress_collection.push("queue", [index, i])

        run_concurrently(worker)
        items = stress_collection.get("queue")
        for thread in range(THREADS):
            sequence = [i for t, i in items if t == thread]
            assert sequence == list(range(ITERATIONS))

    def test_push_and_shift(self, stress_collection):
        produced = THREADS // 2 * ITERATIONS
        consumed = []
        consumed_lock = threading.Lock()

        def worker(index):
            if index % 2:
                for i in range(ITERATIONS):
                    stress_collection.push("jobs", f"{index}-{i}")
            else:
                for _ in range(ITERATIONS):
                    job = stress_collection.shift("jobs")
                    if job is not None:
                        with consumed_lock:
                            consumed.append(job)

        run_concurrently(worker)
        remaining = stress_collection.get("jobs", [])

        assert len(consumed) + len(remaining) == produced
        assert len(set(consumed) | set(remaining)) == produced


class TestConcurrentUpdate:
    def test_every_field_lands(self, stress_collection):
        def worker(index):
            for i in range(ITERATIONS):
                stress_collection.update("profile", {f"field_{index}_{i}": i})

        run_concurrently(worker)
        assert len(stress_collection.get("profile")) == THREADS * ITERATIONS


class TestConcurrentDistinctKeys:
    def test_all_writes_succeed(self, stress_collection):
        def worker(index):
            for i in range(ITERATIONS):
                stress_collection.set(f"key-{index}-{i}", {"thread": index, "i": i})

        run_concurrently(worker)
        assert stress_collection.count() == THREADS * ITERATIONS
        assert stress_collection.get("key-3-7") == {"thread": 3, "i": 7}


class TestLockReentrancy:
    def test_expired_entry_evicted_inside_helper(self, stress_collection):
        stress_collection.set("counter", 99, ttl=0)
        # increment holds the key lock while _read evicts the expired entry
        assert stress_collection.increment("counter") == 1

    def test_serialization_can_be_disabled(self):
        backend = MemoryBackend("unlocked").connect()
        collection = Collection("unlocked", backend, serialize_key_access=False)
        assert collection.increment("n") == 1
        assert collection.push("l", 1) == [1]


class TestDatabaseConcurrency:
    def test_collection_created_once(self, tmp_path):
        db = Database(backend="memory", data_dir=str(tmp_path))
        seen = []
        seen_lock = threading.Lock()

        def worker(_):
            collection = db.collection("shared")
            with seen_lock:
                seen.append(collection)

        run_concurrently(worker)
        assert all(collection is seen[0] for collection in seen)
        db.disconnect()

    def test_increment_through_database(self, tmp_path):
        with Database(backend="sqlite", data_dir=str(tmp_path)) as db:
            def worker(_):
                for _ in range(ITERATIONS):
                    db.increment("counters", "hits")

            run_concurrently(worker)
            assert db.get("counters", "hits") == THREADS * ITERATIONS
