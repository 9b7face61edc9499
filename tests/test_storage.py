"""
Tests for storage backends and transaction support
"""

import threading
import pytest
from datetime import datetime, timezone

from bac_banking.storage import (
    InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


# Test data
test_data = {
    "account_number": "ACC1700000000000",
    "balance": "100.50",
    "status": "active",
    "updated_at": datetime.now(timezone.utc).isoformat()
}


def _exercise_crud(storage: StorageInterface):
    # Test save and load
    storage.save("accounts", "record_1", test_data)
    loaded = storage.load("accounts", "record_1")
    assert loaded == test_data

    # Test exists
    assert storage.exists("accounts", "record_1")
    assert not storage.exists("accounts", "non_existent")

    # Test load_all
    storage.save("accounts", "record_2", {"account_number": "record_2", "status": "closed"})
    all_records = storage.load_all("accounts")
    assert len(all_records) == 2

    # Test find
    results = storage.find("accounts", {"status": "closed"})
    assert len(results) == 1
    assert results[0]["account_number"] == "record_2"

    # Test count
    assert storage.count("accounts") == 2

    # Test delete
    assert storage.delete("accounts", "record_1")
    assert not storage.delete("accounts", "record_1")
    assert not storage.exists("accounts", "record_1")
    assert storage.count("accounts") == 1

    # Test clear_table
    storage.clear_table("accounts")
    assert storage.count("accounts") == 0


class TestStorageInterface:
    """Test basic storage operations on both backends"""

    def test_in_memory_storage_basic_operations(self):
        storage = InMemoryStorage()
        _exercise_crud(storage)
        storage.close()

    def test_sqlite_storage_basic_operations(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "test.db")
        _exercise_crud(storage)
        storage.close()

    def test_in_memory_returns_copies(self):
        storage = InMemoryStorage()
        storage.save("customers", "CUST-001", {"customer_id": "CUST-001", "email": "a@b.com"})

        loaded = storage.load("customers", "CUST-001")
        loaded["email"] = "changed@b.com"

        assert storage.load("customers", "CUST-001")["email"] == "a@b.com"

    def test_load_missing_returns_none(self):
        assert InMemoryStorage().load("accounts", "missing") is None

    def test_sqlite_persists_across_connections(self, tmp_path):
        db_path = tmp_path / "persist.db"
        storage = SQLiteStorage(db_path)
        storage.save("users", "BE-001", {"user_id": "BE-001"})
        storage.close()

        reopened = SQLiteStorage(db_path)
        assert reopened.load("users", "BE-001") == {"user_id": "BE-001"}
        reopened.close()

    def test_sqlite_load_all_keeps_insertion_order(self):
        storage = SQLiteStorage()
        for i in range(5):
            storage.save("transactions", f"TXN_{i}", {"n": i})

        assert [r["n"] for r in storage.load_all("transactions")] == [0, 1, 2, 3, 4]


class TestAtomicBlocks:
    """Test transaction rollback and commit on both backends"""

    @pytest.fixture(params=["memory", "sqlite"])
    def storage(self, request, tmp_path):
        if request.param == "memory":
            backend = InMemoryStorage()
        else:
            backend = SQLiteStorage(tmp_path / "atomic.db")
        yield backend
        backend.close()

    def test_commit_keeps_changes(self, storage):
        with storage.atomic():
            storage.save("accounts", "A", {"balance": "1"})
            storage.save("accounts", "B", {"balance": "2"})

        assert storage.count("accounts") == 2

    def test_rollback_discards_changes(self, storage):
        storage.save("accounts", "A", {"balance": "1"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("accounts", "A", {"balance": "999"})
                storage.save("accounts", "B", {"balance": "2"})
                raise RuntimeError("boom")

        assert storage.load("accounts", "A") == {"balance": "1"}
        assert not storage.exists("accounts", "B")

    def test_nested_blocks_join_outer(self, storage):
        with pytest.raises(ValueError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("accounts", "A", {"balance": "1"})
                raise ValueError("outer fails")

        assert not storage.exists("accounts", "A")

    def test_table_created_inside_rolled_back_block_is_usable(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("accounts", "A", {"balance": "1"})
                storage.save("fresh_table", "X", {"v": 1})
                raise RuntimeError("boom")

        storage.save("fresh_table", "Y", {"v": 2})
        assert storage.load("fresh_table", "Y") == {"v": 2}

    def test_atomic_block_excludes_other_threads(self, storage):
        entered = threading.Event()
        release = threading.Event()
        seen = []

        def writer():
            entered.wait(timeout=5)
            storage.save("accounts", "other", {"balance": "5"})
            seen.append(storage.count("accounts"))

        thread = threading.Thread(target=writer)
        thread.start()

        with storage.atomic():
            storage.save("accounts", "mine", {"balance": "1"})
            entered.set()
            release.wait(timeout=0.2)
            # The writer is blocked until this block ends
            assert storage.count("accounts") == 1

        thread.join(timeout=5)
        assert seen == [2]


class TestCreateStorage:
    def test_memory_backend(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)

    def test_sqlite_backend(self, tmp_path):
        storage = create_storage("sqlite", str(tmp_path / "bank.db"))
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage("postgres")
