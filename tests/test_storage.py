"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import os

from debt_escrow.storage import (
    InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


test_data = {
    "id": "debt_001",
    "payee": "42",
    "principal": "100.50",
    "owed": False
}


class StorageContract:
    """Behaviour shared by every backend"""

    def make_storage(self) -> StorageInterface:
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()

    def teardown_method(self):
        self.storage.close()

    def test_basic_operations(self):
        self.storage.save("debts", "record_1", test_data)
        assert self.storage.load("debts", "record_1") == test_data
        assert self.storage.exists("debts", "record_1")
        assert not self.storage.exists("debts", "missing")

        self.storage.save("debts", "record_2", {"id": "record_2", "payee": "9"})
        assert self.storage.count("debts") == 2
        assert [r["id"] for r in self.storage.load_all("debts")] == ["debt_001", "record_2"]

        results = self.storage.find("debts", {"payee": "42"})
        assert len(results) == 1
        assert results[0]["id"] == "debt_001"

        assert self.storage.delete("debts", "record_1")
        assert not self.storage.delete("debts", "record_1")
        assert self.storage.load("debts", "record_1") is None

    def test_overwrite(self):
        self.storage.save("debts", "record_1", test_data)
        self.storage.save("debts", "record_1", {**test_data, "owed": True})
        assert self.storage.count("debts") == 1
        assert self.storage.load("debts", "record_1")["owed"] is True

    def test_loaded_records_are_copies(self):
        self.storage.save("debts", "record_1", test_data)
        loaded = self.storage.load("debts", "record_1")
        loaded["principal"] = "0"
        assert self.storage.load("debts", "record_1")["principal"] == "100.50"

    def test_empty_table(self):
        assert self.storage.load_all("nothing") == []
        assert self.storage.count("nothing") == 0

    def test_clear_table(self):
        self.storage.save("debts", "record_1", test_data)
        self.storage.clear_table("debts")
        assert self.storage.count("debts") == 0

    def test_atomic_commit(self):
        with self.storage.atomic():
            self.storage.save("debts", "record_1", test_data)
            self.storage.save("debt_events", "000000000001", {"sequence": 1})
        assert self.storage.exists("debts", "record_1")
        assert self.storage.exists("debt_events", "000000000001")

    def test_atomic_rollback(self):
        self.storage.save("debts", "record_1", test_data)

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("debts", "record_1", {**test_data, "owed": True})
                self.storage.save("debt_events", "000000000001", {"sequence": 1})
                raise RuntimeError("transfer refused")

        assert self.storage.load("debts", "record_1") == test_data
        assert self.storage.count("debt_events") == 0

    def test_nested_transaction_joins_outer(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                with self.storage.atomic():
                    self.storage.save("debts", "record_1", test_data)
                raise RuntimeError("outer failure")

        assert not self.storage.exists("debts", "record_1")

    def test_usable_after_rollback(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("fresh", "a", {"id": "a"})
                raise RuntimeError("boom")

        self.storage.save("fresh", "b", {"id": "b"})
        assert [r["id"] for r in self.storage.load_all("fresh")] == ["b"]


class TestInMemoryStorage(StorageContract):

    def make_storage(self):
        return InMemoryStorage()


class TestSQLiteStorage(StorageContract):

    def make_storage(self):
        return SQLiteStorage(":memory:")

    def test_persistence_across_connections(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "escrow.db")
            storage = SQLiteStorage(path)
            storage.save("debts", "record_1", test_data)
            storage.close()

            reopened = SQLiteStorage(path)
            assert reopened.load("debts", "record_1") == test_data
            reopened.close()


class TestCreateStorage:

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_in_memory(self):
        storage = create_storage("sqlite://")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == ":memory:"
        storage.close()

    def test_sqlite_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = create_storage(f"sqlite:///{tmp}/escrow.db")
            assert isinstance(storage, SQLiteStorage)
            assert storage.db_path.endswith("escrow.db")
            storage.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported database URL"):
            create_storage("postgresql://localhost/escrow")
