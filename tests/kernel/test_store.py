"""
Tests for the collection stores.

Covers:
- In-memory store isolation (copies on read and write)
- SQLAlchemy store over an in-memory SQLite database
- Mirrored store: local-first writes, remote failures surfaced once
- Whole-store snapshot and restore
"""

import pytest

from kapan_kernel.db import create_tables, drop_tables, init_engine_from_url, reset_engine
from kapan_kernel.store import (
    CollectionStore,
    MemoryCollectionStore,
    MirroredCollectionStore,
    SqlCollectionStore,
    restore_all,
    snapshot_all,
)


@pytest.fixture
def sql_store():
    init_engine_from_url("sqlite://")
    create_tables()
    yield SqlCollectionStore()
    drop_tables()
    reset_engine()


class _FailingStore(MemoryCollectionStore):
    def write(self, name, records):
        raise ConnectionError("remote unreachable")


class TestMemoryCollectionStore:
    """Dict-backed store."""

    def test_unknown_slot_reads_empty(self):
        assert MemoryCollectionStore().read("laser_lots") == []

    def test_write_then_read(self):
        store = MemoryCollectionStore()
        store.write("laser_lots", [{"record_id": "a"}])
        assert store.read("laser_lots") == [{"record_id": "a"}]
        assert store.names() == ["laser_lots"]

    def test_reads_are_copies(self):
        store = MemoryCollectionStore({"kapans": [{"kapan_id": "77"}]})
        records = store.read("kapans")
        records[0]["kapan_id"] = "99"
        records.append({"kapan_id": "100"})
        assert store.read("kapans") == [{"kapan_id": "77"}]

    def test_satisfies_protocol(self):
        assert isinstance(MemoryCollectionStore(), CollectionStore)


class TestSqlCollectionStore:
    """One JSON row per collection slot."""

    def test_round_trip(self, sql_store):
        sql_store.write("sarin_lots", [{"record_id": "a", "quantity": 5}])
        assert sql_store.read("sarin_lots") == [{"record_id": "a", "quantity": 5}]

    def test_overwrite_replaces_whole_collection(self, sql_store):
        sql_store.write("sarin_lots", [{"record_id": "a"}, {"record_id": "b"}])
        sql_store.write("sarin_lots", [{"record_id": "c"}])
        assert sql_store.read("sarin_lots") == [{"record_id": "c"}]

    def test_names_sorted(self, sql_store):
        sql_store.write("sarin_lots", [])
        sql_store.write("kapans", [])
        assert sql_store.names() == ["kapans", "sarin_lots"]

    def test_missing_slot_reads_empty(self, sql_store):
        assert sql_store.read("jiram_scans") == []


class TestMirroredCollectionStore:
    """Optimistic local-first mirroring."""

    def test_writes_both_sides(self):
        local, remote = MemoryCollectionStore(), MemoryCollectionStore()
        store = MirroredCollectionStore(local, remote)
        store.write("kapans", [{"kapan_id": "77"}])
        assert local.read("kapans") == remote.read("kapans") == [{"kapan_id": "77"}]
        assert store.last_remote_error is None

    def test_remote_failure_keeps_local_write(self, captured_logs):
        local = MemoryCollectionStore()
        store = MirroredCollectionStore(local, _FailingStore())
        store.write("kapans", [{"kapan_id": "77"}])

        assert store.read("kapans") == [{"kapan_id": "77"}]
        assert store.last_remote_error is not None
        assert store.last_remote_error.code == "REMOTE_WRITE_FAILED"
        assert store.last_remote_error.collection == "kapans"
        logs = [r for r in captured_logs() if r["message"] == "remote_write_failed"]
        assert len(logs) == 1
        assert logs[0]["collection"] == "kapans"

    def test_successful_write_clears_last_error(self):
        remote = _FailingStore()
        store = MirroredCollectionStore(MemoryCollectionStore(), remote)
        store.write("kapans", [])
        assert store.last_remote_error is not None
        store._remote = MemoryCollectionStore()
        store.write("kapans", [])
        assert store.last_remote_error is None


class TestSnapshot:
    """Backup and restore of every slot."""

    def test_snapshot_and_restore(self):
        source = MemoryCollectionStore(
            {"kapans": [{"kapan_id": "77"}], "laser_lots": [{"record_id": "a"}]}
        )
        snapshot = snapshot_all(source)
        target = MemoryCollectionStore({"box_sorting_packets": [{"record_id": "z"}]})
        restore_all(target, snapshot)

        assert target.read("kapans") == [{"kapan_id": "77"}]
        assert target.read("laser_lots") == [{"record_id": "a"}]
        assert target.read("box_sorting_packets") == [{"record_id": "z"}]

    def test_restore_rejects_bad_shape_before_writing(self):
        target = MemoryCollectionStore()
        with pytest.raises(ValueError):
            restore_all(target, {"kapans": [], "laser_lots": "not-a-list"})
        assert target.names() == []

    def test_restore_rejects_non_mapping(self):
        with pytest.raises(ValueError):
            restore_all(MemoryCollectionStore(), [("kapans", [])])
