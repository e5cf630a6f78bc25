"""Checkpoint store tests"""

import pytest

from tablestreamer.core.checkpoints import FileCheckpointStore, InMemoryCheckpointStore, SqlCheckpointStore
from tablestreamer.core.errors import CheckpointStoreFailure


@pytest.fixture(params=["memory", "file", "sql"])
def store(request, tmp_path, session_factory):
    if request.param == "memory":
        return InMemoryCheckpointStore()
    if request.param == "file":
        return FileCheckpointStore(str(tmp_path / "checkpoints"))
    return SqlCheckpointStore(session_factory)


class TestCheckpointStores:
    """Behaviour shared by every backend"""

    def test_unknown_table(self, store):
        assert store.get("db1.t1") is None

    def test_put_then_get(self, store):
        """Test committed marker is read back unchanged"""
        store.put("db1.t1", "part-0000.jsonl#5")
        record = store.get("db1.t1")
        assert record.table_id == "db1.t1"
        assert record.marker == "part-0000.jsonl#5"
        assert record.committed_at.tzinfo is not None

    def test_put_overwrites(self, store):
        store.put("db1.t1", "1")
        store.put("db1.t1", "2")
        assert store.get("db1.t1").marker == "2"

    def test_tables_are_independent(self, store):
        store.put("db1.t1", "a")
        store.put("db2.t2", "b")
        store.delete("db1.t1")
        assert store.get("db1.t1") is None
        assert store.get("db2.t2").marker == "b"

    def test_list_sorted_by_table(self, store):
        store.put("db2.t2", "b")
        store.put("db1.t1", "a")
        assert [r.table_id for r in store.list()] == ["db1.t1", "db2.t2"]

    def test_delete_unknown_is_noop(self, store):
        store.delete("never.seen")


class TestFileCheckpointStore:
    """JSON file backend"""

    def test_survives_new_instance(self, tmp_path):
        """Test checkpoint persists across store instances"""
        FileCheckpointStore(str(tmp_path)).put("db1.t1", "42")
        assert FileCheckpointStore(str(tmp_path)).get("db1.t1").marker == "42"

    def test_unsafe_characters_in_table_id(self, tmp_path):
        store = FileCheckpointStore(str(tmp_path))
        store.put("db/1.t 1", "7")
        assert store.get("db/1.t 1").marker == "7"
        assert [p.name for p in tmp_path.glob("*.json")] == ["db_1.t_1.json"]

    def test_no_temp_file_left_behind(self, tmp_path):
        FileCheckpointStore(str(tmp_path)).put("db1.t1", "1")
        assert not list(tmp_path.glob("*.tmp"))

    def test_corrupt_file(self, tmp_path):
        """Test unreadable checkpoint raises instead of restarting from scratch"""
        store = FileCheckpointStore(str(tmp_path))
        (tmp_path / "db1.t1.json").write_text("{not json")
        with pytest.raises(CheckpointStoreFailure):
            store.get("db1.t1")
