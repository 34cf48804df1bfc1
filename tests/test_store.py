"""Tests for the JSON task store and its lock."""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import patch

import pytest

from tasklist.errors import ErrorKind, StorageError, TaskNotFoundError
from tasklist.models import Priority, Task
from tasklist.storage import JSONTaskStore, ReadWriteLock


class TestInitialize:
    """Tests for loading and creating the task file."""

    def test_creates_missing_file(self, tmp_path: Path):
        path = tmp_path / "nested" / "tasks.json"
        store = JSONTaskStore(path)
        store.initialize()

        assert path.exists()
        assert json.loads(path.read_text()) == []
        assert store.count() == 0

    def test_loads_existing_tasks(self, store: JSONTaskStore):
        task = Task.new("Buy milk")
        store.add_task(task)

        reopened = JSONTaskStore(store.file_path)
        reopened.initialize()
        assert reopened.get_task(task.id) == task

    def test_empty_file_is_empty_list(self, tmp_path: Path):
        path = tmp_path / "tasks.json"
        path.write_text("")
        store = JSONTaskStore(path)
        store.initialize()
        assert store.get_all_tasks() == []

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "tasks.json"
        path.write_text("{not json")
        with pytest.raises(StorageError, match="failed to decode JSON"):
            JSONTaskStore(path).initialize()

    def test_not_an_array(self, tmp_path: Path):
        path = tmp_path / "tasks.json"
        path.write_text('{"id": "1"}')
        with pytest.raises(StorageError, match="expected an array"):
            JSONTaskStore(path).initialize()

    def test_bad_record(self, tmp_path: Path):
        path = tmp_path / "tasks.json"
        path.write_text('[{"title": "no id"}]')
        with pytest.raises(StorageError) as exc_info:
            JSONTaskStore(path).initialize()
        assert exc_info.value.kind is ErrorKind.STORAGE
        assert "index 0" in exc_info.value.message

    def test_loads_legacy_records(self, tmp_path: Path):
        path = tmp_path / "tasks.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "1740823200000000000",
                        "title": "Old task",
                        "description": "",
                        "priority": "high",
                        "category": "work",
                        "due_date": "0001-01-01T00:00:00Z",
                        "completed": False,
                        "created_at": "2025-03-01T10:00:00.123456789+01:00",
                        "reminder_at": "0001-01-01T00:00:00Z",
                    }
                ]
            )
        )
        store = JSONTaskStore(path)
        store.initialize()

        task = store.get_task("1740823200000000000")
        assert task.priority is Priority.HIGH
        assert task.due_date is None


class TestCrud:
    """Tests for task operations."""

    def test_add_and_get(self, store: JSONTaskStore):
        task = Task.new("Buy milk", category="errands")
        store.add_task(task)

        assert store.get_task(task.id) == task
        on_disk = json.loads(store.file_path.read_text())
        assert [record["id"] for record in on_disk] == [task.id]

    def test_returned_tasks_are_copies(self, store: JSONTaskStore):
        task = Task.new("Buy milk")
        store.add_task(task)

        fetched = store.get_task(task.id)
        fetched.title = "Changed"
        task.title = "Also changed"

        assert store.get_task(task.id).title == "Buy milk"

    def test_get_missing(self, store: JSONTaskStore):
        with pytest.raises(TaskNotFoundError) as exc_info:
            store.get_task("nope")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.message == "task not found: nope"

    def test_update(self, store: JSONTaskStore):
        task = Task.new("Draft")
        store.add_task(task)
        task.title = "Final"
        task.completed = True
        store.update_task(task)

        stored = store.get_task(task.id)
        assert stored.title == "Final"
        assert stored.completed is True

    def test_update_missing(self, store: JSONTaskStore):
        with pytest.raises(TaskNotFoundError):
            store.update_task(Task.new("Ghost"))
        assert store.count() == 0

    def test_delete(self, store: JSONTaskStore):
        task = Task.new("Temporary")
        store.add_task(task)
        store.delete_task(task.id)

        with pytest.raises(TaskNotFoundError):
            store.get_task(task.id)
        assert json.loads(store.file_path.read_text()) == []

    def test_delete_missing(self, store: JSONTaskStore):
        with pytest.raises(TaskNotFoundError):
            store.delete_task("nope")

    def test_filters(self, store: JSONTaskStore):
        store.add_task(Task.new("Report", priority="high", category="work"))
        store.add_task(Task.new("Groceries", priority="low", category="home"))
        store.add_task(Task.new("Email", priority="high", category="work"))

        assert {t.title for t in store.get_tasks_by_category("work")} == {"Report", "Email"}
        assert {t.title for t in store.get_tasks_by_category("WORK")} == {"Report", "Email"}
        assert store.get_tasks_by_category("nothing") == []
        assert {t.title for t in store.get_tasks_by_priority(Priority.LOW)} == {"Groceries"}

    def test_failed_write_rolls_back(self, store: JSONTaskStore):
        with patch(
            "tasklist.storage.json_store.atomic_write_json",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(StorageError, match="disk full"):
                store.add_task(Task.new("Lost"))
        assert store.count() == 0


class TestBackupRestore:
    """Tests for snapshots."""

    def test_restore_replaces_everything(self, store: JSONTaskStore, tmp_path: Path):
        kept = Task.new("Kept")
        store.add_task(kept)
        backup = tmp_path / "backup.json"
        store.backup(backup)

        store.add_task(Task.new("Added later"))
        store.delete_task(kept.id)
        store.restore(backup)

        assert [t.id for t in store.get_all_tasks()] == [kept.id]
        assert json.loads(store.file_path.read_text()) == json.loads(backup.read_text())

    def test_backup_of_empty_store(self, store: JSONTaskStore, tmp_path: Path):
        backup = tmp_path / "empty.json"
        store.backup(backup)
        assert json.loads(backup.read_text()) == []

    def test_restore_missing_file(self, store: JSONTaskStore, tmp_path: Path):
        store.add_task(Task.new("Still here"))
        with pytest.raises(StorageError, match="failed to read"):
            store.restore(tmp_path / "missing.json")
        assert store.count() == 1

    def test_restore_invalid_file_keeps_state(self, store: JSONTaskStore, tmp_path: Path):
        store.add_task(Task.new("Still here"))
        bad = tmp_path / "bad.json"
        bad.write_text("[1, 2, 3]")

        with pytest.raises(StorageError):
            store.restore(bad)
        assert [t.title for t in store.get_all_tasks()] == ["Still here"]


class TestConcurrency:
    """Tests for concurrent access."""

    def test_concurrent_adds(self, store: JSONTaskStore):
        def add(i: int) -> str:
            task = Task.new(f"Task {i}")
            store.add_task(task)
            return task.id

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(add, range(50)))

        assert len(set(ids)) == 50
        assert store.count() == 50
        assert len(json.loads(store.file_path.read_text())) == 50

    def test_readers_share_lock(self):
        lock = ReadWriteLock()
        both_inside = threading.Barrier(2, timeout=2)

        def reader():
            with lock.read():
                both_inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not both_inside.broken

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events: list[str] = []

        def writer():
            with lock.write():
                events.append("write-start")
                time.sleep(0.05)
                events.append("write-end")

        def reader():
            with lock.read():
                events.append("read")

        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.01)
        r = threading.Thread(target=reader)
        r.start()
        w.join(timeout=5)
        r.join(timeout=5)

        assert events == ["write-start", "write-end", "read"]
