"""File-backed task store.

All tasks live in memory in an id-keyed mapping and are mirrored to a
single JSON file holding an array of task records. Every mutation rewrites
the whole file while holding the store's write lock, so a mutation and its
persistence are atomic with respect to other store operations.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

from tasklist.errors import StorageError, TaskNotFoundError, ValidationError
from tasklist.logging import Loggers
from tasklist.models import Priority, Task, normalize_category
from tasklist.storage._utils import atomic_write_json, read_json
from tasklist.storage.base import TaskStorage
from tasklist.storage.locks import ReadWriteLock

logger = Loggers.store()


def _decode_snapshot(data: Any, source: Path) -> dict[str, Task]:
    """Turn a decoded JSON snapshot into an id-keyed mapping."""
    if data is None:
        return {}
    if not isinstance(data, list):
        raise StorageError(
            f"invalid task file {source}: expected an array, got {type(data).__name__}"
        )
    tasks: dict[str, Task] = {}
    for index, record in enumerate(data):
        try:
            task = Task.from_dict(record)
        except ValidationError as e:
            raise StorageError(f"invalid task record at index {index} in {source}: {e}") from e
        tasks[task.id] = task
    return tasks


def _load_snapshot(path: Path) -> dict[str, Task]:
    try:
        data = read_json(path)
    except OSError as e:
        raise StorageError(f"failed to read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise StorageError(f"failed to decode JSON in {path}: {e}") from e
    return _decode_snapshot(data, path)


class JSONTaskStore(TaskStorage):
    """Concurrency-safe task store backed by one JSON file.

    Reads take the shared side of a reader/writer lock; mutations take the
    exclusive side for both the in-memory change and the file rewrite.

    Example:
        >>> store = JSONTaskStore(Path("~/.todolist/tasks.json").expanduser())
        >>> store.initialize()
        >>> store.add_task(Task.new("Buy milk"))
        >>> [t.title for t in store.get_all_tasks()]
        ['Buy milk']
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._tasks: dict[str, Task] = {}
        self._lock = ReadWriteLock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def initialize(self) -> None:
        with self._lock.write():
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"failed to create directory: {e}") from e

            if not self._file_path.exists():
                self._tasks = {}
                self._save()
                logger.info("task_file_created", path=str(self._file_path))
                return

            self._tasks = _load_snapshot(self._file_path)
            logger.info("tasks_loaded", path=str(self._file_path), count=len(self._tasks))

    # ---- persistence helpers (caller holds the write lock) ----

    def _snapshot(self) -> list[dict[str, Any]]:
        return [task.to_dict() for task in self._tasks.values()]

    def _write(self, path: Path) -> None:
        try:
            atomic_write_json(path, self._snapshot())
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"failed to write {path}: {e}") from e

    def _save(self) -> None:
        self._write(self._file_path)

    def _mutate(self, change: Callable[[dict[str, Task]], None]) -> None:
        """Apply ``change`` to the mapping and persist, rolling back on failure."""
        previous = dict(self._tasks)
        change(self._tasks)
        try:
            self._save()
        except StorageError:
            self._tasks = previous
            logger.error("persist_failed", path=str(self._file_path), exc_info=True)
            raise

    # ---- task operations ----

    def add_task(self, task: Task) -> None:
        stored = task.copy()
        with self._lock.write():
            self._mutate(lambda tasks: tasks.__setitem__(stored.id, stored))
        logger.debug("task_added", task_id=stored.id)

    def get_task(self, task_id: str) -> Task:
        with self._lock.read():
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            return task.copy()

    def get_all_tasks(self) -> list[Task]:
        with self._lock.read():
            return [task.copy() for task in self._tasks.values()]

    def get_tasks_by_category(self, category: str) -> list[Task]:
        category = normalize_category(category)
        with self._lock.read():
            return [task.copy() for task in self._tasks.values() if task.category == category]

    def get_tasks_by_priority(self, priority: Priority) -> list[Task]:
        with self._lock.read():
            return [task.copy() for task in self._tasks.values() if task.priority == priority]

    def update_task(self, task: Task) -> None:
        stored = task.copy()
        with self._lock.write():
            if stored.id not in self._tasks:
                raise TaskNotFoundError(stored.id)
            self._mutate(lambda tasks: tasks.__setitem__(stored.id, stored))
        logger.debug("task_updated", task_id=stored.id)

    def delete_task(self, task_id: str) -> None:
        with self._lock.write():
            if task_id not in self._tasks:
                raise TaskNotFoundError(task_id)
            self._mutate(lambda tasks: tasks.pop(task_id))
        logger.debug("task_deleted", task_id=task_id)

    def count(self) -> int:
        with self._lock.read():
            return len(self._tasks)

    # ---- data operations ----

    def backup(self, path: Path) -> None:
        path = Path(path)
        with self._lock.read():
            self._write(path)
            count = len(self._tasks)
        logger.info("backup_written", path=str(path), count=count)

    def restore(self, path: Path) -> None:
        path = Path(path)
        with self._lock.write():
            restored = _load_snapshot(path)

            def replace_all(tasks: dict[str, Task]) -> None:
                tasks.clear()
                tasks.update(restored)

            self._mutate(replace_all)
        logger.info("backup_restored", path=str(path), count=len(restored))
