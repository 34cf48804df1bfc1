"""Abstract interface for task persistence backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from tasklist.models import Priority, Task


class TaskStorage(ABC):
    """Interface every task store implements.

    Lookups and mutations against a missing id raise ``TaskNotFoundError``;
    I/O and (de)serialization failures raise ``StorageError``.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Load persisted tasks, creating the backing store if missing."""

    @abstractmethod
    def add_task(self, task: Task) -> None:
        """Insert or overwrite a task by id and persist."""

    @abstractmethod
    def get_task(self, task_id: str) -> Task: ...

    @abstractmethod
    def get_all_tasks(self) -> list[Task]: ...

    @abstractmethod
    def get_tasks_by_category(self, category: str) -> list[Task]: ...

    @abstractmethod
    def get_tasks_by_priority(self, priority: Priority) -> list[Task]: ...

    @abstractmethod
    def update_task(self, task: Task) -> None:
        """Replace an existing task and persist."""

    @abstractmethod
    def delete_task(self, task_id: str) -> None:
        """Remove a task and persist."""

    @abstractmethod
    def backup(self, path: Path) -> None:
        """Write a snapshot of all tasks to ``path``."""

    @abstractmethod
    def restore(self, path: Path) -> None:
        """Replace all tasks with the snapshot at ``path`` and persist."""

    @abstractmethod
    def count(self) -> int: ...
