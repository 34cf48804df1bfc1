"""Application operations on top of a task store.

``TaskService`` is what the server dispatches to. It validates input,
creates task records, and implements the operations that are not plain
store calls: completing a task, backup naming and listing, brain dumps,
focus mode and Pomodoro planning.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable

from tasklist.dates import now_local
from tasklist.errors import StorageError, ValidationError
from tasklist.focus import focus_order
from tasklist.logging import Loggers
from tasklist.models import DEFAULT_CATEGORY, Priority, Task, aware_or_none, validate_title
from tasklist.pomodoro import MAX_WORK_DURATION, PomodoroSession, plan_session
from tasklist.storage._utils import sanitize_filename
from tasklist.storage.base import TaskStorage

logger = Loggers.service()

BACKUP_PREFIX = "tasks-backup-"
BACKUP_SUFFIX = ".json"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"


def backup_filename(captured_at: datetime, label: str | None = None) -> str:
    """Build a backup file name that sorts chronologically.

    Example:
        >>> backup_filename(datetime(2025, 3, 1, 9, 30))
        'tasks-backup-20250301-093000-000000.json'
    """
    name = BACKUP_PREFIX + captured_at.strftime(BACKUP_TIMESTAMP_FORMAT)
    if label:
        label = label.strip()
        if label.endswith(BACKUP_SUFFIX):
            label = label[: -len(BACKUP_SUFFIX)]
        label = sanitize_filename(label)
        if label:
            name += f"-{label}"
    return name + BACKUP_SUFFIX


def is_backup_filename(name: str) -> bool:
    return name.startswith(BACKUP_PREFIX) and name.endswith(BACKUP_SUFFIX)


class TaskService:
    """Task list operations over an injected store.

    Example:
        >>> store = JSONTaskStore(settings.storage_file)
        >>> store.initialize()
        >>> service = TaskService(store, settings.backup_dir)
        >>> task = service.add_task("Buy milk", due_date=parse_datetime("tomorrow 23:59"))
        >>> service.complete_task(task.id).completed
        True
    """

    def __init__(self, store: TaskStorage, backup_dir: str | Path) -> None:
        self._store = store
        self._backup_dir = Path(backup_dir)

    @property
    def store(self) -> TaskStorage:
        return self._store

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    def ensure_backup_dir(self) -> None:
        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"failed to create backup directory: {e}") from e

    # ---- task operations ----

    def add_task(
        self,
        title: str,
        description: str = "",
        priority: str | Priority | None = Priority.MEDIUM,
        category: str | None = DEFAULT_CATEGORY,
        due_date: datetime | None = None,
        reminder_at: datetime | None = None,
    ) -> Task:
        """Create a task and store it.

        Raises:
            ValidationError: If the title is empty or the priority unknown.
            StorageError: If the task cannot be persisted.
        """
        task = Task.new(
            title,
            description=description,
            priority=priority,
            category=category,
            due_date=due_date,
            reminder_at=reminder_at,
        )
        self._store.add_task(task)
        logger.info("task_created", task_id=task.id, priority=task.priority.value)
        return task

    def get_task(self, task_id: str) -> Task:
        return self._store.get_task(task_id)

    def get_all_tasks(self) -> list[Task]:
        return self._store.get_all_tasks()

    def get_tasks_by_category(self, category: str) -> list[Task]:
        return self._store.get_tasks_by_category(category)

    def get_tasks_by_priority(self, priority: str | Priority) -> list[Task]:
        return self._store.get_tasks_by_priority(Priority.parse(priority))

    def update_task(self, task: Task) -> None:
        """Replace a stored task. The stored creation time is kept.

        Raises:
            TaskNotFoundError: If no task has this id.
            ValidationError: If the title is empty.
        """
        validate_title(task.title)
        current = self._store.get_task(task.id)
        self._store.update_task(
            replace(
                task,
                due_date=aware_or_none(task.due_date),
                reminder_at=aware_or_none(task.reminder_at),
                created_at=current.created_at,
            )
        )

    def delete_task(self, task_id: str) -> None:
        self._store.delete_task(task_id)
        logger.info("task_deleted", task_id=task_id)

    def complete_task(self, task_id: str) -> Task:
        """Mark a task completed.

        Reads then writes with two separate lock acquisitions; a concurrent
        update in between is overwritten.
        """
        task = self._store.get_task(task_id)
        task.mark_complete()
        self._store.update_task(task)
        logger.info("task_completed", task_id=task_id)
        return task

    # ---- backups ----

    def backup_tasks(self, label: str | None = None) -> str:
        """Write a new backup snapshot and return its path."""
        self.ensure_backup_dir()
        path = self._backup_dir / backup_filename(now_local(), label)
        if path.exists():
            raise StorageError(f"backup already exists: {path}")
        self._store.backup(path)
        return str(path)

    def resolve_backup_path(self, filename: str) -> Path:
        """Bare file names refer to the backup directory; paths are used as given."""
        if not filename or not filename.strip():
            raise ValidationError("backup filename is required")
        path = Path(filename.strip()).expanduser()
        if not path.is_absolute() and path.parent == Path("."):
            return self._backup_dir / path
        return path

    def restore_tasks(self, filename: str) -> None:
        """Replace all tasks with a backup snapshot. Destructive."""
        path = self.resolve_backup_path(filename)
        self._store.restore(path)

    def list_backups(self) -> list[str]:
        """Backup file paths, oldest first."""
        try:
            entries = list(self._backup_dir.iterdir())
        except OSError as e:
            raise StorageError(f"failed to read backup directory: {e}") from e
        names = sorted(p.name for p in entries if p.is_file() and is_backup_filename(p.name))
        return [str(self._backup_dir / name) for name in names]

    # ---- quick capture, focus, pomodoro ----

    def brain_dump(self, titles: Iterable[str]) -> list[Task]:
        """Add one inbox task per title, stopping at the first blank entry."""
        created: list[Task] = []
        for raw in titles:
            title = (raw or "").strip()
            if not title:
                break
            created.append(self.add_task(title))
        logger.info("brain_dump", count=len(created))
        return created

    def focus_tasks(self, now: datetime | None = None) -> list[Task]:
        return focus_order(self._store.get_all_tasks(), now)

    def next_focus_task(self, now: datetime | None = None) -> Task | None:
        ordered = self.focus_tasks(now)
        return ordered[0] if ordered else None

    def start_pomodoro(
        self,
        task_id: str,
        custom_duration: timedelta | None = None,
    ) -> PomodoroSession:
        """Plan a Pomodoro session for an existing task."""
        if custom_duration is not None and custom_duration < timedelta(0):
            raise ValidationError("custom duration cannot be negative")
        if custom_duration is not None and custom_duration > MAX_WORK_DURATION:
            raise ValidationError(
                f"custom duration cannot exceed {MAX_WORK_DURATION.total_seconds():.0f} seconds"
            )
        task = self._store.get_task(task_id)
        session = plan_session(task.id, task.title, custom_duration)
        logger.info(
            "pomodoro_planned",
            task_id=task.id,
            work_seconds=session.config.work_duration.total_seconds(),
        )
        return session
