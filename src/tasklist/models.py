"""Task records.

A task is a single to-do item. Records are plain dataclasses; the store
hands out copies, so mutating a returned task has no effect until it is
written back through ``update_task``.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from tasklist.dates import ensure_aware, format_timestamp, now_local, parse_timestamp
from tasklist.errors import ValidationError

DEFAULT_CATEGORY = "inbox"


class Priority(str, Enum):
    """Valid task priorities."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: "str | Priority | None") -> "Priority":
        """Convert user input to a Priority.

        Raises:
            ValidationError: If the value is not low, medium or high.
        """
        if value is None or value == "":
            return cls.MEDIUM
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ValidationError(
                f"invalid priority: {value} (must be low, medium, or high)"
            ) from e


def generate_task_id() -> str:
    """Generate a task id: nanosecond timestamp plus a random suffix.

    The suffix keeps ids unique when several tasks are created within the
    same clock tick.
    """
    return f"{time.time_ns()}-{uuid.uuid4().hex[:8]}"


def aware_or_none(value: datetime | None) -> datetime | None:
    return ensure_aware(value) if value is not None else None


def normalize_category(category: str | None) -> str:
    category = (category or "").strip().lower()
    return category or DEFAULT_CATEGORY


def validate_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title cannot be empty")
    return title


@dataclass
class Task:
    """A single to-do item."""

    id: str
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    category: str = DEFAULT_CATEGORY
    due_date: datetime | None = None
    reminder_at: datetime | None = None
    completed: bool = False
    created_at: datetime = field(default_factory=now_local)

    @classmethod
    def new(
        cls,
        title: str,
        description: str = "",
        priority: "str | Priority | None" = Priority.MEDIUM,
        category: str | None = DEFAULT_CATEGORY,
        due_date: datetime | None = None,
        reminder_at: datetime | None = None,
    ) -> "Task":
        """Create a new task with a fresh id and creation time."""
        return cls(
            id=generate_task_id(),
            title=validate_title(title),
            description=description or "",
            priority=Priority.parse(priority),
            category=normalize_category(category),
            due_date=aware_or_none(due_date),
            reminder_at=aware_or_none(reminder_at),
            completed=False,
            created_at=now_local(),
        )

    def is_overdue(self, now: datetime | None = None) -> bool:
        """True if the task has a due date in the past and is not completed."""
        now = now or now_local()
        return self.due_date is not None and now > self.due_date and not self.completed

    def is_reminder_due(self, now: datetime | None = None) -> bool:
        """True if the reminder time has passed and the task is not completed."""
        now = now or now_local()
        return (
            self.reminder_at is not None and now > self.reminder_at and not self.completed
        )

    def mark_complete(self) -> None:
        self.completed = True

    def copy(self) -> "Task":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "category": self.category,
            "due_date": format_timestamp(self.due_date),
            "completed": self.completed,
            "created_at": format_timestamp(self.created_at),
            "reminder_at": format_timestamp(self.reminder_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Build a task from its serialized form.

        Raises:
            ValidationError: If required fields are missing or invalid.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"task record must be an object, got {type(data).__name__}")

        task_id = data.get("id")
        if not isinstance(task_id, str) or not task_id:
            raise ValidationError("task record is missing an id")

        completed = data.get("completed", False)
        if not isinstance(completed, bool):
            raise ValidationError(f"completed must be true or false, got {completed!r}")

        created_at = parse_timestamp(data.get("created_at"))
        return cls(
            id=task_id,
            title=validate_title(data.get("title")),
            description=str(data.get("description") or ""),
            priority=Priority.parse(data.get("priority")),
            category=normalize_category(data.get("category")),
            due_date=parse_timestamp(data.get("due_date")),
            reminder_at=parse_timestamp(data.get("reminder_at")),
            completed=completed,
            created_at=created_at or now_local(),
        )

    def __str__(self) -> str:
        status = "[x]" if self.completed else "[ ]"
        due = self.due_date.strftime("%Y-%m-%d %H:%M") if self.due_date else "No due date"
        return (
            f"{status} {self.title} (Priority: {self.priority.value}, "
            f"Category: {self.category}, Due: {due})"
        )
