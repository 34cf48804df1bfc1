"""Focus mode: pick what to work on next.

Scores every incomplete task from its priority, how close (or past) its due
date is, whether its reminder has fired, and how long it has been waiting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from tasklist.dates import now_local
from tasklist.models import Priority, Task

PRIORITY_WEIGHTS = {
    Priority.HIGH: 100.0,
    Priority.MEDIUM: 50.0,
    Priority.LOW: 25.0,
}

OVERDUE_BONUS = 200.0

# (hours until due, bonus); first matching bound wins
DUE_BONUSES = (
    (24, 150.0),
    (48, 100.0),
    (72, 75.0),
    (168, 50.0),
)
DUE_LATER_BONUS = 25.0

REMINDER_BONUS = 50.0
AGE_POINTS_PER_DAY = 2.0


@dataclass(frozen=True)
class TaskScore:
    task: Task
    score: float


def score_task(task: Task, now: datetime) -> float:
    score = PRIORITY_WEIGHTS.get(task.priority, 0.0)

    if task.due_date is not None:
        hours_until_due = (task.due_date - now).total_seconds() / 3600
        if hours_until_due < 0:
            score += OVERDUE_BONUS
        else:
            for bound, bonus in DUE_BONUSES:
                if hours_until_due < bound:
                    score += bonus
                    break
            else:
                score += DUE_LATER_BONUS

    if task.reminder_at is not None and now > task.reminder_at:
        score += REMINDER_BONUS

    age_days = (now - task.created_at).total_seconds() / 86400
    score += age_days * AGE_POINTS_PER_DAY

    return score


def score_tasks(tasks: Iterable[Task], now: datetime | None = None) -> list[TaskScore]:
    """Score incomplete tasks, highest first.

    The sort is stable: equal scores keep their input order.
    """
    now = now or now_local()
    scored = [TaskScore(task, score_task(task, now)) for task in tasks if not task.completed]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


def focus_order(tasks: Iterable[Task], now: datetime | None = None) -> list[Task]:
    """Incomplete tasks ordered by descending focus score."""
    return [s.task for s in score_tasks(tasks, now)]


def next_focus_task(tasks: Iterable[Task], now: datetime | None = None) -> Task | None:
    """The single task to focus on, or None when nothing is open."""
    ordered = focus_order(tasks, now)
    return ordered[0] if ordered else None
