"""Pomodoro session planning.

The server only plans a session (durations, cycle bookkeeping); running the
countdown is left to whatever front end displays it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from tasklist.dates import format_timestamp, now_local


MAX_WORK_DURATION = timedelta(hours=24)


class PomodoroPhase(str, Enum):
    WORK = "work"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"


@dataclass
class PomodoroConfig:
    """Durations for one Pomodoro session."""

    work_duration: timedelta = timedelta(minutes=25)
    short_break_duration: timedelta = timedelta(minutes=5)
    long_break_duration: timedelta = timedelta(minutes=15)
    long_break_interval: int = 4
    task_name: str = "Current Task"

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_duration": self.work_duration.total_seconds(),
            "short_break_duration": self.short_break_duration.total_seconds(),
            "long_break_duration": self.long_break_duration.total_seconds(),
            "long_break_interval": self.long_break_interval,
            "task_name": self.task_name,
        }


@dataclass
class PomodoroSession:
    """Cycle bookkeeping for a running session.

    A session alternates work and break phases. Every ``long_break_interval``-th
    cycle ends with a long break instead of a short one.
    """

    config: PomodoroConfig
    task_id: str | None = None
    current_cycle: int = 1
    is_working: bool = True
    start_time: datetime = field(default_factory=now_local)
    end_time: datetime | None = None

    def __post_init__(self) -> None:
        if self.end_time is None:
            self.end_time = self.start_time + self.config.work_duration

    @property
    def phase(self) -> PomodoroPhase:
        if self.is_working:
            return PomodoroPhase.WORK
        if self.current_cycle % self.config.long_break_interval == 0:
            return PomodoroPhase.LONG_BREAK
        return PomodoroPhase.SHORT_BREAK

    @property
    def phase_duration(self) -> timedelta:
        phase = self.phase
        if phase is PomodoroPhase.WORK:
            return self.config.work_duration
        if phase is PomodoroPhase.LONG_BREAK:
            return self.config.long_break_duration
        return self.config.short_break_duration

    def next_phase(self, now: datetime | None = None) -> PomodoroPhase:
        """Finish the current phase and start the next one."""
        if not self.is_working:
            self.current_cycle += 1
        self.is_working = not self.is_working
        self.start_time = now or now_local()
        self.end_time = self.start_time + self.phase_duration
        return self.phase

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "config": self.config.to_dict(),
            "current_cycle": self.current_cycle,
            "phase": self.phase.value,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
        }


def plan_session(
    task_id: str,
    task_name: str,
    custom_duration: timedelta | None = None,
    now: datetime | None = None,
) -> PomodoroSession:
    """Plan a session for a task, optionally overriding the work duration."""
    config = PomodoroConfig(task_name=task_name)
    if custom_duration is not None and custom_duration > timedelta(0):
        config.work_duration = custom_duration
    return PomodoroSession(config=config, task_id=task_id, start_time=now or now_local())
