"""Wire protocol shared by the server and the client.

Frames are single lines of UTF-8 JSON terminated by ``\\n``. A request is
``{"operation": str, "payload": ...}``; a response is
``{"success": bool, "error": str, "kind": str, "payload": ...}`` where
``error`` and ``kind`` are omitted on success and ``payload`` is omitted
when there is nothing to return.

Payload shapes are pydantic models. A payload that does not fit its model
is a protocol error; field values that fit the shape but are not valid
task data (an unknown priority, an unparseable date) are validation errors
raised further in.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tasklist.errors import ProtocolError, TaskListError
from tasklist.models import Task
from tasklist.pomodoro import PomodoroSession

DELIMITER = b"\n"


class Operation(str, Enum):
    """Operation names carried in the request envelope."""

    # Task operations
    ADD_TASK = "ADD_TASK"
    GET_TASK = "GET_TASK"
    GET_ALL_TASKS = "GET_ALL_TASKS"
    GET_TASKS_BY_CATEGORY = "GET_TASKS_BY_CATEGORY"
    GET_TASKS_BY_PRIORITY = "GET_TASKS_BY_PRIORITY"
    UPDATE_TASK = "UPDATE_TASK"
    DELETE_TASK = "DELETE_TASK"
    COMPLETE_TASK = "COMPLETE_TASK"

    # Data operations
    BACKUP = "BACKUP"
    RESTORE = "RESTORE"
    LIST_BACKUPS = "LIST_BACKUPS"

    # Other operations
    BRAIN_DUMP = "BRAIN_DUMP"
    FOCUS_MODE = "FOCUS_MODE"
    START_POMODORO = "START_POMODORO"


def _dumps(data: Any) -> bytes:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8") + DELIMITER


def _loads(line: bytes) -> Any:
    return json.loads(line.decode("utf-8"))


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


@dataclass
class Request:
    """Request envelope."""

    operation: str
    payload: Any = None

    def encode(self) -> bytes:
        return _dumps({"operation": self.operation, "payload": self.payload})

    @classmethod
    def decode(cls, line: bytes) -> "Request":
        """Parse one request frame.

        Raises:
            ProtocolError: If the frame is not a JSON request object.
        """
        try:
            data = _loads(line)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"Invalid request format: {e}") from e
        if not isinstance(data, dict):
            raise ProtocolError(
                f"Invalid request format: expected an object, got {type(data).__name__}"
            )
        operation = data.get("operation", "")
        if not isinstance(operation, str):
            raise ProtocolError("Invalid request format: operation must be a string")
        return cls(operation=operation, payload=data.get("payload"))


@dataclass
class Response:
    """Response envelope."""

    success: bool
    error: str | None = None
    kind: str | None = None
    payload: Any = None

    @classmethod
    def ok(cls, payload: Any = None) -> "Response":
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, error: TaskListError) -> "Response":
        return cls(success=False, error=error.message, kind=error.kind.value)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if not self.success:
            data["error"] = self.error or ""
            if self.kind:
                data["kind"] = self.kind
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    def encode(self) -> bytes:
        return _dumps(self.to_dict())

    @classmethod
    def decode(cls, line: bytes) -> "Response":
        """Parse one response frame.

        Raises:
            ProtocolError: If the frame is not a JSON response object.
        """
        try:
            data = _loads(line)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"failed to unmarshal response: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
            raise ProtocolError("failed to unmarshal response: missing success flag")
        return cls(
            success=data["success"],
            error=data.get("error"),
            kind=data.get("kind"),
            payload=data.get("payload"),
        )


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AddTaskRequest(Payload):
    title: str
    description: str = ""
    priority: str | None = None
    category: str | None = None
    due_date: str | None = None
    reminder_at: str | None = None


class IDRequest(Payload):
    id: str


class CategoryRequest(Payload):
    category: str


class PriorityRequest(Payload):
    priority: str


class UpdateTaskRequest(Payload):
    task: dict[str, Any]


class BackupRequest(Payload):
    filename: str | None = None


class RestoreRequest(Payload):
    filename: str = Field(min_length=1)


class BrainDumpRequest(Payload):
    titles: list[str]


class PomodoroRequest(Payload):
    task_id: str
    custom_duration: float | None = Field(default=None, description="Work duration in seconds")


PayloadT = TypeVar("PayloadT", bound=Payload)


def parse_payload(model: type[PayloadT], operation: str, payload: Any) -> PayloadT:
    """Validate a request payload against its model.

    A missing payload validates as an empty object, so models whose fields
    all have defaults accept it.

    Raises:
        ProtocolError: Naming the operation, if the payload does not fit.
    """
    try:
        return model.model_validate(payload if payload is not None else {})
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        raise ProtocolError(f"Invalid {operation} payload: {problems}") from e


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


def task_payload(task: Task | None) -> dict[str, Any]:
    return {"task": task.to_dict() if task is not None else None}


def tasks_payload(tasks: list[Task]) -> dict[str, Any]:
    return {"tasks": [task.to_dict() for task in tasks]}


def backup_payload(filename: str) -> dict[str, Any]:
    return {"filename": filename}


def backups_payload(backups: list[str]) -> dict[str, Any]:
    return {"backups": backups}


def focus_payload(tasks: list[Task]) -> dict[str, Any]:
    return {
        "task": tasks[0].to_dict() if tasks else None,
        "tasks": [task.to_dict() for task in tasks],
    }


def pomodoro_payload(session: PomodoroSession) -> dict[str, Any]:
    return {"pomodoro": session.to_dict()}


class TaskResponse(Payload):
    task: dict[str, Any] | None = None


class TasksResponse(Payload):
    # Older servers send null for an empty list
    tasks: list[dict[str, Any]] | None = None


class BackupResponse(Payload):
    filename: str


class ListBackupsResponse(Payload):
    backups: list[str] | None = None


class FocusResponse(Payload):
    task: dict[str, Any] | None = None
    tasks: list[dict[str, Any]] | None = None


class PomodoroResponse(Payload):
    pomodoro: dict[str, Any]
