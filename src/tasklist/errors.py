"""Error types shared by the store, the server and the client.

Every failure carries an explicit ``ErrorKind`` tag. Callers branch on the
tag rather than on the concrete exception class:

    try:
        service.complete_task(task_id)
    except TaskListError as e:
        match e.kind:
            case ErrorKind.NOT_FOUND:
                ...
            case ErrorKind.STORAGE:
                ...

The tag also travels over the wire (``kind`` field of a failure response),
so a client rebuilds the same error the server raised.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable error categories."""

    NOT_FOUND = "not_found"
    STORAGE = "storage"
    PROTOCOL = "protocol"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    INTERNAL = "internal"


class TaskListError(Exception):
    """Base error for all task list failures.

    Attributes:
        message: Human-readable error message
        kind: Error category tag
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class TaskNotFoundError(TaskListError):
    """Raised when an operation targets a task id the store does not hold."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, task_id: str):
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


class StorageError(TaskListError):
    """File I/O or (de)serialization failure in the store."""

    kind = ErrorKind.STORAGE


class ProtocolError(TaskListError):
    """Malformed request envelope or operation payload."""

    kind = ErrorKind.PROTOCOL


class ValidationError(TaskListError):
    """Invalid field value (empty title, unknown priority, bad date)."""

    kind = ErrorKind.VALIDATION


class TransportError(TaskListError):
    """Client-side connection failure or response timeout."""

    kind = ErrorKind.TRANSPORT


_KIND_TO_CLASS: dict[ErrorKind, type[TaskListError]] = {
    ErrorKind.STORAGE: StorageError,
    ErrorKind.PROTOCOL: ProtocolError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.TRANSPORT: TransportError,
}


def error_from_response(message: str, kind: str | None) -> TaskListError:
    """Rebuild a tagged error from the failure fields of a response.

    Unknown or missing kinds map to a plain ``TaskListError`` tagged
    ``INTERNAL`` so older servers (which send no kind) still surface their
    error string.
    """
    try:
        error_kind = ErrorKind(kind) if kind else ErrorKind.INTERNAL
    except ValueError:
        error_kind = ErrorKind.INTERNAL

    if error_kind is ErrorKind.NOT_FOUND:
        prefix = "task not found: "
        task_id = message[len(prefix):] if message.startswith(prefix) else message
        return TaskNotFoundError(task_id)

    error_cls = _KIND_TO_CLASS.get(error_kind)
    if error_cls is None:
        return TaskListError(message, kind=error_kind)
    return error_cls(message)
