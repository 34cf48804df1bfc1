"""Async client for the task list server.

One ``TaskClient`` owns one TCP connection and keeps at most one request in
flight; concurrent callers queue on an internal lock. Server-side failures
come back as the same tagged errors the server raised:

    async with TaskClient("127.0.0.1", 8080, timeout=5) as client:
        task = await client.add_task("Buy milk", due_date="tomorrow 23:59")
        try:
            await client.get_task("missing")
        except TaskNotFoundError:
            ...
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Iterable

from tasklist.config import Settings
from tasklist.dates import format_timestamp
from tasklist.errors import (
    ProtocolError,
    TransportError,
    ValidationError,
    error_from_response,
)
from tasklist.logging import Loggers
from tasklist.models import Priority, Task
from tasklist.protocol import (
    BackupResponse,
    FocusResponse,
    ListBackupsResponse,
    Operation,
    PayloadT,
    PomodoroResponse,
    Request,
    Response,
    TaskResponse,
    TasksResponse,
    parse_payload,
)

logger = Loggers.client()


def _date_arg(value: str | datetime | None) -> str | None:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


class TaskClient:
    """Client stub mirroring the server's operations.

    Args:
        host: Server host.
        port: Server port.
        timeout: Seconds to wait for each response. None waits forever.
        limit: Largest response line accepted, in bytes.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8080,
        timeout: float | None = None,
        limit: int = 1024 * 1024,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._limit = limit
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaskClient":
        return cls(
            host=settings.host,
            port=settings.port,
            timeout=settings.client_timeout,
            limit=settings.max_request_bytes,
        )

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        """Open the connection.

        Raises:
            TransportError: If the server cannot be reached.
        """
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self.host, self.port, limit=self._limit
            )
        except OSError as e:
            raise TransportError(f"failed to connect to server: {e}") from e
        logger.debug("client_connected", host=self.host, port=self.port)

    def _abort(self) -> None:
        """Drop the connection without waiting for the close to finish."""
        writer, self._reader, self._writer = self._writer, None, None
        if writer is not None:
            writer.close()

    async def close(self) -> None:
        writer = self._writer
        self._abort()
        if writer is None:
            return
        try:
            await writer.wait_closed()
        except ConnectionError as e:
            logger.debug("close_failed", error=str(e))

    async def __aenter__(self) -> "TaskClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ---- request/response ----

    async def _call(self, operation: Operation, payload: Any = None) -> Any:
        """Send one request and return the response payload.

        Raises:
            TransportError: Not connected, connection lost, or timed out.
            ProtocolError: The response could not be decoded.
            TaskListError: The server reported a failure (rebuilt by kind).
        """
        async with self._lock:
            if self._reader is None or self._writer is None:
                raise TransportError("not connected")

            try:
                line = await self._exchange(operation, payload)
            except asyncio.CancelledError:
                # A late reply would be read as the answer to the next request
                self._abort()
                raise

        if not line.endswith(b"\n"):
            await self.close()
            raise TransportError("connection closed by server")

        response = Response.decode(line)
        if not response.success:
            raise error_from_response(response.error or "", response.kind)
        return response.payload

    async def _exchange(self, operation: Operation, payload: Any) -> bytes:
        assert self._reader is not None and self._writer is not None
        try:
            self._writer.write(Request(operation.value, payload).encode())
            await self._writer.drain()
        except ConnectionError as e:
            await self.close()
            raise TransportError(f"failed to send request: {e}") from e

        try:
            return await asyncio.wait_for(self._reader.readline(), self.timeout)
        except asyncio.TimeoutError as e:
            self._abort()
            raise TransportError(
                f"timed out after {self.timeout}s waiting for {operation.value}"
            ) from e
        except (ConnectionError, ValueError) as e:
            await self.close()
            raise TransportError(f"failed to read response: {e}") from e

    @staticmethod
    def _read(model: type[PayloadT], operation: Operation, payload: Any) -> PayloadT:
        try:
            return parse_payload(model, f"{operation.value} response", payload)
        except ProtocolError as e:
            logger.warning("bad_response", operation=operation.value, error=e.message)
            raise

    async def _call_task(self, operation: Operation, payload: Any) -> Task:
        data = await self._call(operation, payload)
        result = self._read(TaskResponse, operation, data)
        if result.task is None:
            raise ProtocolError(f"{operation.value} response has no task")
        return Task.from_dict(result.task)

    async def _call_tasks(self, operation: Operation, payload: Any = None) -> list[Task]:
        data = await self._call(operation, payload)
        result = self._read(TasksResponse, operation, data)
        return [Task.from_dict(item) for item in result.tasks or []]

    # ---- task operations ----

    async def add_task(
        self,
        title: str,
        description: str = "",
        priority: str | Priority | None = None,
        category: str | None = None,
        due_date: str | datetime | None = None,
        reminder_at: str | datetime | None = None,
    ) -> Task:
        """Add a task. Dates may be datetimes or any string the server parses."""
        payload = {
            "title": title,
            "description": description,
            "priority": priority.value if isinstance(priority, Priority) else priority,
            "category": category,
            "due_date": _date_arg(due_date),
            "reminder_at": _date_arg(reminder_at),
        }
        return await self._call_task(
            Operation.ADD_TASK, {k: v for k, v in payload.items() if v is not None}
        )

    async def get_task(self, task_id: str) -> Task:
        return await self._call_task(Operation.GET_TASK, {"id": task_id})

    async def get_all_tasks(self) -> list[Task]:
        return await self._call_tasks(Operation.GET_ALL_TASKS)

    async def get_tasks_by_category(self, category: str) -> list[Task]:
        return await self._call_tasks(Operation.GET_TASKS_BY_CATEGORY, {"category": category})

    async def get_tasks_by_priority(self, priority: str | Priority) -> list[Task]:
        value = priority.value if isinstance(priority, Priority) else priority
        return await self._call_tasks(Operation.GET_TASKS_BY_PRIORITY, {"priority": value})

    async def update_task(self, task: Task) -> None:
        await self._call(Operation.UPDATE_TASK, {"task": task.to_dict()})

    async def delete_task(self, task_id: str) -> None:
        await self._call(Operation.DELETE_TASK, {"id": task_id})

    async def complete_task(self, task_id: str) -> Task:
        return await self._call_task(Operation.COMPLETE_TASK, {"id": task_id})

    # ---- backups ----

    async def backup_tasks(self, label: str | None = None) -> str:
        """Ask the server for a new backup; returns the backup path."""
        payload = {"filename": label} if label else None
        data = await self._call(Operation.BACKUP, payload)
        return self._read(BackupResponse, Operation.BACKUP, data).filename

    async def restore_tasks(self, filename: str) -> None:
        """Replace every task with the contents of a backup. Destructive."""
        await self._call(Operation.RESTORE, {"filename": filename})

    async def list_backups(self) -> list[str]:
        data = await self._call(Operation.LIST_BACKUPS)
        return self._read(ListBackupsResponse, Operation.LIST_BACKUPS, data).backups or []

    async def restore_backup_by_index(self, number: int) -> str:
        """Restore the ``number``-th backup (1-based, oldest first).

        Returns:
            The path of the restored backup.

        Raises:
            ValidationError: If ``number`` is out of range.
        """
        backups = await self.list_backups()
        if not backups:
            raise ValidationError("no backups available")
        if number < 1 or number > len(backups):
            raise ValidationError(
                f"invalid backup number: {number} (choose 1-{len(backups)})"
            )
        path = backups[number - 1]
        await self.restore_tasks(path)
        return path

    # ---- quick capture, focus, pomodoro ----

    async def brain_dump(self, titles: Iterable[str]) -> list[Task]:
        return await self._call_tasks(Operation.BRAIN_DUMP, {"titles": list(titles)})

    async def focus_mode(self) -> list[Task]:
        """Incomplete tasks, most pressing first."""
        data = await self._call(Operation.FOCUS_MODE)
        result = self._read(FocusResponse, Operation.FOCUS_MODE, data)
        return [Task.from_dict(item) for item in result.tasks or []]

    async def next_focus_task(self) -> Task | None:
        data = await self._call(Operation.FOCUS_MODE)
        result = self._read(FocusResponse, Operation.FOCUS_MODE, data)
        return Task.from_dict(result.task) if result.task is not None else None

    async def start_pomodoro(
        self,
        task_id: str,
        custom_duration: timedelta | float | None = None,
    ) -> dict[str, Any]:
        """Plan a Pomodoro session for a task.

        Args:
            task_id: Task to work on.
            custom_duration: Work phase length (timedelta or seconds).

        Returns:
            The planned session: task id, durations in seconds, cycle and
            phase, start and end times.
        """
        payload: dict[str, Any] = {"task_id": task_id}
        if isinstance(custom_duration, timedelta):
            payload["custom_duration"] = custom_duration.total_seconds()
        elif custom_duration is not None:
            payload["custom_duration"] = float(custom_duration)
        data = await self._call(Operation.START_POMODORO, payload)
        return self._read(PomodoroResponse, Operation.START_POMODORO, data).pomodoro
