"""TCP server for the task list.

Each accepted connection runs in its own asyncio task and loops
read-request, dispatch, write-response until the peer disconnects or an
I/O error occurs. Requests that fail (bad JSON, unknown operation, missing
task, storage trouble) get a failure response and the loop keeps reading.

Store calls run in worker threads so a slow file rewrite does not stall
other connections; the store's reader/writer lock keeps them consistent.
"""

from __future__ import annotations

import asyncio
import contextlib
import math
import signal
from datetime import timedelta
from typing import Any, Callable

from tasklist.config import Settings
from tasklist.dates import parse_datetime
from tasklist.errors import ErrorKind, ProtocolError, TaskListError, ValidationError
from tasklist.logging import Loggers, log_context
from tasklist.models import Task
from tasklist.pomodoro import MAX_WORK_DURATION
from tasklist.protocol import (
    AddTaskRequest,
    BackupRequest,
    BrainDumpRequest,
    CategoryRequest,
    IDRequest,
    Operation,
    PomodoroRequest,
    PriorityRequest,
    Request,
    Response,
    RestoreRequest,
    UpdateTaskRequest,
    backup_payload,
    backups_payload,
    focus_payload,
    parse_payload,
    pomodoro_payload,
    task_payload,
    tasks_payload,
)
from tasklist.service import TaskService
from tasklist.storage import JSONTaskStore

logger = Loggers.server()

Handler = Callable[[str, Any], Any]


def _parse_optional_date(value: str | None, field: str):
    if value is None or not value.strip():
        return None
    try:
        return parse_datetime(value)
    except ValidationError as e:
        raise ValidationError(f"invalid {field}: {e.message}") from e


def _duration_from_seconds(value: float | None) -> timedelta | None:
    if value is None:
        return None
    if not math.isfinite(value) or abs(value) > MAX_WORK_DURATION.total_seconds():
        raise ValidationError(
            f"invalid custom_duration: {value} (must be at most "
            f"{MAX_WORK_DURATION.total_seconds():.0f} seconds)"
        )
    return timedelta(seconds=value)


class Dispatcher:
    """Maps operation names to handlers over a ``TaskService``.

    ``dispatch`` never raises: every failure becomes a failure response.
    Handlers return the response payload (or None).
    """

    def __init__(self, service: TaskService) -> None:
        self._service = service
        self._handlers: dict[str, Handler] = {
            Operation.ADD_TASK.value: self._add_task,
            Operation.GET_TASK.value: self._get_task,
            Operation.GET_ALL_TASKS.value: self._get_all_tasks,
            Operation.GET_TASKS_BY_CATEGORY.value: self._get_tasks_by_category,
            Operation.GET_TASKS_BY_PRIORITY.value: self._get_tasks_by_priority,
            Operation.UPDATE_TASK.value: self._update_task,
            Operation.DELETE_TASK.value: self._delete_task,
            Operation.COMPLETE_TASK.value: self._complete_task,
            Operation.BACKUP.value: self._backup,
            Operation.RESTORE.value: self._restore,
            Operation.LIST_BACKUPS.value: self._list_backups,
            Operation.BRAIN_DUMP.value: self._brain_dump,
            Operation.FOCUS_MODE.value: self._focus_mode,
            Operation.START_POMODORO.value: self._start_pomodoro,
        }

    @property
    def operations(self) -> list[str]:
        return list(self._handlers)

    def dispatch(self, request: Request) -> Response:
        handler = self._handlers.get(request.operation)
        if handler is None:
            logger.warning("unknown_operation", operation=request.operation)
            return Response.fail(ProtocolError(f"Unknown operation: {request.operation}"))

        try:
            payload = handler(request.operation, request.payload)
        except TaskListError as e:
            logger.info(
                "operation_failed",
                operation=request.operation,
                kind=e.kind.value,
                error=e.message,
            )
            return Response.fail(e)
        except Exception:
            logger.exception("operation_crashed", operation=request.operation)
            return Response.fail(
                TaskListError(
                    f"internal error while handling {request.operation}",
                    kind=ErrorKind.INTERNAL,
                )
            )

        logger.debug("operation_done", operation=request.operation)
        return Response.ok(payload)

    # ---- handlers ----

    def _add_task(self, op: str, payload: Any) -> Any:
        req = parse_payload(AddTaskRequest, op, payload)
        task = self._service.add_task(
            req.title,
            description=req.description,
            priority=req.priority,
            category=req.category,
            due_date=_parse_optional_date(req.due_date, "due_date"),
            reminder_at=_parse_optional_date(req.reminder_at, "reminder_at"),
        )
        return task_payload(task)

    def _get_task(self, op: str, payload: Any) -> Any:
        req = parse_payload(IDRequest, op, payload)
        return task_payload(self._service.get_task(req.id))

    def _get_all_tasks(self, op: str, payload: Any) -> Any:
        return tasks_payload(self._service.get_all_tasks())

    def _get_tasks_by_category(self, op: str, payload: Any) -> Any:
        req = parse_payload(CategoryRequest, op, payload)
        return tasks_payload(self._service.get_tasks_by_category(req.category))

    def _get_tasks_by_priority(self, op: str, payload: Any) -> Any:
        req = parse_payload(PriorityRequest, op, payload)
        return tasks_payload(self._service.get_tasks_by_priority(req.priority))

    def _update_task(self, op: str, payload: Any) -> Any:
        req = parse_payload(UpdateTaskRequest, op, payload)
        self._service.update_task(Task.from_dict(req.task))
        return None

    def _delete_task(self, op: str, payload: Any) -> Any:
        req = parse_payload(IDRequest, op, payload)
        self._service.delete_task(req.id)
        return None

    def _complete_task(self, op: str, payload: Any) -> Any:
        req = parse_payload(IDRequest, op, payload)
        return task_payload(self._service.complete_task(req.id))

    def _backup(self, op: str, payload: Any) -> Any:
        req = parse_payload(BackupRequest, op, payload)
        return backup_payload(self._service.backup_tasks(req.filename))

    def _restore(self, op: str, payload: Any) -> Any:
        req = parse_payload(RestoreRequest, op, payload)
        self._service.restore_tasks(req.filename)
        return None

    def _list_backups(self, op: str, payload: Any) -> Any:
        return backups_payload(self._service.list_backups())

    def _brain_dump(self, op: str, payload: Any) -> Any:
        req = parse_payload(BrainDumpRequest, op, payload)
        return tasks_payload(self._service.brain_dump(req.titles))

    def _focus_mode(self, op: str, payload: Any) -> Any:
        return focus_payload(self._service.focus_tasks())

    def _start_pomodoro(self, op: str, payload: Any) -> Any:
        req = parse_payload(PomodoroRequest, op, payload)
        duration = _duration_from_seconds(req.custom_duration)
        return pomodoro_payload(self._service.start_pomodoro(req.task_id, duration))


class TaskServer:
    """Line-delimited JSON server over TCP.

    Example:
        >>> server = TaskServer(service, host="127.0.0.1", port=8080)
        >>> await server.start()
        >>> await server.serve_forever()  # until server.stop()
    """

    def __init__(
        self,
        service: TaskService,
        host: str = "127.0.0.1",
        port: int = 8080,
        max_request_bytes: int = 1024 * 1024,
    ) -> None:
        self._dispatcher = Dispatcher(service)
        self._host = host
        self._port = port
        self._max_request_bytes = max_request_bytes
        self._server: asyncio.Server | None = None
        self._stopped: asyncio.Event | None = None
        self._connections: set[asyncio.StreamWriter] = set()

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the port is real even when 0 was requested."""
        if self._server is None or not self._server.sockets:
            return self._host, self._port
        host, port = self._server.sockets[0].getsockname()[:2]
        return host, port

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        self._stopped = asyncio.Event()
        self._server = await asyncio.start_server(
            self._handle_connection,
            self._host,
            self._port,
            limit=self._max_request_bytes,
        )
        host, port = self.address
        logger.info("server_started", host=host, port=port)

    async def serve_forever(self) -> None:
        """Serve until ``stop()`` is called."""
        if self._server is None:
            await self.start()
        assert self._stopped is not None
        await self._stopped.wait()

    def stop(self, close_connections: bool = False) -> None:
        """Close the listening socket.

        Open connections keep running until their next I/O error unless
        ``close_connections`` is set.
        """
        if self._server is not None:
            self._server.close()
        if close_connections:
            for writer in list(self._connections):
                writer.close()
        if self._stopped is not None:
            self._stopped.set()
        logger.info("server_stopped", open_connections=len(self._connections))

    async def __aenter__(self) -> "TaskServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop(close_connections=True)

    # ---- connection loop ----

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        self._connections.add(writer)
        with log_context(peer=f"{peer[0]}:{peer[1]}" if peer else "unknown"):
            try:
                await self._serve_connection(reader, writer)
            finally:
                self._connections.discard(writer)
                writer.close()
                with contextlib.suppress(ConnectionError):
                    await writer.wait_closed()

    async def _serve_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        logger.info("client_connected")
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                logger.warning("request_too_large", limit=self._max_request_bytes)
                return
            except ConnectionError as e:
                logger.warning("read_failed", error=str(e))
                return

            if not line.endswith(b"\n"):
                logger.info("client_disconnected")
                return

            response = await self._process(line)

            try:
                writer.write(response.encode())
                await writer.drain()
            except ConnectionError as e:
                logger.warning("write_failed", error=str(e))
                return

    async def _process(self, line: bytes) -> Response:
        try:
            request = Request.decode(line)
        except ProtocolError as e:
            logger.warning("invalid_request", error=e.message)
            return Response.fail(e)

        logger.debug("request_received", operation=request.operation)
        return await asyncio.to_thread(self._dispatcher.dispatch, request)


def build_service(settings: Settings) -> TaskService:
    """Create and initialize the store and service described by ``settings``.

    Raises:
        StorageError: If the data directory or task file is unusable.
    """
    store = JSONTaskStore(settings.storage_file)
    store.initialize()
    service = TaskService(store, settings.backup_dir)
    service.ensure_backup_dir()
    return service


async def run_server(settings: Settings) -> None:
    """Run the server until SIGINT/SIGTERM.

    Raises:
        StorageError: If storage cannot be initialized.
        OSError: If the listening socket cannot be bound.
    """
    service = build_service(settings)
    server = TaskServer(
        service,
        host=settings.host,
        port=settings.port,
        max_request_bytes=settings.max_request_bytes,
    )
    await server.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops)
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, server.stop)

    await server.serve_forever()
