"""Tests for the TCP server loop and request dispatch."""

import asyncio
import json

import pytest

from tasklist.protocol import Operation, Request
from tasklist.server import Dispatcher, TaskServer
from tasklist.service import TaskService


async def send_raw(writer: asyncio.StreamWriter, reader: asyncio.StreamReader, line: bytes) -> dict:
    writer.write(line)
    await writer.drain()
    return json.loads(await asyncio.wait_for(reader.readline(), 5))


async def call(writer, reader, operation: str, payload=None) -> dict:
    return await send_raw(writer, reader, Request(operation, payload).encode())


class TestDispatcher:
    """Tests for dispatch without sockets."""

    def test_handles_every_operation(self, service: TaskService):
        assert set(Dispatcher(service).operations) == {op.value for op in Operation}

    def test_unknown_operation(self, service: TaskService):
        response = Dispatcher(service).dispatch(Request("FOO"))
        assert response.success is False
        assert response.error == "Unknown operation: FOO"
        assert response.kind == "protocol"

    def test_not_found(self, service: TaskService):
        response = Dispatcher(service).dispatch(Request("GET_TASK", {"id": "nope"}))
        assert response.error == "task not found: nope"
        assert response.kind == "not_found"

    def test_bad_date_is_validation_error(self, service: TaskService):
        response = Dispatcher(service).dispatch(
            Request("ADD_TASK", {"title": "x", "due_date": "someday"})
        )
        assert response.kind == "validation"
        assert response.error.startswith("invalid due_date: unknown date format")
        assert service.get_all_tasks() == []

    def test_blank_dates_are_ignored(self, service: TaskService):
        response = Dispatcher(service).dispatch(
            Request("ADD_TASK", {"title": "x", "due_date": "", "reminder_at": " "})
        )
        assert response.success is True
        assert response.payload["task"]["due_date"] is None

    @pytest.mark.parametrize("created_at", ["1999-01-01T00:00:00+00:00", None])
    def test_update_keeps_creation_time(self, service: TaskService, created_at):
        task = service.add_task("Draft")
        record = task.to_dict() | {"title": "Final", "created_at": created_at}

        response = Dispatcher(service).dispatch(Request("UPDATE_TASK", {"task": record}))

        assert response.success is True
        stored = service.get_task(task.id)
        assert stored.title == "Final"
        assert stored.created_at == task.created_at

    def test_update_rejects_string_completed(self, service: TaskService):
        task = service.add_task("Draft")
        record = task.to_dict() | {"completed": "false"}

        response = Dispatcher(service).dispatch(Request("UPDATE_TASK", {"task": record}))

        assert response.kind == "validation"
        assert service.get_task(task.id).completed is False

    @pytest.mark.parametrize("seconds", [1e20, float("inf"), float("nan"), 2 * 86400])
    def test_pomodoro_duration_out_of_range(self, service: TaskService, seconds):
        task = service.add_task("Write report")
        response = Dispatcher(service).dispatch(
            Request("START_POMODORO", {"task_id": task.id, "custom_duration": seconds})
        )
        assert response.success is False
        assert response.kind == "validation"

    def test_pomodoro_duration_from_json_infinity(self, service: TaskService):
        task = service.add_task("Write report")
        line = (
            b'{"operation": "START_POMODORO", "payload": {"task_id": "'
            + task.id.encode()
            + b'", "custom_duration": Infinity}}\n'
        )
        response = Dispatcher(service).dispatch(Request.decode(line))
        assert response.kind == "validation"

    def test_unexpected_error_is_internal(self, service: TaskService, monkeypatch):
        def explode():
            raise RuntimeError("boom")

        monkeypatch.setattr(service, "get_all_tasks", explode)
        response = Dispatcher(service).dispatch(Request("GET_ALL_TASKS"))
        assert response.success is False
        assert response.kind == "internal"
        assert "GET_ALL_TASKS" in response.error


class TestConnectionLoop:
    """Tests over a real socket."""

    @pytest.mark.asyncio
    async def test_invalid_json_keeps_connection_open(self, server: TaskServer):
        reader, writer = await asyncio.open_connection(*server.address)
        try:
            response = await send_raw(writer, reader, b"not json\n")
            assert response["success"] is False
            assert response["error"].startswith("Invalid request format")

            response = await call(writer, reader, "GET_ALL_TASKS")
            assert response == {"success": True, "payload": {"tasks": []}}
        finally:
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_unknown_operation(self, server: TaskServer):
        reader, writer = await asyncio.open_connection(*server.address)
        try:
            response = await call(writer, reader, "FOO")
            assert response == {
                "success": False,
                "error": "Unknown operation: FOO",
                "kind": "protocol",
            }
        finally:
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_add_complete_round_trip(self, server: TaskServer, service: TaskService):
        reader, writer = await asyncio.open_connection(*server.address)
        try:
            added = await call(
                writer, reader, "ADD_TASK", {"title": "Buy milk", "due_date": "tomorrow 23:59"}
            )
            assert added["success"] is True
            task = added["payload"]["task"]
            assert task["priority"] == "medium"
            assert task["category"] == "inbox"
            assert task["completed"] is False

            completed = await call(writer, reader, "COMPLETE_TASK", {"id": task["id"]})
            assert completed["payload"]["task"]["completed"] is True
            assert service.get_task(task["id"]).completed is True

            deleted = await call(writer, reader, "DELETE_TASK", {"id": task["id"]})
            assert deleted == {"success": True}
        finally:
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_pipelined_requests_answered_in_order(self, server: TaskServer):
        reader, writer = await asyncio.open_connection(*server.address)
        try:
            writer.write(
                Request("ADD_TASK", {"title": "One"}).encode()
                + Request("ADD_TASK", {"title": "Two"}).encode()
                + Request("GET_ALL_TASKS").encode()
            )
            await writer.drain()
            lines = [json.loads(await asyncio.wait_for(reader.readline(), 5)) for _ in range(3)]

            assert lines[0]["payload"]["task"]["title"] == "One"
            assert lines[1]["payload"]["task"]["title"] == "Two"
            assert len(lines[2]["payload"]["tasks"]) == 2
        finally:
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_concurrent_clients(self, server: TaskServer, service: TaskService):
        async def add_many(prefix: str) -> None:
            reader, writer = await asyncio.open_connection(*server.address)
            try:
                for i in range(10):
                    response = await call(writer, reader, "ADD_TASK", {"title": f"{prefix}{i}"})
                    assert response["success"] is True
            finally:
                writer.close()
                await writer.wait_closed()

        await asyncio.gather(*(add_many(p) for p in "abcd"))
        tasks = service.get_all_tasks()
        assert len(tasks) == 40
        assert len({t.id for t in tasks}) == 40

    @pytest.mark.asyncio
    async def test_oversized_request_closes_connection(self, service: TaskService):
        server = TaskServer(service, host="127.0.0.1", port=0, max_request_bytes=1024)
        await server.start()
        try:
            reader, writer = await asyncio.open_connection(*server.address)
            writer.write(b'{"operation":"ADD_TASK","payload":{"title":"' + b"x" * 4096 + b'"}}\n')
            await writer.drain()
            try:
                remaining = await asyncio.wait_for(reader.read(), 5)
            except ConnectionResetError:
                remaining = b""
            assert remaining == b""
            writer.close()
        finally:
            server.stop(close_connections=True)

    @pytest.mark.asyncio
    async def test_stop_closes_listener(self, service: TaskService):
        server = TaskServer(service, host="127.0.0.1", port=0)
        await server.start()
        address = server.address
        serving = asyncio.create_task(server.serve_forever())

        server.stop()
        await asyncio.wait_for(serving, 5)

        assert not server.is_serving
        with pytest.raises(OSError):
            await asyncio.open_connection(*address)
