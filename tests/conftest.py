"""Shared test fixtures for tasklist tests.

Provides:
- MockContext for isolating tests from global settings
- Store and service fixtures over a temporary data directory
- A running server on an ephemeral port and a connected client
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest
import pytest_asyncio

from tasklist.client import TaskClient
from tasklist.config import Settings, reload_settings, set_settings
from tasklist.models import Priority, Task
from tasklist.server import TaskServer
from tasklist.service import TaskService
from tasklist.storage import JSONTaskStore

REFERENCE_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class MockContext:
    """Context manager for isolating tests from global state.

    Handles:
    - Clearing TASKLIST_* environment variables
    - Installing settings that point at a temporary data directory
    - Resetting the global settings singleton afterwards

    Usage:
        with MockContext(port=9090) as ctx:
            settings = ctx.settings
            data_dir = ctx.data_dir
    """

    def __init__(self, **settings_kwargs):
        self._settings_kwargs = settings_kwargs
        self._temp_dir: tempfile.TemporaryDirectory | None = None
        self._settings: Settings | None = None
        self._original_env: dict[str, str] = {}

    def __enter__(self) -> "MockContext":
        self._temp_dir = tempfile.TemporaryDirectory()

        for var in list(os.environ):
            if var.startswith("TASKLIST_"):
                self._original_env[var] = os.environ.pop(var)

        self._settings = Settings(
            data_dir=Path(self._temp_dir.name) / "data",
            **self._settings_kwargs,
        )
        set_settings(self._settings)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        os.environ.update(self._original_env)
        reload_settings()
        if self._temp_dir:
            self._temp_dir.cleanup()

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            raise RuntimeError("MockContext not entered")
        return self._settings

    @property
    def data_dir(self) -> Path:
        return self.settings.data_dir


def make_task(
    title: str = "Task",
    priority: Priority = Priority.MEDIUM,
    created_at: datetime = REFERENCE_NOW,
    **kwargs,
) -> Task:
    """Build a task with a fixed creation time."""
    task = Task.new(title, priority=priority, **kwargs)
    task.created_at = created_at
    return task


@pytest.fixture
def mock_context() -> Generator[MockContext, None, None]:
    """Fixture providing an isolated settings context."""
    with MockContext() as ctx:
        yield ctx


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary data directory, listening on any free port."""
    with patch.dict(os.environ, {}, clear=True):
        return Settings(data_dir=tmp_path / "data", port=0)


@pytest.fixture
def store(settings: Settings) -> JSONTaskStore:
    store = JSONTaskStore(settings.storage_file)
    store.initialize()
    return store


@pytest.fixture
def service(store: JSONTaskStore, settings: Settings) -> TaskService:
    service = TaskService(store, settings.backup_dir)
    service.ensure_backup_dir()
    return service


@pytest_asyncio.fixture
async def server(service: TaskService) -> AsyncGenerator[TaskServer, None]:
    """A started server on 127.0.0.1 with an ephemeral port."""
    server = TaskServer(service, host="127.0.0.1", port=0)
    await server.start()
    yield server
    server.stop(close_connections=True)


@pytest_asyncio.fixture
async def client(server: TaskServer) -> AsyncGenerator[TaskClient, None]:
    """A client connected to the ``server`` fixture."""
    host, port = server.address
    client = TaskClient(host, port, timeout=5)
    await client.connect()
    yield client
    await client.close()
