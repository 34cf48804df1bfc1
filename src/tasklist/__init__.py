"""Task list server with a file-backed JSON store.

Tasks are kept in a single JSON file, served over a line-delimited JSON
protocol on TCP, and reachable from Python through ``TaskClient``.
"""

__version__ = "0.1.0"

from tasklist.client import TaskClient
from tasklist.config import Settings, get_settings, reload_settings, set_settings
from tasklist.errors import (
    ErrorKind,
    ProtocolError,
    StorageError,
    TaskListError,
    TaskNotFoundError,
    TransportError,
    ValidationError,
)
from tasklist.models import Priority, Task
from tasklist.server import TaskServer, build_service, run_server
from tasklist.service import TaskService
from tasklist.storage import JSONTaskStore, TaskStorage

__all__ = [
    "__version__",
    # Client and server
    "TaskClient",
    "TaskServer",
    "TaskService",
    "build_service",
    "run_server",
    # Storage
    "TaskStorage",
    "JSONTaskStore",
    # Models
    "Task",
    "Priority",
    # Errors
    "ErrorKind",
    "TaskListError",
    "TaskNotFoundError",
    "StorageError",
    "ProtocolError",
    "ValidationError",
    "TransportError",
    # Config
    "Settings",
    "get_settings",
    "set_settings",
    "reload_settings",
]
