"""Task persistence.

Provides the ``TaskStorage`` interface and its JSON-file implementation.

Example:
    >>> store = JSONTaskStore(settings.storage_file)
    >>> store.initialize()
    >>> store.add_task(Task.new("Write report", priority="high"))
"""

from tasklist.storage.base import TaskStorage
from tasklist.storage.json_store import JSONTaskStore
from tasklist.storage.locks import ReadWriteLock

__all__ = ["TaskStorage", "JSONTaskStore", "ReadWriteLock"]
