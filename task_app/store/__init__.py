"""
Task storage backends.

``create_store`` picks a backend by the name configured in ``TASK_STORE``:
  * **sql** -- rows in the Flask-SQLAlchemy database.
  * **memory** -- a process-local dictionary, lost on restart.
"""

from __future__ import annotations

from .base import TaskStore
from .memory import InMemoryTaskStore
from .sql import SqlTaskStore, TaskRecord

STORE_BACKENDS: dict[str, type[TaskStore]] = {
    InMemoryTaskStore.name: InMemoryTaskStore,
    SqlTaskStore.name: SqlTaskStore,
}


def create_store(name: str) -> TaskStore:
    """
    Instantiate the backend registered under ``name``.

    Raises:
        RuntimeError: If no backend has that name.
    """
    try:
        backend = STORE_BACKENDS[name.strip().lower()]
    except KeyError:
        raise RuntimeError(
            f"Unknown TASK_STORE '{name}'. Expected one of: {sorted(STORE_BACKENDS)}"
        ) from None
    return backend()


__all__ = [
    "InMemoryTaskStore",
    "STORE_BACKENDS",
    "SqlTaskStore",
    "TaskRecord",
    "TaskStore",
    "create_store",
]
