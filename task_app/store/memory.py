"""In-process task store backed by a dictionary and a re-entrant lock."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import replace
from datetime import date
from typing import Any

from ..errors import TaskConflictError, TaskNotFoundError
from ..models import Task, TaskStatus
from ..query import PageRequest, TaskCriteria
from .base import TaskStore

logger = logging.getLogger(__name__)


def _sort_value(task: Task, attribute: str) -> Any:
    value = getattr(task, attribute)
    if attribute in ("status", "priority"):
        return value.rank
    if attribute == "title":
        return value.lower()
    return value


def _ordered(tasks: list[Task], page_request: PageRequest) -> list[Task]:
    """
    Order by the requested attribute, ties by id ascending, empty values last.
    """
    attribute = page_request.sort_attribute
    by_id = sorted(tasks, key=lambda task: task.id)
    present = [task for task in by_id if getattr(task, attribute) is not None]
    missing = [task for task in by_id if getattr(task, attribute) is None]
    present.sort(key=lambda task: _sort_value(task, attribute), reverse=page_request.descending)
    return present + missing


class InMemoryTaskStore(TaskStore):
    """
    Task store that keeps copies of ``Task`` records in a dict.

    Every public method holds the lock for its whole body, so a single put
    or get never observes a half-written task.  Stored and returned objects
    are copies; mutating a returned task does not change the store.
    """

    name = "memory"

    def __init__(self) -> None:
        self._tasks: dict[int, Task] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def put(self, task: Task) -> Task:
        with self._lock:
            if task.id is None:
                stored = replace(task, id=next(self._ids))
            else:
                current = self._tasks.get(task.id)
                if current is None:
                    raise TaskNotFoundError(task.id)
                if current.version != task.version - 1:
                    logger.warning(
                        "Stale write for task %s: stored version %s, expected %s",
                        task.id,
                        current.version,
                        task.version - 1,
                    )
                    raise TaskConflictError(
                        f"Task {task.id} was modified concurrently; reload and retry"
                    )
                stored = replace(task)
            self._tasks[stored.id] = stored
            return replace(stored)

    def get(self, task_id: int) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return replace(task) if task is not None else None

    def delete(self, task_id: int) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    def list(self) -> list[Task]:
        with self._lock:
            return [replace(self._tasks[key]) for key in sorted(self._tasks)]

    def count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def count_by_status(self, status: TaskStatus) -> int:
        with self._lock:
            return sum(1 for task in self._tasks.values() if task.status == status)

    def list_overdue(self, as_of: date) -> list[Task]:
        with self._lock:
            overdue = [replace(task) for task in self._tasks.values() if task.is_overdue(as_of)]
        return sorted(overdue, key=lambda task: (task.due_date, task.id))

    def find(
        self, criteria: TaskCriteria, page_request: PageRequest | None = None
    ) -> tuple[list[Task], int]:
        with self._lock:
            matches = [replace(task) for task in self._tasks.values() if criteria.matches(task)]

        if page_request is None:
            return sorted(matches, key=lambda task: task.id), len(matches)

        ordered = _ordered(matches, page_request)
        start = page_request.offset
        return ordered[start : start + page_request.size], len(matches)

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()
