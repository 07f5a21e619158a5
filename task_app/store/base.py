"""Storage contract shared by the in-memory and SQL task stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from ..models import Task, TaskStatus
from ..query import PageRequest, TaskCriteria


class TaskStore(ABC):
    """
    Keyed storage of ``Task`` records.

    Lookups on absent identifiers return ``None`` / ``False`` and leave
    "not found" signalling to the service.  Each call is atomic on its own;
    sequences of calls are not.
    """

    name: str = "abstract"

    @abstractmethod
    def put(self, task: Task) -> Task:
        """
        Insert or replace a task and return the stored copy.

        A task without an ``id`` is inserted and receives a fresh one.
        Otherwise the stored row is replaced only if its version equals
        ``task.version - 1``.

        Raises:
            TaskNotFoundError: Replacing an id that is not stored.
            TaskConflictError: The stored version moved on in between.
        """

    @abstractmethod
    def get(self, task_id: int) -> Task | None:
        """Return the task or ``None``."""

    @abstractmethod
    def delete(self, task_id: int) -> bool:
        """Remove the task; ``False`` when it was not stored."""

    @abstractmethod
    def list(self) -> list[Task]:
        """Return every task ordered by id."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored tasks."""

    @abstractmethod
    def count_by_status(self, status: TaskStatus) -> int:
        """Return how many tasks currently have ``status``."""

    @abstractmethod
    def list_overdue(self, as_of: date) -> list[Task]:
        """Return open tasks whose due date is before ``as_of``, by due date."""

    @abstractmethod
    def find(
        self, criteria: TaskCriteria, page_request: PageRequest | None = None
    ) -> tuple[list[Task], int]:
        """
        Filter, order and optionally slice the stored tasks.

        Returns:
            ``(items, total)`` where ``total`` counts every match, not just
            the returned slice.  Without a page request the items are all
            matches ordered by id.
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove every task."""

    def close(self) -> None:
        """Release backend resources; called from application teardown."""
