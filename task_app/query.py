"""
Search criteria, page requests and the page envelope.

``TaskCriteria`` is the conjunctive filter shared by both store backends:
the in-memory store evaluates it with ``matches``, the SQL store turns
each populated field into a ``where`` clause.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generic, TypeVar

from .models import Task, TaskPriority, TaskStatus, utc_now

T = TypeVar("T")

# API sort keys -> Task attribute names
SORT_FIELDS = {
    "id": "id",
    "title": "title",
    "status": "status",
    "priority": "priority",
    "dueDate": "due_date",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
SORT_DIRECTIONS = ("asc", "desc")


@dataclass
class TaskCriteria:
    """
    Filters combined with AND; ``None`` means "do not filter on this".

    Attributes:
        status: Exact status match.
        priority: Exact priority match.
        priorities: Priority must be one of these.
        keyword: Case-insensitive substring of title or description.
        assignee: Case-insensitive exact assignee match.
        due_from: Due date on or after this date.
        due_to: Due date on or before this date.
        overdue: ``True`` keeps only overdue tasks, ``False`` drops them.
        as_of: Reference date for ``overdue``; defaults to today (UTC).
    """

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    priorities: list[TaskPriority] = field(default_factory=list)
    keyword: str | None = None
    assignee: str | None = None
    due_from: date | None = None
    due_to: date | None = None
    overdue: bool | None = None
    as_of: date | None = None

    def reference_date(self) -> date:
        return self.as_of or utc_now().date()

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status != self.status:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.priorities and task.priority not in self.priorities:
            return False
        if self.keyword:
            needle = self.keyword.lower()
            haystacks = (task.title or "", task.description or "")
            if not any(needle in text.lower() for text in haystacks):
                return False
        if self.assignee:
            if task.assignee is None or task.assignee.lower() != self.assignee.lower():
                return False
        if self.due_from is not None:
            if task.due_date is None or task.due_date < self.due_from:
                return False
        if self.due_to is not None:
            if task.due_date is None or task.due_date > self.due_to:
                return False
        if self.overdue is not None:
            if task.is_overdue(self.reference_date()) != self.overdue:
                return False
        return True


@dataclass(frozen=True)
class PageRequest:
    """A zero-based page index plus size and ordering."""

    page: int = 0
    size: int = 20
    sort: str = "id"
    direction: str = "asc"

    @property
    def offset(self) -> int:
        return self.page * self.size

    @property
    def descending(self) -> bool:
        return self.direction == "desc"

    @property
    def sort_attribute(self) -> str:
        return SORT_FIELDS[self.sort]


@dataclass
class Page(Generic[T]):
    """One slice of a result set plus the totals needed to walk the rest."""

    items: list[T]
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return self.page >= self.total_pages - 1

    def to_dict(self, serialise=None) -> dict[str, Any]:
        serialise = serialise or (lambda item: item.to_dict())
        return {
            "items": [serialise(item) for item in self.items],
            "page": self.page,
            "size": self.size,
            "totalElements": self.total_elements,
            "totalPages": self.total_pages,
            "first": self.first,
            "last": self.last,
        }
