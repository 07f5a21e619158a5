"""
Domain Model for the Task Service.

Defines the ``Task`` record managed by every layer of the service, the
enumerations for status and priority, and the status state machine.
The record is storage-agnostic: the in-memory store keeps copies of it
directly, the SQL store maps it to and from ``TaskRecord`` rows.

State machine::

    TODO --start--> IN_PROGRESS --complete--> COMPLETED
    TODO, IN_PROGRESS --cancel--> CANCELLED
    COMPLETED, CANCELLED --reopen--> TODO
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


class _ParsableEnum(str, Enum):
    """``str`` enum whose members can be parsed case-insensitively."""

    @classmethod
    def parse(cls, value: Any):
        """
        Convert raw input (``"todo"``, ``"In_Progress"``) to a member.

        Raises:
            ValueError: If the value does not name a member.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"{value!r} is not a valid {cls.__name__}")
        normalised = value.strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalised)
        except ValueError:
            raise ValueError(f"{value!r} is not a valid {cls.__name__}") from None

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class TaskStatus(_ParsableEnum):
    """
    Lifecycle status of a task.

    ``TODO`` is the initial ("created") state; ``COMPLETED`` and
    ``CANCELLED`` are terminal in normal flow but can be reopened.
    """

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class TaskPriority(_ParsableEnum):
    """Importance level of a task, ordered from ``LOW`` to ``CRITICAL``."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_STATUS_RANK = {status: index for index, status in enumerate(TaskStatus)}
_PRIORITY_RANK = {priority: index for index, priority in enumerate(TaskPriority)}

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})

# action -> (legal source statuses, target status)
TRANSITIONS: dict[str, tuple[frozenset[TaskStatus], TaskStatus]] = {
    "start": (frozenset({TaskStatus.TODO}), TaskStatus.IN_PROGRESS),
    "complete": (frozenset({TaskStatus.IN_PROGRESS}), TaskStatus.COMPLETED),
    "cancel": (
        frozenset({TaskStatus.TODO, TaskStatus.IN_PROGRESS}),
        TaskStatus.CANCELLED,
    ),
    "reopen": (
        frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
        TaskStatus.TODO,
    ),
}


def allowed_transitions(status: TaskStatus) -> list[str]:
    """Return the names of the transitions legal from ``status``."""
    return [action for action, (sources, _) in TRANSITIONS.items() if status in sources]


def is_legal_status_change(current: TaskStatus, target: TaskStatus) -> bool:
    """
    Check whether moving from ``current`` to ``target`` follows an edge.

    Staying in the same status is always legal.
    """
    if current == target:
        return True
    return any(
        current in sources and target == destination
        for sources, destination in TRANSITIONS.values()
    )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalise a datetime to UTC.

    Naive datetimes (SQLite drops ``tzinfo``) are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_utc_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


@dataclass
class Task:
    """
    A unit of work tracked by the service.

    Attributes:
        title: Short summary (1-200 characters).
        description: Optional longer text.
        status: Current lifecycle status (see ``TaskStatus``).
        priority: Importance level (see ``TaskPriority``).
        due_date: Optional calendar deadline.
        assignee: Optional free-text identifier of the person doing the work.
        id: Server-assigned identifier; ``None`` until first stored.
        version: Optimistic-concurrency stamp, incremented on every write.
        created_at: Creation timestamp (UTC).
        updated_at: Last modification timestamp (UTC).
    """

    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: date | None = None
    assignee: str | None = None
    id: int | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_overdue(self, as_of: date) -> bool:
        """True when the due date has passed and the task is still open."""
        return (
            self.due_date is not None
            and self.due_date < as_of
            and not self.status.is_terminal
        )

    def to_dict(self, as_of: date | None = None) -> dict[str, Any]:
        """
        Serialise the task to a JSON-safe dictionary.

        Args:
            as_of: Reference date for the computed ``overdue`` flag;
                defaults to today (UTC).
        """
        if as_of is None:
            as_of = utc_now().date()
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "assignee": self.assignee,
            "version": self.version,
            "createdAt": _to_utc_iso(self.created_at),
            "updatedAt": _to_utc_iso(self.updated_at),
            "overdue": self.is_overdue(as_of),
        }

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title}>"
