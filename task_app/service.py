"""
Task Service: business rules on top of a ``TaskStore``.

Applies creation defaults, partial updates with optimistic concurrency,
the status state machine, search and pagination.  After each successful
write it publishes an event on the bus and updates the Prometheus
metrics.  Raises typed errors from ``task_app.errors``; translating them
to HTTP is the routes' job.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime
from typing import Any

from .errors import IllegalTransitionError, TaskConflictError, TaskNotFoundError
from .events import TaskEvent, TaskEventBus, TaskEventType
from .metrics import TaskMetrics
from .models import (
    TRANSITIONS,
    Task,
    TaskPriority,
    TaskStatus,
    allowed_transitions,
    is_legal_status_change,
    utc_now,
)
from .query import Page, PageRequest, TaskCriteria
from .store import TaskStore
from .validation import CreateTaskRequest, UpdateTaskRequest

logger = logging.getLogger(__name__)

STATUS_POLICIES = ("open", "strict")


class TaskService:
    """
    Create, read, update, delete, transition and search tasks.

    Args:
        store: Backend that owns the task records.
        events: Bus notified after writes; a private bus is used when omitted.
        status_policy: ``"open"`` lets ``update`` set any status,
            ``"strict"`` only allows state-machine edges.
        overdue_threshold: Overdue count above which ``health`` reports
            ``DEGRADED``.
        clock: Returns the current UTC time; replaceable in tests.
        metrics: Prometheus counters and gauges; a private registry is
            used when omitted.
    """

    def __init__(
        self,
        store: TaskStore,
        events: TaskEventBus | None = None,
        status_policy: str = "open",
        overdue_threshold: int = 10,
        clock: Callable[[], datetime] = utc_now,
        metrics: TaskMetrics | None = None,
    ) -> None:
        if status_policy not in STATUS_POLICIES:
            raise RuntimeError(
                f"Unknown TASK_STATUS_POLICY '{status_policy}'. Expected one of: {list(STATUS_POLICIES)}"
            )
        self.store = store
        self.events = events or TaskEventBus()
        self.status_policy = status_policy
        self.overdue_threshold = overdue_threshold
        self._clock = clock
        self.metrics = metrics or TaskMetrics()
        self.metrics.track(
            active=lambda: sum(
                store.count_by_status(status)
                for status in (TaskStatus.TODO, TaskStatus.IN_PROGRESS)
            ),
            overdue=lambda: len(store.list_overdue(self.today())),
        )

    def today(self) -> date:
        return self._clock().date()

    # -----------------------------------------------------------------
    # CRUD
    # -----------------------------------------------------------------

    def create(self, request: CreateTaskRequest) -> Task:
        with self.metrics.creation_time.time():
            now = self._clock()
            task = self.store.put(
                Task(
                    title=request.title,
                    description=request.description,
                    status=request.status or TaskStatus.TODO,
                    priority=request.priority or TaskPriority.MEDIUM,
                    due_date=request.due_date,
                    assignee=request.assignee,
                    version=0,
                    created_at=now,
                    updated_at=now,
                )
            )
        self.metrics.tasks_created.inc()
        logger.info("Created task %s: %s", task.id, task.title)

        self._publish(TaskEventType.TASK_CREATED, task)
        if task.assignee:
            self._publish(TaskEventType.TASK_ASSIGNED, task)
        return task

    def find_by_id(self, task_id: int) -> Task:
        task = self.store.get(task_id)
        if task is None:
            logger.warning("Task %s not found", task_id)
            raise TaskNotFoundError(task_id)
        return task

    def update(self, task_id: int, request: UpdateTaskRequest) -> Task:
        """
        Apply a partial update.

        Raises:
            TaskNotFoundError: No task with that id.
            TaskConflictError: ``request.version`` is stale, or the store
                saw a concurrent write.
            IllegalTransitionError: Strict policy and the status change is
                not a state-machine edge.
        """
        current = self.find_by_id(task_id)
        if request.version is not None and request.version != current.version:
            logger.warning(
                "Version conflict on task %s: client %s, stored %s",
                task_id,
                request.version,
                current.version,
            )
            raise TaskConflictError(
                "Task was modified by another user. Please refresh and try again."
            )
        if not request.changes:
            return current

        new_status = request.changes.get("status", current.status)
        if self.status_policy == "strict" and not is_legal_status_change(
            current.status, new_status
        ):
            raise IllegalTransitionError(task_id, current.status.value, new_status.value)

        updated = self._save(replace(current, **request.changes))
        logger.info("Updated task %s (fields: %s)", task_id, sorted(request.changes))

        if request.has("assignee") and updated.assignee and updated.assignee != current.assignee:
            self._publish(TaskEventType.TASK_ASSIGNED, updated)
        if updated.status == TaskStatus.COMPLETED and current.status != TaskStatus.COMPLETED:
            self.metrics.tasks_completed.inc()
            self._publish(TaskEventType.TASK_COMPLETED, updated)
        return updated

    def delete(self, task_id: int) -> None:
        task = self.find_by_id(task_id)
        if not self.store.delete(task_id):
            raise TaskNotFoundError(task_id)
        self.metrics.tasks_deleted.inc()
        logger.info("Deleted task %s", task_id)
        self._publish(TaskEventType.TASK_DELETED, task)

    # -----------------------------------------------------------------
    # Status transitions
    # -----------------------------------------------------------------

    def start(self, task_id: int) -> Task:
        return self._transition(task_id, "start")

    def complete(self, task_id: int) -> Task:
        return self._transition(task_id, "complete")

    def cancel(self, task_id: int) -> Task:
        return self._transition(task_id, "cancel")

    def reopen(self, task_id: int) -> Task:
        return self._transition(task_id, "reopen")

    def assign(self, task_id: int, assignee: str) -> Task:
        """Set the assignee; a ``TODO`` task is started at the same time."""
        current = self.find_by_id(task_id)
        status = current.status
        if status == TaskStatus.TODO:
            status = TaskStatus.IN_PROGRESS

        updated = self._save(replace(current, assignee=assignee, status=status))
        logger.info("Assigned task %s to %s", task_id, assignee)
        self._publish(TaskEventType.TASK_ASSIGNED, updated)
        return updated

    @staticmethod
    def allowed_transitions(task: Task) -> list[str]:
        return allowed_transitions(task.status)

    def _transition(self, task_id: int, action: str) -> Task:
        current = self.find_by_id(task_id)
        sources, target = TRANSITIONS[action]
        if current.status not in sources:
            logger.warning(
                "Illegal transition '%s' for task %s in status %s",
                action,
                task_id,
                current.status.value,
            )
            raise IllegalTransitionError(task_id, current.status.value, action)

        updated = self._save(replace(current, status=target))
        logger.info(
            "Task %s: %s -> %s (%s)", task_id, current.status.value, target.value, action
        )
        if target == TaskStatus.COMPLETED:
            self.metrics.tasks_completed.inc()
            self._publish(TaskEventType.TASK_COMPLETED, updated)
        return updated

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def list_tasks(self, criteria: TaskCriteria, page_request: PageRequest) -> Page[Task]:
        items, total = self.store.find(self._anchored(criteria), page_request)
        return Page(
            items=items,
            page=page_request.page,
            size=page_request.size,
            total_elements=total,
        )

    def search(self, criteria: TaskCriteria) -> list[Task]:
        items, _ = self.store.find(self._anchored(criteria))
        return items

    def overdue(self, as_of: date | None = None) -> list[Task]:
        return self.store.list_overdue(as_of or self.today())

    def count_by_status(self) -> dict[str, int]:
        return {status.value: self.store.count_by_status(status) for status in TaskStatus}

    def health(self) -> dict[str, Any]:
        """
        Report store reachability and task statistics.

        ``status`` is ``UP``, ``DEGRADED`` (more overdue tasks than
        ``overdue_threshold``) or ``DOWN`` (the store raised).
        """
        try:
            by_status = self.count_by_status()
            total = self.store.count()
            overdue = len(self.store.list_overdue(self.today()))
        except Exception as exc:
            logger.exception("Health check failed against %s store", self.store.name)
            return {
                "status": "DOWN",
                "details": {"store": self.store.name, "error": type(exc).__name__},
            }

        details: dict[str, Any] = {
            "store": self.store.name,
            "totalTasks": total,
            "byStatus": by_status,
            "overdueTasks": overdue,
        }
        status = "UP"
        if overdue > 0:
            details["warning"] = f"There are {overdue} overdue task(s)"
        if overdue > self.overdue_threshold:
            status = "DEGRADED"
            details["reason"] = "Too many overdue tasks"
        return {"status": status, "details": details}

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _anchored(self, criteria: TaskCriteria) -> TaskCriteria:
        """Pin the overdue reference date to the service clock."""
        if criteria.overdue is not None and criteria.as_of is None:
            return replace(criteria, as_of=self.today())
        return criteria

    def _save(self, task: Task) -> Task:
        return self.store.put(
            replace(task, version=task.version + 1, updated_at=self._clock())
        )

    def _publish(self, event_type: TaskEventType, task: Task) -> None:
        self.events.publish(
            TaskEvent(
                event_type=event_type,
                task_id=task.id,
                task_title=task.title,
                assignee=task.assignee,
            )
        )
