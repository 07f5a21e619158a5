"""
In-process task events.

The service publishes a ``TaskEvent`` after each notable change; listeners
subscribe on a ``TaskEventBus``.  Delivery is synchronous and follows
subscription order.  A listener that raises is logged and skipped, so it
never fails the publishing request or starves the listeners after it.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .models import utc_now

logger = logging.getLogger(__name__)


class TaskEventType(str, Enum):
    """Kinds of change announced on the bus."""

    TASK_CREATED = "TASK_CREATED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_DELETED = "TASK_DELETED"


@dataclass(frozen=True)
class TaskEvent:
    event_type: TaskEventType
    task_id: int
    task_title: str
    assignee: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventType": self.event_type.value,
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "assignee": self.assignee,
            "timestamp": self.timestamp.isoformat(),
        }


TaskListener = Callable[[TaskEvent], Any]


class TaskEventBus:
    """Callback registry with ordered, error-isolated delivery."""

    def __init__(self) -> None:
        self._subscriptions: list[tuple[TaskEventType | None, TaskListener]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, listener: TaskListener, event_type: TaskEventType | None = None
    ) -> Callable[[], None]:
        """
        Register ``listener`` for one event type, or for all when ``None``.

        Returns:
            A callable that removes this subscription again.
        """
        entry = (event_type, listener)
        with self._lock:
            self._subscriptions.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscriptions:
                    self._subscriptions.remove(entry)

        return unsubscribe

    def publish(self, event: TaskEvent) -> int:
        """
        Deliver ``event`` to every matching listener.

        Returns:
            The number of listeners that handled the event without raising.
        """
        with self._lock:
            targets = [
                listener
                for event_type, listener in self._subscriptions
                if event_type is None or event_type == event.event_type
            ]

        delivered = 0
        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Listener %r failed on %s for task %s (event %s)",
                    listener,
                    event.event_type.value,
                    event.task_id,
                    event.event_id,
                )
                continue
            delivered += 1
        return delivered

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def close(self) -> None:
        """Drop every subscription; part of application teardown."""
        with self._lock:
            self._subscriptions.clear()


def log_task_event(event: TaskEvent) -> None:
    """Default listener: write each event to the service log."""
    if event.assignee:
        logger.info(
            "Event %s for task %s '%s' (assignee: %s, id: %s)",
            event.event_type.value,
            event.task_id,
            event.task_title,
            event.assignee,
            event.event_id,
        )
    else:
        logger.info(
            "Event %s for task %s '%s' (id: %s)",
            event.event_type.value,
            event.task_id,
            event.task_title,
            event.event_id,
        )
