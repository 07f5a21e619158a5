"""
Prometheus metrics for the task service.

Every ``TaskMetrics`` owns its own ``CollectorRegistry`` so several
applications (one per test, say) can live in one process without
colliding on metric names.  The registry is exposed as text by
``GET /api/metrics``.
"""

from __future__ import annotations

from collections.abc import Callable

from prometheus_client import CollectorRegistry, Counter, Gauge, Summary, generate_latest


class TaskMetrics:
    """Counters for task writes, a creation timer and live task gauges."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.tasks_created = Counter(
            "tasks_created", "Number of tasks created", registry=self.registry
        )
        self.tasks_completed = Counter(
            "tasks_completed", "Number of tasks moved to COMPLETED", registry=self.registry
        )
        self.tasks_deleted = Counter(
            "tasks_deleted", "Number of tasks deleted", registry=self.registry
        )
        self.creation_time = Summary(
            "tasks_creation_seconds", "Time taken to create a task", registry=self.registry
        )
        self.tasks_active = Gauge(
            "tasks_active", "Tasks in TODO or IN_PROGRESS", registry=self.registry
        )
        self.tasks_overdue = Gauge(
            "tasks_overdue", "Open tasks past their due date", registry=self.registry
        )

    def track(self, active: Callable[[], int], overdue: Callable[[], int]) -> None:
        """Compute the gauges from the store at scrape time."""
        self.tasks_active.set_function(active)
        self.tasks_overdue.set_function(overdue)

    def value(self, name: str) -> float:
        """Current value of one sample, ``0.0`` when it was never recorded."""
        return self.registry.get_sample_value(name) or 0.0

    def exposition(self) -> bytes:
        return generate_latest(self.registry)
