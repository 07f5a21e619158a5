"""Demo tasks for development instances."""

from __future__ import annotations

import logging
from datetime import timedelta

from .models import TaskPriority, TaskStatus
from .service import TaskService
from .validation import CreateTaskRequest

logger = logging.getLogger(__name__)

# (title, description, priority, status, due date offset in days)
SAMPLE_TASKS = [
    ("Complete project documentation", "Write the service README and API reference", TaskPriority.HIGH, TaskStatus.TODO, 7),
    ("Review pull requests", "Go through the open pull requests", TaskPriority.MEDIUM, TaskStatus.IN_PROGRESS, 2),
    ("Fix authentication bug", "Users are logged out after token refresh", TaskPriority.URGENT, TaskStatus.TODO, 1),
    ("Update dependencies", "Bump libraries to their latest releases", TaskPriority.LOW, TaskStatus.TODO, 14),
    ("Write unit tests", "Cover the task service with unit tests", TaskPriority.HIGH, TaskStatus.IN_PROGRESS, 5),
    ("Deploy to production", "Release the current build", TaskPriority.URGENT, TaskStatus.COMPLETED, -1),
    ("Refactor database queries", "Remove N+1 queries from the listing", TaskPriority.MEDIUM, TaskStatus.TODO, 10),
    ("Setup CI/CD pipeline", "Run tests and deploy on every merge", TaskPriority.HIGH, TaskStatus.CANCELLED, -5),
    ("Design new dashboard", "Mock up the overview page", TaskPriority.MEDIUM, TaskStatus.TODO, 20),
    ("Conduct code review", "Review the storage layer changes", TaskPriority.LOW, TaskStatus.COMPLETED, -3),
]


def seed_sample_tasks(service: TaskService) -> int:
    """
    Insert the sample tasks when the store is empty.

    Returns:
        The number of tasks created (0 if the store already had data).
    """
    if service.store.count() > 0:
        logger.info("Store already holds tasks; skipping sample data")
        return 0

    today = service.today()
    for title, description, priority, status, offset in SAMPLE_TASKS:
        service.create(
            CreateTaskRequest(
                title=title,
                description=description,
                status=status,
                priority=priority,
                due_date=today + timedelta(days=offset),
            )
        )
    logger.info("Seeded %d sample tasks", len(SAMPLE_TASKS))
    return len(SAMPLE_TASKS)
