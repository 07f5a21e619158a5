"""
Unit tests for ``TaskService`` business rules.

Runs the service over an in-memory store with a fixed clock so dates,
versions and events are fully deterministic.

Key SDET Concepts Demonstrated:
- Dependency injection of a fake clock and a lightweight backend
- State-machine testing (legal and illegal transitions)
- Optimistic-concurrency testing with stale versions
- Observing side effects through a recording event listener
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from task_app.errors import IllegalTransitionError, TaskConflictError, TaskNotFoundError
from task_app.events import TaskEventBus, TaskEventType
from task_app.models import TaskPriority, TaskStatus
from task_app.query import PageRequest, TaskCriteria
from task_app.service import TaskService
from task_app.store import InMemoryTaskStore
from task_app.validation import CreateTaskRequest, UpdateTaskRequest

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


@pytest.fixture
def events():
    return TaskEventBus()


@pytest.fixture
def recorded(events):
    received = []
    events.subscribe(received.append)
    return received


@pytest.fixture
def task_service(events):
    return TaskService(InMemoryTaskStore(), events=events, clock=lambda: NOW)


@pytest.fixture
def strict_service(events):
    return TaskService(
        InMemoryTaskStore(), events=events, status_policy="strict", clock=lambda: NOW
    )


def _create(service, title="Task", **fields):
    return service.create(CreateTaskRequest(title=title, **fields))


class TestCreate:
    def test_create_applies_defaults(self, task_service):
        """Test that a title-only task starts as TODO/MEDIUM at version 0."""
        # Act
        task = _create(task_service, "Write report")

        # Assert
        assert task.id is not None
        assert task.status == TaskStatus.TODO
        assert task.priority == TaskPriority.MEDIUM
        assert task.version == 0
        assert task.created_at == NOW
        assert task.updated_at == NOW

    def test_create_assigns_unique_ids(self, task_service):
        ids = {_create(task_service, f"t{index}").id for index in range(5)}
        assert len(ids) == 5

    def test_created_task_can_be_fetched(self, task_service):
        created = _create(task_service, "Fetch me", priority=TaskPriority.HIGH)
        assert task_service.find_by_id(created.id) == created

    def test_create_publishes_created_and_assigned(self, task_service, recorded):
        """Test that creating an assigned task emits CREATED then ASSIGNED."""
        # Act
        task = _create(task_service, "Assigned", assignee="carol")

        # Assert
        assert [event.event_type for event in recorded] == [
            TaskEventType.TASK_CREATED,
            TaskEventType.TASK_ASSIGNED,
        ]
        assert recorded[1].task_id == task.id
        assert recorded[1].assignee == "carol"


class TestFindAndDelete:
    def test_find_missing_raises_not_found(self, task_service):
        with pytest.raises(TaskNotFoundError, match="Task not found with id: 42"):
            task_service.find_by_id(42)

    def test_delete_then_fetch_raises_not_found(self, task_service, recorded):
        # Arrange
        task = _create(task_service)

        # Act
        task_service.delete(task.id)

        # Assert
        with pytest.raises(TaskNotFoundError):
            task_service.find_by_id(task.id)
        assert recorded[-1].event_type == TaskEventType.TASK_DELETED

    def test_delete_missing_raises_not_found(self, task_service):
        with pytest.raises(TaskNotFoundError):
            task_service.delete(12345)


class TestUpdate:
    def test_partial_update_preserves_omitted_fields(self, task_service):
        """Test that only the supplied fields change."""
        # Arrange
        task = _create(
            task_service,
            "Original",
            description="keep me",
            priority=TaskPriority.HIGH,
            due_date=date(2026, 4, 1),
        )

        # Act
        updated = task_service.update(
            task.id, UpdateTaskRequest(changes={"status": TaskStatus.IN_PROGRESS})
        )

        # Assert
        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.title == "Original"
        assert updated.description == "keep me"
        assert updated.priority == TaskPriority.HIGH
        assert updated.due_date == date(2026, 4, 1)
        assert updated.version == task.version + 1

    def test_update_with_none_clears_optional_field(self, task_service):
        task = _create(task_service, "Clear", description="remove", assignee="dave")

        updated = task_service.update(
            task.id, UpdateTaskRequest(changes={"description": None, "assignee": None})
        )

        assert updated.description is None
        assert updated.assignee is None

    def test_update_without_changes_returns_current_task(self, task_service):
        task = _create(task_service)

        result = task_service.update(task.id, UpdateTaskRequest())

        assert result == task

    def test_update_with_stale_version_conflicts(self, task_service):
        """Test that a client holding an old version cannot overwrite newer data."""
        # Arrange
        task = _create(task_service)
        task_service.update(task.id, UpdateTaskRequest(changes={"title": "first"}))

        # Act / Assert
        with pytest.raises(TaskConflictError, match="modified by another user"):
            task_service.update(
                task.id, UpdateTaskRequest(changes={"title": "second"}, version=0)
            )
        assert task_service.find_by_id(task.id).title == "first"

    def test_stale_version_conflicts_even_without_changes(self, task_service):
        task = _create(task_service)
        task_service.update(task.id, UpdateTaskRequest(changes={"title": "first"}))

        with pytest.raises(TaskConflictError):
            task_service.update(task.id, UpdateTaskRequest(version=0))

    def test_update_with_current_version_succeeds(self, task_service):
        task = _create(task_service)

        updated = task_service.update(
            task.id, UpdateTaskRequest(changes={"title": "new"}, version=task.version)
        )

        assert updated.title == "new"

    def test_open_policy_allows_any_status(self, task_service):
        task = _create(task_service)

        updated = task_service.update(
            task.id, UpdateTaskRequest(changes={"status": TaskStatus.COMPLETED})
        )

        assert updated.status == TaskStatus.COMPLETED

    def test_strict_policy_rejects_illegal_status(self, strict_service):
        """Test that TODO -> COMPLETED through update is refused under 'strict'."""
        task = _create(strict_service)

        with pytest.raises(IllegalTransitionError):
            strict_service.update(
                task.id, UpdateTaskRequest(changes={"status": TaskStatus.COMPLETED})
            )

    def test_strict_policy_allows_state_machine_edge(self, strict_service):
        task = _create(strict_service)

        updated = strict_service.update(
            task.id, UpdateTaskRequest(changes={"status": TaskStatus.IN_PROGRESS})
        )

        assert updated.status == TaskStatus.IN_PROGRESS

    def test_update_to_completed_publishes_event(self, task_service, recorded):
        task = _create(task_service)

        task_service.update(task.id, UpdateTaskRequest(changes={"status": TaskStatus.COMPLETED}))

        assert recorded[-1].event_type == TaskEventType.TASK_COMPLETED

    def test_update_missing_task_raises_not_found(self, task_service):
        with pytest.raises(TaskNotFoundError):
            task_service.update(99, UpdateTaskRequest(changes={"title": "x"}))

    def test_unknown_policy_fails_fast(self):
        with pytest.raises(RuntimeError, match="TASK_STATUS_POLICY"):
            TaskService(InMemoryTaskStore(), status_policy="lenient")


class TestTransitions:
    def test_complete_from_todo_conflicts(self, task_service):
        """Test that a TODO task cannot be completed directly."""
        task = _create(task_service)

        with pytest.raises(IllegalTransitionError) as excinfo:
            task_service.complete(task.id)

        assert excinfo.value.current == "TODO"
        assert excinfo.value.action == "complete"
        assert task_service.find_by_id(task.id).status == TaskStatus.TODO

    def test_start_then_complete(self, task_service, recorded):
        """Test the happy path TODO -> IN_PROGRESS -> COMPLETED."""
        # Arrange
        task = _create(task_service)

        # Act
        started = task_service.start(task.id)
        completed = task_service.complete(task.id)

        # Assert
        assert started.status == TaskStatus.IN_PROGRESS
        assert completed.status == TaskStatus.COMPLETED
        assert completed.version == 2
        assert recorded[-1].event_type == TaskEventType.TASK_COMPLETED

    def test_cancel_and_reopen(self, task_service):
        task = _create(task_service)

        cancelled = task_service.cancel(task.id)
        reopened = task_service.reopen(task.id)

        assert cancelled.status == TaskStatus.CANCELLED
        assert reopened.status == TaskStatus.TODO

    def test_reopen_open_task_conflicts(self, task_service):
        task = _create(task_service)

        with pytest.raises(IllegalTransitionError):
            task_service.reopen(task.id)

    def test_transition_on_missing_task_raises_not_found(self, task_service):
        with pytest.raises(TaskNotFoundError):
            task_service.start(404)

    def test_assign_starts_todo_task(self, task_service, recorded):
        """Test that assigning a TODO task moves it to IN_PROGRESS."""
        task = _create(task_service)

        assigned = task_service.assign(task.id, "erin")

        assert assigned.assignee == "erin"
        assert assigned.status == TaskStatus.IN_PROGRESS
        assert recorded[-1].event_type == TaskEventType.TASK_ASSIGNED

    def test_assign_keeps_other_statuses(self, task_service):
        task = _create(task_service, status=TaskStatus.COMPLETED)

        assigned = task_service.assign(task.id, "frank")

        assert assigned.status == TaskStatus.COMPLETED


class TestQueries:
    def test_pagination_over_five_tasks(self, task_service):
        """Test that page 0 size 2 of five tasks has two items and total 5."""
        # Arrange
        for index in range(5):
            _create(task_service, f"task {index}")

        # Act
        page = task_service.list_tasks(TaskCriteria(), PageRequest(page=0, size=2))

        # Assert
        assert len(page.items) == 2
        assert page.total_elements == 5
        assert page.total_pages == 3
        assert page.first
        assert not page.last

    def test_page_beyond_end_is_empty_with_total(self, task_service):
        for index in range(3):
            _create(task_service, f"task {index}")

        page = task_service.list_tasks(TaskCriteria(), PageRequest(page=5, size=2))

        assert page.items == []
        assert page.total_elements == 3
        assert page.last

    def test_status_and_priority_filters_are_conjunctive(self, task_service):
        """Test status=TODO&priority=URGENT over three tasks returns only the first."""
        # Arrange
        wanted = _create(task_service, "a", priority=TaskPriority.URGENT)
        _create(task_service, "b", priority=TaskPriority.LOW)
        _create(task_service, "c", status=TaskStatus.IN_PROGRESS, priority=TaskPriority.URGENT)

        # Act
        results = task_service.search(
            TaskCriteria(status=TaskStatus.TODO, priority=TaskPriority.URGENT)
        )

        # Assert
        assert [task.id for task in results] == [wanted.id]

    def test_overdue_filter_uses_service_clock(self, task_service):
        late = _create(task_service, "late", due_date=TODAY - timedelta(days=1))
        _create(task_service, "fine", due_date=TODAY + timedelta(days=1))

        results = task_service.search(TaskCriteria(overdue=True))

        assert [task.id for task in results] == [late.id]

    def test_overdue_defaults_to_today(self, task_service):
        late = _create(task_service, "late", due_date=TODAY - timedelta(days=3))
        _create(task_service, "due today", due_date=TODAY)

        assert [task.id for task in task_service.overdue()] == [late.id]
        assert task_service.overdue(TODAY - timedelta(days=10)) == []

    def test_count_by_status_includes_every_status(self, task_service):
        _create(task_service)
        _create(task_service, status=TaskStatus.CANCELLED)

        counts = task_service.count_by_status()

        assert counts == {"TODO": 1, "IN_PROGRESS": 0, "COMPLETED": 0, "CANCELLED": 1}


class TestHealth:
    def test_up_without_overdue_tasks(self, task_service):
        _create(task_service, due_date=TODAY + timedelta(days=2))

        health = task_service.health()

        assert health["status"] == "UP"
        assert health["details"]["totalTasks"] == 1
        assert health["details"]["overdueTasks"] == 0
        assert "warning" not in health["details"]

    def test_warning_when_some_tasks_are_overdue(self, task_service):
        _create(task_service, due_date=TODAY - timedelta(days=2))

        health = task_service.health()

        assert health["status"] == "UP"
        assert "1 overdue" in health["details"]["warning"]

    def test_degraded_above_threshold(self, events):
        service = TaskService(
            InMemoryTaskStore(), events=events, overdue_threshold=2, clock=lambda: NOW
        )
        for _ in range(3):
            _create(service, due_date=TODAY - timedelta(days=1))

        health = service.health()

        assert health["status"] == "DEGRADED"
        assert health["details"]["reason"] == "Too many overdue tasks"

    def test_down_when_store_raises(self, task_service, monkeypatch):
        def broken(*_args, **_kwargs):
            raise ConnectionError("database unreachable")

        monkeypatch.setattr(task_service.store, "count", broken)

        health = task_service.health()

        assert health["status"] == "DOWN"
        assert health["details"] == {"store": "memory", "error": "ConnectionError"}


def test_allowed_transitions_follow_status(task_service):
    task = _create(task_service)
    assert sorted(task_service.allowed_transitions(task)) == ["cancel", "start"]

    started = task_service.start(task.id)
    assert sorted(task_service.allowed_transitions(started)) == ["cancel", "complete"]


class TestMetrics:
    def test_writes_update_counters_and_timer(self, task_service):
        # Arrange
        metrics = task_service.metrics
        task = _create(task_service)

        # Act
        task_service.start(task.id)
        task_service.complete(task.id)
        task_service.delete(task.id)

        # Assert
        assert metrics.value("tasks_created_total") == 1
        assert metrics.value("tasks_completed_total") == 1
        assert metrics.value("tasks_deleted_total") == 1
        assert metrics.value("tasks_creation_seconds_count") == 1

    def test_completing_through_update_is_counted(self, task_service):
        task = _create(task_service)

        task_service.update(task.id, UpdateTaskRequest(changes={"status": TaskStatus.COMPLETED}))

        assert task_service.metrics.value("tasks_completed_total") == 1

    def test_gauges_read_the_store(self, task_service):
        _create(task_service, "late", due_date=NOW.date() - timedelta(days=1))
        _create(task_service, "open")
        done = _create(task_service, "done", status=TaskStatus.COMPLETED)

        assert done.status == TaskStatus.COMPLETED
        assert task_service.metrics.value("tasks_active") == 2
        assert task_service.metrics.value("tasks_overdue") == 1

    def test_services_keep_separate_registries(self, task_service, events):
        other = TaskService(InMemoryTaskStore(), events=events, clock=lambda: NOW)

        _create(task_service)

        assert other.metrics.value("tasks_created_total") == 0
