"""
Shared pytest fixtures for task-service tests.

Provides the Flask application, test client, a clean store per test, JWT
tokens for the USER and ADMIN roles, and a Faker-backed task factory.

Key SDET Concepts Demonstrated:
- Session-scoped vs function-scoped fixtures for performance and isolation
- Factory pattern (task_factory) for flexible test-data creation
- Fixture teardown / cleanup to prevent test pollution
- Subscribing a recording listener to observe published events
"""

from __future__ import annotations

import os
from datetime import date

import pytest
from faker import Faker

from tests.helpers import TEST_PUBLIC_KEY, auth_headers, create_test_token

os.environ["FLASK_ENV"] = "testing"
os.environ["TEST_JWT_PUBLIC_KEY"] = TEST_PUBLIC_KEY

from task_app import create_app, db, shutdown_app
from task_app.models import Task, TaskPriority, TaskStatus
from task_app.validation import CreateTaskRequest

fake = Faker()
Faker.seed(1234)


@pytest.fixture(scope="session")
def app():
    """
    Provide the Flask application instance for the entire test session.

    Created once from the 'testing' configuration (in-memory SQLite, SQL
    store, authentication on) and shut down when the session ends.
    """
    application = create_app("testing")
    yield application
    shutdown_app(application)


@pytest.fixture(scope="function")
def client(app):
    """Provide a Flask test client scoped to a single test function."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def service(app):
    """The ``TaskService`` wired into the application."""
    return app.extensions["task_service"]


@pytest.fixture(scope="function")
def db_session(app, service):
    """
    Provide an application context with an empty task store.

    Clears the store before and after the test so tasks never leak from
    one test into the next.
    """
    with app.app_context():
        service.store.clear()
        yield db
        db.session.rollback()
        service.store.clear()


@pytest.fixture
def published_events(service):
    """Record every event the application publishes during the test."""
    events = []
    unsubscribe = service.events.subscribe(events.append)
    yield events
    unsubscribe()


@pytest.fixture
def user_token() -> str:
    """Valid JWT for 'user_one' holding the USER role."""
    return create_test_token(subject="user_one", roles=["USER"])


@pytest.fixture
def admin_token() -> str:
    """Valid JWT for 'admin_one' holding USER and ADMIN."""
    return create_test_token(subject="admin_one", roles=["USER", "ADMIN"])


@pytest.fixture
def api_headers(user_token) -> dict[str, str]:
    """Authorization + JSON headers for a regular user."""
    return auth_headers(user_token)


@pytest.fixture
def admin_headers(admin_token) -> dict[str, str]:
    """Authorization + JSON headers for an administrator."""
    return auth_headers(admin_token)


@pytest.fixture
def task_factory(db_session, service):
    """
    Factory fixture that creates tasks through the service.

    Returns a callable ``_create_task(**kwargs)`` that fills unspecified
    fields with Faker data.  Cleanup is handled by ``db_session``.
    """

    def _create_task(
        *,
        title: str | None = None,
        description: str | None = None,
        status: TaskStatus = TaskStatus.TODO,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: date | None = None,
        assignee: str | None = None,
    ) -> Task:
        return service.create(
            CreateTaskRequest(
                title=title or fake.sentence(nb_words=4).rstrip("."),
                description=description or fake.paragraph(),
                status=status,
                priority=priority,
                due_date=due_date,
                assignee=assignee,
            )
        )

    return _create_task


@pytest.fixture
def sample_task(task_factory) -> Task:
    """A single TODO task with known values."""
    return task_factory(
        title="Sample Task",
        description="This is a sample task for testing",
        status=TaskStatus.TODO,
        priority=TaskPriority.MEDIUM,
    )
