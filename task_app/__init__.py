"""
Task Lifecycle Service Flask Application Factory.

Provides the ``create_app`` factory function that assembles the service.
The factory pattern allows multiple application instances with different
configurations (development, testing, production) or storage backends to
coexist in the same process.

Each application owns one ``TaskService`` wired to:
  * a ``TaskStore`` chosen by ``TASK_STORE`` (``sql`` or ``memory``), and
  * a ``TaskEventBus`` with the logging listener subscribed.

Both live in ``app.extensions`` and are released by ``shutdown_app``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

from config import get_config, load_public_key

db = SQLAlchemy()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_EXTENSION = "task_service"
EVENTS_EXTENSION = "task_events"


def _ensure_sqlite_db_parent_exists(database_uri: str) -> None:
    """Create parent directories for file-based SQLite URIs when missing."""
    sqlite_prefix = "sqlite:///"
    if not database_uri.startswith(sqlite_prefix):
        return

    sqlite_path = database_uri[len(sqlite_prefix) :].split("?", 1)[0]
    if sqlite_path == ":memory:":
        return

    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)


def create_app(
    config_name: str | None = None, overrides: dict[str, Any] | None = None
) -> Flask:
    """
    Create and configure the task service application.

    Loads the configuration class, applies ``overrides`` on top, wires the
    store, event bus and service, registers the API blueprint and error
    handlers, creates tables and optionally seeds sample tasks.

    Args:
        config_name: Optional configuration environment name
            (``"development"``, ``"testing"``, ``"production"``).  When *None*,
            the value is read from the ``FLASK_ENV`` environment variable,
            defaulting to ``"development"``.
        overrides: Config keys that win over the configuration class,
            e.g. ``{"TASK_STORE": "memory"}``.

    Returns:
        A fully configured Flask application instance ready to serve requests.

    Raises:
        RuntimeError: Unknown store or status policy, or authentication is
            enabled without a JWT public key.
    """
    app = Flask(__name__, instance_relative_config=True)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    if app.config.get("AUTH_ENABLED", True) and not app.config.get("JWT_PUBLIC_KEY"):
        app.config["JWT_PUBLIC_KEY"] = load_public_key(testing=bool(app.config.get("TESTING")))

    logger.info(
        "Creating task service app with config: %s (store=%s, policy=%s, auth=%s)",
        config_class.__name__,
        app.config["TASK_STORE"],
        app.config["TASK_STATUS_POLICY"],
        app.config.get("AUTH_ENABLED", True),
    )

    os.makedirs(app.instance_path, exist_ok=True)
    _ensure_sqlite_db_parent_exists(app.config.get("SQLALCHEMY_DATABASE_URI", ""))

    db.init_app(app)

    from .events import TaskEventBus, log_task_event
    from .routes.api import api_bp
    from .routes.errors import register_error_handlers
    from .seed import seed_sample_tasks
    from .service import TaskService
    from .store import create_store

    events = TaskEventBus()
    events.subscribe(log_task_event)
    service = TaskService(
        create_store(app.config["TASK_STORE"]),
        events=events,
        status_policy=app.config["TASK_STATUS_POLICY"],
        overdue_threshold=int(app.config["HEALTH_OVERDUE_THRESHOLD"]),
    )
    app.extensions[SERVICE_EXTENSION] = service
    app.extensions[EVENTS_EXTENSION] = events

    app.register_blueprint(api_bp, url_prefix="/api")
    register_error_handlers(app)

    with app.app_context():
        db.create_all()
        logger.info("Task service database tables created")
        if app.config.get("SEED_SAMPLE_DATA"):
            seed_sample_tasks(service)

    return app


def shutdown_app(app: Flask) -> None:
    """Close the event bus and the store of an application built by ``create_app``."""
    events = app.extensions.pop(EVENTS_EXTENSION, None)
    if events is not None:
        events.close()

    service = app.extensions.pop(SERVICE_EXTENSION, None)
    if service is not None:
        with app.app_context():
            service.store.close()
    logger.info("Task service shut down")
