"""WSGI entry point for the task lifecycle service."""

import atexit
import os

from task_app import create_app, shutdown_app

app = create_app(os.getenv("FLASK_ENV", "production"))
atexit.register(shutdown_app, app)
