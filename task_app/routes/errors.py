"""
JSON error responses.

Every failure leaves the service in the same shape::

    {"timestamp": ..., "status": 404, "error": "Not Found",
     "message": "Task not found with id: 7", "path": "/api/tasks/7"}

Validation failures add ``fieldErrors``.  Unexpected exceptions are logged
with their traceback and answered with a generic 500 so internals never
reach the client.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from ..errors import TaskServiceError, ValidationFailedError
from ..models import utc_now

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "An unexpected error occurred"


def error_body(
    status: int,
    error: str,
    message: str,
    field_errors: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "timestamp": utc_now().isoformat(),
        "status": status,
        "error": error,
        "message": message,
        "path": request.path,
    }
    if field_errors is not None:
        body["fieldErrors"] = field_errors
    return body


def handle_service_error(exc: TaskServiceError) -> tuple[Response, int]:
    field_errors = None
    if isinstance(exc, ValidationFailedError):
        field_errors = [field_error.to_dict() for field_error in exc.field_errors]
        logger.info(
            "%s %s rejected: %s",
            request.method,
            request.path,
            [field_error.field for field_error in exc.field_errors],
        )
    else:
        logger.info("%s %s -> %s: %s", request.method, request.path, exc.status_code, exc.message)

    response = jsonify(error_body(exc.status_code, exc.error, exc.message, field_errors))
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response, exc.status_code


def handle_http_exception(exc: HTTPException) -> tuple[Response, int]:
    status = exc.code or 500
    return jsonify(error_body(status, exc.name, exc.description or exc.name)), status


def handle_unexpected_error(exc: Exception) -> tuple[Response, int]:
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify(error_body(500, "Internal Server Error", GENERIC_SERVER_ERROR)), 500


def register_error_handlers(app: Flask) -> None:
    app.register_error_handler(TaskServiceError, handle_service_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_unexpected_error)
