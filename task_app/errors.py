"""
Typed domain errors raised by the task store, service and guards.

Each error carries the HTTP status and short error name that the boundary
translator in ``routes.errors`` uses to build the JSON error body, so the
service layer never deals with HTTP directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class TaskServiceError(Exception):
    """Base class for errors that map onto a client-facing HTTP response."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TaskNotFoundError(TaskServiceError):
    """The referenced task identifier does not exist."""

    status_code = 404
    error = "Not Found"

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task not found with id: {task_id}")
        self.task_id = task_id


class TaskConflictError(TaskServiceError):
    """A write lost an optimistic-concurrency race or broke a state rule."""

    status_code = 409
    error = "Conflict"


class IllegalTransitionError(TaskConflictError):
    """The requested status change is not an edge of the state machine."""

    def __init__(self, task_id: int | None, current: str, action: str) -> None:
        super().__init__(f"Task {task_id} is {current}; '{action}' is not allowed")
        self.task_id = task_id
        self.current = current
        self.action = action


@dataclass(frozen=True)
class FieldError:
    """One offending request field."""

    field: str
    message: str
    rejected_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "message": self.message,
            "rejectedValue": self.rejected_value,
        }


class ValidationFailedError(TaskServiceError):
    """The request failed one or more field constraints."""

    status_code = 400
    error = "Validation Failed"

    def __init__(self, field_errors: list[FieldError], message: str = "Invalid request data") -> None:
        super().__init__(message)
        self.field_errors = list(field_errors)


class AuthenticationError(TaskServiceError):
    """Missing, malformed or expired bearer token."""

    status_code = 401
    error = "Unauthorized"


class AccessDeniedError(TaskServiceError):
    """The caller is authenticated but lacks the required role."""

    status_code = 403
    error = "Forbidden"
