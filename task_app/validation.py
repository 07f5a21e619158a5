"""
Request validation for the task API.

Each ``parse_*`` function checks raw JSON bodies or query-string arguments
before any business logic runs.  Problems are collected per field and
raised together as one ``ValidationFailedError``; on success the function
returns a typed request object the service can trust.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .errors import FieldError, ValidationFailedError
from .models import TaskPriority, TaskStatus, ensure_utc
from .query import SORT_DIRECTIONS, SORT_FIELDS, PageRequest, TaskCriteria

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
ASSIGNEE_MAX_LENGTH = 100

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


@dataclass
class CreateTaskRequest:
    title: str
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None
    assignee: str | None = None


@dataclass
class UpdateTaskRequest:
    """
    Partial update: only keys present in ``changes`` are applied.

    ``changes`` maps Task attribute names to already-validated values;
    ``None`` for description, due_date or assignee clears that field.
    """

    changes: dict[str, Any] = field(default_factory=dict)
    version: int | None = None

    def has(self, name: str) -> bool:
        return name in self.changes


def parse_date(value: Any) -> date:
    """
    Parse ``YYYY-MM-DD``; a full ISO datetime is accepted and truncated
    to its UTC date.

    Raises:
        ValueError: On anything else.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("not a date string")
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))).date()


class _Collector:
    """Accumulates field errors while a payload is checked."""

    def __init__(self) -> None:
        self.errors: list[FieldError] = []

    def add(self, field_name: str, message: str, rejected: Any = None) -> None:
        self.errors.append(FieldError(field_name, message, rejected))

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationFailedError(self.errors)

    def text(
        self,
        data: Mapping[str, Any],
        key: str,
        max_length: int,
        *,
        required: bool = False,
        nullable: bool = True,
    ) -> str | None:
        value = data.get(key)
        if value is None:
            if required or not nullable:
                self.add(key, f"{key} is required", value)
            return None
        if not isinstance(value, str):
            self.add(key, f"{key} must be a string", value)
            return None
        if required and not value.strip():
            self.add(key, f"{key} must not be blank", value)
            return None
        if len(value) > max_length:
            self.add(key, f"{key} must be {max_length} characters or less", value)
            return None
        return value

    def enum(self, data: Mapping[str, Any], key: str, enum_type):
        value = data.get(key)
        if value is None:
            self.add(key, f"{key} must not be null", value)
            return None
        try:
            return enum_type.parse(value)
        except ValueError:
            self.add(key, f"{key} must be one of: {enum_type.values()}", value)
            return None

    def due_date(self, data: Mapping[str, Any], key: str = "dueDate") -> date | None:
        value = data.get(key)
        if value is None:
            return None
        try:
            return parse_date(value)
        except ValueError:
            self.add(key, f"{key} must be an ISO date (YYYY-MM-DD)", value)
            return None


def _require_object(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping) or not data:
        raise ValidationFailedError(
            [FieldError("body", "Request body must be a non-empty JSON object", None)],
            message="Request body must be JSON",
        )
    return data


def parse_create_request(data: Any) -> CreateTaskRequest:
    """
    Validate a creation payload.

    Keys other than title, description, status, priority, dueDate and
    assignee are ignored, so clients cannot set ids, versions or timestamps.
    """
    data = _require_object(data)
    check = _Collector()

    title = check.text(data, "title", TITLE_MAX_LENGTH, required=True)
    description = check.text(data, "description", DESCRIPTION_MAX_LENGTH)
    status = check.enum(data, "status", TaskStatus) if "status" in data else None
    priority = check.enum(data, "priority", TaskPriority) if "priority" in data else None
    due_date = check.due_date(data)
    assignee = check.text(data, "assignee", ASSIGNEE_MAX_LENGTH)

    check.raise_if_any()
    return CreateTaskRequest(
        title=title.strip(),
        description=description,
        status=status,
        priority=priority,
        due_date=due_date,
        assignee=assignee,
    )


def parse_update_request(data: Any) -> UpdateTaskRequest:
    """Validate a partial-update payload; only present keys are checked."""
    data = _require_object(data)
    check = _Collector()
    changes: dict[str, Any] = {}

    if "title" in data:
        title = check.text(data, "title", TITLE_MAX_LENGTH, required=True)
        if title is not None:
            changes["title"] = title.strip()
    if "description" in data:
        changes["description"] = check.text(data, "description", DESCRIPTION_MAX_LENGTH)
    if "status" in data:
        changes["status"] = check.enum(data, "status", TaskStatus)
    if "priority" in data:
        changes["priority"] = check.enum(data, "priority", TaskPriority)
    if "dueDate" in data:
        changes["due_date"] = check.due_date(data)
    if "assignee" in data:
        changes["assignee"] = check.text(data, "assignee", ASSIGNEE_MAX_LENGTH)

    version = None
    if "version" in data:
        version = data["version"]
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            check.add("version", "version must be a non-negative integer", version)
            version = None

    check.raise_if_any()
    return UpdateTaskRequest(changes=changes, version=version)


def parse_assignee(data: Any) -> str:
    """Validate the body of an assignment request."""
    data = _require_object(data)
    check = _Collector()
    assignee = check.text(data, "assignee", ASSIGNEE_MAX_LENGTH, required=True)
    check.raise_if_any()
    return assignee.strip()


def _int_arg(
    check: _Collector,
    args: Mapping[str, str],
    key: str,
    default: int,
    minimum: int,
    maximum: int | None = None,
) -> int:
    raw = args.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        check.add(key, f"{key} must be an integer", raw)
        return default
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        check.add(key, f"{key} must be {bound}", raw)
        return default
    return value


def _bool_arg(check: _Collector, args: Mapping[str, str], key: str) -> bool | None:
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    check.add(key, f"{key} must be true or false", raw)
    return None


def _date_arg(check: _Collector, args: Mapping[str, str], key: str) -> date | None:
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return parse_date(raw)
    except ValueError:
        check.add(key, f"{key} must be an ISO date (YYYY-MM-DD)", raw)
        return None


def _enum_arg(check: _Collector, args: Mapping[str, str], key: str, enum_type):
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return enum_type.parse(raw)
    except ValueError:
        check.add(key, f"{key} must be one of: {enum_type.values()}", raw)
        return None


def _criteria(check: _Collector, args) -> TaskCriteria:
    priorities = []
    raw_priorities = args.getlist("priorities") if hasattr(args, "getlist") else []
    for raw in raw_priorities:
        for part in raw.split(","):
            if not part.strip():
                continue
            try:
                priorities.append(TaskPriority.parse(part))
            except ValueError:
                check.add("priorities", f"priorities must be among: {TaskPriority.values()}", part)

    keyword = (args.get("keyword") or "").strip() or None
    assignee = (args.get("assignee") or "").strip() or None
    criteria = TaskCriteria(
        status=_enum_arg(check, args, "status", TaskStatus),
        priority=_enum_arg(check, args, "priority", TaskPriority),
        priorities=priorities,
        keyword=keyword,
        assignee=assignee,
        due_from=_date_arg(check, args, "dueFrom"),
        due_to=_date_arg(check, args, "dueTo"),
        overdue=_bool_arg(check, args, "overdue"),
        as_of=_date_arg(check, args, "asOf"),
    )
    if criteria.due_from and criteria.due_to and criteria.due_from > criteria.due_to:
        check.add("dueFrom", "dueFrom must not be after dueTo", args.get("dueFrom"))
    return criteria


def parse_criteria(args) -> TaskCriteria:
    """Validate search filters from a query string (``request.args``)."""
    check = _Collector()
    criteria = _criteria(check, args)
    check.raise_if_any()
    return criteria


def parse_listing(args, default_size: int, max_size: int) -> tuple[TaskCriteria, PageRequest]:
    """Validate filters plus ``page``, ``size``, ``sort`` and ``direction``."""
    check = _Collector()
    criteria = _criteria(check, args)

    page = _int_arg(check, args, "page", 0, 0)
    size = _int_arg(check, args, "size", default_size, 1, max_size)

    sort = args.get("sort") or "id"
    if sort not in SORT_FIELDS:
        check.add("sort", f"sort must be one of: {sorted(SORT_FIELDS)}", sort)
        sort = "id"

    direction = (args.get("direction") or "asc").lower()
    if direction not in SORT_DIRECTIONS:
        check.add("direction", "direction must be asc or desc", args.get("direction"))
        direction = "asc"

    check.raise_if_any()
    return criteria, PageRequest(page=page, size=size, sort=sort, direction=direction)


def parse_as_of(args) -> date | None:
    """Validate the optional ``asOf`` reference date."""
    check = _Collector()
    as_of = _date_arg(check, args, "asOf")
    check.raise_if_any()
    return as_of
