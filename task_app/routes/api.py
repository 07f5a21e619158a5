"""
REST API Endpoints for the Task Lifecycle Service.

Route handlers stay thin: parse and validate the request, call the
``TaskService`` held in ``app.extensions``, and serialise the result with
hypermedia links.  Errors are raised, never returned, and turned into
JSON by ``routes.errors``.

Endpoints:
    GET    /api/health                      - Health indicator (public)
    GET    /api/metrics                     - Prometheus metrics (public)
    GET    /api/tasks                       - Paged, filtered, sorted listing
    GET    /api/tasks/<id>                  - Retrieve a single task
    POST   /api/tasks                       - Create a task
    PUT    /api/tasks/<id>                  - Partial update
    PATCH  /api/tasks/<id>                  - Partial update
    DELETE /api/tasks/<id>                  - Delete a task (ADMIN)
    POST   /api/tasks/<id>/start            - TODO -> IN_PROGRESS
    POST   /api/tasks/<id>/complete         - IN_PROGRESS -> COMPLETED
    POST   /api/tasks/<id>/cancel           - TODO/IN_PROGRESS -> CANCELLED
    POST   /api/tasks/<id>/reopen           - COMPLETED/CANCELLED -> TODO
    PUT    /api/tasks/<id>/assignee         - Assign (starts a TODO task)
    GET    /api/tasks/search                - Unpaged criteria search
    GET    /api/tasks/overdue               - Overdue tasks as of a date
    GET    /api/tasks/stats                 - Counts per status
"""

from __future__ import annotations

import logging
import os

from flask import Blueprint, Response, current_app, g, jsonify, request, url_for
from prometheus_client import CONTENT_TYPE_LATEST

from ..auth import ROLE_ADMIN, ROLE_USER, require_role
from ..hypermedia import page_links, task_representation
from ..service import TaskService
from ..validation import (
    parse_as_of,
    parse_assignee,
    parse_create_request,
    parse_criteria,
    parse_listing,
    parse_update_request,
)

logger = logging.getLogger(__name__)

api_bp = Blueprint("task_api", __name__)


def _service() -> TaskService:
    return current_app.extensions["task_service"]


def _task_response(task, status: int = 200) -> tuple[Response, int]:
    return jsonify(task_representation(task, _service().today())), status


def _task_list(tasks, as_of=None) -> Response:
    as_of = as_of or _service().today()
    return jsonify(
        {"items": [task_representation(task, as_of) for task in tasks], "count": len(tasks)}
    )


# =====================================================================
# Health and metrics
# =====================================================================


@api_bp.route("/health", methods=["GET"])
def health_check() -> tuple[Response, int]:
    """
    Return service health.

    Public, for load-balancer and orchestrator probes.  ``DOWN`` answers
    503 so probes fail without parsing the body.
    """
    health = _service().health()
    body = {
        "status": health["status"],
        "service": "tasks",
        "environment": os.getenv("ENVIRONMENT", "unknown"),
        "details": health["details"],
    }
    return jsonify(body), 503 if health["status"] == "DOWN" else 200


@api_bp.route("/metrics", methods=["GET"])
def metrics() -> Response:
    """Prometheus text exposition of task counters, timer and gauges (public)."""
    return Response(_service().metrics.exposition(), content_type=CONTENT_TYPE_LATEST)


# =====================================================================
# Collection
# =====================================================================


@api_bp.route("/tasks", methods=["GET"])
@require_role(ROLE_USER, ROLE_ADMIN)
def list_tasks() -> tuple[Response, int]:
    """
    List tasks one page at a time.

    Query parameters: ``page`` (0-based), ``size``, ``sort``,
    ``direction`` plus the same filters as ``/tasks/search``.
    """
    criteria, page_request = parse_listing(
        request.args,
        default_size=int(current_app.config["DEFAULT_PAGE_SIZE"]),
        max_size=int(current_app.config["MAX_PAGE_SIZE"]),
    )
    page = _service().list_tasks(criteria, page_request)
    today = _service().today()

    body = page.to_dict(lambda task: task_representation(task, today))
    body["_links"] = page_links(page)
    return jsonify(body), 200


@api_bp.route("/tasks", methods=["POST"])
@require_role(ROLE_USER, ROLE_ADMIN)
def create_task() -> tuple[Response, int]:
    """Create a task; answers 201 with a ``Location`` header."""
    task_request = parse_create_request(request.get_json(silent=True))
    task = _service().create(task_request)
    logger.info("POST /api/tasks by %s -> task %s", g.username, task.id)

    response, status = _task_response(task, 201)
    response.headers["Location"] = url_for("task_api.get_task", task_id=task.id)
    return response, status


@api_bp.route("/tasks/search", methods=["GET"])
@require_role(ROLE_USER, ROLE_ADMIN)
def search_tasks() -> Response:
    criteria = parse_criteria(request.args)
    return _task_list(_service().search(criteria), criteria.as_of)


@api_bp.route("/tasks/overdue", methods=["GET"])
@require_role(ROLE_USER, ROLE_ADMIN)
def overdue_tasks() -> Response:
    as_of = parse_as_of(request.args)
    return _task_list(_service().overdue(as_of), as_of)


@api_bp.route("/tasks/stats", methods=["GET"])
@require_role(ROLE_USER, ROLE_ADMIN)
def task_stats() -> Response:
    by_status = _service().count_by_status()
    return jsonify({"byStatus": by_status, "total": sum(by_status.values())})


# =====================================================================
# Single task
# =====================================================================


@api_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_role(ROLE_USER, ROLE_ADMIN)
def get_task(task_id: int) -> tuple[Response, int]:
    return _task_response(_service().find_by_id(task_id))


@api_bp.route("/tasks/<int:task_id>", methods=["PUT", "PATCH"])
@require_role(ROLE_USER, ROLE_ADMIN)
def update_task(task_id: int) -> tuple[Response, int]:
    """
    Partial update of an existing task.

    Only keys present in the JSON body change; ``null`` clears
    ``description``, ``dueDate`` or ``assignee``.  Sending ``version``
    makes the write conditional on the stored version (409 if stale).
    """
    update_request = parse_update_request(request.get_json(silent=True))
    return _task_response(_service().update(task_id, update_request))


@api_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_task(task_id: int) -> tuple[str, int]:
    _service().delete(task_id)
    logger.info("DELETE /api/tasks/%s by %s", task_id, g.username)
    return "", 204


@api_bp.route("/tasks/<int:task_id>/assignee", methods=["PUT"])
@require_role(ROLE_USER, ROLE_ADMIN)
def assign_task(task_id: int) -> tuple[Response, int]:
    assignee = parse_assignee(request.get_json(silent=True))
    return _task_response(_service().assign(task_id, assignee))


# =====================================================================
# Status transitions
# =====================================================================


@api_bp.route("/tasks/<int:task_id>/start", methods=["POST"])
@require_role(ROLE_USER, ROLE_ADMIN)
def start_task(task_id: int) -> tuple[Response, int]:
    return _task_response(_service().start(task_id))


@api_bp.route("/tasks/<int:task_id>/complete", methods=["POST"])
@require_role(ROLE_USER, ROLE_ADMIN)
def complete_task(task_id: int) -> tuple[Response, int]:
    return _task_response(_service().complete(task_id))


@api_bp.route("/tasks/<int:task_id>/cancel", methods=["POST"])
@require_role(ROLE_USER, ROLE_ADMIN)
def cancel_task(task_id: int) -> tuple[Response, int]:
    return _task_response(_service().cancel(task_id))


@api_bp.route("/tasks/<int:task_id>/reopen", methods=["POST"])
@require_role(ROLE_USER, ROLE_ADMIN)
def reopen_task(task_id: int) -> tuple[Response, int]:
    return _task_response(_service().reopen(task_id))
