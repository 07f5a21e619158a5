"""
Hypermedia links for task representations.

Every task body carries ``_links``: where it lives, where the collection
is, how to update or delete it, and one link per status transition that
is legal right now.  Paged collections get ``self``/``first``/``prev``/
``next``/``last`` links that keep the caller's filters.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from flask import request, url_for

from .models import Task, allowed_transitions
from .query import Page

_ENDPOINT = "task_api"


def _link(href: str, method: str = "GET") -> dict[str, str]:
    return {"href": href, "method": method}


def task_links(task: Task) -> dict[str, dict[str, str]]:
    self_href = url_for(f"{_ENDPOINT}.get_task", task_id=task.id)
    links = {
        "self": _link(self_href),
        "tasks": _link(url_for(f"{_ENDPOINT}.list_tasks")),
    }
    for action in allowed_transitions(task.status):
        links[action] = _link(url_for(f"{_ENDPOINT}.{action}_task", task_id=task.id), "POST")
    links["update"] = _link(self_href, "PUT")
    links["delete"] = _link(self_href, "DELETE")
    return links


def task_representation(task: Task, as_of: date | None = None) -> dict[str, Any]:
    body = task.to_dict(as_of)
    body["_links"] = task_links(task)
    return body


def _page_href(page: int) -> str:
    args = request.args.to_dict(flat=False)
    args["page"] = [str(page)]
    return url_for(f"{_ENDPOINT}.list_tasks", **args)


def page_links(page: Page) -> dict[str, dict[str, str]]:
    links = {"self": _link(_page_href(page.page))}
    if page.total_pages == 0:
        return links
    links["first"] = _link(_page_href(0))
    links["last"] = _link(_page_href(page.total_pages - 1))
    if page.page > 0:
        links["prev"] = _link(_page_href(min(page.page - 1, page.total_pages - 1)))
    if page.page < page.total_pages - 1:
        links["next"] = _link(_page_href(page.page + 1))
    return links
