"""
Relational task store built on Flask-SQLAlchemy.

``TaskRecord`` is the ORM row for the ``tasks`` table.  Search criteria are
turned into explicit ``select()`` clauses here, and every operation
commits its own transaction.  Calls need an active application context.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.sql.elements import ColumnElement

from .. import db
from ..errors import TaskConflictError, TaskNotFoundError
from ..models import (
    TERMINAL_STATUSES,
    Task,
    TaskPriority,
    TaskStatus,
    ensure_utc,
    utc_now,
)
from ..query import PageRequest, TaskCriteria
from .base import TaskStore

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = [status.value for status in TERMINAL_STATUSES]


class TaskRecord(db.Model):
    """
    ORM row backing a ``Task``.

    Status and priority are stored as their string values; ``version`` is
    the optimistic-concurrency stamp compared on every update.
    """

    __tablename__ = "tasks"

    id: int = db.Column(db.Integer, primary_key=True)
    title: str = db.Column(db.String(200), nullable=False)
    description: str | None = db.Column(db.String(1000), nullable=True)
    status: str = db.Column(
        db.String(20),
        nullable=False,
        default=TaskStatus.TODO.value,
        index=True,
    )
    priority: str = db.Column(
        db.String(20),
        nullable=False,
        default=TaskPriority.MEDIUM.value,
        index=True,
    )
    due_date: date | None = db.Column(db.Date, nullable=True)
    assignee: str | None = db.Column(db.String(100), nullable=True, index=True)
    version: int = db.Column(db.Integer, nullable=False, default=0)
    created_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    def to_task(self) -> Task:
        return Task(
            id=self.id,
            title=self.title,
            description=self.description,
            status=TaskStatus(self.status),
            priority=TaskPriority(self.priority),
            due_date=self.due_date,
            assignee=self.assignee,
            version=self.version,
            created_at=ensure_utc(self.created_at) if self.created_at else None,
            updated_at=ensure_utc(self.updated_at) if self.updated_at else None,
        )

    def __repr__(self) -> str:
        return f"<TaskRecord {self.id}: {self.title}>"


def _column_values(task: Task) -> dict:
    return {
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "due_date": task.due_date,
        "assignee": task.assignee,
        "version": task.version,
        "created_at": task.created_at or utc_now(),
        "updated_at": task.updated_at or utc_now(),
    }


def _rank_expression(column, enum_type) -> ColumnElement:
    """Order enum columns by declaration order rather than alphabetically."""
    return case({member.value: member.rank for member in enum_type}, value=column)


def _overdue_clause(as_of: date) -> ColumnElement:
    return (
        TaskRecord.due_date.is_not(None)
        & (TaskRecord.due_date < as_of)
        & TaskRecord.status.not_in(_TERMINAL_VALUES)
    )


def _criteria_clauses(criteria: TaskCriteria) -> list[ColumnElement]:
    """Translate each populated criteria field into one WHERE clause."""
    clauses: list[ColumnElement] = []
    if criteria.status is not None:
        clauses.append(TaskRecord.status == criteria.status.value)
    if criteria.priority is not None:
        clauses.append(TaskRecord.priority == criteria.priority.value)
    if criteria.priorities:
        clauses.append(TaskRecord.priority.in_([p.value for p in criteria.priorities]))
    if criteria.keyword:
        clauses.append(
            or_(
                TaskRecord.title.icontains(criteria.keyword, autoescape=True),
                TaskRecord.description.icontains(criteria.keyword, autoescape=True),
            )
        )
    if criteria.assignee:
        clauses.append(func.lower(TaskRecord.assignee) == criteria.assignee.lower())
    if criteria.due_from is not None:
        clauses.append(TaskRecord.due_date >= criteria.due_from)
    if criteria.due_to is not None:
        clauses.append(TaskRecord.due_date <= criteria.due_to)
    if criteria.overdue is True:
        clauses.append(_overdue_clause(criteria.reference_date()))
    elif criteria.overdue is False:
        clauses.append(~_overdue_clause(criteria.reference_date()))
    return clauses


def _order_clauses(page_request: PageRequest) -> list[ColumnElement]:
    attribute = page_request.sort_attribute
    if attribute == "status":
        expression = _rank_expression(TaskRecord.status, TaskStatus)
    elif attribute == "priority":
        expression = _rank_expression(TaskRecord.priority, TaskPriority)
    elif attribute == "title":
        expression = func.lower(TaskRecord.title)
    else:
        expression = getattr(TaskRecord, attribute)

    ordered = expression.desc() if page_request.descending else expression.asc()
    if attribute == "due_date":
        ordered = ordered.nulls_last()
    if attribute == "id":
        return [ordered]
    return [ordered, TaskRecord.id.asc()]


class SqlTaskStore(TaskStore):
    """Task store persisting rows through a Flask-SQLAlchemy session."""

    name = "sql"

    def __init__(self, database=db) -> None:
        self._db = database

    @property
    def _session(self):
        return self._db.session

    def put(self, task: Task) -> Task:
        if task.id is None:
            record = TaskRecord(**_column_values(task))
            self._session.add(record)
            self._session.commit()
            return record.to_task()

        result = self._session.execute(
            update(TaskRecord)
            .where(TaskRecord.id == task.id, TaskRecord.version == task.version - 1)
            .values(**_column_values(task))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._session.rollback()
            exists = self._session.scalar(select(TaskRecord.id).where(TaskRecord.id == task.id))
            if exists is None:
                raise TaskNotFoundError(task.id)
            logger.warning("Stale write for task %s at version %s", task.id, task.version)
            raise TaskConflictError(
                f"Task {task.id} was modified concurrently; reload and retry"
            )
        self._session.commit()
        return self.get(task.id)

    def get(self, task_id: int) -> Task | None:
        record = self._session.get(TaskRecord, task_id, populate_existing=True)
        return record.to_task() if record is not None else None

    def delete(self, task_id: int) -> bool:
        result = self._session.execute(
            delete(TaskRecord)
            .where(TaskRecord.id == task_id)
            .execution_options(synchronize_session=False)
        )
        self._session.commit()
        return result.rowcount > 0

    def list(self) -> list[Task]:
        records = self._session.scalars(select(TaskRecord).order_by(TaskRecord.id.asc()))
        return [record.to_task() for record in records]

    def count(self) -> int:
        return self._session.scalar(select(func.count()).select_from(TaskRecord)) or 0

    def count_by_status(self, status: TaskStatus) -> int:
        stmt = select(func.count()).select_from(TaskRecord).where(TaskRecord.status == status.value)
        return self._session.scalar(stmt) or 0

    def list_overdue(self, as_of: date) -> list[Task]:
        stmt = (
            select(TaskRecord)
            .where(_overdue_clause(as_of))
            .order_by(TaskRecord.due_date.asc(), TaskRecord.id.asc())
        )
        return [record.to_task() for record in self._session.scalars(stmt)]

    def find(
        self, criteria: TaskCriteria, page_request: PageRequest | None = None
    ) -> tuple[list[Task], int]:
        stmt = select(TaskRecord).where(*_criteria_clauses(criteria))
        total = self._session.scalar(select(func.count()).select_from(stmt.subquery())) or 0

        if page_request is None:
            stmt = stmt.order_by(TaskRecord.id.asc())
        elif page_request.offset >= total:
            # Past the last page; the offset may not even fit a 64-bit INTEGER.
            return [], total
        else:
            stmt = (
                stmt.order_by(*_order_clauses(page_request))
                .offset(page_request.offset)
                .limit(page_request.size)
            )
        return [record.to_task() for record in self._session.scalars(stmt)], total

    def clear(self) -> None:
        self._session.execute(delete(TaskRecord))
        self._session.commit()

    def close(self) -> None:
        self._db.session.remove()
        self._db.engine.dispose()
