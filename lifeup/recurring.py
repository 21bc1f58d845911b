"""Recurring tasks: creation, daily generation and progress tracking."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from lifeup.accounts import DEFAULT_USER_ID
from lifeup.database import Database
from lifeup.errors import DatabaseError, NotFoundError
from lifeup.models import (
    CreateRecurringTaskRequest,
    RecurringTaskTemplate,
    Task,
    TaskProgress,
    TaskStatus,
)

log = logging.getLogger(__name__)

DEFAULT_COMPLETION_TARGET = 0.8
_DEFAULT_SPAN = timedelta(days=365)


@contextmanager
def _reported(prefix: str) -> Iterator[None]:
    try:
        yield
    except DatabaseError as exc:
        raise DatabaseError(f"{prefix}: {exc.message}") from exc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def create_recurring_task(db: Database, request: CreateRecurringTaskRequest) -> Task:
    """Store a recurring parent task and its subtask templates."""
    now = _now()
    parent = Task(
        id=_new_id(),
        user_id=request.user_id if request.user_id is not None else DEFAULT_USER_ID,
        title=request.title,
        description=request.description,
        status=TaskStatus.PENDING.value,
        priority=1,
        task_type=request.task_type if request.task_type is not None else "recurring",
        difficulty=request.difficulty if request.difficulty is not None else 1,
        experience=request.experience if request.experience is not None else 10,
        parent_task_id=None,
        is_parent_task=1,
        task_order=0,
        due_date=request.end_date,
        created_at=now,
        updated_at=now,
        is_recurring=1,
        recurrence_pattern=request.recurrence_pattern,
        start_date=request.start_date,
        end_date=request.end_date,
        completion_target=(
            request.completion_target
            if request.completion_target is not None
            else DEFAULT_COMPLETION_TARGET
        ),
        completion_rate=0.0,
        task_date=None,
        cancel_count=0,
        last_cancelled_at=None,
    )
    with _reported("重複性任務建立失敗"):
        db.insert("task", parent.to_dict())

    for template in request.subtask_templates:
        stored = RecurringTaskTemplate(
            id=_new_id(),
            parent_task_id=parent.id,
            title=template.title,
            description=template.description,
            difficulty=template.difficulty,
            experience=template.experience,
            task_order=template.order,
            created_at=now,
            updated_at=now,
        )
        try:
            db.insert("recurring_task_template", stored.to_dict())
        except DatabaseError as exc:
            log.error("Failed to create recurring task template: %s", exc)
    return parent


def generate_daily_tasks(db: Database, parent_task_id: str) -> dict[str, Any]:
    """Create today's subtasks from the parent's templates.

    Returns a mapping with ``generated_tasks``, ``count`` and ``date``.
    """
    today = _now().strftime("%Y-%m-%d")
    try:
        db.query(
            "SELECT COUNT(*) AS count FROM task WHERE parent_task_id = ? AND task_date = ?",
            [parent_task_id, today],
        )
    except DatabaseError as exc:
        log.error("Failed to check existing tasks: %s", exc)

    with _reported("獲取任務模板失敗"):
        rows = db.select_where(
            "recurring_task_template", {"parent_task_id": parent_task_id}
        )
    templates = [RecurringTaskTemplate.from_row(row) for row in rows]

    generated: list[Task] = []
    for template in templates:
        now = _now()
        task = Task(
            id=_new_id(),
            user_id=DEFAULT_USER_ID,
            title=template.title,
            description=template.description,
            status=TaskStatus.PENDING.value,
            priority=1,
            task_type="daily_recurring",
            difficulty=template.difficulty,
            experience=template.experience,
            parent_task_id=parent_task_id,
            is_parent_task=0,
            task_order=template.task_order,
            due_date=None,
            created_at=now,
            updated_at=now,
            is_recurring=0,
            task_date=today,
            cancel_count=0,
        )
        try:
            db.insert("task", task.to_dict())
        except DatabaseError:
            continue
        generated.append(task)

    return {"generated_tasks": generated, "count": len(generated), "date": today}


def task_progress(db: Database, parent_task_id: str) -> TaskProgress:
    """Progress of a recurring task over its whole date range."""
    today = _now().strftime("%Y-%m-%d")
    with _reported("獲取任務失敗"):
        rows = db.select_where("task", {"id": parent_task_id})
    if not rows:
        raise NotFoundError("任務不存在")
    parent = Task.from_row(rows[0])

    now = _now()
    start = parent.start_date or now
    end = parent.end_date or now + _DEFAULT_SPAN
    total_days = int((end - start) / timedelta(days=1))

    with _reported("查詢完成天數失敗"):
        completed_rows = db.query(
            "SELECT COUNT(DISTINCT task_date) AS count FROM task "
            "WHERE parent_task_id = ? AND status = ? AND task_date IS NOT NULL",
            [parent_task_id, TaskStatus.COMPLETED.value],
        )
    completed_days = int(completed_rows[0]["count"] or 0)

    with _reported("查詢今日任務失敗"):
        today_rows = db.query(
            "SELECT COUNT(*) AS total, "
            "SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS completed "
            "FROM task WHERE parent_task_id = ? AND task_date = ?",
            [TaskStatus.COMPLETED.value, parent_task_id, today],
        )
    total_today = int(today_rows[0]["total"] or 0)
    completed_today = int(today_rows[0]["completed"] or 0)

    completion_rate = completed_days / total_days if total_days > 0 else 0.0
    target_rate = (
        parent.completion_target
        if parent.completion_target is not None
        else DEFAULT_COMPLETION_TARGET
    )
    return TaskProgress(
        task_id=parent_task_id,
        total_days=total_days,
        completed_days=completed_days,
        completion_rate=completion_rate,
        target_rate=target_rate,
        is_daily_completed=total_today > 0 and completed_today == total_today,
        remaining_days=total_days - completed_days,
    )