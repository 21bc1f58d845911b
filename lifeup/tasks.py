"""Tasks: creation, updates, subtasks and the pause/cancel/restart lifecycle."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from lifeup.database import Database
from lifeup.errors import BadRequestError, DatabaseError, NotFoundError
from lifeup.models import (
    CreateTaskRequest,
    StartTaskRequest,
    SubTaskTemplate,
    Task,
    TaskStatus,
    UpdateTaskRequest,
    format_datetime,
)

log = logging.getLogger(__name__)

_SUBTASK_TEMPLATES = (
    ("準備階段", "收集資源和制定計劃", 1, 20),
    ("學習基礎", "掌握基本概念和技能", 2, 30),
    ("實踐練習", "通過實作加深理解", 3, 50),
    ("深入學習", "掌握進階技能和概念", 4, 60),
    ("完成項目", "完成實際應用項目", 4, 80),
    ("總結回顧", "總結經驗並規劃下一步", 2, 30),
)


@contextmanager
def _reported(prefix: str) -> Iterator[None]:
    """Re-raise storage failures with a message describing the operation."""
    try:
        yield
    except DatabaseError as exc:
        raise DatabaseError(f"{prefix}: {exc.message}") from exc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _find_task(db: Database, task_id: str, failure: str = "查詢任務失敗") -> Task:
    with _reported(failure):
        rows = db.select_where("task", {"id": task_id})
    if not rows:
        raise NotFoundError("任務不存在")
    return Task.from_row(rows[0])


def _subtasks(db: Database, parent_task_id: str, failure: str) -> list[Task]:
    with _reported(failure):
        rows = db.select_where("task", {"parent_task_id": parent_task_id})
    return [Task.from_row(row) for row in rows]


def list_tasks(db: Database) -> list[Task]:
    """Every stored task."""
    with _reported("獲取任務列表失敗"):
        rows = db.select_all("task")
    return [Task.from_row(row) for row in rows]


def create_task(db: Database, request: CreateTaskRequest) -> Task:
    """Store a new pending task; any type other than ``daily`` makes it a parent task."""
    now = _now()
    is_parent = request.task_type is not None and request.task_type != "daily"
    task = Task(
        id=_new_id(),
        user_id=request.user_id,
        title=request.title,
        description=request.description,
        status=TaskStatus.PENDING.value,
        priority=request.priority if request.priority is not None else 1,
        task_type=request.task_type if request.task_type is not None else "daily",
        difficulty=request.difficulty if request.difficulty is not None else 1,
        experience=request.experience if request.experience is not None else 10,
        parent_task_id=None,
        is_parent_task=1 if is_parent else 0,
        task_order=0,
        due_date=request.due_date,
        created_at=now,
        updated_at=now,
        is_recurring=0,
        cancel_count=0,
    )
    with _reported("任務建立失敗"):
        db.insert("task", task.to_dict())
    return task


def update_task(db: Database, task_id: str, request: UpdateTaskRequest) -> Task:
    """Apply the fields given in ``request`` to a task and return the result."""
    task = _find_task(db, task_id)
    for name in (
        "title",
        "description",
        "status",
        "priority",
        "task_type",
        "difficulty",
        "experience",
        "due_date",
    ):
        value = getattr(request, name)
        if value is not None:
            setattr(task, name, value)
    task.updated_at = _now()

    with _reported("任務更新失敗"):
        db.execute(
            "UPDATE task SET title = ?, description = ?, status = ?, priority = ?, "
            "task_type = ?, difficulty = ?, experience = ?, due_date = ?, updated_at = ? "
            "WHERE id = ?",
            [
                task.title or "",
                task.description or "",
                task.status if task.status is not None else TaskStatus.PENDING.value,
                task.priority if task.priority is not None else 1,
                task.task_type if task.task_type is not None else "daily",
                task.difficulty if task.difficulty is not None else 1,
                task.experience if task.experience is not None else 10,
                task.due_date,
                task.updated_at,
                task_id,
            ],
        )
    return task


def tasks_by_type(db: Database, task_type: str) -> list[Task]:
    """Tasks whose ``task_type`` equals ``task_type``."""
    with _reported(f"獲取{task_type}任務列表失敗"):
        rows = db.select_where("task", {"task_type": task_type})
    return [Task.from_row(row) for row in rows]


def homepage_tasks(db: Database) -> list[Task]:
    """Subtasks and top-level daily tasks, ordered by task order then creation time."""
    with _reported("獲取首頁任務失敗"):
        rows = db.query(
            "SELECT * FROM task WHERE (parent_task_id IS NOT NULL) "
            "OR (task_type = 'daily' AND parent_task_id IS NULL) "
            "ORDER BY task_order, created_at"
        )
    return [Task.from_row(row) for row in rows]


def subtask_templates(task_title: str) -> list[SubTaskTemplate]:
    """The generic subtask plan used for every parent task."""
    return [
        SubTaskTemplate(
            title=title,
            description=description,
            difficulty=difficulty,
            experience=experience,
            order=order,
        )
        for order, (title, description, difficulty, experience) in enumerate(
            _SUBTASK_TEMPLATES, start=1
        )
    ]


def _generate_subtasks(db: Database, parent: Task) -> list[Task]:
    created: list[Task] = []
    for template in subtask_templates(parent.title or ""):
        now = _now()
        subtask = Task(
            id=_new_id(),
            user_id=parent.user_id,
            title=template.title,
            description=template.description,
            status=TaskStatus.PENDING.value,
            priority=1,
            task_type="subtask",
            difficulty=template.difficulty,
            experience=template.experience,
            parent_task_id=parent.id,
            is_parent_task=0,
            task_order=template.order,
            due_date=None,
            created_at=now,
            updated_at=now,
            is_recurring=0,
            cancel_count=0,
        )
        try:
            db.insert("task", subtask.to_dict())
        except DatabaseError as exc:
            log.error("Failed to create subtask: %s", exc)
        else:
            created.append(subtask)
    return created


def start_task(
    db: Database, task_id: str, request: StartTaskRequest
) -> tuple[Task | dict[str, Any], str]:
    """Put a parent task in progress, creating or resuming its subtasks.

    Returns ``(data, message)``. ``data`` is the parent task when subtask
    generation is switched off, otherwise a mapping with ``parent_task``,
    ``subtasks`` and ``subtasks_count``.
    """
    parent = _find_task(db, task_id)
    if not parent.is_parent_task:
        raise BadRequestError("此任務不是大任務，無法生成子任務")

    parent.status = TaskStatus.IN_PROGRESS.value
    parent.updated_at = _now()
    with _reported("更新父任務狀態失敗"):
        db.execute(
            "UPDATE task SET status = ?, updated_at = ? WHERE id = ?",
            [TaskStatus.IN_PROGRESS.value, parent.updated_at, task_id],
        )

    if request.generate_subtasks is False:
        return parent, "任務開始成功"

    existing = _subtasks(db, task_id, "查詢現有子任務失敗")

    if not existing:
        created = _generate_subtasks(db, parent)
        data = {"parent_task": parent, "subtasks": created, "subtasks_count": len(created)}
        return data, f"任務開始成功，生成了 {len(created)} 個子任務"

    paused = sum(1 for sub in existing if sub.status == TaskStatus.PAUSED)
    if not paused:
        data = {"parent_task": parent, "subtasks": existing, "subtasks_count": len(existing)}
        return data, "任務繼續進行，子任務已存在"

    with _reported("恢復子任務失敗"):
        db.execute(
            "UPDATE task SET status = ?, updated_at = ? WHERE parent_task_id = ? AND status = ?",
            [TaskStatus.PENDING.value, _now(), task_id, TaskStatus.PAUSED.value],
        )
    updated = _subtasks(db, task_id, "查詢更新後的子任務失敗")
    data = {"parent_task": parent, "subtasks": updated, "subtasks_count": len(updated)}
    return data, f"任務恢復成功，恢復了 {paused} 個暫停的子任務"


def list_subtasks(db: Database, parent_task_id: str) -> list[Task]:
    """The subtasks of ``parent_task_id``."""
    return _subtasks(db, parent_task_id, "獲取子任務列表失敗")


def pause_task(db: Database, task_id: str) -> dict[str, Any]:
    """Pause a task and every subtask of it that is not completed."""
    with _reported("暫停父任務失敗"):
        db.execute(
            "UPDATE task SET status = ?, updated_at = ? WHERE id = ?",
            [TaskStatus.PAUSED.value, _now(), task_id],
        )
    with _reported("暫停子任務失敗"):
        db.execute(
            "UPDATE task SET status = ?, updated_at = ? WHERE parent_task_id = ? AND status != ?",
            [TaskStatus.PAUSED.value, _now(), task_id, TaskStatus.COMPLETED.value],
        )
    return {"task_id": task_id}


def cancel_task(db: Database, task_id: str) -> dict[str, Any]:
    """Cancel a task, count the cancellation and delete its unfinished subtasks."""
    now = _now()
    task = _find_task(db, task_id)
    cancel_count = (task.cancel_count or 0) + 1

    with _reported("取消父任務失敗"):
        db.execute(
            "UPDATE task SET status = ?, cancel_count = ?, last_cancelled_at = ?, "
            "updated_at = ? WHERE id = ?",
            [TaskStatus.CANCELLED.value, cancel_count, now, now, task_id],
        )
    with _reported("刪除子任務失敗"):
        db.execute(
            "DELETE FROM task WHERE parent_task_id = ? AND status != ?",
            [task_id, TaskStatus.COMPLETED.value],
        )
    return {
        "task_id": task_id,
        "cancel_count": cancel_count,
        "last_cancelled_at": format_datetime(now),
    }


def restart_task(db: Database, task_id: str) -> dict[str, Any]:
    """Return a cancelled parent task to the pending state."""
    now = _now()
    task = _find_task(db, task_id)
    if (task.status or 0) != TaskStatus.CANCELLED:
        raise BadRequestError("只有已取消的任務才能重新開始")
    if not task.is_parent_task:
        raise BadRequestError("只有大任務可以重新開始")

    with _reported("重新開始任務失敗"):
        db.execute(
            "UPDATE task SET status = ?, updated_at = ? WHERE id = ?",
            [TaskStatus.PENDING.value, now, task_id],
        )
    return {
        "task_id": task_id,
        "status": "pending",
        "cancel_count": task.cancel_count or 0,
        "restarted_at": format_datetime(now),
    }