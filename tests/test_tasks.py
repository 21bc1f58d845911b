from datetime import datetime, timezone

import pytest

from lifeup.database import Database
from lifeup.errors import BadRequestError, DatabaseError, NotFoundError
from lifeup.models import CreateTaskRequest, StartTaskRequest, Task, TaskStatus, UpdateTaskRequest
from lifeup.tasks import (
    cancel_task,
    create_task,
    homepage_tasks,
    list_subtasks,
    list_tasks,
    pause_task,
    restart_task,
    start_task,
    subtask_templates,
    tasks_by_type,
    update_task,
)


@pytest.fixture
def db():
    database = Database("sqlite://:memory:")
    database.create_tables()
    yield database
    database.close()


def _status(db, task_id):
    return db.select_where("task", {"id": task_id})[0]["status"]


def _parent(db, title="Learn"):
    return create_task(db, CreateTaskRequest(title=title, task_type="main"))


def test_create_task_defaults_and_storage(db):
    task = create_task(db, CreateTaskRequest(title="Walk"))
    assert task.status == TaskStatus.PENDING
    assert task.priority == 1
    assert task.task_type == "daily"
    assert task.difficulty == 1
    assert task.experience == 10
    assert task.is_parent_task == 0
    stored = list_tasks(db)
    assert [t.id for t in stored] == [task.id]
    assert stored[0].title == "Walk"


def test_create_task_non_daily_is_parent(db):
    task = _parent(db)
    assert task.is_parent_task == 1
    assert task.task_type == "main"


def test_create_task_keeps_due_date(db):
    due = datetime(2030, 5, 1, 8, 30, tzinfo=timezone.utc)
    task = create_task(db, CreateTaskRequest(title="Trip", due_date=due))
    assert list_tasks(db)[0].due_date == due
    assert task.due_date == due


def test_update_task(db):
    task = create_task(db, CreateTaskRequest(title="Old"))
    updated = update_task(db, task.id, UpdateTaskRequest(title="New", status=2))
    assert updated.title == "New"
    assert updated.status == 2
    stored = list_tasks(db)[0]
    assert stored.title == "New"
    assert stored.status == 2
    assert stored.priority == 1


def test_update_missing_task(db):
    with pytest.raises(NotFoundError):
        update_task(db, "missing", UpdateTaskRequest(title="x"))


def test_tasks_by_type(db):
    create_task(db, CreateTaskRequest(title="a"))
    side = create_task(db, CreateTaskRequest(title="b", task_type="side"))
    assert [t.id for t in tasks_by_type(db, "side")] == [side.id]
    assert tasks_by_type(db, "challenge") == []


def test_homepage_tasks_excludes_parent(db):
    daily = create_task(db, CreateTaskRequest(title="daily"))
    parent = _parent(db)
    start_task(db, parent.id, StartTaskRequest())
    ids = {t.id for t in homepage_tasks(db)}
    assert daily.id in ids
    assert parent.id not in ids
    assert len(ids) == 7


def test_subtask_templates():
    templates = subtask_templates("anything")
    assert [t.order for t in templates] == [1, 2, 3, 4, 5, 6]
    assert templates[0].title == "準備階段"
    assert templates[-1].title == "總結回顧"


def test_start_non_parent_rejected(db):
    task = create_task(db, CreateTaskRequest(title="daily"))
    with pytest.raises(BadRequestError):
        start_task(db, task.id, StartTaskRequest())


def test_start_missing_task(db):
    with pytest.raises(NotFoundError):
        start_task(db, "missing", StartTaskRequest())


def test_start_generates_subtasks(db):
    parent = _parent(db)
    data, message = start_task(db, parent.id, StartTaskRequest())
    assert data["subtasks_count"] == 6
    assert message == "任務開始成功，生成了 6 個子任務"
    assert data["parent_task"].status == TaskStatus.IN_PROGRESS
    assert _status(db, parent.id) == TaskStatus.IN_PROGRESS
    subs = list_subtasks(db, parent.id)
    assert len(subs) == 6
    assert all(s.task_type == "subtask" for s in subs)


def test_start_again_keeps_subtasks(db):
    parent = _parent(db)
    start_task(db, parent.id, StartTaskRequest())
    data, message = start_task(db, parent.id, StartTaskRequest())
    assert message == "任務繼續進行，子任務已存在"
    assert data["subtasks_count"] == 6
    assert len(list_subtasks(db, parent.id)) == 6


def test_start_without_generation(db):
    parent = _parent(db)
    data, message = start_task(db, parent.id, StartTaskRequest(generate_subtasks=False))
    assert message == "任務開始成功"
    assert isinstance(data, Task) and data.id == parent.id
    assert list_subtasks(db, parent.id) == []


def test_pause_and_resume(db):
    parent = _parent(db)
    start_task(db, parent.id, StartTaskRequest())
    first = list_subtasks(db, parent.id)[0]
    update_task(db, first.id, UpdateTaskRequest(status=2))

    assert pause_task(db, parent.id) == {"task_id": parent.id}
    assert _status(db, parent.id) == TaskStatus.PAUSED
    statuses = sorted(s.status for s in list_subtasks(db, parent.id))
    assert statuses == [2, 4, 4, 4, 4, 4]

    data, message = start_task(db, parent.id, StartTaskRequest())
    assert message == "任務恢復成功，恢復了 5 個暫停的子任務"
    assert sorted(s.status for s in data["subtasks"]) == [0, 0, 0, 0, 0, 2]


def test_cancel_deletes_unfinished_subtasks(db):
    parent = _parent(db)
    start_task(db, parent.id, StartTaskRequest())
    done = list_subtasks(db, parent.id)[0]
    update_task(db, done.id, UpdateTaskRequest(status=2))

    result = cancel_task(db, parent.id)
    assert result["cancel_count"] == 1
    assert result["task_id"] == parent.id
    assert [s.id for s in list_subtasks(db, parent.id)] == [done.id]
    assert _status(db, parent.id) == TaskStatus.CANCELLED

    assert cancel_task(db, parent.id)["cancel_count"] == 2


def test_cancel_missing(db):
    with pytest.raises(NotFoundError):
        cancel_task(db, "missing")


def test_restart_requires_cancelled(db):
    parent = _parent(db)
    with pytest.raises(BadRequestError):
        restart_task(db, parent.id)


def test_restart_requires_parent(db):
    task = create_task(db, CreateTaskRequest(title="daily"))
    cancel_task(db, task.id)
    with pytest.raises(BadRequestError):
        restart_task(db, task.id)


def test_restart_cancelled_parent(db):
    parent = _parent(db)
    cancel_task(db, parent.id)
    result = restart_task(db, parent.id)
    assert result["status"] == "pending"
    assert result["cancel_count"] == 1
    assert _status(db, parent.id) == TaskStatus.PENDING


def test_storage_failure_is_reported(db):
    db.close()
    with pytest.raises(DatabaseError) as info:
        list_tasks(db)
    assert info.value.message.startswith("獲取任務列表失敗: ")