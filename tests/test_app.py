import logging

import pytest

from lifeup.app import create_app, parse_log_level
from lifeup.database import Database


@pytest.fixture
def db(tmp_path):
    database = Database(f"sqlite://{tmp_path / 'app.db'}")
    database.create_tables()
    database.migrate()
    yield database
    database.close()


@pytest.fixture
def client(db):
    app = create_app(db)
    app.testing = True
    return app.test_client()


def _create_task(client, **fields):
    body = {"title": "Learn piano"}
    body.update(fields)
    response = client.post("/api/tasks", json=body)
    assert response.status_code == 201
    return response.get_json()["data"]


@pytest.mark.parametrize(
    "name, level",
    [
        ("error", logging.ERROR),
        ("WARN", logging.WARNING),
        ("info", logging.INFO),
        ("Debug", logging.DEBUG),
        ("nonsense", logging.INFO),
    ],
)
def test_parse_log_level(name, level):
    assert parse_log_level(name) == level


def test_trace_is_below_debug():
    assert parse_log_level("trace") < logging.DEBUG


def test_health_check(client):
    response = client.get("/health")
    body = response.get_json()
    assert response.status_code == 200
    assert body == {
        "success": True,
        "data": "LifeUp Backend is running!",
        "message": "服務正常運行",
    }


def test_user_round_trip(client):
    created = client.post(
        "/api/users", json={"name": "Alice", "email": "alice@example.com"}
    )
    assert created.status_code == 201
    user = created.get_json()["data"]
    fetched = client.get(f"/api/users/{user['id']}").get_json()
    assert fetched["success"] is True
    assert fetched["data"] == user
    listed = client.get("/api/users").get_json()["data"]
    assert [u["id"] for u in listed] == [user["id"]]


def test_missing_user_is_404(client):
    response = client.get("/api/users/nope")
    assert response.status_code == 404
    assert response.get_json() == {"success": False, "data": None, "message": "使用者不存在"}


def test_invalid_body_is_400(client):
    response = client.post("/api/users", data="not json", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_missing_field_is_400(client):
    response = client.post("/api/users", json={"name": "Bob"})
    assert response.status_code == 400
    assert "email" in response.get_json()["message"]


def test_create_daily_task_defaults(client):
    task = _create_task(client)
    assert task["task_type"] == "daily"
    assert task["is_parent_task"] == 0
    assert task["status"] == 0
    response = client.post(f"/api/tasks/{task['id']}/start", json={})
    assert response.status_code == 400
    assert response.get_json()["message"] == "此任務不是大任務，無法生成子任務"


def test_start_generates_subtasks_and_pause_resumes(client):
    task = _create_task(client, task_type="main")
    started = client.post(f"/api/tasks/{task['id']}/start", json={}).get_json()
    data = started["data"]
    assert data["parent_task"]["status"] == 1
    assert data["subtasks_count"] == len(data["subtasks"])
    assert started["message"] == f"任務開始成功，生成了 {data['subtasks_count']} 個子任務"

    paused = client.put(f"/api/tasks/{task['id']}/pause")
    assert paused.get_json()["data"] == {"task_id": task["id"]}
    subtasks = client.get(f"/api/tasks/{task['id']}/subtasks").get_json()["data"]
    assert all(sub["status"] == 4 for sub in subtasks)

    resumed = client.post(f"/api/tasks/{task['id']}/start", json={}).get_json()
    assert resumed["message"] == f"任務恢復成功，恢復了 {len(subtasks)} 個暫停的子任務"
    assert all(sub["status"] == 0 for sub in resumed["data"]["subtasks"])


def test_start_without_generation_returns_parent(client):
    task = _create_task(client, task_type="side")
    body = client.post(
        f"/api/tasks/{task['id']}/start", json={"generate_subtasks": False}
    ).get_json()
    assert body["message"] == "任務開始成功"
    assert body["data"]["id"] == task["id"]
    assert client.get(f"/api/tasks/{task['id']}/subtasks").get_json()["data"] == []


def test_cancel_and_restart(client):
    task = _create_task(client, task_type="main")
    client.post(f"/api/tasks/{task['id']}/start", json={})
    cancelled = client.put(f"/api/tasks/{task['id']}/cancel").get_json()
    assert cancelled["data"]["cancel_count"] == 1
    assert cancelled["message"] == "任務取消成功（第1次取消），相關子任務已刪除"
    assert client.get(f"/api/tasks/{task['id']}/subtasks").get_json()["data"] == []

    restarted = client.put(f"/api/tasks/{task['id']}/restart").get_json()
    assert restarted["data"]["status"] == "pending"
    assert restarted["data"]["cancel_count"] == 1

    again = client.put(f"/api/tasks/{task['id']}/restart")
    assert again.status_code == 400
    assert again.get_json()["message"] == "只有已取消的任務才能重新開始"


def test_update_task(client):
    task = _create_task(client)
    response = client.put(f"/api/tasks/{task['id']}", json={"title": "Practice", "status": 2})
    data = response.get_json()["data"]
    assert data["title"] == "Practice"
    assert data["status"] == 2
    listed = client.get("/api/tasks").get_json()["data"]
    assert listed[0]["title"] == "Practice"


def test_update_missing_task_is_404(client):
    response = client.put("/api/tasks/missing", json={"title": "x"})
    assert response.status_code == 404
    assert response.get_json()["message"] == "任務不存在"


def test_tasks_by_type_and_homepage(client):
    daily = _create_task(client)
    main_task = _create_task(client, task_type="main")
    by_type = client.get("/api/tasks/type/main").get_json()
    assert [t["id"] for t in by_type["data"]] == [main_task["id"]]
    assert by_type["message"] == "獲取main任務列表成功"

    client.post(f"/api/tasks/{main_task['id']}/start", json={})
    homepage = client.get("/api/tasks/homepage").get_json()["data"]
    ids = {t["id"] for t in homepage}
    assert daily["id"] in ids
    assert main_task["id"] not in ids
    subtask_ids = {
        t["id"] for t in client.get(f"/api/tasks/{main_task['id']}/subtasks").get_json()["data"]
    }
    assert subtask_ids <= ids


def test_recurring_flow(client):
    template = {"title": "Read", "difficulty": 1, "experience": 10, "order": 1}
    created = client.post(
        "/api/recurring-tasks",
        json={
            "title": "Reading habit",
            "recurrence_pattern": "daily",
            "start_date": "2024-01-01T00:00:00Z",
            "end_date": "2024-03-01T00:00:00Z",
            "subtask_templates": [template],
        },
    )
    assert created.status_code == 201
    parent = created.get_json()["data"]
    assert parent["is_recurring"] == 1
    assert parent["completion_target"] == 0.8

    generated = client.post(f"/api/tasks/{parent['id']}/generate-daily").get_json()
    assert generated["data"]["count"] == 1
    assert generated["data"]["generated_tasks"][0]["title"] == "Read"
    assert generated["message"] == "成功生成 1 個今日任務"

    progress = client.get(f"/api/tasks/{parent['id']}/progress").get_json()["data"]
    assert progress["task_id"] == parent["id"]
    assert progress["completed_days"] == 0
    assert progress["remaining_days"] == progress["total_days"] - progress["completed_days"]
    assert progress["is_daily_completed"] is False


def test_skills_and_chat(client):
    skill = client.post("/api/skills", json={"name": "Cooking", "level": 2})
    assert skill.status_code == 201
    assert skill.get_json()["data"]["progress"] == 0.0
    assert [s["name"] for s in client.get("/api/skills").get_json()["data"]] == ["Cooking"]

    reply = client.post("/api/chat/send", json={"message": "hi"}).get_json()
    assert reply["data"]["role"] == "assistant"
    assert "hi" in reply["data"]["content"]
    roles = sorted(m["role"] for m in client.get("/api/chat/messages").get_json()["data"])
    assert roles == ["assistant", "user"]


def test_cors_headers(client):
    response = client.get("/health", headers={"Origin": "http://localhost"})
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    preflight = client.options(
        "/api/tasks",
        headers={
            "Origin": "http://localhost",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert preflight.status_code == 200
    assert preflight.headers["Access-Control-Max-Age"] == "3600"
    assert preflight.headers["Access-Control-Allow-Methods"] == "POST"
    assert preflight.headers["Access-Control-Allow-Headers"] == "content-type"