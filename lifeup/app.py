"""HTTP application: routes, JSON envelopes, CORS and the server entry point."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request

from lifeup import accounts, recurring, tasks
from lifeup.config import Config
from lifeup.database import Database
from lifeup.errors import ApiError, ValidationError
from lifeup.models import (
    ChatRequest,
    CreateRecurringTaskRequest,
    CreateSkillRequest,
    CreateTaskRequest,
    CreateUserRequest,
    StartTaskRequest,
    UpdateTaskRequest,
)

log = logging.getLogger(__name__)

TRACE = 5
CORS_MAX_AGE = 3600

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

R = TypeVar("R")


def parse_log_level(name: str) -> int:
    """Map a level name (case-insensitive) to a logging level; unknown names give INFO."""
    return _LOG_LEVELS.get(name.lower(), logging.INFO)


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _respond(data: Any, message: str, status: int = 200) -> tuple[Response, int]:
    body = {"success": True, "data": _jsonable(data), "message": message}
    return jsonify(body), status


def _body(parser: Callable[[Any], R]) -> R:
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("invalid JSON body")
    return parser(data)


def _add_cors_headers(response: Response) -> Response:
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


def _preflight() -> Response | None:
    if request.method != "OPTIONS":
        return None
    requested_method = request.headers.get("Access-Control-Request-Method")
    if requested_method is None:
        return None
    response = Response(status=200)
    response.headers["Access-Control-Allow-Methods"] = requested_method
    requested_headers = request.headers.get("Access-Control-Request-Headers")
    if requested_headers:
        response.headers["Access-Control-Allow-Headers"] = requested_headers
    response.headers["Access-Control-Max-Age"] = str(CORS_MAX_AGE)
    return response


def create_app(db: Database) -> Flask:
    """Build the Flask application serving the API on top of ``db``."""
    app = Flask(__name__)
    app.json.ensure_ascii = False
    app.json.sort_keys = False
    app.extensions["lifeup.db"] = db

    app.before_request(_preflight)
    app.after_request(_add_cors_headers)

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError) -> tuple[Response, int]:
        return jsonify(exc.to_payload()), exc.status

    @app.get("/health")
    def health_check():
        return _respond("LifeUp Backend is running!", "服務正常運行")

    # users
    @app.get("/api/users")
    def get_users():
        return _respond(accounts.list_users(db), "獲取使用者列表成功")

    @app.post("/api/users")
    def create_user():
        user = accounts.create_user(db, _body(CreateUserRequest.from_json))
        return _respond(user, "使用者建立成功", 201)

    @app.get("/api/users/<user_id>")
    def get_user(user_id: str):
        return _respond(accounts.get_user(db, user_id), "獲取使用者成功")

    # tasks
    @app.get("/api/tasks")
    def get_tasks():
        return _respond(tasks.list_tasks(db), "獲取任務列表成功")

    @app.post("/api/tasks")
    def create_task():
        task = tasks.create_task(db, _body(CreateTaskRequest.from_json))
        return _respond(task, "任務建立成功", 201)

    @app.put("/api/tasks/<task_id>")
    def update_task(task_id: str):
        task = tasks.update_task(db, task_id, _body(UpdateTaskRequest.from_json))
        return _respond(task, "任務更新成功")

    @app.get("/api/tasks/type/<task_type>")
    def get_tasks_by_type(task_type: str):
        return _respond(tasks.tasks_by_type(db, task_type), f"獲取{task_type}任務列表成功")

    @app.get("/api/tasks/homepage")
    def get_homepage_tasks():
        return _respond(tasks.homepage_tasks(db), "獲取首頁任務成功")

    @app.post("/api/tasks/<task_id>/start")
    def start_task(task_id: str):
        data, message = tasks.start_task(db, task_id, _body(StartTaskRequest.from_json))
        return _respond(data, message)

    @app.get("/api/tasks/<task_id>/subtasks")
    def get_subtasks(task_id: str):
        return _respond(tasks.list_subtasks(db, task_id), "獲取子任務列表成功")

    @app.put("/api/tasks/<task_id>/pause")
    def pause_task(task_id: str):
        return _respond(tasks.pause_task(db, task_id), "任務暫停成功")

    @app.put("/api/tasks/<task_id>/cancel")
    def cancel_task(task_id: str):
        data = tasks.cancel_task(db, task_id)
        count = data["cancel_count"]
        return _respond(data, f"任務取消成功（第{count}次取消），相關子任務已刪除")

    @app.put("/api/tasks/<task_id>/restart")
    def restart_task(task_id: str):
        return _respond(
            tasks.restart_task(db, task_id), "任務重新開始成功，可以重新開始執行"
        )

    # recurring tasks
    @app.post("/api/recurring-tasks")
    def create_recurring_task():
        task = recurring.create_recurring_task(
            db, _body(CreateRecurringTaskRequest.from_json)
        )
        return _respond(task, "重複性任務建立成功", 201)

    @app.post("/api/tasks/<task_id>/generate-daily")
    def generate_daily_tasks(task_id: str):
        data = recurring.generate_daily_tasks(db, task_id)
        return _respond(data, f"成功生成 {data['count']} 個今日任務")

    @app.get("/api/tasks/<task_id>/progress")
    def get_task_progress(task_id: str):
        return _respond(recurring.task_progress(db, task_id), "獲取任務進度成功")

    # skills
    @app.get("/api/skills")
    def get_skills():
        return _respond(accounts.list_skills(db), "獲取技能列表成功")

    @app.post("/api/skills")
    def create_skill():
        skill = accounts.create_skill(db, _body(CreateSkillRequest.from_json))
        return _respond(skill, "技能建立成功", 201)

    # chat
    @app.get("/api/chat/messages")
    def get_chat_messages():
        return _respond(accounts.list_chat_messages(db), "獲取聊天記錄成功")

    @app.post("/api/chat/send")
    def send_message():
        reply = accounts.send_message(db, _body(ChatRequest.from_json))
        return _respond(reply, "訊息發送成功")

    return app


def main(argv: list[str] | None = None) -> int:
    """Load configuration, prepare the database and serve the API."""
    parser = argparse.ArgumentParser(
        prog="lifeup", description="Serve the LifeUp HTTP API."
    )
    parser.parse_args(argv)

    load_dotenv()
    config = Config.from_env()

    logging.addLevelName(TRACE, "TRACE")
    logging.basicConfig(
        level=parse_log_level(config.app.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    log.info("LifeUp Backend 啟動中...")
    log.info("配置: %r", config)

    db = Database(config.database.url)
    log.info("資料庫連接成功: %s", config.database.url)
    try:
        db.create_tables()
        db.migrate()
        app = create_app(db)
        log.info("啟動 HTTP 伺服器在 http://%s", config.server_addr())
        app.run(host=config.server.host, port=config.server.port, threaded=True)
    finally:
        db.close()
    return 0