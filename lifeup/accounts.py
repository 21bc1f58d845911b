"""Users, skills and chat messages."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from lifeup.database import Database
from lifeup.errors import DatabaseError, NotFoundError
from lifeup.models import (
    ChatMessage,
    ChatRequest,
    CreateSkillRequest,
    CreateUserRequest,
    Skill,
    User,
)

DEFAULT_USER_ID = "d487f83e-dadd-4616-aeb2-959d6af9963b"


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


def list_users(db: Database) -> list[User]:
    """Every stored user."""
    with _reported("獲取使用者列表失敗"):
        rows = db.select_all("user")
    return [User.from_row(row) for row in rows]


def get_user(db: Database, user_id: str) -> User:
    """The user with ``user_id``; raises :class:`NotFoundError` if there is none."""
    with _reported("獲取使用者失敗"):
        rows = db.select_where("user", {"id": user_id})
    if not rows:
        raise NotFoundError("使用者不存在")
    return User.from_row(rows[0])


def create_user(db: Database, request: CreateUserRequest) -> User:
    """Store a new user and return it."""
    now = _now()
    user = User(
        id=_new_id(),
        name=request.name,
        email=request.email,
        created_at=now,
        updated_at=now,
    )
    with _reported("使用者建立失敗"):
        db.insert("user", user.to_dict())
    return user


def list_skills(db: Database) -> list[Skill]:
    """Every stored skill."""
    with _reported("獲取技能列表失敗"):
        rows = db.select_all("skill")
    return [Skill.from_row(row) for row in rows]


def create_skill(db: Database, request: CreateSkillRequest) -> Skill:
    """Store a new skill for the default user, starting with no progress."""
    now = _now()
    skill = Skill(
        id=_new_id(),
        user_id=DEFAULT_USER_ID,
        name=request.name,
        description=request.description,
        level=request.level,
        progress=0.0,
        created_at=now,
        updated_at=now,
    )
    with _reported("技能建立失敗"):
        db.insert("skill", skill.to_dict())
    return skill


def list_chat_messages(db: Database) -> list[ChatMessage]:
    """Every stored chat message, oldest first."""
    with _reported("獲取聊天記錄失敗"):
        rows = db.select_all("chat_message")
    return [ChatMessage.from_row(row) for row in rows]


def send_message(db: Database, request: ChatRequest) -> ChatMessage:
    """Store the user's message and the coach's reply; return the reply."""
    now = _now()
    user_message = ChatMessage(
        id=_new_id(),
        user_id=DEFAULT_USER_ID,
        role="user",
        content=request.message,
        created_at=now,
    )
    with _reported("儲存使用者訊息失敗"):
        db.insert("chat_message", user_message.to_dict())

    reply = f"收到您的訊息：{request.message}。我是您的 AI 教練，有什麼可以幫助您的嗎？"
    assistant_message = ChatMessage(
        id=_new_id(),
        user_id=DEFAULT_USER_ID,
        role="assistant",
        content=reply,
        created_at=now,
    )
    with _reported("儲存 AI 回覆失敗"):
        db.insert("chat_message", assistant_message.to_dict())
    return assistant_message