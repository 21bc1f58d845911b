"""Domain records, request bodies and datetime helpers."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, TypeVar

from lifeup.errors import ValidationError

T = TypeVar("T")

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_DATETIME_RE = re.compile(
    r"^\s*(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?"
    r"\s*(Z|z|UTC|[+-]\d{2}:?\d{2})\s*$"
)


class TaskStatus(IntEnum):
    PENDING = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    CANCELLED = 3
    PAUSED = 4


def _offset(text: str) -> timezone:
    if text in ("Z", "z", "UTC"):
        return timezone.utc
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * delta)


def parse_datetime(value: str | datetime) -> datetime:
    """Parse an RFC 3339 or ``... UTC`` timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if not isinstance(value, str):
        raise TypeError(f"expected a datetime string, got {type(value).__name__}")
    match = _DATETIME_RE.match(value)
    if match is None:
        raise ValueError(f"invalid datetime: {value!r}")
    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    fraction = match.group(7) or ""
    micro = int((fraction + "000000")[:6])
    try:
        parsed = datetime(
            year, month, day, hour, minute, second, micro, tzinfo=_offset(match.group(8))
        )
    except ValueError as exc:
        raise ValueError(f"invalid datetime: {value!r}") from exc
    return parsed.astimezone(timezone.utc)


def parse_optional_datetime(value: str | datetime | None) -> datetime | None:
    """Like :func:`parse_datetime`, but ``None`` and the empty string give ``None``."""
    if value is None or value == "":
        return None
    return parse_datetime(value)


def format_datetime(value: datetime | None) -> str | None:
    """Render a datetime as an RFC 3339 UTC string ending in ``Z``."""
    if value is None:
        return None
    utc = parse_datetime(value)
    text = utc.strftime("%Y-%m-%dT%H:%M:%S")
    if utc.microsecond:
        text += f".{utc.microsecond:06d}"
    return text + "Z"


def _jsonable(value: Any) -> Any:
    return format_datetime(value) if isinstance(value, datetime) else value


def _record_dict(record: Any) -> dict[str, Any]:
    return {f.name: _jsonable(getattr(record, f.name)) for f in fields(record)}


def _record_kwargs(cls: type, row: Mapping[str, Any], datetime_fields: frozenset[str]) -> dict[str, Any]:
    data = dict(row)
    values: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name in datetime_fields:
            value = parse_optional_datetime(value)
        values[f.name] = value
    return values


# --- request validation helpers -------------------------------------------

def _ensure_object(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError("expected a JSON object")
    return data


def _as_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"invalid type for `{name}`: expected a string")
    return value


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"invalid type for `{name}`: expected an integer")
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValidationError(f"invalid value for `{name}`: out of range")
    return value


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"invalid type for `{name}`: expected a number")
    return float(value)


def _as_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"invalid type for `{name}`: expected a boolean")
    return value


def _as_datetime(value: Any, name: str) -> datetime:
    try:
        return parse_datetime(_as_str(value, name))
    except ValueError as exc:
        raise ValidationError(f"invalid value for `{name}`: {exc}") from exc


def _get(
    data: Mapping[str, Any],
    name: str,
    convert: Callable[[Any, str], T],
    required: bool = False,
) -> T | None:
    value = data.get(name)
    if value is None:
        if required:
            raise ValidationError(f"missing field `{name}`")
        return None
    return convert(value, name)


# --- stored records -----------------------------------------------------------

@dataclass(kw_only=True)
class User:
    id: str | None = None
    name: str | None = None
    email: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    _DATETIMES = frozenset({"created_at", "updated_at"})

    def to_dict(self) -> dict[str, Any]:
        return _record_dict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> User:
        return cls(**_record_kwargs(cls, row, cls._DATETIMES))


@dataclass(kw_only=True)
class Task:
    id: str | None = None
    user_id: str | None = None
    title: str | None = None
    description: str | None = None
    status: int | None = None
    priority: int | None = None
    task_type: str | None = None
    difficulty: int | None = None
    experience: int | None = None
    parent_task_id: str | None = None
    is_parent_task: int | None = None
    task_order: int | None = None
    due_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_recurring: int | None = None
    recurrence_pattern: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    completion_target: float | None = None
    completion_rate: float | None = None
    task_date: str | None = None
    cancel_count: int | None = None
    last_cancelled_at: datetime | None = None

    _DATETIMES = frozenset(
        {"due_date", "created_at", "updated_at", "start_date", "end_date", "last_cancelled_at"}
    )

    def to_dict(self) -> dict[str, Any]:
        return _record_dict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Task:
        return cls(**_record_kwargs(cls, row, cls._DATETIMES))


@dataclass(kw_only=True)
class Skill:
    id: str | None = None
    user_id: str | None = None
    name: str | None = None
    description: str | None = None
    level: int | None = None
    progress: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    _DATETIMES = frozenset({"created_at", "updated_at"})

    def to_dict(self) -> dict[str, Any]:
        return _record_dict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Skill:
        return cls(**_record_kwargs(cls, row, cls._DATETIMES))


@dataclass(kw_only=True)
class ChatMessage:
    id: str | None = None
    user_id: str | None = None
    role: str | None = None
    content: str | None = None
    created_at: datetime | None = None

    _DATETIMES = frozenset({"created_at"})

    def to_dict(self) -> dict[str, Any]:
        return _record_dict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ChatMessage:
        return cls(**_record_kwargs(cls, row, cls._DATETIMES))


@dataclass(kw_only=True)
class SubTaskTemplate:
    title: str
    description: str | None = None
    difficulty: int
    experience: int
    order: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, data: Any) -> SubTaskTemplate:
        body = _ensure_object(data)
        return cls(
            title=_get(body, "title", _as_str, required=True),
            description=_get(body, "description", _as_str),
            difficulty=_get(body, "difficulty", _as_int, required=True),
            experience=_get(body, "experience", _as_int, required=True),
            order=_get(body, "order", _as_int, required=True),
        )


@dataclass(kw_only=True)
class RecurringTaskTemplate:
    id: str | None = None
    parent_task_id: str | None = None
    title: str
    description: str | None = None
    difficulty: int
    experience: int
    task_order: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    _DATETIMES = frozenset({"created_at", "updated_at"})

    def to_dict(self) -> dict[str, Any]:
        return _record_dict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> RecurringTaskTemplate:
        return cls(**_record_kwargs(cls, row, cls._DATETIMES))


@dataclass(kw_only=True)
class TaskProgress:
    task_id: str
    total_days: int
    completed_days: int
    completion_rate: float
    target_rate: float
    is_daily_completed: bool
    remaining_days: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# --- request bodies -----------------------------------------------------------

@dataclass(kw_only=True)
class CreateUserRequest:
    name: str
    email: str

    @classmethod
    def from_json(cls, data: Any) -> CreateUserRequest:
        body = _ensure_object(data)
        return cls(
            name=_get(body, "name", _as_str, required=True),
            email=_get(body, "email", _as_str, required=True),
        )


@dataclass(kw_only=True)
class CreateTaskRequest:
    title: str
    description: str | None = None
    priority: int | None = None
    task_type: str | None = None
    difficulty: int | None = None
    experience: int | None = None
    due_date: datetime | None = None
    user_id: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> CreateTaskRequest:
        body = _ensure_object(data)
        return cls(
            title=_get(body, "title", _as_str, required=True),
            description=_get(body, "description", _as_str),
            priority=_get(body, "priority", _as_int),
            task_type=_get(body, "task_type", _as_str),
            difficulty=_get(body, "difficulty", _as_int),
            experience=_get(body, "experience", _as_int),
            due_date=_get(body, "due_date", _as_datetime),
            user_id=_get(body, "user_id", _as_str),
        )


@dataclass(kw_only=True)
class UpdateTaskRequest:
    title: str | None = None
    description: str | None = None
    status: int | None = None
    priority: int | None = None
    task_type: str | None = None
    difficulty: int | None = None
    experience: int | None = None
    due_date: datetime | None = None

    @classmethod
    def from_json(cls, data: Any) -> UpdateTaskRequest:
        body = _ensure_object(data)
        return cls(
            title=_get(body, "title", _as_str),
            description=_get(body, "description", _as_str),
            status=_get(body, "status", _as_int),
            priority=_get(body, "priority", _as_int),
            task_type=_get(body, "task_type", _as_str),
            difficulty=_get(body, "difficulty", _as_int),
            experience=_get(body, "experience", _as_int),
            due_date=_get(body, "due_date", _as_datetime),
        )


@dataclass(kw_only=True)
class StartTaskRequest:
    generate_subtasks: bool | None = None

    @classmethod
    def from_json(cls, data: Any) -> StartTaskRequest:
        body = _ensure_object(data)
        return cls(generate_subtasks=_get(body, "generate_subtasks", _as_bool))


@dataclass(kw_only=True)
class CreateSkillRequest:
    name: str
    description: str | None = None
    level: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> CreateSkillRequest:
        body = _ensure_object(data)
        return cls(
            name=_get(body, "name", _as_str, required=True),
            description=_get(body, "description", _as_str),
            level=_get(body, "level", _as_int),
        )


@dataclass(kw_only=True)
class ChatRequest:
    message: str

    @classmethod
    def from_json(cls, data: Any) -> ChatRequest:
        body = _ensure_object(data)
        return cls(message=_get(body, "message", _as_str, required=True))


def _as_templates(value: Any, name: str) -> list[SubTaskTemplate]:
    if not isinstance(value, list):
        raise ValidationError(f"invalid type for `{name}`: expected a list")
    return [SubTaskTemplate.from_json(item) for item in value]


@dataclass(kw_only=True)
class CreateRecurringTaskRequest:
    title: str
    description: str | None = None
    task_type: str | None = None
    difficulty: int | None = None
    experience: int | None = None
    recurrence_pattern: str
    start_date: datetime
    end_date: datetime | None = None
    completion_target: float | None = None
    subtask_templates: list[SubTaskTemplate] = field(default_factory=list)
    user_id: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> CreateRecurringTaskRequest:
        body = _ensure_object(data)
        return cls(
            title=_get(body, "title", _as_str, required=True),
            description=_get(body, "description", _as_str),
            task_type=_get(body, "task_type", _as_str),
            difficulty=_get(body, "difficulty", _as_int),
            experience=_get(body, "experience", _as_int),
            recurrence_pattern=_get(body, "recurrence_pattern", _as_str, required=True),
            start_date=_get(body, "start_date", _as_datetime, required=True),
            end_date=_get(body, "end_date", _as_datetime),
            completion_target=_get(body, "completion_target", _as_float),
            subtask_templates=_get(body, "subtask_templates", _as_templates, required=True),
            user_id=_get(body, "user_id", _as_str),
        )