"""SQLite storage: schema creation, migrations and simple record access."""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from lifeup.errors import DatabaseError
from lifeup.models import format_datetime

log = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_TABLES: dict[str, str] = {
    "user": """
        CREATE TABLE IF NOT EXISTS user (
            id TEXT PRIMARY KEY,
            name TEXT,
            email TEXT,
            created_at TEXT,
            updated_at TEXT
        )
    """,
    "task": """
        CREATE TABLE IF NOT EXISTS task (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            title TEXT,
            description TEXT,
            status INTEGER DEFAULT 0,
            priority INTEGER DEFAULT 1,
            task_type TEXT DEFAULT 'daily',
            difficulty INTEGER DEFAULT 1,
            experience INTEGER DEFAULT 10,
            parent_task_id TEXT,
            is_parent_task BOOLEAN DEFAULT FALSE,
            task_order INTEGER DEFAULT 0,
            due_date TEXT,
            created_at TEXT,
            updated_at TEXT,
            is_recurring BOOLEAN DEFAULT FALSE,
            recurrence_pattern TEXT,
            start_date TEXT,
            end_date TEXT,
            completion_target REAL DEFAULT 0.8,
            completion_rate REAL DEFAULT 0.0,
            task_date TEXT,
            cancel_count INTEGER DEFAULT 0,
            last_cancelled_at TEXT,
            FOREIGN KEY (user_id) REFERENCES user (id),
            FOREIGN KEY (parent_task_id) REFERENCES task (id)
        )
    """,
    "skill": """
        CREATE TABLE IF NOT EXISTS skill (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            name TEXT,
            description TEXT,
            level INTEGER DEFAULT 1,
            progress REAL DEFAULT 0.0,
            created_at TEXT,
            updated_at TEXT,
            FOREIGN KEY (user_id) REFERENCES user (id)
        )
    """,
    "chat_message": """
        CREATE TABLE IF NOT EXISTS chat_message (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            role TEXT,
            content TEXT,
            created_at TEXT,
            FOREIGN KEY (user_id) REFERENCES user (id)
        )
    """,
    "recurring_task_template": """
        CREATE TABLE IF NOT EXISTS recurring_task_template (
            id TEXT PRIMARY KEY,
            parent_task_id TEXT,
            title TEXT NOT NULL,
            description TEXT,
            difficulty INTEGER DEFAULT 1,
            experience INTEGER DEFAULT 10,
            task_order INTEGER DEFAULT 0,
            created_at TEXT,
            updated_at TEXT,
            FOREIGN KEY (parent_task_id) REFERENCES task (id)
        )
    """,
}

_MIGRATIONS = (
    "ALTER TABLE task ADD COLUMN cancel_count INTEGER DEFAULT 0",
    "ALTER TABLE task ADD COLUMN last_cancelled_at TEXT",
)


def sqlite_path(url: str) -> str:
    """Extract the SQLite file path from a ``sqlite://`` URL."""
    for prefix in ("sqlite://", "sqlite:"):
        if url.startswith(prefix):
            path = url[len(prefix):]
            break
    else:
        raise ValueError(f"unsupported database url: {url!r}")
    path = path.split("?", 1)[0]
    if not path:
        raise ValueError(f"database url has no path: {url!r}")
    return path


def _identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid identifier: {name!r}")
    return f'"{name}"'


def _to_sql(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, bool):
        return int(value)
    return value


class Database:
    """A thread-safe SQLite connection with small helpers for the app's tables."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.path = sqlite_path(url)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(
                self.path, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc
        self._conn.row_factory = sqlite3.Row

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _cursor(self, sql: str, params: Iterable[Any]) -> sqlite3.Cursor:
        values = [_to_sql(v) for v in params]
        try:
            return self._conn.execute(sql, values)
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc

    def create_tables(self) -> None:
        """Create every table that does not exist yet; failures are logged."""
        for number, ddl in enumerate(_TABLES.values(), start=1):
            try:
                self.execute(ddl)
            except DatabaseError as exc:
                log.error("資料庫表 %d 建立失敗: %s", number, exc)
            else:
                log.info("資料庫表 %d 建立成功", number)
        log.info("所有資料庫表建立完成")

    def migrate(self) -> None:
        """Apply column migrations, skipping those already present."""
        log.info("開始執行資料庫遷移...")
        for number, migration in enumerate(_MIGRATIONS, start=1):
            try:
                self.execute(migration)
            except DatabaseError as exc:
                if "duplicate column name" in str(exc):
                    log.info("資料庫遷移 %d 跳過（欄位已存在）", number)
                else:
                    log.warning("資料庫遷移 %d 執行失敗: %s", number, exc)
            else:
                log.info("資料庫遷移 %d 執行成功", number)
        log.info("資料庫遷移完成")

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        """Insert one row given as a column-to-value mapping."""
        if not record:
            raise ValueError("cannot insert an empty record")
        columns = ", ".join(_identifier(name) for name in record)
        marks = ", ".join("?" for _ in record)
        self.execute(
            f"INSERT INTO {_identifier(table)} ({columns}) VALUES ({marks})",
            record.values(),
        )

    def select_all(self, table: str) -> list[dict[str, Any]]:
        return self.query(f"SELECT * FROM {_identifier(table)}")

    def select_where(self, table: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Rows whose columns equal every value in ``filters``."""
        if not filters:
            return self.select_all(table)
        conditions = []
        params = []
        for column, value in filters.items():
            if value is None:
                conditions.append(f"{_identifier(column)} IS NULL")
            else:
                conditions.append(f"{_identifier(column)} = ?")
                params.append(value)
        sql = f"SELECT * FROM {_identifier(table)} WHERE {' AND '.join(conditions)}"
        return self.query(sql, params)

    def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run a statement and return the number of rows it changed."""
        with self._lock:
            return self._cursor(sql, params).rowcount

    def query(self, sql: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._cursor(sql, params).fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()