"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite://lifeup.db"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_ENVIRONMENT = "development"
DEFAULT_LOG_LEVEL = "info"

_PORT_RE = re.compile(r"^\+?\d+$")


def _parse_port(raw: str | None) -> int:
    if raw is None or not _PORT_RE.match(raw):
        return DEFAULT_PORT
    port = int(raw)
    return port if 0 <= port <= 65535 else DEFAULT_PORT


@dataclass(frozen=True)
class DatabaseConfig:
    url: str


@dataclass(frozen=True)
class ServerConfig:
    host: str
    port: int


@dataclass(frozen=True)
class AppConfig:
    environment: str
    log_level: str


@dataclass(frozen=True)
class Config:
    database: DatabaseConfig
    server: ServerConfig
    app: AppConfig

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Build a configuration from ``environ`` (default: the process environment)."""
        env = os.environ if environ is None else environ
        return cls(
            database=DatabaseConfig(url=env.get("DATABASE_URL", DEFAULT_DATABASE_URL)),
            server=ServerConfig(
                host=env.get("SERVER_HOST", DEFAULT_HOST),
                port=_parse_port(env.get("SERVER_PORT")),
            ),
            app=AppConfig(
                environment=env.get("ENVIRONMENT", DEFAULT_ENVIRONMENT),
                log_level=env.get("RUST_LOG", DEFAULT_LOG_LEVEL),
            ),
        )

    def server_addr(self) -> str:
        """The ``host:port`` address the server binds to."""
        return f"{self.server.host}:{self.server.port}"