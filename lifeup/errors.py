"""Exceptions that map onto HTTP error responses."""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """An error reported to the client with a status code and message."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def to_payload(self) -> dict[str, Any]:
        """The JSON body sent for this error."""
        return {"success": False, "data": None, "message": self.message}


class NotFoundError(ApiError):
    def __init__(self, message: str, status: int = 404) -> None:
        super().__init__(message, status)


class BadRequestError(ApiError):
    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message, status)


class ValidationError(ApiError):
    """A request body that does not have the expected shape."""

    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message, status)


class DatabaseError(ApiError):
    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message, status)