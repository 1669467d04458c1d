"""Structured errors for indexing and search."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    WORKSPACE_NOT_FOUND = "WORKSPACE_NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"
    CANCELLED = "CANCELLED"
    INDEX_NOT_FOUND = "INDEX_NOT_FOUND"
    QUERY_EMPTY = "QUERY_EMPTY"


class CodebaseIndexError(Exception):
    """Base error carrying a caller-facing code."""

    def __init__(
        self, code: ErrorCode, message: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"errorCode": self.code.value, "errorMessage": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class IndexEngineError(CodebaseIndexError):
    """Raised when the underlying full-text store fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.DATABASE_ERROR, message, details)


class SearchError(CodebaseIndexError):
    """Raised when a search request cannot be served."""


class BuildCancelled(Exception):
    """Raised inside a build when its cancellation token fires."""
