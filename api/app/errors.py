"""Categorized application errors.

Services raise these; ``app.main`` renders them into the
``{"success": false, "error": {...}}`` envelope with the matching status.
"""

from enum import Enum
from typing import Any

from fastapi import status


class InfraErrorPolicy(str, Enum):
    """What a component does when its backing store misbehaves."""

    ALLOW = "allow"
    REJECT = "reject"


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ExpiredError(AppError):
    status_code = status.HTTP_410_GONE
    code = "EXPIRED"


class RateLimitedError(AppError):
    """Quota or cooldown exceeded. ``retry_after`` is in seconds."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str,
        *,
        retry_after: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = {"retry_after": retry_after}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)
        self.retry_after = retry_after


class SpamRejectedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "SPAM_DETECTED"


class InternalServiceError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"
