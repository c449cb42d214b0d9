"""
Application exception hierarchy.

Every error raised from services and repositories that should reach the
client as a structured response inherits from AppError.  The FastAPI
handlers in `app.api.errors` render them as::

    {"success": false, "message": "...", "statusCode": 404, "errors": [...]}
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for all expected application errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppError):
    """Request data failed a business validation rule."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        errors: list[dict[str, str]] | None = None,
        **kwargs,
    ) -> None:
        self.errors = errors or []
        super().__init__(message, **kwargs)


class NotFoundError(AppError):
    """A referenced resource does not exist."""

    status_code = 404

    def __init__(self, resource: str = "Resource", **kwargs) -> None:
        self.resource = resource
        super().__init__(f"{resource} not found", **kwargs)


class ConflictError(AppError):
    """The operation clashes with existing data (uniqueness, state)."""

    status_code = 409


class UnauthorizedError(AppError):
    status_code = 401


class RateLimitError(AppError):
    """Too many requests inside the current window."""

    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        *,
        retry_after: int = 60,
        limit: int = 0,
        reset_at: int = 0,
        **kwargs,
    ) -> None:
        self.retry_after = retry_after
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(message, **kwargs)
