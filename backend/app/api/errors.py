"""
Exception handlers that render every failure in the error envelope::

    {"success": false, "message": "...", "statusCode": 400, "errors": [...]}
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import AppError, RateLimitError, ValidationError
from app.core.logging import get_logger

logger = get_logger(__name__)


def error_response(
    status_code: int,
    message: str,
    *,
    errors: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "message": message, "statusCode": status_code}
    if errors:
        body["errors"] = errors
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _field_path(loc: tuple) -> str:
    # drop the "body" / "query" / "path" prefix FastAPI adds
    parts = [str(p) for p in loc[1:]] if loc and loc[0] in ("body", "query", "path", "header") else [str(p) for p in loc]
    return ".".join(parts) or "request"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, RateLimitError):
        return error_response(
            exc.status_code,
            exc.message,
            headers={
                "Retry-After": str(exc.retry_after),
                "X-RateLimit-Limit": str(exc.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(exc.reset_at),
            },
            retryAfter=exc.retry_after,
        )
    if exc.status_code >= 500:
        logger.error("Application error", path=request.url.path, error=exc.message, **exc.details)
    else:
        logger.info("Request rejected", path=request.url.path, status_code=exc.status_code, error=exc.message)
    errors = exc.errors if isinstance(exc, ValidationError) else None
    return error_response(exc.status_code, exc.message, errors=errors)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"field": _field_path(tuple(e.get("loc", ()))), "message": e.get("msg", "Invalid value")} for e in exc.errors()]
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors=errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error", path=request.url.path, error=str(exc.orig))
    return error_response(status.HTTP_409_CONFLICT, "A record with this information already exists")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    message = str(exc) if settings.APP_ENV == "development" else "Internal server error"
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
