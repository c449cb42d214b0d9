"""Activity feed writer. Failures are logged and never break the caller."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.repositories import activities as activity_repository

logger = get_logger(__name__)


async def log_activity(db: AsyncSession, action: str, description: str) -> None:
    try:
        async with db.begin_nested():
            await activity_repository.create_activity(db, action=action, description=description)
    except SQLAlchemyError as exc:
        logger.warning("Failed to record activity", action=action, error=str(exc))
