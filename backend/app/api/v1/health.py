"""Liveness and database reachability."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


async def health_payload(db: AsyncSession) -> dict[str, str]:
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed", error=str(exc))
        database = "unreachable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "env": settings.APP_ENV,
        "database": database,
    }


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Public health-check endpoint."""
    return await health_payload(db)
