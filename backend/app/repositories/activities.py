"""Activity feed repository."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.activity import Activity


async def create_activity(db: AsyncSession, *, action: str, description: str) -> Activity:
    activity = Activity(action=action, description=description)
    db.add(activity)
    await db.flush()
    return activity


async def list_recent(db: AsyncSession, limit: int = 5) -> list[Activity]:
    stmt = select(Activity).order_by(Activity.created_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
