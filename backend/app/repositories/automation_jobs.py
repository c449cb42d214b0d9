"""Automation job bookkeeping repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.automation_job import AutomationJob


async def upsert_job(
    db: AsyncSession,
    *,
    name: str,
    channel: str,
    message_type: str,
    trigger: str,
    last_run_at: datetime,
    next_run_at: datetime,
    days_before: int | None = None,
) -> AutomationJob:
    """Create or refresh the job row for (channel, message_type, trigger)."""
    stmt = select(AutomationJob).where(
        AutomationJob.channel == channel,
        AutomationJob.message_type == message_type,
        AutomationJob.trigger == trigger,
    )
    job = (await db.execute(stmt)).scalar_one_or_none()
    if job is None:
        job = AutomationJob(
            name=name,
            channel=channel,
            message_type=message_type,
            trigger=trigger,
            is_active=True,
        )
        db.add(job)
    job.days_before = days_before
    job.last_run_at = last_run_at
    job.next_run_at = next_run_at
    await db.flush()
    return job


async def list_jobs(db: AsyncSession, *, channel: str | None = None) -> list[AutomationJob]:
    stmt = select(AutomationJob).order_by(AutomationJob.name)
    if channel:
        stmt = stmt.where(AutomationJob.channel == channel)
    result = await db.execute(stmt)
    return list(result.scalars().all())
