"""
Celery tasks — daily client messaging and policy housekeeping.

Scheduled by Celery Beat (see celeryconfig.beat_schedule).  Each task runs
its coroutine with ``asyncio.run`` on a fresh engine so it never shares an
event loop or connection pool with another task.
"""

import asyncio
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.session import build_engine
from app.messaging import get_email_provider, get_whatsapp_provider
from app.services import automation as automation_service
from app.services import policy_instances as instance_service
from app.tasks import celery_app

logger = structlog.get_logger("tasks.automation")


async def _in_session(work: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
    """Run *work* in one committed transaction on a task-local engine."""
    engine = build_engine()
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with factory() as session:
            async with session.begin():
                return await work(session)
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    name="app.tasks.automation_tasks.run_daily_automation",
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
)
def run_daily_automation(self) -> dict:
    """Birthday wishes and renewal reminders over email and WhatsApp."""
    task_log = logger.bind(task_id=self.request.id)
    task_log.info("Daily automation started")

    async def work(session: AsyncSession) -> dict:
        result = await automation_service.run_automated_tasks(
            session, [get_email_provider(), get_whatsapp_provider()]
        )
        return {
            "birthday_wishes": result["birthday_wishes"],
            "policy_renewals": result["policy_renewals"],
            "ran_at": result["ran_at"].isoformat(),
        }

    result = asyncio.run(_in_session(work))
    task_log.info("Daily automation finished", result=result)
    return result


@celery_app.task(bind=True, name="app.tasks.automation_tasks.expire_policies")
def expire_policies(self) -> dict:
    """Flip Active instances whose expiry date has passed to Expired."""
    task_log = logger.bind(task_id=self.request.id)
    updated = asyncio.run(_in_session(instance_service.expire_past_due))
    task_log.info("Expiry sweep finished", updated=updated)
    return {"updated": updated}


@celery_app.task(bind=True, name="app.tasks.automation_tasks.weekly_summary")
def weekly_summary(self) -> dict:
    """Log last week's delivery numbers and next week's workload."""
    task_log = logger.bind(task_id=self.request.id)
    summary = asyncio.run(_in_session(automation_service.get_weekly_summary))
    summary["week_ending"] = summary["week_ending"].isoformat()
    task_log.info("Weekly automation summary", **summary)
    return summary
