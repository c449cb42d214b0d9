"""
Message log repository (automated email / WhatsApp sends).

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import MessageStatus
from app.db.models.message_log import MessageLog


async def create_pending(db: AsyncSession, **fields: Any) -> MessageLog:
    log = MessageLog(status=MessageStatus.PENDING.value, **fields)
    db.add(log)
    await db.flush()
    return log


async def mark_sent(db: AsyncSession, log: MessageLog, *, provider_message_id: str | None) -> MessageLog:
    log.status = MessageStatus.SENT.value
    log.provider_message_id = provider_message_id
    log.sent_at = datetime.now(timezone.utc)
    log.error_message = None
    await db.flush()
    return log


async def mark_failed(db: AsyncSession, log: MessageLog, *, error_message: str) -> MessageLog:
    log.status = MessageStatus.FAILED.value
    log.error_message = error_message[:2000]
    await db.flush()
    return log


async def recipient_ids_messaged_since(
    db: AsyncSession,
    *,
    channel: str,
    message_type: str,
    since: datetime,
    status: str | None = MessageStatus.SENT.value,
) -> tuple[set[uuid.UUID], set[uuid.UUID]]:
    """Client ids and lead ids that already received this message since *since*."""
    stmt = select(MessageLog.client_id, MessageLog.lead_id).where(
        MessageLog.channel == channel,
        MessageLog.message_type == message_type,
        MessageLog.created_at >= since,
    )
    if status is not None:
        stmt = stmt.where(MessageLog.status == status)
    result = await db.execute(stmt)
    clients: set[uuid.UUID] = set()
    leads: set[uuid.UUID] = set()
    for client_id, lead_id in result.all():
        if client_id:
            clients.add(client_id)
        if lead_id:
            leads.add(lead_id)
    return clients, leads


async def instance_ids_reminded_since(
    db: AsyncSession,
    *,
    channel: str,
    message_type: str,
    since: datetime,
) -> set[uuid.UUID]:
    stmt = select(MessageLog.policy_instance_id).where(
        MessageLog.channel == channel,
        MessageLog.message_type == message_type,
        MessageLog.created_at >= since,
        MessageLog.policy_instance_id.is_not(None),
    )
    result = await db.execute(stmt)
    return set(result.scalars().all())


async def list_logs(
    db: AsyncSession,
    *,
    channel: str,
    since: datetime | None = None,
    status: str | None = None,
    message_type: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[MessageLog], int]:
    stmt = select(MessageLog).where(MessageLog.channel == channel)
    if since is not None:
        stmt = stmt.where(MessageLog.created_at >= since)
    if status:
        stmt = stmt.where(MessageLog.status == status)
    if message_type:
        stmt = stmt.where(MessageLog.message_type == message_type)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    stmt = stmt.order_by(MessageLog.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total or 0


async def count_by_status_and_type(
    db: AsyncSession,
    *,
    channel: str,
    since: datetime,
) -> dict[tuple[str, str], int]:
    """{(status, message_type): count} for one channel since *since*."""
    stmt = (
        select(MessageLog.status, MessageLog.message_type, func.count(MessageLog.id))
        .where(MessageLog.channel == channel, MessageLog.created_at >= since)
        .group_by(MessageLog.status, MessageLog.message_type)
    )
    result = await db.execute(stmt)
    return {(status, mtype): int(count) for status, mtype, count in result.all()}
