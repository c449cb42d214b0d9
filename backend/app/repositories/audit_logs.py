"""Client audit-trail repository."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.audit_log import AuditLog


async def add_entries(db: AsyncSession, entries: list[dict]) -> list[AuditLog]:
    """Insert audit rows given as dicts of AuditLog column values."""
    rows = [AuditLog(**entry) for entry in entries]
    db.add_all(rows)
    await db.flush()
    return rows


async def list_for_client(
    db: AsyncSession,
    client_id: uuid.UUID,
    *,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    base = select(AuditLog).where(AuditLog.client_id == client_id)
    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    stmt = base.order_by(AuditLog.changed_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total or 0


async def count_for_client(db: AsyncSession, client_id: uuid.UUID, *, since: datetime | None = None) -> int:
    stmt = select(func.count(AuditLog.id)).where(AuditLog.client_id == client_id)
    if since is not None:
        stmt = stmt.where(AuditLog.changed_at >= since)
    return await db.scalar(stmt) or 0


async def count_by_action(db: AsyncSession, client_id: uuid.UUID) -> dict[str, int]:
    stmt = (
        select(AuditLog.action, func.count(AuditLog.id))
        .where(AuditLog.client_id == client_id)
        .group_by(AuditLog.action)
    )
    result = await db.execute(stmt)
    return {action: int(n) for action, n in result.all()}


async def count_by_field(db: AsyncSession, client_id: uuid.UUID) -> dict[str, int]:
    stmt = (
        select(AuditLog.field_name, func.count(AuditLog.id))
        .where(AuditLog.client_id == client_id, AuditLog.field_name.is_not(None))
        .group_by(AuditLog.field_name)
    )
    result = await db.execute(stmt)
    return {field: int(n) for field, n in result.all()}


async def last_changed_at(db: AsyncSession, client_id: uuid.UUID) -> datetime | None:
    return await db.scalar(select(func.max(AuditLog.changed_at)).where(AuditLog.client_id == client_id))
