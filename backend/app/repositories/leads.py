"""
Lead repository containing all data-access operations for the leads table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.lead import Lead
from app.repositories import LIKE_ESCAPE, contains_pattern

_MUTABLE_FIELDS = {
    "name",
    "email",
    "phone",
    "whatsapp_number",
    "date_of_birth",
    "insurance_interest",
    "status",
    "priority",
    "notes",
}


async def create_lead(db: AsyncSession, **fields: Any) -> Lead:
    """Insert a new lead."""
    lead = Lead(**{k: v for k, v in fields.items() if k in _MUTABLE_FIELDS})
    db.add(lead)
    await db.flush()
    return lead


async def get_lead(db: AsyncSession, lead_id: uuid.UUID) -> Lead | None:
    return await db.get(Lead, lead_id)


async def list_leads(
    db: AsyncSession,
    *,
    search: str | None = None,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Lead], int]:
    """List leads newest first with optional name search / status filter."""
    stmt = select(Lead)
    if search:
        stmt = stmt.where(Lead.name.ilike(contains_pattern(search), escape=LIKE_ESCAPE))
    if status:
        stmt = stmt.where(Lead.status == status)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    stmt = stmt.order_by(Lead.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total or 0


async def update_lead(db: AsyncSession, lead: Lead, **fields: Any) -> Lead:
    """Apply the given field values (None values included) to *lead*."""
    for key, value in fields.items():
        if key in _MUTABLE_FIELDS:
            setattr(lead, key, value)
    await db.flush()
    return lead


async def delete_lead(db: AsyncSession, lead: Lead) -> None:
    await db.delete(lead)
    await db.flush()


async def count_leads(db: AsyncSession, *, created_before: datetime | None = None) -> int:
    stmt = select(func.count(Lead.id))
    if created_before is not None:
        stmt = stmt.where(Lead.created_at < created_before)
    return await db.scalar(stmt) or 0


async def count_by_status(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(select(Lead.status, func.count(Lead.id)).group_by(Lead.status))
    return {status: count for status, count in result.all()}


async def list_with_birthday_data(db: AsyncSession) -> list[Lead]:
    """Leads with a date of birth (birthday automation candidates)."""
    result = await db.execute(select(Lead).where(Lead.date_of_birth.is_not(None)))
    return list(result.scalars().all())
