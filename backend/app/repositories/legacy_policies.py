"""
Legacy `policies` table and its JSON backups.

Used only by the template/instance migration and its rollback.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.legacy_policy import LegacyPolicy
from app.db.models.policy_backup import PolicyBackup

LEGACY_FIELDS = (
    "id",
    "client_id",
    "policy_number",
    "policy_type",
    "provider",
    "premium_amount",
    "commission_amount",
    "status",
    "start_date",
    "expiry_date",
    "created_at",
    "updated_at",
)


async def create_legacy_policy(db: AsyncSession, **fields: Any) -> LegacyPolicy:
    policy = LegacyPolicy(**{k: v for k, v in fields.items() if k in LEGACY_FIELDS})
    db.add(policy)
    await db.flush()
    return policy


async def count_policies(db: AsyncSession) -> int:
    return await db.scalar(select(func.count(LegacyPolicy.id))) or 0


async def list_policies(db: AsyncSession, *, offset: int = 0, limit: int | None = None) -> list[LegacyPolicy]:
    """Legacy rows in creation order (stable batching)."""
    stmt = select(LegacyPolicy).order_by(LegacyPolicy.created_at.asc(), LegacyPolicy.id).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def delete_all_policies(db: AsyncSession) -> int:
    result = await db.execute(delete(LegacyPolicy))
    await db.flush()
    return result.rowcount or 0


async def client_ids(db: AsyncSession) -> set[uuid.UUID]:
    result = await db.execute(select(LegacyPolicy.client_id).where(LegacyPolicy.client_id.is_not(None)))
    return set(result.scalars().all())


# ── Backups ───────────────────────────────

async def create_backup(db: AsyncSession, *, backup_id: str, rows: list[dict]) -> PolicyBackup:
    backup = PolicyBackup(id=backup_id, row_count=len(rows), payload=rows)
    db.add(backup)
    await db.flush()
    return backup


async def get_backup(db: AsyncSession, backup_id: str) -> PolicyBackup | None:
    return await db.get(PolicyBackup, backup_id)


async def list_backups(db: AsyncSession) -> list[PolicyBackup]:
    result = await db.execute(select(PolicyBackup).order_by(PolicyBackup.created_at.desc()))
    return list(result.scalars().all())
