"""
Policy instance repository.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.constants import PolicyStatus
from app.db.models.client import Client
from app.db.models.policy_instance import PolicyInstance
from app.db.models.policy_template import PolicyTemplate

INSTANCE_FIELDS = (
    "policy_template_id",
    "client_id",
    "premium_amount",
    "commission_amount",
    "status",
    "start_date",
    "expiry_date",
    "created_at",
    "updated_at",
)


def _with_relations(stmt):
    return stmt.options(
        selectinload(PolicyInstance.template),
        selectinload(PolicyInstance.client),
    )


async def create_instance(db: AsyncSession, **fields: Any) -> PolicyInstance:
    instance = PolicyInstance(**{k: v for k, v in fields.items() if k in INSTANCE_FIELDS})
    db.add(instance)
    await db.flush()
    return instance


async def get_instance(db: AsyncSession, instance_id: uuid.UUID) -> PolicyInstance | None:
    """Fetch an instance with its template and client loaded."""
    stmt = _with_relations(select(PolicyInstance).where(PolicyInstance.id == instance_id))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_for_client_and_template(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    template_id: uuid.UUID,
) -> PolicyInstance | None:
    stmt = select(PolicyInstance).where(
        PolicyInstance.client_id == client_id,
        PolicyInstance.policy_template_id == template_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_for_client(db: AsyncSession, client_id: uuid.UUID) -> list[PolicyInstance]:
    stmt = _with_relations(
        select(PolicyInstance)
        .where(PolicyInstance.client_id == client_id)
        .order_by(PolicyInstance.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_for_template(db: AsyncSession, template_id: uuid.UUID) -> list[PolicyInstance]:
    stmt = _with_relations(
        select(PolicyInstance)
        .where(PolicyInstance.policy_template_id == template_id)
        .order_by(PolicyInstance.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_all(db: AsyncSession) -> list[PolicyInstance]:
    result = await db.execute(_with_relations(select(PolicyInstance)))
    return list(result.scalars().all())


async def update_instance(db: AsyncSession, instance: PolicyInstance, **fields: Any) -> PolicyInstance:
    for key, value in fields.items():
        if key in INSTANCE_FIELDS:
            setattr(instance, key, value)
    await db.flush()
    return instance


async def delete_instance(db: AsyncSession, instance: PolicyInstance) -> None:
    await db.delete(instance)
    await db.flush()


async def delete_all_instances(db: AsyncSession) -> int:
    result = await db.execute(delete(PolicyInstance))
    await db.flush()
    return result.rowcount or 0


async def count_active(db: AsyncSession, *, on: date) -> int:
    """Active instances in force on *on*: started, and expiring strictly after it."""
    stmt = select(func.count(PolicyInstance.id)).where(
        PolicyInstance.status == PolicyStatus.ACTIVE.value,
        PolicyInstance.start_date <= on,
        PolicyInstance.expiry_date > on,
    )
    return await db.scalar(stmt) or 0


async def count_created_between(db: AsyncSession, start: datetime, end: datetime) -> int:
    stmt = select(func.count(PolicyInstance.id)).where(
        PolicyInstance.created_at >= start,
        PolicyInstance.created_at < end,
    )
    return await db.scalar(stmt) or 0


async def sum_commission_created_between(
    db: AsyncSession,
    start: datetime,
    end: datetime,
) -> Decimal:
    stmt = select(func.coalesce(func.sum(PolicyInstance.commission_amount), 0)).where(
        PolicyInstance.created_at >= start,
        PolicyInstance.created_at < end,
    )
    value = await db.scalar(stmt)
    return Decimal(str(value or 0))


async def list_expiring_between(
    db: AsyncSession,
    start: date,
    end: date,
    *,
    status: str | None = PolicyStatus.ACTIVE.value,
) -> list[PolicyInstance]:
    """Instances whose expiry date falls within [start, end], soonest first."""
    stmt = select(PolicyInstance).where(
        PolicyInstance.expiry_date >= start,
        PolicyInstance.expiry_date <= end,
    )
    if status is not None:
        stmt = stmt.where(PolicyInstance.status == status)
    stmt = _with_relations(stmt.order_by(PolicyInstance.expiry_date.asc()))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_expiring_between(db: AsyncSession, start: date, end: date) -> int:
    stmt = select(func.count(PolicyInstance.id)).where(
        PolicyInstance.status == PolicyStatus.ACTIVE.value,
        PolicyInstance.expiry_date >= start,
        PolicyInstance.expiry_date <= end,
    )
    return await db.scalar(stmt) or 0


async def count_expired_between(db: AsyncSession, start: date, end: date, *, today: date) -> int:
    stmt = select(func.count(PolicyInstance.id)).where(
        PolicyInstance.expiry_date >= start,
        PolicyInstance.expiry_date <= end,
        or_(
            PolicyInstance.status == PolicyStatus.EXPIRED.value,
            PolicyInstance.expiry_date < today,
        ),
    )
    return await db.scalar(stmt) or 0


async def mark_past_expiry_as_expired(db: AsyncSession, *, today: date) -> int:
    """Flip Active instances whose expiry date has passed. Returns rows updated."""
    stmt = (
        update(PolicyInstance)
        .where(
            PolicyInstance.status == PolicyStatus.ACTIVE.value,
            PolicyInstance.expiry_date < today,
        )
        .values(status=PolicyStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount or 0


async def template_detail_stats(db: AsyncSession, template_id: uuid.UUID, *, today: date, soon: date) -> dict[str, Any]:
    """Aggregate money/status counters for one template's instances."""
    base = PolicyInstance.policy_template_id == template_id
    row = (
        await db.execute(
            select(
                func.count(func.distinct(PolicyInstance.client_id)),
                func.count(PolicyInstance.id),
                func.coalesce(func.sum(PolicyInstance.premium_amount), 0),
                func.coalesce(func.sum(PolicyInstance.commission_amount), 0),
            ).where(base)
        )
    ).one()
    active = await db.scalar(
        select(func.count(PolicyInstance.id)).where(
            base,
            PolicyInstance.status == PolicyStatus.ACTIVE.value,
            PolicyInstance.expiry_date >= today,
        )
    )
    expiring = await db.scalar(
        select(func.count(PolicyInstance.id)).where(
            base,
            PolicyInstance.status == PolicyStatus.ACTIVE.value,
            PolicyInstance.expiry_date >= today,
            PolicyInstance.expiry_date <= soon,
        )
    )
    total_clients, total_instances, total_premium, total_commission = row
    total_premium = Decimal(str(total_premium))
    total_commission = Decimal(str(total_commission))
    return {
        "total_clients": int(total_clients),
        "active_instances": int(active or 0),
        "expired_instances": int(total_instances) - int(active or 0),
        "total_premium": total_premium,
        "average_premium": (total_premium / total_instances) if total_instances else Decimal("0"),
        "total_commission": total_commission,
        "expiring_soon": int(expiring or 0),
    }


# ── Integrity queries ──────────────────────

async def find_orphaned(db: AsyncSession) -> list[PolicyInstance]:
    """Instances whose template or client row is missing."""
    stmt = (
        select(PolicyInstance)
        .outerjoin(PolicyTemplate, PolicyTemplate.id == PolicyInstance.policy_template_id)
        .outerjoin(Client, Client.id == PolicyInstance.client_id)
        .where(or_(PolicyTemplate.id.is_(None), Client.id.is_(None)))
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def find_duplicate_pairs(db: AsyncSession) -> list[tuple[uuid.UUID, uuid.UUID, int]]:
    stmt = (
        select(PolicyInstance.policy_template_id, PolicyInstance.client_id, func.count(PolicyInstance.id))
        .group_by(PolicyInstance.policy_template_id, PolicyInstance.client_id)
        .having(func.count(PolicyInstance.id) > 1)
    )
    result = await db.execute(stmt)
    return [(t, c, int(n)) for t, c, n in result.all()]


async def find_bad_dates(db: AsyncSession) -> list[PolicyInstance]:
    result = await db.execute(
        select(PolicyInstance).where(PolicyInstance.expiry_date <= PolicyInstance.start_date)
    )
    return list(result.scalars().all())


async def find_bad_amounts(db: AsyncSession) -> tuple[list[PolicyInstance], list[PolicyInstance]]:
    """(hard failures, commission > premium warnings)."""
    invalid = await db.execute(
        select(PolicyInstance).where(
            or_(PolicyInstance.premium_amount <= 0, PolicyInstance.commission_amount < 0)
        )
    )
    over = await db.execute(
        select(PolicyInstance).where(
            and_(
                PolicyInstance.premium_amount > 0,
                PolicyInstance.commission_amount > PolicyInstance.premium_amount,
            )
        )
    )
    return list(invalid.scalars().all()), list(over.scalars().all())


async def find_active_past_expiry(db: AsyncSession, *, today: date) -> list[PolicyInstance]:
    result = await db.execute(
        select(PolicyInstance).where(
            PolicyInstance.status == PolicyStatus.ACTIVE.value,
            PolicyInstance.expiry_date < today,
        )
    )
    return list(result.scalars().all())


async def find_unknown_status(db: AsyncSession) -> list[PolicyInstance]:
    result = await db.execute(
        select(PolicyInstance).where(PolicyInstance.status.not_in([s.value for s in PolicyStatus]))
    )
    return list(result.scalars().all())


async def count_instances(db: AsyncSession) -> int:
    return await db.scalar(select(func.count(PolicyInstance.id))) or 0


async def count_inconsistent(db: AsyncSession, *, today: date) -> int:
    """Instances with a negative amount or a start date in the future."""
    stmt = select(func.count(PolicyInstance.id)).where(
        or_(
            PolicyInstance.premium_amount < 0,
            PolicyInstance.commission_amount < 0,
            PolicyInstance.start_date > today,
        )
    )
    return await db.scalar(stmt) or 0
