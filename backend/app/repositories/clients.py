"""
Client repository containing all data-access operations for the clients table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.db.models.client import Client
from app.repositories import LIKE_ESCAPE, contains_pattern
from app.db.models.policy_instance import PolicyInstance

CLIENT_FIELDS = (
    "client_type",
    "first_name",
    "last_name",
    "company_name",
    "email",
    "phone",
    "whatsapp_number",
    "date_of_birth",
    "address",
    "city",
    "state",
    "additional_info",
)


async def create_client(db: AsyncSession, **fields: Any) -> Client:
    client = Client(**{k: v for k, v in fields.items() if k in CLIENT_FIELDS})
    db.add(client)
    await db.flush()
    return client


async def get_client(
    db: AsyncSession,
    client_id: uuid.UUID,
    *,
    with_policies: bool = False,
) -> Client | None:
    """Fetch a client, optionally eager-loading instances and their templates."""
    stmt = select(Client).where(Client.id == client_id)
    if with_policies:
        stmt = stmt.options(
            selectinload(Client.policy_instances).selectinload(PolicyInstance.template)
        )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_client_by_email(db: AsyncSession, email: str) -> Client | None:
    stmt = select(Client).where(func.lower(Client.email) == email.lower().strip())
    result = await db.execute(stmt)
    return result.scalars().first()


async def list_clients(
    db: AsyncSession,
    *,
    search: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[tuple[Client, int]], int]:
    """List clients newest first, each paired with its policy instance count."""
    policy_count = (
        select(func.count(PolicyInstance.id))
        .where(PolicyInstance.client_id == Client.id)
        .correlate(Client)
        .scalar_subquery()
    )
    stmt = select(Client, policy_count.label("policy_count"))
    if search:
        pattern = contains_pattern(search)
        full_name = Client.first_name + " " + Client.last_name
        stmt = stmt.where(
            or_(
                Client.first_name.ilike(pattern, escape=LIKE_ESCAPE),
                Client.last_name.ilike(pattern, escape=LIKE_ESCAPE),
                full_name.ilike(pattern, escape=LIKE_ESCAPE),
                Client.company_name.ilike(pattern, escape=LIKE_ESCAPE),
                Client.email.ilike(pattern, escape=LIKE_ESCAPE),
                Client.phone.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    stmt = stmt.order_by(Client.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return [(row[0], row[1] or 0) for row in result.all()], total or 0


async def update_client(db: AsyncSession, client: Client, **fields: Any) -> Client:
    for key, value in fields.items():
        if key in CLIENT_FIELDS:
            setattr(client, key, value)
    await db.flush()
    return client


async def delete_client(db: AsyncSession, client: Client) -> int:
    """Delete a client and its policy instances. Returns instances removed."""
    removed = await db.execute(
        delete(PolicyInstance).where(PolicyInstance.client_id == client.id)
    )
    await db.delete(client)
    await db.flush()
    return removed.rowcount or 0


async def count_clients(db: AsyncSession, *, created_before: datetime | None = None) -> int:
    stmt = select(func.count(Client.id))
    if created_before is not None:
        stmt = stmt.where(Client.created_at < created_before)
    return await db.scalar(stmt) or 0


async def list_with_birthday_data(db: AsyncSession) -> list[Client]:
    result = await db.execute(select(Client).where(Client.date_of_birth.is_not(None)))
    return list(result.scalars().all())


async def existing_ids(db: AsyncSession, client_ids: set[uuid.UUID]) -> set[uuid.UUID]:
    """Return the subset of *client_ids* that exist."""
    if not client_ids:
        return set()
    result = await db.execute(select(Client.id).where(Client.id.in_(client_ids)))
    return set(result.scalars().all())
