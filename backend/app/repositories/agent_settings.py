"""
Agent settings repository (the single `settings` row).

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import SETTINGS_ROW_ID
from app.db.models.agent_settings import AgentSettings


async def get_settings(db: AsyncSession) -> AgentSettings | None:
    """Fetch the agent settings row, if provisioned."""
    result = await db.execute(select(AgentSettings).order_by(AgentSettings.id).limit(1))
    return result.scalar_one_or_none()


async def get_or_create_settings(db: AsyncSession) -> AgentSettings:
    """Return the settings row, creating an empty default one when missing."""
    row = await get_settings(db)
    if row is None:
        row = AgentSettings(id=SETTINGS_ROW_ID)
        db.add(row)
        await db.flush()
    return row


async def upsert_agent(
    db: AsyncSession,
    *,
    email: str,
    password_hash: str,
    name: str | None = None,
) -> AgentSettings:
    """Create or overwrite the agent login + profile."""
    row = await get_or_create_settings(db)
    row.agent_email = email.lower().strip()
    row.password_hash = password_hash
    if name:
        row.agent_name = name.strip()
    await db.flush()
    return row


async def update_profile(
    db: AsyncSession,
    *,
    agent_name: str | None = None,
    agent_email: str | None = None,
) -> AgentSettings:
    row = await get_or_create_settings(db)
    if agent_name is not None:
        row.agent_name = agent_name.strip()
    if agent_email is not None:
        row.agent_email = agent_email.lower().strip()
    await db.flush()
    return row


async def update_password_hash(db: AsyncSession, password_hash: str) -> AgentSettings:
    row = await get_or_create_settings(db)
    row.password_hash = password_hash
    await db.flush()
    return row
