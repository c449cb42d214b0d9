"""Single-agent authentication and settings management."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import ActivityAction
from app.core.errors import UnauthorizedError, ValidationError
from app.core.logging import get_logger
from app.core.security import create_access_token, hash_password, verify_password
from app.db.models.agent_settings import AgentSettings
from app.repositories import agent_settings as settings_repository
from app.services.activity import log_activity

logger = get_logger(__name__)


async def authenticate(db: AsyncSession, *, email: str, password: str) -> tuple[AgentSettings, str]:
    """Check the agent credentials; returns the settings row and a fresh JWT."""
    agent = await settings_repository.get_settings(db)
    if (
        agent is None
        or not agent.password_hash
        or agent.agent_email.lower() != email.lower().strip()
        or not verify_password(password, agent.password_hash)
    ):
        logger.info("Login rejected", email=email)
        raise UnauthorizedError("Invalid credentials")

    token = create_access_token({"sub": str(agent.id), "email": agent.agent_email})
    logger.info("Agent logged in", agent_id=agent.id)
    return agent, token


async def provision_agent(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str | None = None,
) -> AgentSettings:
    """Create or reset the agent account (CLI / seed)."""
    if len(password) < 8:
        raise ValidationError(
            "Password must be at least 8 characters",
            errors=[{"field": "password", "message": "Password must be at least 8 characters"}],
        )
    return await settings_repository.upsert_agent(
        db, email=email, password_hash=hash_password(password), name=name
    )


async def get_settings(db: AsyncSession) -> AgentSettings:
    return await settings_repository.get_or_create_settings(db)


async def update_settings(
    db: AsyncSession,
    *,
    agent_name: str | None = None,
    agent_email: str | None = None,
) -> AgentSettings:
    row = await settings_repository.update_profile(db, agent_name=agent_name, agent_email=agent_email)
    await log_activity(db, ActivityAction.SETTINGS_UPDATED, "Agent settings updated")
    return row


async def change_password(db: AsyncSession, *, current_password: str, new_password: str) -> None:
    row = await settings_repository.get_or_create_settings(db)
    if not verify_password(current_password, row.password_hash):
        raise ValidationError(
            "Current password is incorrect",
            errors=[{"field": "currentPassword", "message": "Current password is incorrect"}],
        )
    await settings_repository.update_password_hash(db, hash_password(new_password))
    await log_activity(db, ActivityAction.PASSWORD_CHANGED, "Agent password changed")
    logger.info("Agent password changed")
