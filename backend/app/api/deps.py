"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import Any, AsyncGenerator

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas.common import PageQuery
from app.core.security import decode_access_token
from app.db.models.agent_settings import AgentSettings
from app.db.session import get_db as _get_db
from app.repositories import agent_settings as settings_repository

security_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session."""
    async for session in _get_db():
        yield session


async def get_current_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
) -> dict[str, Any]:
    """Extract and validate JWT payload from bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_current_agent(
    db: AsyncSession = Depends(get_db),
    token_payload: dict[str, Any] = Depends(get_current_token_payload),
) -> AgentSettings:
    """Resolve the agent from the JWT subject (the settings row id)."""
    agent = await settings_repository.get_settings(db)
    if agent is None or str(agent.id) != str(token_payload.get("sub")) or not agent.password_hash:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return agent


def page_query(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
) -> PageQuery:
    """``?page=&limit=`` parsed through PageQuery bounds."""
    return PageQuery(page=page, limit=limit)
