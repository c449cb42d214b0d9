"""Authentication endpoints for the single agent account."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db
from app.api.schemas.auth import AgentProfile, LoginRequest, TokenResponse, VerifyResponse
from app.api.schemas.common import MessageResponse
from app.core.config import settings
from app.core.rate_limit import rate_limiters
from app.db.models.agent_settings import AgentSettings
from app.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["Auth"])


def _profile(agent: AgentSettings) -> AgentProfile:
    return AgentProfile(id=agent.id, email=agent.agent_email, name=agent.agent_name)


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(rate_limiters.auth)])
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Authenticate the agent and issue an access token."""
    agent, token = await auth_service.authenticate(db, email=payload.email, password=payload.password)
    return TokenResponse(
        token=token,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=_profile(agent),
    )


@router.get("/verify", response_model=VerifyResponse)
async def verify(agent: AgentSettings = Depends(get_current_agent)) -> VerifyResponse:
    """Confirm the bearer token is still valid."""
    return VerifyResponse(user=_profile(agent))


@router.post("/logout", response_model=MessageResponse)
async def logout() -> MessageResponse:
    # Tokens are stateless; the client simply discards it
    return MessageResponse(message="Logout successful")
