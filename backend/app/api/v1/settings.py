"""Agent profile and password settings."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db
from app.api.schemas.auth import PasswordChange, SettingsOut, SettingsUpdate
from app.api.schemas.common import ApiResponse, MessageResponse
from app.core.rate_limit import rate_limiters
from app.services import auth as auth_service

router = APIRouter(
    prefix="/settings",
    tags=["Settings"],
    dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
)


@router.get("", response_model=ApiResponse[SettingsOut])
async def get_settings(db: AsyncSession = Depends(get_db)) -> ApiResponse[SettingsOut]:
    row = await auth_service.get_settings(db)
    return ApiResponse(data=SettingsOut.model_validate(row))


@router.put(
    "",
    response_model=ApiResponse[SettingsOut],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def update_settings(
    payload: SettingsUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[SettingsOut]:
    row = await auth_service.update_settings(
        db,
        agent_name=payload.agent_name,
        agent_email=str(payload.agent_email) if payload.agent_email else None,
    )
    return ApiResponse(data=SettingsOut.model_validate(row), message="Settings updated successfully")


@router.put(
    "/password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def change_password(payload: PasswordChange, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await auth_service.change_password(
        db,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return MessageResponse(message="Password updated successfully")
