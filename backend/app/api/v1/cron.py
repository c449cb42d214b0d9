"""Platform cron trigger, authenticated with the shared CRON_SECRET."""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.api.schemas.automation import AutomationRunResult
from app.api.schemas.common import ApiResponse
from app.core.config import settings
from app.core.errors import UnauthorizedError
from app.core.logging import get_logger
from app.messaging import MessageProvider, get_email_provider, get_whatsapp_provider
from app.services import automation as automation_service

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    expected = settings.CRON_SECRET
    supplied = authorization[7:] if authorization and authorization.startswith("Bearer ") else ""
    if not expected or not hmac.compare_digest(supplied, expected):
        logger.warning("Rejected cron trigger")
        raise UnauthorizedError("Unauthorized")


@router.api_route(
    "/automation",
    methods=["GET", "POST"],
    response_model=ApiResponse[AutomationRunResult],
    dependencies=[Depends(verify_cron_secret)],
)
async def run_automation(
    email: MessageProvider = Depends(get_email_provider),
    whatsapp: MessageProvider = Depends(get_whatsapp_provider),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AutomationRunResult]:
    result = await automation_service.run_automated_tasks(db, [email, whatsapp])
    return ApiResponse(data=AutomationRunResult(**result), message="Automation completed")
