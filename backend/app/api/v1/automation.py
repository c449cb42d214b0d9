"""
Email and WhatsApp automation endpoints.

Both channels expose the same routes; ``build_router`` wires one router
per channel around its provider dependency.
"""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db, page_query
from app.api.schemas.automation import (
    AutomationDashboard,
    AutomationJobOut,
    AutomationRunResult,
    ChannelRunSummary,
    CustomEmailRequest,
    CustomMessageRequest,
    CustomSendResult,
    DeliveryStats,
    MessageLogList,
    MessageLogOut,
    RenewalRunRequest,
    UpcomingBirthday,
    UpcomingRenewal,
)
from app.api.schemas.common import ApiResponse, PageQuery, Pagination
from app.core.constants import MessageStatus, MessageType
from app.core.errors import AppError
from app.core.rate_limit import rate_limiters
from app.messaging import (
    MessageProvider,
    MSG91WhatsAppProvider,
    SMTPEmailProvider,
    get_email_provider,
    get_whatsapp_provider,
)
from app.services import automation as automation_service


def build_router(prefix: str, tag: str, get_provider: Callable[[], MessageProvider]) -> APIRouter:
    router = APIRouter(
        prefix=prefix,
        tags=[tag],
        dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
    )

    @router.get("/dashboard", response_model=ApiResponse[AutomationDashboard])
    async def get_dashboard(
        provider: MessageProvider = Depends(get_provider),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[AutomationDashboard]:
        overview = await automation_service.get_channel_dashboard(db, provider)
        overview["recent_logs"] = [MessageLogOut.model_validate(log) for log in overview["recent_logs"]]
        overview["jobs"] = [AutomationJobOut.model_validate(job) for job in overview["jobs"]]
        return ApiResponse(data=AutomationDashboard(**overview))

    @router.get("/logs", response_model=ApiResponse[MessageLogList])
    async def list_logs(
        page: PageQuery = Depends(page_query),
        days: int = Query(30, ge=1, le=365),
        status: MessageStatus | None = Query(None),
        message_type: MessageType | None = Query(None, alias="messageType"),
        provider: MessageProvider = Depends(get_provider),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[MessageLogList]:
        logs, total = await automation_service.get_message_logs(
            db,
            provider.channel,
            days=days,
            status=status.value if status else None,
            message_type=message_type.value if message_type else None,
            offset=page.offset,
            limit=page.limit,
        )
        return ApiResponse(
            data=MessageLogList(
                logs=[MessageLogOut.model_validate(log) for log in logs],
                pagination=Pagination.build(page=page.page, limit=page.limit, total=total),
            )
        )

    @router.get("/stats", response_model=ApiResponse[DeliveryStats])
    async def get_stats(
        days: int = Query(30, ge=1, le=365),
        provider: MessageProvider = Depends(get_provider),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[DeliveryStats]:
        return ApiResponse(data=DeliveryStats(**await automation_service.get_delivery_stats(db, provider.channel, days)))

    @router.get("/upcoming-birthdays", response_model=ApiResponse[list[UpcomingBirthday]])
    async def upcoming_birthdays(
        days: int = Query(30, ge=1, le=366),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[list[UpcomingBirthday]]:
        rows = await automation_service.get_upcoming_birthdays(db, days=days)
        return ApiResponse(data=[UpcomingBirthday(**row) for row in rows])

    @router.get("/upcoming-renewals", response_model=ApiResponse[list[UpcomingRenewal]])
    async def upcoming_renewals(
        days: int = Query(60, ge=1, le=365),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[list[UpcomingRenewal]]:
        rows = await automation_service.get_upcoming_renewals(db, days=days)
        return ApiResponse(data=[UpcomingRenewal(**row) for row in rows])

    @router.post(
        "/run",
        response_model=ApiResponse[AutomationRunResult],
        dependencies=[Depends(rate_limiters.automation)],
    )
    async def run_automation(
        provider: MessageProvider = Depends(get_provider),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[AutomationRunResult]:
        """Run birthday wishes and renewal reminders for this channel now."""
        result = await automation_service.run_automated_tasks(db, [provider])
        return ApiResponse(data=AutomationRunResult(**result), message="Automation completed")

    @router.post(
        "/send-birthday-wishes",
        response_model=ApiResponse[ChannelRunSummary],
        dependencies=[Depends(rate_limiters.automation)],
    )
    async def send_birthday_wishes(
        provider: MessageProvider = Depends(get_provider),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[ChannelRunSummary]:
        summaries = await automation_service.process_birthday_wishes(db, [provider])
        summary = summaries[provider.channel]
        return ApiResponse(
            data=ChannelRunSummary(**summary.to_dict()),
            message=f"Birthday wishes processed: {summary.sent} sent, {summary.failed} failed",
        )

    @router.post(
        "/send-renewal-reminders",
        response_model=ApiResponse[ChannelRunSummary],
        dependencies=[Depends(rate_limiters.automation)],
    )
    async def send_renewal_reminders(
        payload: RenewalRunRequest | None = None,
        provider: MessageProvider = Depends(get_provider),
        db: AsyncSession = Depends(get_db),
    ) -> ApiResponse[ChannelRunSummary]:
        days_before = payload.days_before if payload else None
        summaries = await automation_service.process_policy_renewals(db, [provider], days_before=days_before)
        summary = summaries[provider.channel]
        return ApiResponse(
            data=ChannelRunSummary(**summary.to_dict()),
            message=f"Renewal reminders processed: {summary.sent} sent, {summary.failed} failed",
        )

    return router


email_router = build_router("/email-automation", "Email Automation", get_email_provider)
whatsapp_router = build_router("/whatsapp-automation", "WhatsApp Automation", get_whatsapp_provider)


@email_router.post(
    "/send-custom-email",
    response_model=ApiResponse[CustomSendResult],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def send_custom_email(
    payload: CustomEmailRequest,
    provider: SMTPEmailProvider = Depends(get_email_provider),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CustomSendResult]:
    log = await automation_service.send_custom_email(
        db,
        provider,
        to=payload.to,
        recipient_name=payload.recipient_name,
        subject=payload.subject,
        html=payload.html,
        text=payload.text,
        client_id=payload.client_id,
        lead_id=payload.lead_id,
    )
    if log.status != MessageStatus.SENT.value:
        # the error response rolls the session back; keep the FAILED log row
        await db.commit()
        raise AppError(log.error_message or "Failed to send email", status_code=502)
    return ApiResponse(
        data=CustomSendResult(message_id=log.provider_message_id, log_id=log.id),
        message="Email sent successfully",
    )


@whatsapp_router.post(
    "/send-custom-message",
    response_model=ApiResponse[CustomSendResult],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def send_custom_message(
    payload: CustomMessageRequest,
    provider: MSG91WhatsAppProvider = Depends(get_whatsapp_provider),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CustomSendResult]:
    log = await automation_service.send_custom_whatsapp(
        db,
        provider,
        to=payload.recipient_phone,
        recipient_name=payload.recipient_name,
        template_name=payload.template_name,
        components=payload.components,
        client_id=payload.client_id,
        lead_id=payload.lead_id,
    )
    if log.status != MessageStatus.SENT.value:
        # the error response rolls the session back; keep the FAILED log row
        await db.commit()
        raise AppError(log.error_message or "Failed to send WhatsApp message", status_code=502)
    return ApiResponse(
        data=CustomSendResult(message_id=log.provider_message_id, log_id=log.id),
        message="WhatsApp message sent successfully",
    )
