"""Email / WhatsApp automation schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import EmailStr, Field, field_validator

from app.api.schemas.common import CamelModel, Pagination, RequestModel
from app.core.validators import normalize_whatsapp


class MessageLogOut(CamelModel):
    id: uuid.UUID
    channel: str
    message_type: str
    recipient: str
    recipient_name: str
    subject: str | None
    status: str
    provider_message_id: str | None
    error_message: str | None
    client_id: uuid.UUID | None
    lead_id: uuid.UUID | None
    policy_instance_id: uuid.UUID | None
    created_at: datetime
    sent_at: datetime | None


class MessageLogList(CamelModel):
    logs: list[MessageLogOut]
    pagination: Pagination


class DeliveryStats(CamelModel):
    total_sent: int
    total_failed: int
    total_pending: int
    birthday_wishes: int
    policy_renewals: int
    success_rate: float
    period_days: int


class UpcomingBirthday(CamelModel):
    id: uuid.UUID
    kind: str  # client | lead
    name: str
    email: str | None
    whatsapp_number: str | None
    date_of_birth: date
    next_birthday: date
    days_until: int
    age: int
    has_email: bool
    has_whatsapp: bool = Field(alias="hasWhatsApp")


class UpcomingRenewal(CamelModel):
    policy_instance_id: uuid.UUID
    policy_number: str
    policy_type: str
    provider: str
    client_id: uuid.UUID
    client_name: str
    email: str | None
    whatsapp_number: str | None
    expiry_date: date
    days_until_expiry: int
    premium_amount: float


class ChannelRunSummary(CamelModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = []


class AutomationRunResult(CamelModel):
    birthday_wishes: dict[str, ChannelRunSummary]
    policy_renewals: dict[str, ChannelRunSummary]
    ran_at: datetime


class AutomationJobOut(CamelModel):
    name: str
    channel: str
    message_type: str
    trigger: str
    is_active: bool
    days_before: int | None
    last_run_at: datetime | None
    next_run_at: datetime | None


class AutomationDashboard(CamelModel):
    stats: DeliveryStats
    upcoming_birthdays: list[UpcomingBirthday]
    upcoming_renewals: list[UpcomingRenewal]
    recent_logs: list[MessageLogOut]
    jobs: list[AutomationJobOut]
    configured: bool


class RenewalRunRequest(RequestModel):
    days_before: int = Field(30, ge=1, le=365)


class CustomEmailRequest(RequestModel):
    to: EmailStr
    recipient_name: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=255)
    html: str = Field(..., min_length=1)
    text: str | None = None
    client_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None


class CustomMessageRequest(RequestModel):
    recipient_phone: str
    recipient_name: str = Field(..., min_length=1, max_length=200)
    template_name: str = Field(..., min_length=1, max_length=100)
    components: dict[str, Any] = Field(default_factory=dict)
    client_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None

    @field_validator("recipient_phone")
    @classmethod
    def _phone(cls, value):
        digits = normalize_whatsapp(value)
        if digits is None:
            raise ValueError("Recipient phone is required")
        return digits


class CustomSendResult(CamelModel):
    message_id: str | None
    log_id: uuid.UUID
