"""Dashboard statistics schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from app.api.schemas.common import CamelModel


class DashboardStats(CamelModel):
    total_leads: int
    total_clients: int
    active_policies: int
    commission_this_month: float
    leads_change: int
    clients_change: int
    policies_change: int
    commission_change: int
    expiring_this_week: int
    expiring_this_month: int


class LeadChartPoint(CamelModel):
    status: str
    count: int


class ActivityOut(CamelModel):
    id: uuid.UUID
    action: str
    description: str
    created_at: datetime


class ExpiringPolicy(CamelModel):
    id: uuid.UUID
    policy_number: str
    policy_type: str
    provider: str
    client_id: uuid.UUID
    client_name: str
    expiry_date: date
    days_until_expiry: int
    level: str
    premium_amount: float


class ExpirySummary(CamelModel):
    expiring_this_week: int
    expiring_this_month: int
    expiring_next_month: int
    expired_last_month: int


class ExpiryOverview(CamelModel):
    critical: list[ExpiringPolicy]
    warning: list[ExpiringPolicy]
    info: list[ExpiringPolicy]
    counts: dict[str, int]
    summary: ExpirySummary
