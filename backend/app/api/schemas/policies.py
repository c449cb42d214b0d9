"""Policy template and policy instance schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, field_validator, model_validator

from app.api.schemas.clients import TemplateSummary
from app.api.schemas.common import CamelModel, Pagination, RequestModel
from app.core.constants import InsuranceType, PolicyStatus
from app.core.validators import blank_to_none

MAX_DURATION_MONTHS = 120
MAX_AMOUNT = Decimal("99999999.99")


# ── Templates ─────────────────────────────

class PolicyTemplateCreate(RequestModel):
    policy_number: str = Field(..., min_length=1, max_length=100)
    policy_type: InsuranceType
    provider: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)

    @field_validator("description", mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)


class PolicyTemplateUpdate(RequestModel):
    policy_number: str | None = Field(None, min_length=1, max_length=100)
    policy_type: InsuranceType | None = None
    provider: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class PolicyTemplateOut(CamelModel):
    id: uuid.UUID
    policy_number: str
    policy_type: str
    provider: str
    description: str | None
    created_at: datetime
    updated_at: datetime
    instance_count: int = 0
    active_instance_count: int = 0


class TemplateListStats(CamelModel):
    total_templates: int
    total_instances: int
    active_instances: int
    providers: int


class PolicyTemplateList(CamelModel):
    templates: list[PolicyTemplateOut]
    pagination: Pagination
    stats: TemplateListStats


class TemplateFilters(CamelModel):
    providers: list[str]
    policy_types: list[str]


class TemplateDetailStats(CamelModel):
    total_clients: int
    active_instances: int
    expired_instances: int
    total_premium: float
    average_premium: float
    total_commission: float
    expiring_soon: int


class ClientSummary(CamelModel):
    id: uuid.UUID
    name: str = Field(validation_alias="display_name")
    email: str | None
    phone: str


class TemplateInstanceOut(CamelModel):
    id: uuid.UUID
    premium_amount: float
    commission_amount: float
    status: str
    start_date: date
    expiry_date: date
    created_at: datetime
    client: ClientSummary | None = None


class TemplateClients(CamelModel):
    template: PolicyTemplateOut
    instances: list[TemplateInstanceOut]
    stats: TemplateDetailStats


class TemplateDeleteResult(CamelModel):
    affected_clients: int


class ProviderStat(CamelModel):
    provider: str
    template_count: int
    instance_count: int


class PolicyTypeStat(CamelModel):
    policy_type: str
    template_count: int
    instance_count: int


class TemplateSystemStats(CamelModel):
    total_templates: int
    total_instances: int
    active_instances: int
    expired_instances: int
    templates_with_instances: int
    templates_without_instances: int
    top_providers: list[ProviderStat]
    policy_type_distribution: list[PolicyTypeStat]


# ── Instances ─────────────────────────────

class _Amounts(RequestModel):
    @model_validator(mode="after")
    def _commission_not_above_premium(self):
        premium = getattr(self, "premium_amount", None)
        commission = getattr(self, "commission_amount", None)
        if premium is not None and commission is not None and commission > premium:
            raise ValueError("Commission amount cannot exceed premium amount")
        return self


class PolicyInstanceCreate(_Amounts):
    policy_template_id: uuid.UUID
    premium_amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, decimal_places=2)
    commission_amount: Decimal = Field(Decimal("0"), ge=0, le=MAX_AMOUNT, decimal_places=2)
    start_date: date
    duration_months: int = Field(..., ge=1, le=MAX_DURATION_MONTHS)


class PolicyInstanceUpdate(_Amounts):
    premium_amount: Decimal | None = Field(None, gt=0, le=MAX_AMOUNT, decimal_places=2)
    commission_amount: Decimal | None = Field(None, ge=0, le=MAX_AMOUNT, decimal_places=2)
    start_date: date | None = None
    duration_months: int | None = Field(None, ge=1, le=MAX_DURATION_MONTHS)
    expiry_date: date | None = None
    status: PolicyStatus | None = None


class PolicyInstanceStatusUpdate(RequestModel):
    status: PolicyStatus


class PolicyInstanceOut(CamelModel):
    id: uuid.UUID
    policy_template_id: uuid.UUID
    client_id: uuid.UUID
    premium_amount: float
    commission_amount: float
    status: str
    start_date: date
    expiry_date: date
    created_at: datetime
    updated_at: datetime
    template: TemplateSummary | None = None
    client: ClientSummary | None = None


class ExpiryCalculationRequest(RequestModel):
    start_date: date
    duration_months: int = Field(..., ge=1, le=MAX_DURATION_MONTHS)


class ExpiryCalculation(CamelModel):
    start_date: date
    duration_months: int
    expiry_date: date


class AssociationCheckRequest(RequestModel):
    client_id: uuid.UUID
    policy_template_id: uuid.UUID
    exclude_instance_id: uuid.UUID | None = None


class AssociationCheck(CamelModel):
    is_unique: bool
    message: str
