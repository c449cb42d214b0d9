"""Lead request/response schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import EmailStr, Field, field_validator

from app.api.schemas.common import CamelModel, Pagination, RequestModel
from app.core.constants import InsuranceType, LeadPriority, LeadStatus
from app.core.validators import blank_to_none, normalize_whatsapp, validate_date_of_birth, validate_phone


class _LeadFields(RequestModel):
    @field_validator("email", "notes", "whatsapp_number", "date_of_birth", mode="before", check_fields=False)
    @classmethod
    def _blank_optional(cls, value):
        return blank_to_none(value)

    @field_validator("phone", check_fields=False)
    @classmethod
    def _phone(cls, value):
        return validate_phone(value) if value is not None else value

    @field_validator("whatsapp_number", check_fields=False)
    @classmethod
    def _whatsapp(cls, value):
        return normalize_whatsapp(value)

    @field_validator("date_of_birth", check_fields=False)
    @classmethod
    def _dob(cls, value):
        return validate_date_of_birth(value)


class LeadCreate(_LeadFields):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str = Field(..., min_length=1, max_length=30)
    whatsapp_number: str | None = None
    date_of_birth: date | None = None
    insurance_interest: InsuranceType
    status: LeadStatus = LeadStatus.NEW
    priority: LeadPriority = LeadPriority.WARM
    notes: str | None = Field(None, max_length=5000)


class LeadUpdate(_LeadFields):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, min_length=1, max_length=30)
    whatsapp_number: str | None = None
    date_of_birth: date | None = None
    insurance_interest: InsuranceType | None = None
    status: LeadStatus | None = None
    priority: LeadPriority | None = None
    notes: str | None = Field(None, max_length=5000)


class LeadOut(CamelModel):
    id: uuid.UUID
    name: str
    email: str | None
    phone: str
    whatsapp_number: str | None
    date_of_birth: date | None
    insurance_interest: str
    status: str
    priority: str
    notes: str | None
    created_at: datetime
    updated_at: datetime


class LeadList(CamelModel):
    leads: list[LeadOut]
    pagination: Pagination


class LeadConversion(CamelModel):
    lead: LeadOut
    client_id: uuid.UUID
