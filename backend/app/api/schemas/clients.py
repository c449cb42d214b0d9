"""Client request/response schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import EmailStr, Field, field_validator, model_validator

from app.api.schemas.common import CamelModel, Pagination, RequestModel
from app.core.constants import ClientType
from app.core.validators import blank_to_none, normalize_whatsapp, validate_date_of_birth, validate_phone

_OPTIONAL_TEXT = (
    "company_name",
    "email",
    "whatsapp_number",
    "date_of_birth",
    "address",
    "city",
    "state",
    "additional_info",
)


class _ClientFields(RequestModel):
    @field_validator(*_OPTIONAL_TEXT, mode="before", check_fields=False)
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

    @field_validator("email", check_fields=False)
    @classmethod
    def _email_lower(cls, value):
        return value.lower() if value else value


class ClientCreate(_ClientFields):
    client_type: ClientType = ClientType.PERSONAL
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)
    company_name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    phone: str = Field(..., min_length=1, max_length=30)
    whatsapp_number: str | None = None
    date_of_birth: date | None = None
    address: str | None = Field(None, max_length=1000)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    additional_info: str | None = Field(None, max_length=5000)

    @model_validator(mode="after")
    def _name_present(self) -> "ClientCreate":
        if self.client_type == ClientType.CORPORATE:
            if not self.company_name:
                raise ValueError("Company name is required for corporate clients")
        elif not self.first_name or not self.last_name:
            raise ValueError("First name and last name are required")
        return self


class ClientUpdate(_ClientFields):
    client_type: ClientType | None = None
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    company_name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, min_length=1, max_length=30)
    whatsapp_number: str | None = None
    date_of_birth: date | None = None
    address: str | None = Field(None, max_length=1000)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    additional_info: str | None = Field(None, max_length=5000)


class TemplateSummary(CamelModel):
    id: uuid.UUID
    policy_number: str
    policy_type: str
    provider: str


class ClientPolicyOut(CamelModel):
    id: uuid.UUID
    premium_amount: float
    commission_amount: float
    status: str
    start_date: date
    expiry_date: date
    created_at: datetime
    template: TemplateSummary | None = None


class ClientOut(CamelModel):
    id: uuid.UUID
    client_type: str
    name: str = Field(validation_alias="display_name")
    first_name: str
    last_name: str
    company_name: str | None
    email: str | None
    phone: str
    whatsapp_number: str | None
    date_of_birth: date | None
    address: str | None
    city: str | None
    state: str | None
    additional_info: str | None
    created_at: datetime
    updated_at: datetime


class ClientListItem(ClientOut):
    policy_count: int = 0


class ClientDetail(ClientOut):
    policy_instances: list[ClientPolicyOut] = []


class ClientList(CamelModel):
    clients: list[ClientListItem]
    pagination: Pagination


class AuditLogOut(CamelModel):
    id: uuid.UUID
    client_id: uuid.UUID
    action: str
    field_name: str | None
    old_value: str | None
    new_value: str | None
    changed_at: datetime


class AuditLogList(CamelModel):
    logs: list[AuditLogOut]
    pagination: Pagination


class AuditStats(CamelModel):
    total_changes: int
    recent_changes: int
    changes_by_action: dict[str, int]
    changes_by_field: dict[str, int]
    last_modified: datetime | None
