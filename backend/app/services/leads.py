"""Lead management and lead → client conversion."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import ActivityAction, ClientType, LeadStatus
from app.core.errors import NotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.models.client import Client
from app.db.models.lead import Lead
from app.repositories import clients as client_repository
from app.repositories import leads as lead_repository
from app.services import audit
from app.services.activity import log_activity

logger = get_logger(__name__)

# Columns that cannot be cleared through a partial update
_REQUIRED = {"name", "phone", "insurance_interest", "status", "priority"}


async def get_lead_or_404(db: AsyncSession, lead_id: uuid.UUID) -> Lead:
    lead = await lead_repository.get_lead(db, lead_id)
    if lead is None:
        raise NotFoundError("Lead")
    return lead


async def create_lead(db: AsyncSession, data: dict[str, Any]) -> Lead:
    data.setdefault("status", LeadStatus.NEW.value)
    lead = await lead_repository.create_lead(db, **data)
    await log_activity(
        db,
        ActivityAction.LEAD_CREATED,
        f"New lead {lead.name} added ({lead.insurance_interest} insurance)",
    )
    logger.info("Lead created", lead_id=str(lead.id))
    return lead


async def update_lead(db: AsyncSession, lead_id: uuid.UUID, changes: dict[str, Any]) -> Lead:
    lead = await get_lead_or_404(db, lead_id)
    changes = {k: v for k, v in changes.items() if v is not None or k not in _REQUIRED}
    old_status = lead.status

    lead = await lead_repository.update_lead(db, lead, **changes)

    if "status" in changes and changes["status"] != old_status:
        await log_activity(
            db,
            ActivityAction.LEAD_STATUS_UPDATED,
            f"Lead {lead.name} status changed ({old_status} → {lead.status})",
        )
    else:
        await log_activity(db, ActivityAction.LEAD_UPDATED, f"Lead {lead.name} updated")
    return lead


async def delete_lead(db: AsyncSession, lead_id: uuid.UUID) -> None:
    lead = await get_lead_or_404(db, lead_id)
    name = lead.name
    await lead_repository.delete_lead(db, lead)
    await log_activity(db, ActivityAction.LEAD_DELETED, f"Lead {name} deleted")


def _split_name(full_name: str) -> tuple[str, str]:
    first, _, last = full_name.strip().partition(" ")
    return first, last.strip()


async def convert_lead(db: AsyncSession, lead_id: uuid.UUID) -> tuple[Lead, Client]:
    """Create a client from the lead and mark the lead Won.

    Both writes share the caller's transaction, so either both land or
    neither does.
    """
    lead = await get_lead_or_404(db, lead_id)
    if lead.status == LeadStatus.WON.value:
        raise ValidationError("Lead is already converted")

    if lead.email:
        existing = await client_repository.get_client_by_email(db, lead.email)
        if existing is not None:
            raise ValidationError(
                "A client with this email already exists",
                errors=[{"field": "email", "message": "A client with this email already exists"}],
            )

    first_name, last_name = _split_name(lead.name)
    values = {
        "client_type": ClientType.PERSONAL.value,
        "first_name": first_name,
        "last_name": last_name,
        "email": lead.email.lower() if lead.email else None,
        "phone": lead.phone,
        "whatsapp_number": lead.whatsapp_number,
        "date_of_birth": lead.date_of_birth,
        "additional_info": lead.notes,
    }
    client = await client_repository.create_client(db, **values)
    await audit.log_create(db, client.id, values)

    lead = await lead_repository.update_lead(db, lead, status=LeadStatus.WON.value)
    await log_activity(db, ActivityAction.LEAD_CONVERTED, f"Lead {lead.name} converted to client")
    logger.info("Lead converted", lead_id=str(lead.id), client_id=str(client.id))
    return lead, client
