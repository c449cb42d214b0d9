"""Client policy instances: one client's holding of a policy template."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import ActivityAction, PolicyStatus
from app.core.dates import add_months, local_today
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.models.policy_instance import PolicyInstance
from app.repositories import clients as client_repository
from app.repositories import policy_instances as instance_repository
from app.repositories import policy_templates as template_repository
from app.services.activity import log_activity

logger = get_logger(__name__)

MIN_DURATION_MONTHS = 1
MAX_DURATION_MONTHS = 120


def calculate_expiry(start_date: date, duration_months: int) -> date:
    if not MIN_DURATION_MONTHS <= duration_months <= MAX_DURATION_MONTHS:
        raise ValidationError(
            f"Duration must be between {MIN_DURATION_MONTHS} and {MAX_DURATION_MONTHS} months",
            errors=[{"field": "durationMonths", "message": "Out of range"}],
        )
    return add_months(start_date, duration_months)


def _validate_amounts(premium, commission) -> None:
    errors = []
    if premium is not None and premium <= 0:
        errors.append({"field": "premiumAmount", "message": "Premium amount must be greater than 0"})
    if commission is not None and commission < 0:
        errors.append({"field": "commissionAmount", "message": "Commission amount cannot be negative"})
    if errors:
        raise ValidationError(errors[0]["message"], errors=errors)


async def get_instance_or_404(db: AsyncSession, instance_id: uuid.UUID) -> PolicyInstance:
    instance = await instance_repository.get_instance(db, instance_id)
    if instance is None:
        raise NotFoundError("Policy instance")
    return instance


async def is_unique_association(
    db: AsyncSession,
    client_id: uuid.UUID,
    template_id: uuid.UUID,
    exclude_instance_id: uuid.UUID | None = None,
) -> bool:
    """True when the client does not hold *template_id* yet (ignoring *exclude_instance_id*)."""
    existing = await instance_repository.get_for_client_and_template(
        db, client_id=client_id, template_id=template_id
    )
    return existing is None or existing.id == exclude_instance_id


async def create_instance(db: AsyncSession, client_id: uuid.UUID, data: dict[str, Any]) -> PolicyInstance:
    client = await client_repository.get_client(db, client_id)
    if client is None:
        raise NotFoundError("Client")
    template = await template_repository.get_template(db, data["policy_template_id"])
    if template is None:
        raise NotFoundError("Policy template")

    if not await is_unique_association(db, client_id, template.id):
        raise ConflictError("Client already has this policy template")

    _validate_amounts(data["premium_amount"], data.get("commission_amount", 0))
    expiry = calculate_expiry(data["start_date"], data["duration_months"])

    instance = await instance_repository.create_instance(
        db,
        policy_template_id=template.id,
        client_id=client_id,
        premium_amount=data["premium_amount"],
        commission_amount=data.get("commission_amount", 0),
        start_date=data["start_date"],
        expiry_date=expiry,
        status=PolicyStatus.ACTIVE.value,
    )
    await log_activity(
        db,
        ActivityAction.INSTANCE_CREATED,
        f"Policy {template.policy_number} added to client {client.display_name}",
    )
    logger.info("Policy instance created", instance_id=str(instance.id), client_id=str(client_id))
    return await get_instance_or_404(db, instance.id)


async def update_instance(db: AsyncSession, instance_id: uuid.UUID, changes: dict[str, Any]) -> PolicyInstance:
    instance = await get_instance_or_404(db, instance_id)
    changes = {k: v for k, v in changes.items() if v is not None}
    _validate_amounts(changes.get("premium_amount"), changes.get("commission_amount"))

    premium = changes.get("premium_amount", instance.premium_amount)
    commission = changes.get("commission_amount", instance.commission_amount)
    if commission > premium:
        raise ValidationError(
            "Commission amount cannot exceed premium amount",
            errors=[{"field": "commissionAmount", "message": "Commission amount cannot exceed premium amount"}],
        )

    start = changes.get("start_date", instance.start_date)
    duration = changes.pop("duration_months", None)
    if duration is not None:
        changes["expiry_date"] = calculate_expiry(start, duration)
    expiry = changes.get("expiry_date", instance.expiry_date)
    if expiry <= start:
        raise ValidationError(
            "Expiry date must be after start date",
            errors=[{"field": "expiryDate", "message": "Expiry date must be after start date"}],
        )

    if "status" in changes:
        changes["status"] = _check_status(changes["status"])

    instance = await instance_repository.update_instance(db, instance, **changes)
    await log_activity(
        db,
        ActivityAction.INSTANCE_UPDATED,
        f"Policy {instance.template.policy_number} for {instance.client.display_name} updated",
    )
    return instance


def _check_status(value: str) -> str:
    value = str(value)
    if value not in {s.value for s in PolicyStatus}:
        raise ValidationError(
            "Status must be Active or Expired",
            errors=[{"field": "status", "message": "Status must be Active or Expired"}],
        )
    return value


async def update_status(db: AsyncSession, instance_id: uuid.UUID, status: str) -> PolicyInstance:
    instance = await get_instance_or_404(db, instance_id)
    old = instance.status
    instance = await instance_repository.update_instance(db, instance, status=_check_status(status))
    await log_activity(
        db,
        ActivityAction.INSTANCE_UPDATED,
        f"Policy {instance.template.policy_number} for {instance.client.display_name} status changed ({old} → {instance.status})",
    )
    return instance


async def delete_instance(db: AsyncSession, instance_id: uuid.UUID) -> None:
    instance = await get_instance_or_404(db, instance_id)
    description = f"Policy {instance.template.policy_number} removed from client {instance.client.display_name}"
    await instance_repository.delete_instance(db, instance)
    await log_activity(db, ActivityAction.INSTANCE_DELETED, description)


async def list_client_instances(db: AsyncSession, client_id: uuid.UUID) -> list[PolicyInstance]:
    if await client_repository.get_client(db, client_id) is None:
        raise NotFoundError("Client")
    return await instance_repository.list_for_client(db, client_id)


async def expire_past_due(db: AsyncSession, today: date | None = None) -> int:
    """Mark Active instances past their expiry date as Expired."""
    today = today or local_today()
    updated = await instance_repository.mark_past_expiry_as_expired(db, today=today)
    if updated:
        await log_activity(
            db,
            ActivityAction.BULK_EXPIRY_UPDATE,
            f"{updated} {'policy' if updated == 1 else 'policies'} marked as expired",
        )
    logger.info("Expired policy sweep finished", updated=updated)
    return updated
