"""Policy template catalogue: CRUD, search, filters and statistics."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import ActivityAction, InsuranceType
from app.core.dates import local_today
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.models.policy_template import PolicyTemplate
from app.repositories import policy_instances as instance_repository
from app.repositories import policy_templates as template_repository
from app.services.activity import log_activity

logger = get_logger(__name__)

DUPLICATE_NUMBER = "Policy template with this number already exists"
SEARCH_LIMIT_MAX = 50


def _clean(data: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(data)
    for key in ("policy_number", "provider"):
        if cleaned.get(key) is not None:
            cleaned[key] = cleaned[key].strip()
            if not cleaned[key]:
                raise ValidationError(
                    f"{key.replace('_', ' ').capitalize()} is required",
                    errors=[{"field": key, "message": "Field cannot be blank"}],
                )
    if cleaned.get("policy_type") is not None:
        value = str(cleaned["policy_type"])
        if value not in {t.value for t in InsuranceType}:
            raise ValidationError(
                "Invalid policy type",
                errors=[{"field": "policyType", "message": f"Must be one of {', '.join(t.value for t in InsuranceType)}"}],
            )
        cleaned["policy_type"] = value
    return cleaned


async def get_template_or_404(db: AsyncSession, template_id: uuid.UUID) -> PolicyTemplate:
    template = await template_repository.get_template(db, template_id)
    if template is None:
        raise NotFoundError("Policy template")
    return template


async def create_template(db: AsyncSession, data: dict[str, Any]) -> PolicyTemplate:
    data = _clean(data)
    if await template_repository.get_template_by_number(db, data["policy_number"]):
        raise ConflictError(DUPLICATE_NUMBER)
    template = await template_repository.create_template(db, **data)
    await log_activity(
        db,
        ActivityAction.TEMPLATE_CREATED,
        f"Policy template {template.policy_number} ({template.policy_type}, {template.provider}) created",
    )
    return template


async def update_template(db: AsyncSession, template_id: uuid.UUID, changes: dict[str, Any]) -> PolicyTemplate:
    template = await get_template_or_404(db, template_id)
    changes = _clean({k: v for k, v in changes.items() if v is not None or k == "description"})

    number = changes.get("policy_number")
    if number and number != template.policy_number:
        clash = await template_repository.get_template_by_number(db, number)
        if clash is not None and clash.id != template.id:
            raise ConflictError(DUPLICATE_NUMBER)

    template = await template_repository.update_template(db, template, **changes)
    await log_activity(db, ActivityAction.TEMPLATE_UPDATED, f"Policy template {template.policy_number} updated")
    return template


async def delete_template(db: AsyncSession, template_id: uuid.UUID) -> int:
    template = await get_template_or_404(db, template_id)
    number = template.policy_number
    affected = await template_repository.delete_template(db, template)
    await log_activity(
        db,
        ActivityAction.TEMPLATE_DELETED,
        f"Policy template {number} deleted ({affected} clients affected)",
    )
    logger.info("Policy template deleted", template_id=str(template_id), affected_clients=affected)
    return affected


async def list_templates(db: AsyncSession, **filters: Any):
    rows, total = await template_repository.list_templates(db, **filters)
    stats = {
        "total_templates": await template_repository.count_templates(db),
        "total_instances": await instance_repository.count_instances(db),
        "active_instances": await instance_repository.count_active(db, on=local_today()),
        "providers": len(await template_repository.distinct_providers(db)),
    }
    return rows, total, stats


async def search_templates(
    db: AsyncSession,
    query: str,
    *,
    exclude_client_id: uuid.UUID | None = None,
    limit: int = 10,
):
    query = (query or "").strip()
    if not query:
        return []
    return await template_repository.search_templates(
        db,
        query,
        exclude_client_id=exclude_client_id,
        limit=max(1, min(limit, SEARCH_LIMIT_MAX)),
    )


async def get_filters(db: AsyncSession) -> dict[str, list[str]]:
    return {
        "providers": await template_repository.distinct_providers(db),
        "policy_types": await template_repository.distinct_policy_types(db),
    }


async def get_template_clients(db: AsyncSession, template_id: uuid.UUID):
    """Template, its instances (with clients) and detail statistics."""
    template = await get_template_or_404(db, template_id)
    instances = await instance_repository.list_for_template(db, template_id)
    today = local_today()
    stats = await instance_repository.template_detail_stats(
        db, template_id, today=today, soon=today + timedelta(days=settings.EXPIRY_WARNING_DAYS)
    )
    return template, instances, stats


async def get_system_stats(db: AsyncSession) -> dict[str, Any]:
    total_instances = await instance_repository.count_instances(db)
    active = await instance_repository.count_active(db, on=local_today())
    return {
        "total_templates": await template_repository.count_templates(db),
        "total_instances": total_instances,
        "active_instances": active,
        "expired_instances": total_instances - active,
        "templates_with_instances": await template_repository.count_templates(db, with_instances=True),
        "templates_without_instances": await template_repository.count_templates(db, with_instances=False),
        "top_providers": [
            {"provider": p, "template_count": t, "instance_count": i}
            for p, t, i in await template_repository.top_providers(db)
        ],
        "policy_type_distribution": [
            {"policy_type": pt, "template_count": t, "instance_count": i}
            for pt, t, i in await template_repository.policy_type_distribution(db)
        ],
    }
