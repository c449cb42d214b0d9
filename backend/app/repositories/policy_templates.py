"""
Policy template repository.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import case, delete, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import PolicyStatus
from app.db.models.policy_instance import PolicyInstance
from app.db.models.policy_template import PolicyTemplate
from app.repositories import LIKE_ESCAPE, contains_pattern

TEMPLATE_FIELDS = ("policy_number", "policy_type", "provider", "description", "created_at", "updated_at")

SORT_COLUMNS = {
    "policyNumber": PolicyTemplate.policy_number,
    "policyType": PolicyTemplate.policy_type,
    "provider": PolicyTemplate.provider,
    "createdAt": PolicyTemplate.created_at,
}


@dataclass
class TemplateRow:
    """A template plus its instance counters."""

    template: PolicyTemplate
    instance_count: int
    active_instance_count: int


def _counts_subquery():
    return (
        select(
            PolicyInstance.policy_template_id.label("template_id"),
            func.count(PolicyInstance.id).label("instance_count"),
            func.sum(
                case((PolicyInstance.status == PolicyStatus.ACTIVE.value, 1), else_=0)
            ).label("active_count"),
        )
        .group_by(PolicyInstance.policy_template_id)
        .subquery()
    )


async def create_template(db: AsyncSession, **fields: Any) -> PolicyTemplate:
    template = PolicyTemplate(**{k: v for k, v in fields.items() if k in TEMPLATE_FIELDS})
    db.add(template)
    await db.flush()
    return template


async def get_template(db: AsyncSession, template_id: uuid.UUID) -> PolicyTemplate | None:
    return await db.get(PolicyTemplate, template_id)


async def get_template_by_number(db: AsyncSession, policy_number: str) -> PolicyTemplate | None:
    stmt = select(PolicyTemplate).where(PolicyTemplate.policy_number == policy_number.strip())
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def find_template(
    db: AsyncSession,
    *,
    policy_number: str,
    policy_type: str,
    provider: str,
) -> PolicyTemplate | None:
    stmt = select(PolicyTemplate).where(
        PolicyTemplate.policy_number == policy_number,
        PolicyTemplate.policy_type == policy_type,
        PolicyTemplate.provider == provider,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_templates(
    db: AsyncSession,
    *,
    search: str | None = None,
    policy_types: list[str] | None = None,
    providers: list[str] | None = None,
    has_instances: bool | None = None,
    sort_field: str = "createdAt",
    sort_direction: str = "desc",
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[TemplateRow], int]:
    """Filtered, sorted, paginated templates with instance counters."""
    counts = _counts_subquery()
    instance_count = func.coalesce(counts.c.instance_count, 0)
    active_count = func.coalesce(counts.c.active_count, 0)

    stmt = select(PolicyTemplate, instance_count, active_count).outerjoin(
        counts, counts.c.template_id == PolicyTemplate.id
    )
    if search:
        pattern = contains_pattern(search)
        stmt = stmt.where(
            or_(
                PolicyTemplate.policy_number.ilike(pattern, escape=LIKE_ESCAPE),
                PolicyTemplate.provider.ilike(pattern, escape=LIKE_ESCAPE),
                PolicyTemplate.policy_type.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    if policy_types:
        stmt = stmt.where(PolicyTemplate.policy_type.in_(policy_types))
    if providers:
        stmt = stmt.where(PolicyTemplate.provider.in_(providers))
    if has_instances is True:
        stmt = stmt.where(instance_count > 0)
    elif has_instances is False:
        stmt = stmt.where(instance_count == 0)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))

    column = SORT_COLUMNS.get(sort_field, PolicyTemplate.created_at)
    order = column.asc() if sort_direction == "asc" else column.desc()
    stmt = stmt.order_by(order, PolicyTemplate.id).offset(offset).limit(limit)
    result = await db.execute(stmt)
    rows = [
        TemplateRow(template=t, instance_count=int(ic or 0), active_instance_count=int(ac or 0))
        for t, ic, ac in result.all()
    ]
    return rows, total or 0


async def search_templates(
    db: AsyncSession,
    query: str,
    *,
    exclude_client_id: uuid.UUID | None = None,
    limit: int = 10,
) -> list[TemplateRow]:
    """Quick search used by the "add policy to client" picker."""
    counts = _counts_subquery()
    pattern = contains_pattern(query)
    stmt = (
        select(
            PolicyTemplate,
            func.coalesce(counts.c.instance_count, 0),
            func.coalesce(counts.c.active_count, 0),
        )
        .outerjoin(counts, counts.c.template_id == PolicyTemplate.id)
        .where(
            or_(
                PolicyTemplate.policy_number.ilike(pattern, escape=LIKE_ESCAPE),
                PolicyTemplate.provider.ilike(pattern, escape=LIKE_ESCAPE),
                PolicyTemplate.policy_type.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    )
    if exclude_client_id is not None:
        held = select(PolicyInstance.policy_template_id).where(
            PolicyInstance.client_id == exclude_client_id
        )
        stmt = stmt.where(PolicyTemplate.id.not_in(held))
    stmt = stmt.order_by(PolicyTemplate.policy_number).limit(limit)
    result = await db.execute(stmt)
    return [
        TemplateRow(template=t, instance_count=int(ic or 0), active_instance_count=int(ac or 0))
        for t, ic, ac in result.all()
    ]


async def distinct_providers(db: AsyncSession) -> list[str]:
    result = await db.execute(select(distinct(PolicyTemplate.provider)).order_by(PolicyTemplate.provider))
    return list(result.scalars().all())


async def distinct_policy_types(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(distinct(PolicyTemplate.policy_type)).order_by(PolicyTemplate.policy_type)
    )
    return list(result.scalars().all())


async def update_template(db: AsyncSession, template: PolicyTemplate, **fields: Any) -> PolicyTemplate:
    for key, value in fields.items():
        if key in TEMPLATE_FIELDS:
            setattr(template, key, value)
    await db.flush()
    return template


async def delete_template(db: AsyncSession, template: PolicyTemplate) -> int:
    """Delete a template and its instances. Returns distinct clients affected."""
    affected = await db.scalar(
        select(func.count(distinct(PolicyInstance.client_id))).where(
            PolicyInstance.policy_template_id == template.id
        )
    )
    await db.execute(delete(PolicyInstance).where(PolicyInstance.policy_template_id == template.id))
    await db.delete(template)
    await db.flush()
    return affected or 0


async def delete_all_templates(db: AsyncSession) -> int:
    result = await db.execute(delete(PolicyTemplate))
    await db.flush()
    return result.rowcount or 0


async def count_templates(db: AsyncSession, *, with_instances: bool | None = None) -> int:
    stmt = select(func.count(PolicyTemplate.id))
    if with_instances is not None:
        has_any = select(PolicyInstance.id).where(
            PolicyInstance.policy_template_id == PolicyTemplate.id
        ).exists()
        stmt = stmt.where(has_any if with_instances else ~has_any)
    return await db.scalar(stmt) or 0


async def top_providers(db: AsyncSession, limit: int = 5) -> list[tuple[str, int, int]]:
    """Providers ranked by template count: (provider, templates, instances)."""
    stmt = (
        select(
            PolicyTemplate.provider,
            func.count(distinct(PolicyTemplate.id)),
            func.count(PolicyInstance.id),
        )
        .outerjoin(PolicyInstance, PolicyInstance.policy_template_id == PolicyTemplate.id)
        .group_by(PolicyTemplate.provider)
        .order_by(func.count(distinct(PolicyTemplate.id)).desc(), PolicyTemplate.provider)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return [(p, int(t), int(i)) for p, t, i in result.all()]


async def policy_type_distribution(db: AsyncSession) -> list[tuple[str, int, int]]:
    """(policy_type, templates, instances) for every type present."""
    stmt = (
        select(
            PolicyTemplate.policy_type,
            func.count(distinct(PolicyTemplate.id)),
            func.count(PolicyInstance.id),
        )
        .outerjoin(PolicyInstance, PolicyInstance.policy_template_id == PolicyTemplate.id)
        .group_by(PolicyTemplate.policy_type)
        .order_by(PolicyTemplate.policy_type)
    )
    result = await db.execute(stmt)
    return [(t, int(n), int(i)) for t, n, i in result.all()]


async def duplicate_numbers(db: AsyncSession) -> list[str]:
    stmt = (
        select(PolicyTemplate.policy_number)
        .group_by(PolicyTemplate.policy_number)
        .having(func.count(PolicyTemplate.id) > 1)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def templates_without_instances(db: AsyncSession) -> list[PolicyTemplate]:
    has_any = select(PolicyInstance.id).where(
        PolicyInstance.policy_template_id == PolicyTemplate.id
    ).exists()
    result = await db.execute(select(PolicyTemplate).where(~has_any))
    return list(result.scalars().all())


async def blank_field_templates(db: AsyncSession) -> list[PolicyTemplate]:
    stmt = select(PolicyTemplate).where(
        or_(
            func.trim(PolicyTemplate.policy_number) == "",
            func.trim(PolicyTemplate.policy_type) == "",
            func.trim(PolicyTemplate.provider) == "",
        )
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
