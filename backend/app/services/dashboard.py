"""Dashboard statistics and policy expiry tracking."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import LEAD_STATUS_ORDER, ExpiryLevel
from app.core.dates import add_months, local_today, month_bounds, percentage_change
from app.db.models.policy_instance import PolicyInstance
from app.repositories import activities as activity_repository
from app.repositories import clients as client_repository
from app.repositories import leads as lead_repository
from app.repositories import policy_instances as instance_repository


async def get_stats(db: AsyncSession, today: date | None = None) -> dict[str, Any]:
    """Headline counters with month-over-month change percentages.

    Leads and clients compare the ones added this month against the total
    that existed before it. Policies and commission compare this month's
    new business against last month's.
    """
    today = today or local_today()
    month_start, month_end = month_bounds(today)
    prev_start, _ = month_bounds(add_months(today.replace(day=1), -1))

    total_leads = await lead_repository.count_leads(db)
    leads_before = await lead_repository.count_leads(db, created_before=month_start)
    total_clients = await client_repository.count_clients(db)
    clients_before = await client_repository.count_clients(db, created_before=month_start)

    active_policies = await instance_repository.count_active(db, on=today)
    policies_this_month = await instance_repository.count_created_between(db, month_start, month_end)
    policies_last_month = await instance_repository.count_created_between(db, prev_start, month_start)

    commission = await instance_repository.sum_commission_created_between(db, month_start, month_end)
    prev_commission = await instance_repository.sum_commission_created_between(db, prev_start, month_start)

    return {
        "total_leads": total_leads,
        "total_clients": total_clients,
        "active_policies": active_policies,
        "commission_this_month": float(commission),
        "leads_change": percentage_change(total_leads - leads_before, leads_before),
        "clients_change": percentage_change(total_clients - clients_before, clients_before),
        "policies_change": percentage_change(policies_this_month, policies_last_month),
        "commission_change": percentage_change(float(commission), float(prev_commission)),
        "expiring_this_week": await instance_repository.count_expiring_between(
            db, today, today + timedelta(days=settings.EXPIRY_CRITICAL_DAYS)
        ),
        "expiring_this_month": await instance_repository.count_expiring_between(
            db, today, today + timedelta(days=settings.EXPIRY_WARNING_DAYS)
        ),
    }


async def get_leads_chart(db: AsyncSession) -> list[dict[str, Any]]:
    """Lead count per status, every status present (zero-filled)."""
    counts = await lead_repository.count_by_status(db)
    return [{"status": status, "count": counts.get(status, 0)} for status in LEAD_STATUS_ORDER]


async def get_recent_activities(db: AsyncSession, limit: int = 5):
    return await activity_repository.list_recent(db, limit=limit)


# ── Expiry tracking ───────────────────────

def expiry_level(days_left: int) -> ExpiryLevel | None:
    if days_left <= settings.EXPIRY_CRITICAL_DAYS:
        return ExpiryLevel.CRITICAL
    if days_left <= settings.EXPIRY_WARNING_DAYS:
        return ExpiryLevel.WARNING
    if days_left <= settings.EXPIRY_INFO_DAYS:
        return ExpiryLevel.INFO
    return None


def _expiring_row(instance: PolicyInstance, today: date) -> dict[str, Any]:
    days_left = (instance.expiry_date - today).days
    return {
        "id": instance.id,
        "policy_number": instance.template.policy_number,
        "policy_type": instance.template.policy_type,
        "provider": instance.template.provider,
        "client_id": instance.client_id,
        "client_name": instance.client.display_name,
        "expiry_date": instance.expiry_date,
        "days_until_expiry": days_left,
        "level": expiry_level(days_left).value,
        "premium_amount": float(instance.premium_amount),
    }


async def get_expiry_overview(db: AsyncSession, today: date | None = None) -> dict[str, Any]:
    today = today or local_today()
    instances = await instance_repository.list_expiring_between(
        db, today, today + timedelta(days=settings.EXPIRY_INFO_DAYS)
    )
    buckets: dict[str, list[dict[str, Any]]] = {level.value: [] for level in ExpiryLevel}
    for instance in instances:
        row = _expiring_row(instance, today)
        buckets[row["level"]].append(row)

    next_month_start = add_months(today.replace(day=1), 1)
    next_month_end = add_months(next_month_start, 1) - timedelta(days=1)
    this_month_end = next_month_start - timedelta(days=1)
    last_month_start = add_months(today.replace(day=1), -1)
    last_month_end = today.replace(day=1) - timedelta(days=1)

    return {
        **buckets,
        "counts": {level: len(rows) for level, rows in buckets.items()},
        "summary": {
            "expiring_this_week": await instance_repository.count_expiring_between(
                db, today, today + timedelta(days=7)
            ),
            "expiring_this_month": await instance_repository.count_expiring_between(db, today, this_month_end),
            "expiring_next_month": await instance_repository.count_expiring_between(
                db, next_month_start, next_month_end
            ),
            "expired_last_month": await instance_repository.count_expired_between(
                db, last_month_start, last_month_end, today=today
            ),
        },
    }
