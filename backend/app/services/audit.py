"""Field-level audit trail for client records."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import AuditAction
from app.core.dates import utc_days_ago
from app.core.logging import get_logger
from app.repositories import audit_logs as audit_repository

logger = get_logger(__name__)

AUDITED_FIELDS = (
    "client_type",
    "first_name",
    "last_name",
    "company_name",
    "email",
    "phone",
    "whatsapp_number",
    "date_of_birth",
    "address",
    "city",
    "state",
    "additional_info",
)


def _stringify(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def diff_fields(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    fields: Iterable[str] = AUDITED_FIELDS,
) -> list[tuple[str, str | None, str | None]]:
    """(field, old, new) for every audited field whose value changed."""
    changes = []
    for field in fields:
        old, new = _stringify(before.get(field)), _stringify(after.get(field))
        if old != new:
            changes.append((field, old, new))
    return changes


def snapshot(obj: Any, fields: Iterable[str] = AUDITED_FIELDS) -> dict[str, Any]:
    return {field: getattr(obj, field, None) for field in fields}


async def _write(db: AsyncSession, entries: list[dict]) -> None:
    if not entries:
        return
    try:
        async with db.begin_nested():
            await audit_repository.add_entries(db, entries)
    except SQLAlchemyError as exc:
        logger.warning("Failed to write audit entries", count=len(entries), error=str(exc))


async def log_create(db: AsyncSession, client_id: uuid.UUID, values: Mapping[str, Any]) -> None:
    entries = [
        {
            "client_id": client_id,
            "action": AuditAction.CREATE.value,
            "field_name": field,
            "new_value": new,
        }
        for field, _old, new in diff_fields({}, values)
    ]
    await _write(db, entries)


async def log_update(
    db: AsyncSession,
    client_id: uuid.UUID,
    before: Mapping[str, Any],
    after: Mapping[str, Any],
) -> int:
    changes = diff_fields(before, after)
    await _write(
        db,
        [
            {
                "client_id": client_id,
                "action": AuditAction.UPDATE.value,
                "field_name": field,
                "old_value": old,
                "new_value": new,
            }
            for field, old, new in changes
        ],
    )
    return len(changes)


async def log_delete(db: AsyncSession, client_id: uuid.UUID, display_name: str) -> None:
    await _write(
        db,
        [
            {
                "client_id": client_id,
                "action": AuditAction.DELETE.value,
                "old_value": display_name,
            }
        ],
    )


async def get_client_audit_stats(db: AsyncSession, client_id: uuid.UUID, *, recent_days: int = 30) -> dict[str, Any]:
    """Change counts for one client, overall and within the last *recent_days* days."""
    return {
        "total_changes": await audit_repository.count_for_client(db, client_id),
        "recent_changes": await audit_repository.count_for_client(db, client_id, since=utc_days_ago(recent_days)),
        "changes_by_action": await audit_repository.count_by_action(db, client_id),
        "changes_by_field": await audit_repository.count_by_field(db, client_id),
        "last_modified": await audit_repository.last_changed_at(db, client_id),
    }
