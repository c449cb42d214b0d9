"""Client management with field-level audit logging."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import ActivityAction
from app.core.errors import NotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.models.client import Client
from app.repositories import clients as client_repository
from app.services import audit
from app.services.activity import log_activity

logger = get_logger(__name__)

_REQUIRED = {"client_type", "first_name", "last_name", "phone"}

DUPLICATE_EMAIL = "A client with this email already exists"


async def get_client_or_404(db: AsyncSession, client_id: uuid.UUID, *, with_policies: bool = False) -> Client:
    client = await client_repository.get_client(db, client_id, with_policies=with_policies)
    if client is None:
        raise NotFoundError("Client")
    return client


async def _ensure_email_free(db: AsyncSession, email: str | None, *, exclude_id: uuid.UUID | None = None) -> None:
    if not email:
        return
    existing = await client_repository.get_client_by_email(db, email)
    if existing is not None and existing.id != exclude_id:
        raise ValidationError(DUPLICATE_EMAIL, errors=[{"field": "email", "message": DUPLICATE_EMAIL}])


async def create_client(db: AsyncSession, data: dict[str, Any]) -> Client:
    await _ensure_email_free(db, data.get("email"))
    client = await client_repository.create_client(db, **data)
    await audit.log_create(db, client.id, data)
    await log_activity(db, ActivityAction.CLIENT_CREATED, f"New client {client.display_name} added")
    logger.info("Client created", client_id=str(client.id))
    return client


async def update_client(db: AsyncSession, client_id: uuid.UUID, changes: dict[str, Any]) -> Client:
    client = await get_client_or_404(db, client_id)
    changes = {k: v for k, v in changes.items() if v is not None or k not in _REQUIRED}
    if "email" in changes:
        await _ensure_email_free(db, changes["email"], exclude_id=client.id)

    before = audit.snapshot(client)
    client = await client_repository.update_client(db, client, **changes)
    changed = await audit.log_update(db, client.id, before, audit.snapshot(client))

    if changed:
        await log_activity(db, ActivityAction.CLIENT_UPDATED, f"Client {client.display_name} updated")
    return client


async def delete_client(db: AsyncSession, client_id: uuid.UUID) -> int:
    client = await get_client_or_404(db, client_id)
    name = client.display_name
    removed = await client_repository.delete_client(db, client)
    await audit.log_delete(db, client_id, name)

    description = f"Client {name} deleted"
    if removed:
        description += f" ({removed} {'policy' if removed == 1 else 'policies'} removed)"
    await log_activity(db, ActivityAction.CLIENT_DELETED, description)
    logger.info("Client deleted", client_id=str(client_id), policies_removed=removed)
    return removed
