"""
Message delivery bookkeeping.

Every automated send goes through `deliver`: a PENDING `message_logs` row
is written first, the provider is called, then the row is flipped to
SENT or FAILED.  Provider problems never propagate to the caller.
"""

from __future__ import annotations

import uuid
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.message_log import MessageLog
from app.messaging.base import MessageProvider, SendResult
from app.repositories import message_logs as message_log_repository

logger = get_logger(__name__)


async def deliver(
    db: AsyncSession,
    provider: MessageProvider,
    send: Callable[[], Awaitable[SendResult]],
    *,
    message_type: str,
    recipient: str,
    recipient_name: str,
    subject: str | None = None,
    client_id: uuid.UUID | None = None,
    lead_id: uuid.UUID | None = None,
    policy_instance_id: uuid.UUID | None = None,
) -> MessageLog:
    log = await message_log_repository.create_pending(
        db,
        channel=provider.channel,
        message_type=message_type,
        recipient=recipient,
        recipient_name=recipient_name,
        subject=subject,
        client_id=client_id,
        lead_id=lead_id,
        policy_instance_id=policy_instance_id,
    )

    try:
        result = await send()
    except Exception as exc:  # provider bugs must not abort the batch
        logger.exception("Provider raised during send", channel=provider.channel, recipient=recipient)
        result = SendResult(success=False, error=str(exc) or exc.__class__.__name__)

    if result.success:
        return await message_log_repository.mark_sent(db, log, provider_message_id=result.message_id)
    return await message_log_repository.mark_failed(db, log, error_message=result.error or "Unknown error")
