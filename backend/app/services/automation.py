"""
Birthday wishes and policy renewal reminders over email and WhatsApp.

The daily run (Celery Beat, cron endpoint or CLI) calls
`run_automated_tasks`, which processes both message types for every
provider and records the run on the automation job rows.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    ActivityAction,
    AutomationTrigger,
    MessageChannel,
    MessageStatus,
    MessageType,
)
from app.core.dates import (
    days_until,
    is_birthday,
    local_today,
    next_birthday,
    start_of_local_day,
    turning_age,
    utc_days_ago,
)
from app.core.errors import NotFoundError
from app.core.logging import get_logger
from app.db.models.message_log import MessageLog
from app.messaging.base import MessageProvider
from app.messaging.email import EmailContent, SMTPEmailProvider
from app.messaging.whatsapp import MSG91WhatsAppProvider
from app.repositories import automation_jobs as job_repository
from app.repositories import clients as client_repository
from app.repositories import leads as lead_repository
from app.repositories import message_logs as message_log_repository
from app.repositories import policy_instances as instance_repository
from app.services.activity import log_activity
from app.services.notifications import deliver

logger = get_logger(__name__)


@dataclass
class ChannelSummary:
    """Counters for one message type on one channel."""

    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def record(self, status: str, error: str | None = None) -> None:
        self.processed += 1
        if status == MessageStatus.SENT.value:
            self.sent += 1
        else:
            self.failed += 1
            if error:
                self.errors.append(error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _contact_for(channel: str, person: Any) -> str | None:
    value = person.email if channel == MessageChannel.EMAIL.value else person.whatsapp_number
    return value.strip() if value and value.strip() else None


def _person_name(person: Any) -> str:
    return getattr(person, "display_name", None) or person.name


def _format_date(value: date) -> str:
    return value.strftime("%d %b %Y")


def _format_amount(value) -> str:
    return f"₹{float(value):,.2f}"


# ── Birthdays ─────────────────────────────

async def process_birthday_wishes(
    db: AsyncSession,
    providers: Iterable[MessageProvider],
    today: date | None = None,
) -> dict[str, ChannelSummary]:
    """Send birthday wishes to clients and leads born on this day."""
    today = today or local_today()
    clients = [c for c in await client_repository.list_with_birthday_data(db) if is_birthday(c.date_of_birth, today)]
    leads = [l for l in await lead_repository.list_with_birthday_data(db) if is_birthday(l.date_of_birth, today)]
    logger.info("Birthday run", today=today.isoformat(), clients=len(clients), leads=len(leads))

    summaries: dict[str, ChannelSummary] = {}
    for provider in providers:
        summary = summaries[provider.channel] = ChannelSummary()
        done_clients, done_leads = await message_log_repository.recipient_ids_messaged_since(
            db,
            channel=provider.channel,
            message_type=MessageType.BIRTHDAY_WISH.value,
            since=start_of_local_day(today),
        )

        recipients = [(c, "client") for c in clients] + [(l, "lead") for l in leads]
        for person, kind in recipients:
            contact = _contact_for(provider.channel, person)
            already = person.id in (done_clients if kind == "client" else done_leads)
            if contact is None or already:
                summary.skipped += 1
                continue

            name = _person_name(person)
            age = turning_age(person.date_of_birth, today)
            log = await deliver(
                db,
                provider,
                lambda p=provider, to=contact, n=name, a=age: p.send_birthday_wish(to=to, name=n, age=a),
                message_type=MessageType.BIRTHDAY_WISH.value,
                recipient=contact,
                recipient_name=name,
                subject=f"🎉 Happy Birthday {name}!" if provider.channel == MessageChannel.EMAIL.value else None,
                client_id=person.id if kind == "client" else None,
                lead_id=person.id if kind == "lead" else None,
            )
            summary.record(log.status, log.error_message)

        logger.info("Birthday wishes processed", channel=provider.channel, **summary.to_dict())
    return summaries


# ── Renewals ──────────────────────────────

async def process_policy_renewals(
    db: AsyncSession,
    providers: Iterable[MessageProvider],
    days_before: int | None = None,
    today: date | None = None,
) -> dict[str, ChannelSummary]:
    """Remind clients whose Active policies expire within *days_before* days."""
    today = today or local_today()
    if days_before is None:
        days_before = settings.RENEWAL_REMINDER_DAYS
    instances = await instance_repository.list_expiring_between(db, today, today + timedelta(days=days_before))
    logger.info("Renewal run", today=today.isoformat(), expiring=len(instances))

    summaries: dict[str, ChannelSummary] = {}
    for provider in providers:
        summary = summaries[provider.channel] = ChannelSummary()
        reminded = await message_log_repository.instance_ids_reminded_since(
            db,
            channel=provider.channel,
            message_type=MessageType.POLICY_RENEWAL.value,
            since=utc_days_ago(settings.RENEWAL_DEDUP_DAYS),
        )

        for instance in instances:
            client = instance.client
            contact = _contact_for(provider.channel, client)
            if contact is None or instance.id in reminded:
                summary.skipped += 1
                continue

            template = instance.template
            details = {
                "to": contact,
                "name": client.display_name,
                "policy_number": template.policy_number,
                "policy_type": template.policy_type,
                "provider": template.provider,
                "expiry_date": _format_date(instance.expiry_date),
                "premium_amount": _format_amount(instance.premium_amount),
                "days_until_expiry": days_until(instance.expiry_date, today),
            }
            log = await deliver(
                db,
                provider,
                lambda p=provider, d=details: p.send_renewal_reminder(**d),
                message_type=MessageType.POLICY_RENEWAL.value,
                recipient=contact,
                recipient_name=client.display_name,
                subject=(
                    f"⏰ Policy Renewal Reminder - {template.policy_number}"
                    if provider.channel == MessageChannel.EMAIL.value
                    else None
                ),
                client_id=client.id,
                policy_instance_id=instance.id,
            )
            summary.record(log.status, log.error_message)

        logger.info("Renewal reminders processed", channel=provider.channel, **summary.to_dict())
    return summaries


# ── Full run ──────────────────────────────

_JOB_NAMES = {
    (MessageChannel.EMAIL.value, MessageType.BIRTHDAY_WISH.value): "Email birthday wishes",
    (MessageChannel.EMAIL.value, MessageType.POLICY_RENEWAL.value): "Email policy renewal reminders",
    (MessageChannel.WHATSAPP.value, MessageType.BIRTHDAY_WISH.value): "WhatsApp birthday wishes",
    (MessageChannel.WHATSAPP.value, MessageType.POLICY_RENEWAL.value): "WhatsApp policy renewal reminders",
}


async def run_automated_tasks(
    db: AsyncSession,
    providers: list[MessageProvider],
    today: date | None = None,
) -> dict[str, Any]:
    """Run birthdays + renewals for all providers and stamp the job rows."""
    today = today or local_today()
    birthdays = await process_birthday_wishes(db, providers, today=today)
    renewals = await process_policy_renewals(db, providers, today=today)

    now = datetime.now(timezone.utc)
    for provider in providers:
        for message_type, trigger, days in (
            (MessageType.BIRTHDAY_WISH.value, AutomationTrigger.BIRTHDAY.value, None),
            (MessageType.POLICY_RENEWAL.value, AutomationTrigger.POLICY_EXPIRY.value, settings.RENEWAL_REMINDER_DAYS),
        ):
            await job_repository.upsert_job(
                db,
                name=_JOB_NAMES[(provider.channel, message_type)],
                channel=provider.channel,
                message_type=message_type,
                trigger=trigger,
                days_before=days,
                last_run_at=now,
                next_run_at=now + timedelta(days=1),
            )

    sent = sum(s.sent for s in [*birthdays.values(), *renewals.values()])
    failed = sum(s.failed for s in [*birthdays.values(), *renewals.values()])
    await log_activity(
        db,
        ActivityAction.AUTOMATION_RUN,
        f"Automation run completed: {sent} messages sent, {failed} failed",
    )
    logger.info("Automation run completed", sent=sent, failed=failed)
    return {
        "birthday_wishes": {k: v.to_dict() for k, v in birthdays.items()},
        "policy_renewals": {k: v.to_dict() for k, v in renewals.items()},
        "ran_at": now,
    }


# ── Ad-hoc sends ──────────────────────────

_TAGS = re.compile(r"<[^>]+>")


async def _check_links(db: AsyncSession, client_id: uuid.UUID | None, lead_id: uuid.UUID | None) -> None:
    if client_id is not None and await client_repository.get_client(db, client_id) is None:
        raise NotFoundError("Client")
    if lead_id is not None and await lead_repository.get_lead(db, lead_id) is None:
        raise NotFoundError("Lead")


async def send_custom_email(
    db: AsyncSession,
    provider: SMTPEmailProvider,
    *,
    to: str,
    recipient_name: str,
    subject: str,
    html: str,
    text: str | None = None,
    client_id: uuid.UUID | None = None,
    lead_id: uuid.UUID | None = None,
) -> MessageLog:
    """Send one agent-written email, logged as a CUSTOM message."""
    await _check_links(db, client_id, lead_id)
    content = EmailContent(subject=subject, html=html, text=text or " ".join(_TAGS.sub(" ", html).split()))
    return await deliver(
        db,
        provider,
        lambda: provider.send(to, content),
        message_type=MessageType.CUSTOM.value,
        recipient=to,
        recipient_name=recipient_name,
        subject=subject,
        client_id=client_id,
        lead_id=lead_id,
    )


async def send_custom_whatsapp(
    db: AsyncSession,
    provider: MSG91WhatsAppProvider,
    *,
    to: str,
    recipient_name: str,
    template_name: str,
    components: dict[str, Any],
    client_id: uuid.UUID | None = None,
    lead_id: uuid.UUID | None = None,
) -> MessageLog:
    """Send any approved WhatsApp template; the template name is kept as the log subject."""
    await _check_links(db, client_id, lead_id)
    return await deliver(
        db,
        provider,
        lambda: provider.send_template(to, template_name, components),
        message_type=MessageType.CUSTOM.value,
        recipient=to,
        recipient_name=recipient_name,
        subject=template_name,
        client_id=client_id,
        lead_id=lead_id,
    )


# ── Read side ─────────────────────────────

async def get_upcoming_birthdays(
    db: AsyncSession,
    days: int | None = None,
    today: date | None = None,
) -> list[dict[str, Any]]:
    today = today or local_today()
    days = days if days is not None else settings.UPCOMING_BIRTHDAY_DAYS
    people = [(c, "client") for c in await client_repository.list_with_birthday_data(db)]
    people += [(l, "lead") for l in await lead_repository.list_with_birthday_data(db)]

    upcoming = []
    for person, kind in people:
        if not any(_contact_for(channel.value, person) for channel in MessageChannel):
            continue
        nb = next_birthday(person.date_of_birth, today)
        left = days_until(nb, today)
        if left > days:
            continue
        upcoming.append(
            {
                "id": person.id,
                "kind": kind,
                "name": _person_name(person),
                "email": person.email,
                "whatsapp_number": person.whatsapp_number,
                "date_of_birth": person.date_of_birth,
                "next_birthday": nb,
                "days_until": left,
                "age": turning_age(person.date_of_birth, nb),
                "has_email": bool(person.email and person.email.strip()),
                "has_whatsapp": bool(person.whatsapp_number and person.whatsapp_number.strip()),
            }
        )
    upcoming.sort(key=lambda row: (row["days_until"], row["name"]))
    return upcoming


async def get_upcoming_renewals(
    db: AsyncSession,
    days: int | None = None,
    today: date | None = None,
) -> list[dict[str, Any]]:
    today = today or local_today()
    days = days if days is not None else settings.UPCOMING_RENEWAL_DAYS
    instances = await instance_repository.list_expiring_between(db, today, today + timedelta(days=days))
    return [
        {
            "policy_instance_id": i.id,
            "policy_number": i.template.policy_number,
            "policy_type": i.template.policy_type,
            "provider": i.template.provider,
            "client_id": i.client_id,
            "client_name": i.client.display_name,
            "email": i.client.email,
            "whatsapp_number": i.client.whatsapp_number,
            "expiry_date": i.expiry_date,
            "days_until_expiry": days_until(i.expiry_date, today),
            "premium_amount": float(i.premium_amount),
        }
        for i in instances
    ]


async def get_delivery_stats(db: AsyncSession, channel: str, days: int = 30) -> dict[str, Any]:
    counts = await message_log_repository.count_by_status_and_type(db, channel=channel, since=utc_days_ago(days))

    def total(status: str | None = None, message_type: str | None = None) -> int:
        return sum(
            n
            for (s, t), n in counts.items()
            if (status is None or s == status) and (message_type is None or t == message_type)
        )

    sent = total(MessageStatus.SENT.value)
    failed = total(MessageStatus.FAILED.value)
    attempted = sent + failed
    return {
        "total_sent": sent,
        "total_failed": failed,
        "total_pending": total(MessageStatus.PENDING.value),
        "birthday_wishes": total(MessageStatus.SENT.value, MessageType.BIRTHDAY_WISH.value),
        "policy_renewals": total(MessageStatus.SENT.value, MessageType.POLICY_RENEWAL.value),
        "success_rate": round(sent / attempted * 100, 2) if attempted else 0.0,
        "period_days": days,
    }


async def get_message_logs(
    db: AsyncSession,
    channel: str,
    *,
    days: int = 30,
    status: str | None = None,
    message_type: str | None = None,
    offset: int = 0,
    limit: int = 50,
):
    return await message_log_repository.list_logs(
        db,
        channel=channel,
        since=utc_days_ago(days),
        status=status,
        message_type=message_type,
        offset=offset,
        limit=limit,
    )


async def get_channel_dashboard(db: AsyncSession, provider: MessageProvider) -> dict[str, Any]:
    recent, _ = await message_log_repository.list_logs(db, channel=provider.channel, limit=10)
    return {
        "stats": await get_delivery_stats(db, provider.channel),
        "upcoming_birthdays": (await get_upcoming_birthdays(db, days=7))[:10],
        "upcoming_renewals": (await get_upcoming_renewals(db, days=settings.RENEWAL_REMINDER_DAYS))[:10],
        "recent_logs": recent,
        "jobs": await job_repository.list_jobs(db, channel=provider.channel),
        "configured": provider.is_configured(),
    }


async def get_weekly_summary(db: AsyncSession, today: date | None = None) -> dict[str, Any]:
    """Last 7 days of deliveries per channel and what is coming up next week."""
    today = today or local_today()
    return {
        "week_ending": today,
        "channels": {channel.value: await get_delivery_stats(db, channel.value, days=7) for channel in MessageChannel},
        "upcoming_birthdays": len(await get_upcoming_birthdays(db, days=7, today=today)),
        "upcoming_renewals": len(await get_upcoming_renewals(db, days=7, today=today)),
    }
