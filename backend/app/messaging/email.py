"""
SMTP email provider (Gmail app password by default).

smtplib is blocking, so every send runs in a worker thread via
``asyncio.to_thread`` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import html
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from app.core.config import settings
from app.core.constants import MessageChannel
from app.core.logging import get_logger
from app.messaging.base import MessageProvider, SendResult

logger = get_logger(__name__)


@dataclass
class EmailContent:
    subject: str
    html: str
    text: str


# ── Content builders ──────────────────────

def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def _wrap(body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; '
        'padding: 20px; background-color: #f9fafb;">'
        '<div style="background-color: white; padding: 30px; border-radius: 10px;">'
        f"{body}</div></div>"
    )


def birthday_email(name: str, age: int | None = None) -> EmailContent:
    safe_name = html.escape(name)
    wish = f"a wonderful {_ordinal(age)} birthday" if age else "a wonderful birthday"
    body = (
        f'<h1 style="color: #2563eb; text-align: center;">🎉 Happy Birthday {safe_name}!</h1>'
        f"<p>Wishing you {wish} filled with joy, happiness, and all your favorite things!</p>"
        "<p>Thank you for being a valued client. We appreciate your trust in our services "
        "and look forward to continuing to serve you.</p>"
        "<p>Best wishes,<br><strong>Your Insurance Team</strong></p>"
    )
    text = (
        f"Happy Birthday {name}! Wishing you {wish} filled with joy and happiness. "
        "Thank you for being a valued client. Best wishes, Your Insurance Team"
    )
    return EmailContent(subject=f"🎉 Happy Birthday {name}!", html=_wrap(body), text=text)


def renewal_email(
    name: str,
    *,
    policy_number: str,
    policy_type: str,
    expiry_date: str,
    days_until_expiry: int,
) -> EmailContent:
    if days_until_expiry <= 7:
        color = "#dc2626"
    elif days_until_expiry <= 30:
        color = "#f59e0b"
    else:
        color = "#2563eb"
    body = (
        f'<h1 style="color: {color}; text-align: center;">⏰ Policy Renewal Reminder</h1>'
        f"<p>Dear {html.escape(name)},</p>"
        f"<p>This is a friendly reminder that your <strong>{html.escape(policy_type)}</strong> "
        "policy is expiring soon.</p>"
        '<div style="background-color: #fef3c7; padding: 20px; border-radius: 8px;">'
        f"<p><strong>Policy Number:</strong> {html.escape(policy_number)}</p>"
        f"<p><strong>Expiry Date:</strong> {html.escape(expiry_date)}</p>"
        f'<p style="color: {color};"><strong>Days Remaining:</strong> {days_until_expiry} days</p>'
        "</div>"
        "<p>Please contact us as soon as possible to renew your policy and ensure continuous "
        "coverage.</p>"
        "<p>Best regards,<br><strong>Your Insurance Team</strong></p>"
    )
    text = (
        f"Policy Renewal Reminder: Dear {name}, your {policy_type} policy ({policy_number}) "
        f"expires on {expiry_date} - {days_until_expiry} days remaining. Please contact us to renew."
    )
    return EmailContent(
        subject=f"⏰ Policy Renewal Reminder - {policy_number}",
        html=_wrap(body),
        text=text,
    )


# ── Provider ──────────────────────────────

class SMTPEmailProvider(MessageProvider):
    """Sends multipart (text + HTML) email through an SMTP relay."""

    channel = MessageChannel.EMAIL.value

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        from_name: str,
        use_tls: bool = True,
        timeout: int = 15,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "SMTPEmailProvider":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.GMAIL_USER,
            password=settings.GMAIL_APP_PASSWORD,
            from_name=settings.GMAIL_FROM_NAME,
            use_tls=settings.SMTP_USE_TLS,
        )

    def is_configured(self) -> bool:
        return bool(self.username and self.password)

    def build_message(self, to: str, content: EmailContent) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.username))
        message["To"] = to
        message["Subject"] = content.subject
        message["Message-ID"] = make_msgid(domain=self.username.partition("@")[2] or None)
        message.set_content(content.text)
        message.add_alternative(content.html, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.ehlo()
            if self.use_tls:
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send(self, to: str, content: EmailContent) -> SendResult:
        if not self.is_configured():
            return SendResult(success=False, error="Email credentials not configured")

        message = self.build_message(to, content)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Email delivery failed", to=to, error=str(exc))
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__)

        logger.info("Email sent", to=to, subject=content.subject)
        return SendResult(success=True, message_id=message["Message-ID"])

    async def send_birthday_wish(self, *, to: str, name: str, age: int | None = None) -> SendResult:
        return await self.send(to, birthday_email(name, age))

    async def send_renewal_reminder(
        self,
        *,
        to: str,
        name: str,
        policy_number: str,
        policy_type: str,
        provider: str,
        expiry_date: str,
        premium_amount: str,
        days_until_expiry: int,
    ) -> SendResult:
        content = renewal_email(
            name,
            policy_number=policy_number,
            policy_type=policy_type,
            expiry_date=expiry_date,
            days_until_expiry=days_until_expiry,
        )
        return await self.send(to, content)
