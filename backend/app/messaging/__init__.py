"""
Outbound messaging providers (email over SMTP, WhatsApp over MSG91).

Providers only talk to the outside world; logging sends to the
`message_logs` table is done by `app.services.notifications`.
"""

from app.messaging.base import MessageProvider, SendResult
from app.messaging.email import SMTPEmailProvider
from app.messaging.whatsapp import MSG91WhatsAppProvider


def get_email_provider() -> SMTPEmailProvider:
    """Dependency / factory returning the configured email provider."""
    return SMTPEmailProvider.from_settings()


def get_whatsapp_provider() -> MSG91WhatsAppProvider:
    """Dependency / factory returning the configured WhatsApp provider."""
    return MSG91WhatsAppProvider.from_settings()


__all__ = [
    "MessageProvider",
    "MSG91WhatsAppProvider",
    "SMTPEmailProvider",
    "SendResult",
    "get_email_provider",
    "get_whatsapp_provider",
]
