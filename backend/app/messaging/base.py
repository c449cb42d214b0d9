"""
Provider abstraction shared by every outbound channel.

Implement this interface to add a new messaging backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class SendResult:
    """Outcome of one provider call."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class MessageProvider(ABC):
    """Base class for messaging providers."""

    channel: str

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials needed for sending are present."""
        ...

    @abstractmethod
    async def send_birthday_wish(self, *, to: str, name: str, age: int | None = None) -> SendResult:
        ...

    @abstractmethod
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
        ...
