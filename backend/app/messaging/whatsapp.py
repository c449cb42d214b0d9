"""
WhatsApp provider backed by the MSG91 bulk template API.

Templates registered with MSG91:

    birthday_wish   body_1 = recipient name
    policy_renewal  body_1..body_6 = name, policy type, policy number,
                    provider, expiry date, premium amount
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from app.core.config import settings
from app.core.constants import MessageChannel
from app.core.logging import get_logger
from app.messaging.base import MessageProvider, SendResult
from app.messaging.retry import backoff_seconds, should_retry

logger = get_logger(__name__)

BIRTHDAY_TEMPLATE = "birthday_wish"
RENEWAL_TEMPLATE = "policy_renewal"


def text_components(*values: str) -> dict[str, dict[str, str]]:
    """Positional body parameters in MSG91's ``body_N`` format."""
    return {f"body_{i}": {"type": "text", "value": value} for i, value in enumerate(values, start=1)}


class MSG91WhatsAppProvider(MessageProvider):
    """Sends approved WhatsApp templates through MSG91."""

    channel = MessageChannel.WHATSAPP.value

    def __init__(
        self,
        *,
        auth_key: str,
        integrated_number: str,
        namespace: str,
        api_url: str,
        timeout: int = 30,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.auth_key = auth_key
        self.integrated_number = integrated_number
        self.namespace = namespace
        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "MSG91WhatsAppProvider":
        return cls(
            auth_key=settings.MSG91_AUTH_KEY,
            integrated_number=settings.MSG91_INTEGRATED_NUMBER,
            namespace=settings.MSG91_NAMESPACE,
            api_url=settings.MSG91_API_URL,
            timeout=settings.MSG91_TIMEOUT_SECONDS,
        )

    def is_configured(self) -> bool:
        return bool(self.auth_key and self.integrated_number)

    def build_payload(self, to: str, template_name: str, components: dict[str, Any]) -> dict[str, Any]:
        return {
            "integrated_number": self.integrated_number,
            "content_type": "template",
            "payload": {
                "messaging_product": "whatsapp",
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": "en", "policy": "deterministic"},
                    "namespace": self.namespace,
                    "to_and_components": [{"to": [to], "components": components}],
                },
            },
        }

    @staticmethod
    def _parse_response(response: httpx.Response) -> SendResult:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success and (body.get("status") == "success" or body.get("type") == "success"):
            data = body.get("data") if isinstance(body.get("data"), dict) else {}
            message_id = body.get("request_id") or data.get("message_id") or body.get("messageId")
            return SendResult(success=True, message_id=str(message_id) if message_id else None)

        detail = body.get("message") or body.get("errors") or response.text or "Unknown error"
        return SendResult(success=False, error=f"MSG91 API Error: {detail}")

    async def send_template(self, to: str, template_name: str, components: dict[str, Any]) -> SendResult:
        if not self.is_configured():
            return SendResult(success=False, error="MSG91_AUTH_KEY not configured")

        payload = self.build_payload(to, template_name, components)
        headers = {"Content-Type": "application/json", "authkey": self.auth_key}

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            while True:
                attempt += 1
                try:
                    response = await client.post(self.api_url, json=payload, headers=headers)
                except httpx.HTTPError as exc:
                    logger.warning("MSG91 request failed", to=to, attempt=attempt, error=str(exc))
                    if attempt >= self.max_retries:
                        return SendResult(success=False, error=f"MSG91 request failed: {exc}")
                    await asyncio.sleep(backoff_seconds(attempt))
                    continue

                if should_retry(response.status_code, attempt, self.max_retries):
                    logger.warning("MSG91 retrying", to=to, attempt=attempt, status_code=response.status_code)
                    await asyncio.sleep(backoff_seconds(attempt))
                    continue
                break

        result = self._parse_response(response)
        if result.success:
            logger.info("WhatsApp message sent", to=to, template=template_name, message_id=result.message_id)
        else:
            logger.warning("WhatsApp message rejected", to=to, template=template_name, error=result.error)
        return result

    async def send_birthday_wish(self, *, to: str, name: str, age: int | None = None) -> SendResult:
        return await self.send_template(to, BIRTHDAY_TEMPLATE, text_components(name))

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
        components = text_components(name, policy_type, policy_number, provider, expiry_date, premium_amount)
        return await self.send_template(to, RENEWAL_TEMPLATE, components)
