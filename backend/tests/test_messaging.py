import json
import smtplib

import httpx
import pytest

from app.messaging import email as email_module
from app.messaging import whatsapp as whatsapp_module
from app.messaging.email import SMTPEmailProvider, birthday_email, renewal_email
from app.messaging.retry import backoff_seconds, should_retry
from app.messaging.whatsapp import MSG91WhatsAppProvider, text_components


def _whatsapp(handler, **overrides) -> MSG91WhatsAppProvider:
    options = {
        "auth_key": "test-key",
        "integrated_number": "919000000000",
        "namespace": "ns-1",
        "api_url": "https://msg91.test/bulk/",
        "transport": httpx.MockTransport(handler),
    }
    options.update(overrides)
    return MSG91WhatsAppProvider(**options)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(whatsapp_module, "backoff_seconds", lambda attempt: 0)


class TestRetryPolicy:
    @pytest.mark.parametrize("status,attempt,expected", [(500, 1, True), (429, 2, True), (503, 3, False), (400, 1, False)])
    def test_should_retry(self, status, attempt, expected):
        assert should_retry(status, attempt, max_retries=3) is expected

    def test_backoff_doubles_and_caps(self):
        assert [backoff_seconds(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
        assert backoff_seconds(10) == 30.0


class TestWhatsAppProvider:
    def test_payload_shape(self):
        provider = _whatsapp(lambda request: httpx.Response(200))
        payload = provider.build_payload("919876543210", "birthday_wish", text_components("Ravi"))

        assert payload["integrated_number"] == "919000000000"
        template = payload["payload"]["template"]
        assert template["name"] == "birthday_wish"
        assert template["namespace"] == "ns-1"
        assert template["to_and_components"] == [
            {"to": ["919876543210"], "components": {"body_1": {"type": "text", "value": "Ravi"}}}
        ]

    async def test_successful_send(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["authkey"] = request.headers["authkey"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "success", "request_id": "req-42"})

        result = await _whatsapp(handler).send_renewal_reminder(
            to="919876543210",
            name="Ravi",
            policy_number="HL-1",
            policy_type="Health",
            provider="Star Health",
            expiry_date="01 Jan 2027",
            premium_amount="₹12,000.00",
            days_until_expiry=10,
        )

        assert result.success is True
        assert result.message_id == "req-42"
        assert seen["authkey"] == "test-key"
        components = seen["body"]["payload"]["template"]["to_and_components"][0]["components"]
        assert [components[f"body_{i}"]["value"] for i in range(1, 7)] == [
            "Ravi",
            "Health",
            "HL-1",
            "Star Health",
            "01 Jan 2027",
            "₹12,000.00",
        ]

    async def test_api_error_is_reported(self):
        provider = _whatsapp(lambda request: httpx.Response(400, json={"message": "Invalid template"}))
        result = await provider.send_birthday_wish(to="919876543210", name="Ravi")
        assert result.success is False
        assert result.error == "MSG91 API Error: Invalid template"

    async def test_server_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"type": "success", "data": {"message_id": "m-1"}})

        result = await _whatsapp(handler).send_birthday_wish(to="919876543210", name="Ravi")
        assert len(calls) == 3
        assert result.success is True
        assert result.message_id == "m-1"

    async def test_network_error_gives_up_after_max_retries(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _whatsapp(handler, max_retries=2).send_birthday_wish(to="919876543210", name="Ravi")
        assert result.success is False
        assert result.error.startswith("MSG91 request failed")

    async def test_missing_credentials(self):
        def handler(request):
            raise AssertionError("no request expected")

        provider = _whatsapp(handler, auth_key="")
        assert provider.is_configured() is False
        result = await provider.send_birthday_wish(to="919876543210", name="Ravi")
        assert result.error == "MSG91_AUTH_KEY not configured"


class TestEmailContent:
    def test_birthday_uses_ordinal_and_escapes_name(self):
        content = birthday_email("<Ravi>", age=41)
        assert content.subject == "🎉 Happy Birthday <Ravi>!"
        assert "&lt;Ravi&gt;" in content.html
        assert "41st birthday" in content.text

    @pytest.mark.parametrize("days,color", [(3, "#dc2626"), (20, "#f59e0b"), (45, "#2563eb")])
    def test_renewal_urgency_colour(self, days, color):
        content = renewal_email(
            "Ravi", policy_number="HL-1", policy_type="Health", expiry_date="01 Jan 2027", days_until_expiry=days
        )
        assert content.subject == "⏰ Policy Renewal Reminder - HL-1"
        assert color in content.html


class TestSMTPEmailProvider:
    def _provider(self, **overrides) -> SMTPEmailProvider:
        options = {
            "host": "smtp.test",
            "port": 587,
            "username": "agency@example.com",
            "password": "app-password",
            "from_name": "Insurance Agency",
        }
        options.update(overrides)
        return SMTPEmailProvider(**options)

    def test_build_message_is_multipart(self):
        message = self._provider().build_message("ravi@example.com", birthday_email("Ravi"))
        assert message["From"] == "Insurance Agency <agency@example.com>"
        assert message["To"] == "ravi@example.com"
        assert message.is_multipart()
        assert {part.get_content_type() for part in message.iter_parts()} == {"text/plain", "text/html"}

    async def test_unconfigured_provider_fails_without_connecting(self, monkeypatch):
        monkeypatch.setattr(email_module.smtplib, "SMTP", None)
        result = await self._provider(password="").send_birthday_wish(to="ravi@example.com", name="Ravi")
        assert result.success is False
        assert result.error == "Email credentials not configured"

    async def test_delivery_success_and_failure(self, monkeypatch):
        provider = self._provider()
        delivered = []
        monkeypatch.setattr(provider, "_deliver", delivered.append)

        result = await provider.send_birthday_wish(to="ravi@example.com", name="Ravi", age=30)
        assert result.success is True
        assert result.message_id == delivered[0]["Message-ID"]

        def refuse(message):
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

        monkeypatch.setattr(provider, "_deliver", refuse)
        result = await provider.send_birthday_wish(to="ravi@example.com", name="Ravi")
        assert result.success is False
        assert "bad credentials" in result.error
