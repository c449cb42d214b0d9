import os
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

# Configure settings BEFORE importing anything from app
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

os.environ["DATABASE_URL_OVERRIDE"] = TEST_DATABASE_URL
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.rate_limit import rate_limiters
from app.messaging.base import MessageProvider, SendResult

AGENT_EMAIL = "agent@example.com"
AGENT_PASSWORD = "s3cret-pass"


class FakeProvider(MessageProvider):
    """In-memory provider that records every send instead of delivering it."""

    def __init__(self, channel: str, *, configured: bool = True, fail_with: str | None = None) -> None:
        self.channel = channel
        self.configured = configured
        self.fail_with = fail_with
        self.sent: list[dict] = []

    def is_configured(self) -> bool:
        return self.configured

    def _result(self, **call) -> SendResult:
        if not self.configured:
            return SendResult(success=False, error=f"{self.channel} credentials not configured")
        if self.fail_with:
            return SendResult(success=False, error=self.fail_with)
        self.sent.append(call)
        return SendResult(success=True, message_id=f"{self.channel.lower()}-{len(self.sent)}")

    async def send_birthday_wish(self, *, to: str, name: str, age: int | None = None) -> SendResult:
        return self._result(kind="birthday", to=to, name=name, age=age)

    async def send_renewal_reminder(self, *, to: str, name: str, **details) -> SendResult:
        return self._result(kind="renewal", to=to, name=name, **details)

    async def send(self, to: str, content) -> SendResult:
        return self._result(kind="custom", to=to, subject=content.subject, html=content.html, text=content.text)

    async def send_template(self, to: str, template_name: str, components: dict) -> SendResult:
        return self._result(kind="template", to=to, template=template_name, components=components)


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    from app.db.models import Base

    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(name="db")
async def db_fixture(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_provider() -> FakeProvider:
    return FakeProvider("EMAIL")


@pytest.fixture
def whatsapp_provider() -> FakeProvider:
    return FakeProvider("WHATSAPP")


@pytest_asyncio.fixture(name="client")
async def client_fixture(session_factory, email_provider, whatsapp_provider) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with DB and messaging dependencies overridden."""
    from app.api.deps import get_db
    from app.main import app
    from app.messaging import get_email_provider, get_whatsapp_provider

    async def get_db_override() -> AsyncGenerator[AsyncSession, None]:
        # one session per request, like production
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_email_provider] = lambda: email_provider
    app.dependency_overrides[get_whatsapp_provider] = lambda: whatsapp_provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as http:
        yield http

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiters.reset_all()
    yield
    rate_limiters.reset_all()


@pytest_asyncio.fixture
async def agent(session_factory):
    from app.services.auth import provision_agent

    async with session_factory() as session:
        row = await provision_agent(session, email=AGENT_EMAIL, password=AGENT_PASSWORD, name="Priya Agent")
        await session.commit()
    return row


@pytest.fixture
def auth_headers(agent) -> dict[str, str]:
    from app.core.security import create_access_token

    token = create_access_token({"sub": str(agent.id), "email": agent.agent_email})
    return {"Authorization": f"Bearer {token}"}


# ── Data factories (service layer, caller commits) ──

@pytest.fixture
def make_client(db):
    from app.services import clients as client_service

    async def factory(**overrides):
        data = {
            "client_type": "PERSONAL",
            "first_name": "Ravi",
            "last_name": "Kumar",
            "phone": "9876543210",
        }
        data.update(overrides)
        return await client_service.create_client(db, data)

    return factory


@pytest.fixture
def make_template(db):
    from app.services import policy_templates as template_service

    counter = {"n": 0}

    async def factory(**overrides):
        counter["n"] += 1
        data = {
            "policy_number": f"POL-{counter['n']:04d}",
            "policy_type": "Health",
            "provider": "Star Health",
        }
        data.update(overrides)
        return await template_service.create_template(db, data)

    return factory


@pytest.fixture
def make_instance(db):
    from app.services import policy_instances as instance_service

    async def factory(client, template, *, start_date: date, duration_months: int = 12, **overrides):
        data = {
            "policy_template_id": template.id,
            "premium_amount": Decimal("12000.00"),
            "commission_amount": Decimal("1200.00"),
            "start_date": start_date,
            "duration_months": duration_months,
        }
        data.update(overrides)
        return await instance_service.create_instance(db, client.id, data)

    return factory
