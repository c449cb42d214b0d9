import uuid
from datetime import date, datetime, timezone

import pytest

from app.core import dates
from app.core.validators import normalize_whatsapp, validate_date_of_birth, validate_phone
from app.repositories import activities as activity_repository
from app.repositories import leads as lead_repository
from app.services import audit
from app.services.activity import log_activity
from app.services.notifications import deliver

from conftest import FakeProvider


class TestDates:
    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (date(2024, 1, 31), 1, date(2024, 2, 29)),
            (date(2023, 1, 31), 1, date(2023, 2, 28)),
            (date(2025, 11, 15), 3, date(2026, 2, 15)),
            (date(2025, 3, 31), 12, date(2026, 3, 31)),
            (date(2026, 5, 31), -3, date(2026, 2, 28)),
        ],
    )
    def test_add_months_clamps_to_month_end(self, start, months, expected):
        assert dates.add_months(start, months) == expected

    def test_leap_day_birthday(self):
        birth = date(1992, 2, 29)
        assert dates.birthday_in_year(birth, 2027) == date(2027, 2, 28)
        assert dates.birthday_in_year(birth, 2028) == date(2028, 2, 29)
        assert dates.is_birthday(birth, date(2027, 2, 28))
        assert not dates.is_birthday(birth, date(2028, 2, 28))
        assert dates.turning_age(birth, date(2027, 2, 28)) == 35

    def test_next_birthday_rolls_over(self):
        birth = date(1990, 1, 5)
        assert dates.next_birthday(birth, date(2026, 1, 5)) == date(2026, 1, 5)
        assert dates.next_birthday(birth, date(2026, 1, 6)) == date(2027, 1, 5)

    def test_calculate_age(self):
        assert dates.calculate_age(date(1990, 6, 15), date(2026, 6, 14)) == 35
        assert dates.calculate_age(date(1990, 6, 15), date(2026, 6, 15)) == 36

    @pytest.mark.parametrize("current,previous,expected", [(15, 10, 50), (5, 10, -50), (3, 0, 100), (0, 0, 0)])
    def test_percentage_change(self, current, previous, expected):
        assert dates.percentage_change(current, previous) == expected

    def test_start_of_local_day_is_utc(self, monkeypatch):
        monkeypatch.setattr(dates.settings, "AUTOMATION_TIMEZONE", "Asia/Kolkata")
        assert dates.start_of_local_day(date(2026, 3, 10)) == datetime(2026, 3, 9, 18, 30, tzinfo=timezone.utc)

    def test_month_bounds(self):
        start, end = dates.month_bounds(date(2026, 12, 17))
        assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)


class TestValidators:
    def test_whatsapp_is_reduced_to_digits(self):
        assert normalize_whatsapp("+91 (987) 654-3210") == "919876543210"
        assert normalize_whatsapp("   ") is None

    def test_whatsapp_digit_count(self):
        with pytest.raises(ValueError):
            normalize_whatsapp("12345")

    def test_phone(self):
        assert validate_phone(" +91 98765-43210 ") == "+91 98765-43210"
        with pytest.raises(ValueError, match="invalid characters"):
            validate_phone("98765abc10")

    def test_date_of_birth_bounds(self):
        today = date(2026, 1, 1)
        assert validate_date_of_birth(date(1990, 1, 1), today) == date(1990, 1, 1)
        with pytest.raises(ValueError, match="future"):
            validate_date_of_birth(date(2026, 1, 2), today)
        with pytest.raises(ValueError, match="120"):
            validate_date_of_birth(date(1900, 1, 1), today)


class TestDeliver:
    async def test_success_marks_sent(self, db):
        provider = FakeProvider("EMAIL")
        log = await deliver(
            db,
            provider,
            lambda: provider.send_birthday_wish(to="ravi@example.com", name="Ravi"),
            message_type="BIRTHDAY_WISH",
            recipient="ravi@example.com",
            recipient_name="Ravi",
        )
        assert log.status == "SENT"
        assert log.provider_message_id == "email-1"
        assert log.sent_at is not None

    async def test_provider_error_marks_failed(self, db):
        provider = FakeProvider("WHATSAPP", fail_with="Invalid number")
        log = await deliver(
            db,
            provider,
            lambda: provider.send_birthday_wish(to="91000", name="Ravi"),
            message_type="BIRTHDAY_WISH",
            recipient="91000",
            recipient_name="Ravi",
        )
        assert log.status == "FAILED"
        assert log.error_message == "Invalid number"

    async def test_exception_is_contained(self, db):
        provider = FakeProvider("EMAIL")

        async def explode():
            raise RuntimeError("socket closed")

        log = await deliver(
            db, provider, explode, message_type="POLICY_RENEWAL", recipient="ravi@example.com", recipient_name="Ravi"
        )
        assert log.status == "FAILED"
        assert log.error_message == "socket closed"


class TestErrorEnvelope:
    async def test_missing_token(self, client):
        response = await client.get("/api/leads")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["statusCode"] == 401

    async def test_unknown_route(self, client):
        response = await client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json()["statusCode"] == 404

    async def test_request_validation_lists_fields(self, client, auth_headers):
        response = await client.post("/api/leads", json={"name": "A"}, headers=auth_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert {e["field"] for e in body["errors"]} >= {"phone", "insuranceInterest"}

    async def test_unknown_fields_rejected(self, client, auth_headers):
        response = await client.post(
            "/api/leads",
            json={"name": "A", "phone": "9876543210", "insuranceInterest": "Life", "isAdmin": True},
            headers=auth_headers,
        )
        assert response.status_code == 400


class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    async def test_reports_database(self, client, path):
        response = await client.get(path)
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "env": "test", "database": "ok"}


class TestBestEffortWrites:
    """A failed feed or audit insert must leave the surrounding transaction usable."""

    async def test_failed_activity_does_not_poison_session(self, db, session_factory):
        await log_activity(db, None, "action is required")
        await lead_repository.create_lead(
            db, name="Anita Sharma", phone="9876543210", insurance_interest="Health", status="New"
        )
        await db.commit()

        async with session_factory() as fresh:
            _, total = await lead_repository.list_leads(fresh)
            assert total == 1
            assert await activity_repository.list_recent(fresh) == []

    async def test_failed_audit_write_does_not_poison_session(self, db, session_factory):
        await audit._write(db, [{"client_id": uuid.uuid4(), "action": None, "field_name": "email"}])
        await log_activity(db, "LEAD_CREATED", "still recorded")
        await db.commit()

        async with session_factory() as fresh:
            recent = await activity_repository.list_recent(fresh)
            assert [row.description for row in recent] == ["still recorded"]
