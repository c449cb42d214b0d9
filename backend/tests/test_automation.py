from datetime import date, timedelta

from sqlalchemy import select

from app.core.dates import local_today
from app.db.models.automation_job import AutomationJob
from app.db.models.message_log import MessageLog
from app.repositories import policy_instances as instance_repository
from app.services import automation as automation_service
from app.services import leads as lead_service

from conftest import FakeProvider


def _born_on(today: date, year: int = 1990) -> date:
    if (today.month, today.day) == (2, 29):
        return date(1992, 2, 29)
    return today.replace(year=year)


async def _logs(db) -> list[MessageLog]:
    result = await db.execute(select(MessageLog).order_by(MessageLog.created_at))
    return list(result.scalars().all())


async def _expiring_policy(db, make_client, make_template, make_instance, *, days, today, client=None, **client_kwargs):
    holder = client or await make_client(**client_kwargs)
    instance = await make_instance(holder, await make_template(), start_date=today - timedelta(days=300))
    await instance_repository.update_instance(db, instance, expiry_date=today + timedelta(days=days))
    return instance


class TestBirthdayWishes:
    async def test_sends_per_channel_and_skips_missing_contacts(self, db, make_client, email_provider, whatsapp_provider):
        today = local_today()
        await make_client(
            email="ravi@example.com", whatsapp_number="919876543210", date_of_birth=_born_on(today)
        )
        await lead_service.create_lead(
            db,
            {
                "name": "Lead Person",
                "email": "lead@example.com",
                "phone": "9876543210",
                "insurance_interest": "Life",
                "date_of_birth": _born_on(today, 1995),
            },
        )
        # not today
        await make_client(
            first_name="Other", email="other@example.com", date_of_birth=_born_on(today) + timedelta(days=3)
        )
        await db.commit()

        summaries = await automation_service.process_birthday_wishes(
            db, [email_provider, whatsapp_provider], today=today
        )

        assert summaries["EMAIL"].to_dict() == {"processed": 2, "sent": 2, "failed": 0, "skipped": 0, "errors": []}
        assert summaries["WHATSAPP"].sent == 1
        assert summaries["WHATSAPP"].skipped == 1
        assert {m["to"] for m in email_provider.sent} == {"ravi@example.com", "lead@example.com"}
        assert whatsapp_provider.sent[0]["name"] == "Ravi Kumar"

        logs = await _logs(db)
        assert len(logs) == 3
        assert all(log.status == "SENT" and log.sent_at is not None for log in logs)
        assert {log.provider_message_id for log in logs if log.channel == "EMAIL"} == {"email-1", "email-2"}
        lead_log = next(log for log in logs if log.lead_id is not None)
        assert lead_log.client_id is None
        assert lead_log.message_type == "BIRTHDAY_WISH"

    async def test_second_run_same_day_is_deduplicated(self, db, make_client, email_provider):
        today = local_today()
        await make_client(email="ravi@example.com", date_of_birth=_born_on(today))
        await db.commit()

        await automation_service.process_birthday_wishes(db, [email_provider], today=today)
        await db.commit()
        summaries = await automation_service.process_birthday_wishes(db, [email_provider], today=today)

        assert summaries["EMAIL"].sent == 0
        assert summaries["EMAIL"].skipped == 1
        assert len(email_provider.sent) == 1

    async def test_failed_send_is_logged_and_retried_next_run(self, db, make_client):
        today = local_today()
        await make_client(email="ravi@example.com", date_of_birth=_born_on(today))
        await db.commit()

        unconfigured = FakeProvider("EMAIL", configured=False)
        summaries = await automation_service.process_birthday_wishes(db, [unconfigured], today=today)
        assert summaries["EMAIL"].failed == 1
        assert summaries["EMAIL"].errors == ["EMAIL credentials not configured"]

        [log] = await _logs(db)
        assert log.status == "FAILED"
        assert log.error_message == "EMAIL credentials not configured"

        working = FakeProvider("EMAIL")
        summaries = await automation_service.process_birthday_wishes(db, [working], today=today)
        assert summaries["EMAIL"].sent == 1

    async def test_provider_exception_does_not_abort_batch(self, db, make_client):
        today = local_today()
        await make_client(email="a@example.com", date_of_birth=_born_on(today))
        await make_client(first_name="Meena", email="b@example.com", date_of_birth=_born_on(today, 1980))
        await db.commit()

        class FlakyProvider(FakeProvider):
            async def send_birthday_wish(self, *, to, name, age=None):
                if to == "a@example.com":
                    raise RuntimeError("smtp exploded")
                return await super().send_birthday_wish(to=to, name=name, age=age)

        summaries = await automation_service.process_birthday_wishes(db, [FlakyProvider("EMAIL")], today=today)
        assert summaries["EMAIL"].sent == 1
        assert summaries["EMAIL"].failed == 1
        assert summaries["EMAIL"].errors == ["smtp exploded"]

    async def test_feb_29_birthday_observed_on_feb_28(self, db, make_client, email_provider):
        await make_client(email="leap@example.com", date_of_birth=date(1992, 2, 29))
        await db.commit()

        summaries = await automation_service.process_birthday_wishes(db, [email_provider], today=date(2027, 2, 28))
        assert summaries["EMAIL"].sent == 1
        assert email_provider.sent[0]["age"] == 35

    async def test_feb_29_birthday_waits_for_29th_in_leap_year(self, db, make_client, email_provider):
        await make_client(email="leap@example.com", date_of_birth=date(1992, 2, 29))
        await db.commit()

        summaries = await automation_service.process_birthday_wishes(db, [email_provider], today=date(2028, 2, 28))
        assert summaries["EMAIL"].processed == 0


class TestRenewalReminders:
    async def test_reminds_active_policies_inside_window(
        self, db, make_client, make_template, make_instance, email_provider
    ):
        today = local_today()
        soon = await _expiring_policy(
            db, make_client, make_template, make_instance, days=10, today=today, email="ravi@example.com"
        )
        await _expiring_policy(
            db,
            make_client,
            make_template,
            make_instance,
            days=45,
            today=today,
            first_name="Far",
            email="far@example.com",
        )
        expired = await _expiring_policy(
            db,
            make_client,
            make_template,
            make_instance,
            days=5,
            today=today,
            first_name="Gone",
            email="gone@example.com",
        )
        await instance_repository.update_instance(db, expired, status="Expired")
        await db.commit()

        summaries = await automation_service.process_policy_renewals(db, [email_provider], days_before=30, today=today)

        assert summaries["EMAIL"].sent == 1
        [call] = email_provider.sent
        assert call["to"] == "ravi@example.com"
        assert call["policy_number"] == soon.template.policy_number
        assert call["days_until_expiry"] == 10
        assert call["premium_amount"] == "₹12,000.00"

        [log] = await _logs(db)
        assert log.policy_instance_id == soon.id
        assert log.subject == f"⏰ Policy Renewal Reminder - {soon.template.policy_number}"

    async def test_reminder_not_repeated_within_dedup_window(
        self, db, make_client, make_template, make_instance, whatsapp_provider
    ):
        today = local_today()
        await _expiring_policy(
            db, make_client, make_template, make_instance, days=3, today=today, whatsapp_number="919876543210"
        )
        await db.commit()

        await automation_service.process_policy_renewals(db, [whatsapp_provider], today=today)
        await db.commit()
        summaries = await automation_service.process_policy_renewals(db, [whatsapp_provider], today=today)

        assert summaries["WHATSAPP"].skipped == 1
        assert len(whatsapp_provider.sent) == 1

    async def test_client_without_contact_is_skipped(self, db, make_client, make_template, make_instance, email_provider):
        today = local_today()
        await _expiring_policy(db, make_client, make_template, make_instance, days=3, today=today)
        await db.commit()

        summaries = await automation_service.process_policy_renewals(db, [email_provider], today=today)
        assert summaries["EMAIL"].to_dict()["skipped"] == 1
        assert await _logs(db) == []

    async def test_zero_day_window_only_covers_today(
        self, db, make_client, make_template, make_instance, email_provider
    ):
        today = local_today()
        holder = await make_client(email="ravi@example.com")
        due = await _expiring_policy(db, make_client, make_template, make_instance, days=0, today=today, client=holder)
        await _expiring_policy(db, make_client, make_template, make_instance, days=10, today=today, client=holder)
        await db.commit()

        summaries = await automation_service.process_policy_renewals(db, [email_provider], days_before=0, today=today)

        assert summaries["EMAIL"].processed == 1
        [call] = email_provider.sent
        assert call["policy_number"] == due.template.policy_number
        assert call["days_until_expiry"] == 0


class TestAutomationRun:
    async def test_run_records_jobs_and_activity(self, db, make_client, email_provider, whatsapp_provider):
        today = local_today()
        await make_client(email="ravi@example.com", date_of_birth=_born_on(today))
        await db.commit()

        result = await automation_service.run_automated_tasks(db, [email_provider, whatsapp_provider], today=today)
        await db.commit()

        assert result["birthday_wishes"]["EMAIL"]["sent"] == 1
        assert result["birthday_wishes"]["WHATSAPP"]["skipped"] == 1
        assert result["policy_renewals"]["EMAIL"]["processed"] == 0

        jobs = (await db.execute(select(AutomationJob))).scalars().all()
        assert len(jobs) == 4
        renewal_job = next(j for j in jobs if j.channel == "EMAIL" and j.message_type == "POLICY_RENEWAL")
        assert renewal_job.days_before == 30
        assert renewal_job.last_run_at is not None

        # a second run refreshes the same rows
        await automation_service.run_automated_tasks(db, [email_provider], today=today)
        await db.commit()
        assert len((await db.execute(select(AutomationJob))).scalars().all()) == 4


class TestReadSide:
    async def test_upcoming_birthdays_sorted_with_flags(self, db, make_client):
        today = date(2026, 2, 20)
        await make_client(first_name="Later", email="later@example.com", date_of_birth=date(1990, 3, 5))
        await make_client(
            first_name="Sooner", whatsapp_number="919876543210", date_of_birth=date(1992, 2, 29)
        )
        await make_client(first_name="Past", date_of_birth=date(1990, 1, 5))
        await make_client(first_name="Silent", date_of_birth=date(1990, 2, 25))
        await db.commit()

        rows = await automation_service.get_upcoming_birthdays(db, days=30, today=today)

        assert [r["name"] for r in rows] == ["Sooner Kumar", "Later Kumar"]
        sooner = rows[0]
        assert sooner["next_birthday"] == date(2026, 2, 28)
        assert sooner["days_until"] == 8
        assert sooner["age"] == 34
        assert sooner["has_whatsapp"] is True
        assert sooner["has_email"] is False

    async def test_delivery_stats(self, db, make_client):
        today = local_today()
        await make_client(email="a@example.com", date_of_birth=_born_on(today))
        await make_client(first_name="Meena", email="b@example.com", date_of_birth=_born_on(today, 1980))
        await db.commit()

        class HalfBroken(FakeProvider):
            async def send_birthday_wish(self, *, to, name, age=None):
                self.fail_with = "rejected" if to == "b@example.com" else None
                return await super().send_birthday_wish(to=to, name=name, age=age)

        await automation_service.process_birthday_wishes(db, [HalfBroken("EMAIL")], today=today)
        await db.commit()

        stats = await automation_service.get_delivery_stats(db, "EMAIL", days=30)
        assert stats == {
            "total_sent": 1,
            "total_failed": 1,
            "total_pending": 0,
            "birthday_wishes": 1,
            "policy_renewals": 0,
            "success_rate": 50.0,
            "period_days": 30,
        }
        assert (await automation_service.get_delivery_stats(db, "WHATSAPP"))["success_rate"] == 0.0


class TestAutomationRoutes:
    async def test_email_run_uses_only_email_channel(self, client, auth_headers, db, make_client, email_provider, whatsapp_provider):
        await make_client(
            email="ravi@example.com", whatsapp_number="919876543210", date_of_birth=_born_on(local_today())
        )
        await db.commit()

        response = await client.post("/api/email-automation/run", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["birthdayWishes"]["EMAIL"]["sent"] == 1
        assert "WHATSAPP" not in data["birthdayWishes"]
        assert whatsapp_provider.sent == []

        response = await client.get("/api/email-automation/logs", headers=auth_headers)
        logs = response.json()["data"]["logs"]
        assert [l["recipient"] for l in logs] == ["ravi@example.com"]
        assert logs[0]["messageType"] == "BIRTHDAY_WISH"

        response = await client.get("/api/whatsapp-automation/logs", headers=auth_headers)
        assert response.json()["data"]["pagination"]["total"] == 0

    async def test_dashboard(self, client, auth_headers, db, make_client):
        await make_client(email="ravi@example.com", date_of_birth=date(1990, 1, 1))
        await db.commit()
        await client.post("/api/whatsapp-automation/run", headers=auth_headers)

        response = await client.get("/api/whatsapp-automation/dashboard", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["configured"] is True
        assert set(data["stats"]) >= {"totalSent", "totalFailed", "successRate"}
        assert {j["messageType"] for j in data["jobs"]} == {"BIRTHDAY_WISH", "POLICY_RENEWAL"}
        assert isinstance(data["upcomingBirthdays"], list)

    async def test_upcoming_birthdays_route_uses_camel_case(self, client, auth_headers, db, make_client):
        await make_client(whatsapp_number="919876543210", date_of_birth=_born_on(local_today()))
        await db.commit()

        response = await client.get("/api/whatsapp-automation/upcoming-birthdays", headers=auth_headers)
        [row] = response.json()["data"]
        assert row["hasWhatsApp"] is True
        assert row["daysUntil"] == 0
        assert row["kind"] == "client"

    async def test_send_renewal_reminders_accepts_window(self, client, auth_headers):
        response = await client.post(
            "/api/email-automation/send-renewal-reminders", json={"daysBefore": 7}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Renewal reminders processed: 0 sent, 0 failed"

    async def test_send_birthday_wishes(self, client, auth_headers):
        response = await client.post("/api/whatsapp-automation/send-birthday-wishes", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["processed"] == 0


class TestCron:
    async def test_requires_secret(self, client):
        response = await client.post("/api/cron/automation")
        assert response.status_code == 401

        response = await client.post("/api/cron/automation", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    async def test_runs_both_channels(self, client, db, make_client):
        await make_client(
            email="ravi@example.com", whatsapp_number="919876543210", date_of_birth=_born_on(local_today())
        )
        await db.commit()

        response = await client.get("/api/cron/automation", headers={"Authorization": "Bearer test-cron-secret"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["birthdayWishes"]["EMAIL"]["sent"] == 1
        assert data["birthdayWishes"]["WHATSAPP"]["sent"] == 1


class TestCustomSends:
    async def test_custom_email_is_sent_and_logged(self, client, auth_headers, db, make_client, email_provider):
        holder = await make_client(email="ravi@example.com")
        await db.commit()

        response = await client.post(
            "/api/email-automation/send-custom-email",
            json={
                "to": "ravi@example.com",
                "recipientName": "Ravi Kumar",
                "subject": "Your documents",
                "html": "<p>Hello <b>Ravi</b>, your papers are ready.</p>",
                "clientId": str(holder.id),
            },
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["message"] == "Email sent successfully"
        assert body["data"]["messageId"] == "email-1"

        [call] = email_provider.sent
        assert call["subject"] == "Your documents"
        assert call["text"] == "Hello Ravi , your papers are ready."

        response = await client.get(
            "/api/email-automation/logs", params={"messageType": "CUSTOM"}, headers=auth_headers
        )
        [log] = response.json()["data"]["logs"]
        assert log["clientId"] == str(holder.id)
        assert log["subject"] == "Your documents"

    async def test_custom_email_failure_keeps_log(self, client, auth_headers, email_provider):
        email_provider.fail_with = "SMTP relay refused"
        response = await client.post(
            "/api/email-automation/send-custom-email",
            json={"to": "ravi@example.com", "recipientName": "Ravi", "subject": "Hi", "html": "<p>Hi</p>"},
            headers=auth_headers,
        )
        assert response.status_code == 502
        assert response.json()["message"] == "SMTP relay refused"

        response = await client.get("/api/email-automation/logs", params={"status": "FAILED"}, headers=auth_headers)
        [log] = response.json()["data"]["logs"]
        assert log["messageType"] == "CUSTOM"
        assert log["errorMessage"] == "SMTP relay refused"

    async def test_custom_email_requires_fields(self, client, auth_headers):
        response = await client.post(
            "/api/email-automation/send-custom-email",
            json={"to": "ravi@example.com", "subject": "Hi"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert {e["field"] for e in response.json()["errors"]} >= {"recipientName", "html"}

    async def test_custom_whatsapp_template(self, client, auth_headers, whatsapp_provider):
        response = await client.post(
            "/api/whatsapp-automation/send-custom-message",
            json={
                "recipientPhone": "+91 98765 43210",
                "recipientName": "Ravi",
                "templateName": "festival_greeting",
                "components": {"body_1": {"type": "text", "value": "Ravi"}},
            },
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["message"] == "WhatsApp message sent successfully"
        [call] = whatsapp_provider.sent
        assert call["to"] == "919876543210"
        assert call["template"] == "festival_greeting"
        assert call["components"]["body_1"]["value"] == "Ravi"

    async def test_custom_message_unknown_lead(self, client, auth_headers, whatsapp_provider):
        response = await client.post(
            "/api/whatsapp-automation/send-custom-message",
            json={
                "recipientPhone": "9876543210",
                "recipientName": "Ravi",
                "templateName": "festival_greeting",
                "leadId": "00000000-0000-0000-0000-000000000001",
            },
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Lead not found"
        assert whatsapp_provider.sent == []

    async def test_custom_routes_are_channel_specific(self, client, auth_headers):
        response = await client.post("/api/whatsapp-automation/send-custom-email", json={}, headers=auth_headers)
        assert response.status_code in (404, 405)
