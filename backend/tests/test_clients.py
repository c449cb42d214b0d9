from datetime import date, timedelta

import pytest

from app.core.dates import add_months

PERSON = {
    "firstName": "Ravi",
    "lastName": "Kumar",
    "email": "Ravi.Kumar@Example.com",
    "phone": "9876543210",
    "whatsappNumber": "+91 98765 43210",
    "dateOfBirth": "1985-11-02",
    "city": "Chennai",
}


async def _create_client(client, headers, **overrides):
    response = await client.post("/api/clients", json={**PERSON, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _create_template(client, headers, number="HL-1001", **overrides):
    body = {"policyNumber": number, "policyType": "Health", "provider": "Star Health", **overrides}
    response = await client.post("/api/policy-templates", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestClientCrud:
    async def test_create_personal_client(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        assert created["clientType"] == "PERSONAL"
        assert created["name"] == "Ravi Kumar"
        assert created["email"] == "ravi.kumar@example.com"
        assert created["whatsappNumber"] == "919876543210"

    async def test_corporate_client_is_named_by_company(self, client, auth_headers):
        created = await _create_client(
            client,
            auth_headers,
            clientType="CORPORATE",
            firstName="",
            lastName="",
            companyName="Acme Logistics",
            email="hr@acme.com",
        )
        assert created["name"] == "Acme Logistics"

    async def test_corporate_requires_company_name(self, client, auth_headers):
        response = await client.post(
            "/api/clients",
            json={"clientType": "CORPORATE", "phone": "9876543210"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    async def test_personal_requires_names(self, client, auth_headers):
        response = await client.post("/api/clients", json={"firstName": "Ravi", "phone": "9876543210"}, headers=auth_headers)
        assert response.status_code == 400

    async def test_duplicate_email_rejected(self, client, auth_headers):
        await _create_client(client, auth_headers)
        response = await client.post(
            "/api/clients", json={**PERSON, "email": "RAVI.KUMAR@example.com"}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["errors"] == [
            {"field": "email", "message": "A client with this email already exists"}
        ]

    async def test_update_keeps_own_email(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        response = await client.put(
            f"/api/clients/{created['id']}",
            json={"email": PERSON["email"], "city": "Madurai"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["city"] == "Madurai"

    async def test_list_with_policy_count_and_search(self, client, auth_headers):
        ravi = await _create_client(client, auth_headers)
        await _create_client(client, auth_headers, firstName="Meena", lastName="Pillai", email="meena@example.com")
        template = await _create_template(client, auth_headers)
        await client.post(
            f"/api/clients/{ravi['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "15000",
                "commissionAmount": "1500",
                "startDate": "2026-01-01",
                "durationMonths": 12,
            },
            headers=auth_headers,
        )

        response = await client.get("/api/clients", params={"search": "ravi kumar"}, headers=auth_headers)
        data = response.json()["data"]
        assert data["pagination"]["total"] == 1
        assert data["clients"][0]["policyCount"] == 1

        response = await client.get("/api/clients", headers=auth_headers)
        assert response.json()["data"]["pagination"]["total"] == 2

    async def test_search_wildcards_are_literal(self, client, auth_headers):
        await _create_client(client, auth_headers)

        for term in ("%", "_", "r%i"):
            response = await client.get("/api/clients", params={"search": term}, headers=auth_headers)
            assert response.json()["data"]["pagination"]["total"] == 0, term

    async def test_delete_reports_removed_policies(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)
        await client.post(
            f"/api/clients/{created['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "15000",
                "startDate": "2026-01-01",
                "durationMonths": 12,
            },
            headers=auth_headers,
        )

        response = await client.delete(f"/api/clients/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Client deleted successfully (1 policy removed)"

        response = await client.get(f"/api/clients/{created['id']}", headers=auth_headers)
        assert response.status_code == 404


class TestAuditTrail:
    async def test_create_update_delete_are_audited(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        await client.put(
            f"/api/clients/{created['id']}",
            json={"city": "Madurai", "phone": "9876543210"},
            headers=auth_headers,
        )

        response = await client.get(f"/api/clients/{created['id']}/audit-logs", headers=auth_headers)
        logs = response.json()["data"]["logs"]
        creates = [l for l in logs if l["action"] == "CREATE"]
        updates = [l for l in logs if l["action"] == "UPDATE"]

        assert {l["fieldName"] for l in creates} == {
            "client_type",
            "first_name",
            "last_name",
            "email",
            "phone",
            "whatsapp_number",
            "date_of_birth",
            "city",
        }
        # unchanged phone is not logged
        assert [(l["fieldName"], l["oldValue"], l["newValue"]) for l in updates] == [
            ("city", "Chennai", "Madurai")
        ]

        await client.delete(f"/api/clients/{created['id']}", headers=auth_headers)
        response = await client.get(f"/api/clients/{created['id']}/audit-logs", headers=auth_headers)
        deletes = [l for l in response.json()["data"]["logs"] if l["action"] == "DELETE"]
        assert deletes[0]["oldValue"] == "Ravi Kumar"

    async def test_audit_stats(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        await client.put(f"/api/clients/{created['id']}", json={"city": "Madurai"}, headers=auth_headers)

        response = await client.get(f"/api/clients/{created['id']}/audit-stats", headers=auth_headers)
        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["totalChanges"] == 9
        assert stats["recentChanges"] == 9
        assert stats["changesByAction"] == {"CREATE": 8, "UPDATE": 1}
        assert stats["changesByField"]["city"] == 2
        assert stats["changesByField"]["phone"] == 1
        assert stats["lastModified"] is not None

    async def test_audit_stats_unknown_client(self, client, auth_headers):
        response = await client.get(
            "/api/clients/00000000-0000-0000-0000-000000000001/audit-stats", headers=auth_headers
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Client not found"


class TestClientPolicyInstances:
    async def test_add_policy_computes_expiry(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)

        response = await client.post(
            f"/api/clients/{created['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "15000.50",
                "commissionAmount": "1500",
                "startDate": "2024-01-31",
                "durationMonths": 1,
            },
            headers=auth_headers,
        )
        assert response.status_code == 201
        instance = response.json()["data"]
        assert instance["expiryDate"] == "2024-02-29"
        assert instance["status"] == "Active"
        assert instance["premiumAmount"] == 15000.5
        assert instance["template"]["policyNumber"] == "HL-1001"

        response = await client.get(f"/api/clients/{created['id']}", headers=auth_headers)
        policies = response.json()["data"]["policyInstances"]
        assert [p["template"]["provider"] for p in policies] == ["Star Health"]

    async def test_same_template_twice_conflicts(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)
        body = {
            "policyTemplateId": template["id"],
            "premiumAmount": "1000",
            "startDate": str(date.today()),
            "durationMonths": 12,
        }
        first = await client.post(f"/api/clients/{created['id']}/policy-instances", json=body, headers=auth_headers)
        assert first.status_code == 201

        second = await client.post(f"/api/clients/{created['id']}/policy-instances", json=body, headers=auth_headers)
        assert second.status_code == 409
        assert second.json()["message"] == "Client already has this policy template"

    async def test_commission_above_premium_rejected(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)
        response = await client.post(
            f"/api/clients/{created['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "1000",
                "commissionAmount": "1000.01",
                "startDate": "2026-01-01",
                "durationMonths": 12,
            },
            headers=auth_headers,
        )
        assert response.status_code == 400

    async def test_duration_out_of_range(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)
        response = await client.post(
            f"/api/clients/{created['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "1000",
                "startDate": "2026-01-01",
                "durationMonths": 121,
            },
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "durationMonths"

    async def test_unknown_template(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        response = await client.post(
            f"/api/clients/{created['id']}/policy-instances",
            json={
                "policyTemplateId": "00000000-0000-4000-8000-000000000000",
                "premiumAmount": "1000",
                "startDate": "2026-01-01",
                "durationMonths": 12,
            },
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Policy template not found"

    async def test_list_for_unknown_client(self, client, auth_headers):
        response = await client.get(
            "/api/clients/00000000-0000-4000-8000-000000000000/policy-instances", headers=auth_headers
        )
        assert response.status_code == 404

    async def test_instance_update_status_and_delete(self, client, auth_headers):
        created = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)
        start = date.today() - timedelta(days=30)
        response = await client.post(
            f"/api/clients/{created['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "1000",
                "startDate": str(start),
                "durationMonths": 12,
            },
            headers=auth_headers,
        )
        instance_id = response.json()["data"]["id"]

        response = await client.put(
            f"/api/policy-instances/{instance_id}",
            json={"durationMonths": 24, "commissionAmount": "100"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        updated = response.json()["data"]
        assert updated["commissionAmount"] == 100.0
        assert updated["expiryDate"] == str(add_months(start, 24))

        response = await client.patch(
            f"/api/policy-instances/{instance_id}/status", json={"status": "Expired"}, headers=auth_headers
        )
        assert response.json()["data"]["status"] == "Expired"

        response = await client.patch(
            f"/api/policy-instances/{instance_id}/status", json={"status": "Lapsed"}, headers=auth_headers
        )
        assert response.status_code == 400

        response = await client.put(
            f"/api/policy-instances/{instance_id}",
            json={"expiryDate": str(start - timedelta(days=1))},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Expiry date must be after start date"

        response = await client.delete(f"/api/policy-instances/{instance_id}", headers=auth_headers)
        assert response.status_code == 200
        response = await client.get(f"/api/policy-instances/{instance_id}", headers=auth_headers)
        assert response.status_code == 404


class TestInstanceFormHelpers:
    @pytest.mark.parametrize(
        "start,months,expiry",
        [("2024-01-31", 1, "2024-02-29"), ("2026-03-15", 12, "2027-03-15"), ("2026-11-30", 3, "2027-02-28")],
    )
    async def test_calculate_expiry(self, client, auth_headers, start, months, expiry):
        response = await client.post(
            "/api/policy-instances/calculate-expiry",
            json={"startDate": start, "durationMonths": months},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"startDate": start, "durationMonths": months, "expiryDate": expiry}

    @pytest.mark.parametrize("months", [0, 121])
    async def test_calculate_expiry_duration_bounds(self, client, auth_headers, months):
        response = await client.post(
            "/api/policy-instances/calculate-expiry",
            json={"startDate": "2026-01-01", "durationMonths": months},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "durationMonths"

    async def test_validate_association(self, client, auth_headers):
        holder = await _create_client(client, auth_headers)
        template = await _create_template(client, auth_headers)
        body = {"clientId": holder["id"], "policyTemplateId": template["id"]}

        response = await client.post("/api/policy-instances/validate-association", json=body, headers=auth_headers)
        assert response.json()["data"] == {"isUnique": True, "message": "Association is valid"}

        response = await client.post(
            f"/api/clients/{holder['id']}/policy-instances",
            json={
                "policyTemplateId": template["id"],
                "premiumAmount": "15000",
                "startDate": "2026-01-01",
                "durationMonths": 12,
            },
            headers=auth_headers,
        )
        instance_id = response.json()["data"]["id"]

        response = await client.post("/api/policy-instances/validate-association", json=body, headers=auth_headers)
        assert response.json()["data"] == {"isUnique": False, "message": "Client already has this policy template"}

        response = await client.post(
            "/api/policy-instances/validate-association",
            json={**body, "excludeInstanceId": instance_id},
            headers=auth_headers,
        )
        assert response.json()["data"]["isUnique"] is True
