from app.core.security import create_access_token, decode_access_token, hash_password, verify_password

from conftest import AGENT_EMAIL, AGENT_PASSWORD


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_rejects_blank_or_malformed_hash(self):
        assert not verify_password("anything", "")
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestTokens:
    def test_round_trip_claims(self):
        token = create_access_token({"sub": "1"})
        payload = decode_access_token(token)
        assert payload["sub"] == "1"
        assert payload["iss"] == "insurance-crm"

    def test_bearer_prefix_is_accepted(self):
        token = create_access_token({"sub": "1"})
        assert decode_access_token(f"Bearer {token}")["sub"] == "1"

    def test_garbage_token_is_rejected(self):
        assert decode_access_token("not.a.jwt") is None

    def test_expired_token_is_rejected(self):
        token = create_access_token({"sub": "1"}, expires_minutes=-1)
        assert decode_access_token(token) is None


class TestLogin:
    async def test_login_returns_token_and_profile(self, client, agent):
        response = await client.post(
            "/api/auth/login", json={"email": AGENT_EMAIL, "password": AGENT_PASSWORD}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["token"]
        assert body["expiresIn"] == 1440 * 60
        assert body["user"] == {"id": 1, "email": AGENT_EMAIL, "name": "Priya Agent"}

    async def test_login_email_is_case_insensitive(self, client, agent):
        response = await client.post(
            "/api/auth/login", json={"email": AGENT_EMAIL.upper(), "password": AGENT_PASSWORD}
        )
        assert response.status_code == 200

    async def test_wrong_password(self, client, agent):
        response = await client.post("/api/auth/login", json={"email": AGENT_EMAIL, "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid credentials", "statusCode": 401}

    async def test_login_without_provisioned_agent(self, client):
        response = await client.post("/api/auth/login", json={"email": AGENT_EMAIL, "password": AGENT_PASSWORD})
        assert response.status_code == 401

    async def test_login_validation_error(self, client):
        response = await client.post("/api/auth/login", json={"email": "not-an-email"})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        fields = {e["field"] for e in body["errors"]}
        assert {"email", "password"} <= fields


class TestVerify:
    async def test_verify_with_valid_token(self, client, auth_headers):
        response = await client.get("/api/auth/verify", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["user"]["email"] == AGENT_EMAIL

    async def test_missing_token(self, client, agent):
        response = await client.get("/api/auth/verify")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"

    async def test_token_for_other_subject(self, client, agent):
        token = create_access_token({"sub": "999"})
        response = await client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    async def test_logout(self, client):
        response = await client.post("/api/auth/logout")
        assert response.json() == {"success": True, "message": "Logout successful"}


class TestSettings:
    async def test_get_settings(self, client, auth_headers):
        response = await client.get("/api/settings", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["agentName"] == "Priya Agent"
        assert data["agentEmail"] == AGENT_EMAIL

    async def test_update_profile(self, client, auth_headers):
        response = await client.put(
            "/api/settings",
            json={"agentName": "Priya S", "agentEmail": "Priya@Example.com"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["agentName"] == "Priya S"
        assert data["agentEmail"] == "priya@example.com"

    async def test_unknown_field_is_rejected(self, client, auth_headers):
        response = await client.put("/api/settings", json={"role": "admin"}, headers=auth_headers)
        assert response.status_code == 400

    async def test_change_password(self, client, auth_headers):
        response = await client.put(
            "/api/settings/password",
            json={
                "currentPassword": AGENT_PASSWORD,
                "newPassword": "brand-new-pass",
                "confirmPassword": "brand-new-pass",
            },
            headers=auth_headers,
        )
        assert response.status_code == 200

        login = await client.post("/api/auth/login", json={"email": AGENT_EMAIL, "password": "brand-new-pass"})
        assert login.status_code == 200

    async def test_change_password_wrong_current(self, client, auth_headers):
        response = await client.put(
            "/api/settings/password",
            json={"currentPassword": "wrong", "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "currentPassword"

    async def test_change_password_mismatch(self, client, auth_headers):
        response = await client.put(
            "/api/settings/password",
            json={"currentPassword": AGENT_PASSWORD, "newPassword": "brand-new-pass", "confirmPassword": "other-pass"},
            headers=auth_headers,
        )
        assert response.status_code == 400
