"""
Tests for authentication and pharmacy setup endpoints.
"""
from fastapi.testclient import TestClient


class TestRegister:

    def test_register_returns_token(self, client: TestClient):
        response = client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "strongpass123"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["access_token"]
        assert data["token_type"] == "bearer"

    def test_duplicate_email(self, client: TestClient, test_user):
        response = client.post(
            "/api/auth/register",
            json={"email": "testuser@example.com", "password": "strongpass123"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Email already registered"

    def test_short_password(self, client: TestClient):
        response = client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "short"},
        )
        assert response.status_code == 422


class TestLogin:

    def test_wrong_password(self, client: TestClient, test_user):
        response = client.post(
            "/api/auth/login",
            json={"email": "testuser@example.com", "password": "wrongpassword"},
        )
        assert response.status_code == 401

    def test_me(self, client: TestClient, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["email"] == "testuser@example.com"

    def test_missing_token(self, client: TestClient):
        assert client.get("/api/auth/me").status_code == 401

    def test_garbage_token(self, client: TestClient):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestPharmacy:

    def test_stock_endpoints_need_a_pharmacy(self, client: TestClient, auth_headers):
        response = client.get("/api/products", headers=auth_headers)
        assert response.status_code == 404
        assert "Create one first" in response.json()["detail"]

    def test_create_pharmacy_with_default_rules(self, client: TestClient, auth_headers):
        response = client.post(
            "/api/auth/pharmacy",
            json={"name": "Farmacia Central", "timezone": "America/Argentina/Buenos_Aires"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["timezone"] == "America/Argentina/Buenos_Aires"

        rules = client.get("/api/settings/notification-rules", headers=auth_headers).json()
        assert {rule["rule_type"]: rule["threshold"] for rule in rules} == {
            "EXPIRING_SOON": 30.0,
            "HIGH_WASTE": 20.0,
            "HIGH_RISK": 60.0,
        }

    def test_unknown_timezone(self, client: TestClient, auth_headers):
        response = client.post(
            "/api/auth/pharmacy",
            json={"name": "Farmacia Central", "timezone": "Mars/Olympus"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_one_pharmacy_per_user(self, client: TestClient, pharmacy_headers):
        response = client.post(
            "/api/auth/pharmacy",
            json={"name": "Second", "timezone": "UTC"},
            headers=pharmacy_headers,
        )
        assert response.status_code == 400

    def test_get_pharmacy(self, client: TestClient, pharmacy_headers, pharmacy):
        response = client.get("/api/auth/pharmacy", headers=pharmacy_headers)
        assert response.status_code == 200
        assert response.json()["name"] == pharmacy.name
