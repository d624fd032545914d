"""
Tests for Auth API
==================

Tests signup, login, token handling and the admin user listing.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from models import UserRole
from tests.conftest import TEST_PASSWORD


# ==================== FIXTURES ====================

@pytest.fixture
def signup_data():
    """Sample data for creating an account"""
    return {
        "name": "Kiran Shah",
        "email": "kiran@example.com",
        "phone": "9876543210",
        "password": "secret123",
    }


# ==================== SIGNUP TESTS ====================

class TestSignup:
    """Tests for account creation"""

    @pytest.mark.api
    def test_signup_success(self, client: TestClient, signup_data):
        response = client.post("/api/auth/signup", json=signup_data)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["message"] == "User created successfully"
        assert data["user"]["email"] == signup_data["email"]
        assert data["user"]["role"] == "patient"
        assert data["token"]
        assert "password_hash" not in data["user"]

    @pytest.mark.api
    def test_signup_with_role(self, client: TestClient, signup_data):
        signup_data["role"] = "caretaker"

        response = client.post("/api/auth/signup", json=signup_data)

        assert response.json()["user"]["role"] == "caretaker"

    @pytest.mark.api
    def test_duplicate_email(self, client: TestClient, signup_data):
        client.post("/api/auth/signup", json=signup_data)
        response = client.post("/api/auth/signup", json=signup_data)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] is True
        assert response.json()["message"] == "email already registered"

    @pytest.mark.api
    def test_short_password(self, client: TestClient, signup_data):
        signup_data["password"] = "123"

        response = client.post("/api/auth/signup", json=signup_data)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Validation error"
        assert response.json()["errors"]

    @pytest.mark.api
    def test_invalid_email(self, client: TestClient, signup_data):
        signup_data["email"] = "not-an-email"

        response = client.post("/api/auth/signup", json=signup_data)

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ==================== LOGIN TESTS ====================

class TestLogin:
    """Tests for credential exchange"""

    @pytest.mark.api
    def test_login_success(self, client: TestClient, patient_user):
        response = client.post(
            "/api/auth/login",
            json={"email": patient_user.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Login successful"
        assert response.json()["user"]["id"] == patient_user.id

    @pytest.mark.api
    def test_wrong_password(self, client: TestClient, patient_user):
        response = client.post(
            "/api/auth/login",
            json={"email": patient_user.email, "password": "wrong-password"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "invalid credentials"

    @pytest.mark.api
    def test_unknown_email(self, client: TestClient):
        response = client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.api
    def test_token_from_login_is_accepted(self, client: TestClient, patient_user, test_patient):
        login = client.post(
            "/api/auth/login",
            json={"email": patient_user.email, "password": TEST_PASSWORD}
        )
        token = login.json()["token"]

        response = client.get("/api/dashboard/profile", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_200_OK


# ==================== TOKEN TESTS ====================

class TestTokens:
    """Tests for bearer token handling"""

    @pytest.mark.api
    def test_missing_token(self, client: TestClient):
        response = client.get("/api/dashboard/profile")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "No token provided"

    @pytest.mark.api
    def test_garbage_token(self, client: TestClient):
        response = client.get("/api/dashboard/profile", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "Invalid or expired token"

    @pytest.mark.api
    def test_device_key_is_not_a_user_token(self, client: TestClient, device_headers):
        response = client.get("/api/dashboard/profile", headers=device_headers)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ==================== USER LIST TESTS ====================

class TestListUsers:
    """Tests for the admin user listing"""

    @pytest.mark.api
    def test_admin_lists_users(self, client: TestClient, make_user, headers_for, patient_user):
        admin = make_user(UserRole.ADMIN)

        response = client.get("/api/auth/users", headers=headers_for(admin))

        assert response.status_code == status.HTTP_200_OK
        emails = [u["email"] for u in response.json()]
        assert patient_user.email in emails

    @pytest.mark.api
    def test_patient_forbidden(self, client: TestClient, auth_headers):
        response = client.get("/api/auth/users", headers=auth_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["message"] == "Not allowed for this role"
