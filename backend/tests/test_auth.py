# backend/tests/test_auth.py
"""
Authentication endpoints, token handling and role gating.
"""
from datetime import timedelta

import pytest

from vehicle_rental.core import crud
from vehicle_rental.core.security import (
    InvalidTokenError,
    TokenExpiredError,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from tests.conftest import auth_headers


REGISTER_BODY = {
    "name": "Priya Raman",
    "email": "Priya@Example.com",
    "password": "secret123",
    "phone": "9876543210",
}


class TestSecurity:
    def test_password_hashing(self):
        hashed = get_password_hash("secret123")

        assert hashed != "secret123"
        assert verify_password("secret123", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_verify_password_with_empty_hash(self):
        assert verify_password("secret123", "") is False

    def test_token_round_trip(self):
        token = create_access_token({"sub": "user-1"})
        payload = decode_access_token(token)

        assert payload["sub"] == "user-1"
        assert "exp" in payload

    def test_expired_token(self):
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-10))

        with pytest.raises(TokenExpiredError):
            decode_access_token(token)

    def test_garbage_token(self):
        with pytest.raises(InvalidTokenError):
            decode_access_token("not-a-jwt")


class TestRegister:
    def test_register_new_user(self, client, db):
        response = client.post("/api/auth/register", json=REGISTER_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "priya@example.com"
        assert data["role"] == "user"
        assert data["is_approved"] is True
        assert data["token"]
        assert "password_hash" not in data

        stored = db.users.find_one({"email": "priya@example.com"})
        assert stored["password_hash"] != "secret123"

    def test_vendor_registers_unapproved(self, client):
        response = client.post("/api/auth/register", json={**REGISTER_BODY, "role": "vendor"})

        assert response.status_code == 201
        assert response.json()["is_approved"] is False

    def test_register_duplicate_email(self, client):
        client.post("/api/auth/register", json=REGISTER_BODY)
        response = client.post("/api/auth/register", json={**REGISTER_BODY, "email": "priya@example.com"})

        assert response.status_code == 400
        assert response.json()["message"] == "User already exists with this email"

    def test_register_validation_errors(self, client):
        response = client.post(
            "/api/auth/register",
            json={**REGISTER_BODY, "phone": "12345", "password": "abc"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        fields = {e["field"] for e in body["errors"]}
        assert {"phone", "password"} <= fields

    def test_register_disabled(self, client, db):
        crud.update_settings(db, {"system": {"allow_registration": False}})

        response = client.post("/api/auth/register", json=REGISTER_BODY)

        assert response.status_code == 403
        assert response.json()["message"] == "Registration is currently disabled"


class TestLogin:
    def test_login_success(self, client, user):
        response = client.post("/api/auth/login", json={"email": user["email"], "password": "secret123"})

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == user["id"]
        assert decode_access_token(data["token"])["sub"] == user["id"]

    def test_login_wrong_password(self, client, user):
        response = client.post("/api/auth/login", json={"email": user["email"], "password": "nope123"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    def test_login_unknown_email(self, client):
        response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "secret123"})

        assert response.status_code == 401

    def test_login_deactivated(self, client, make_user):
        inactive = make_user("user", is_active=False)

        response = client.post("/api/auth/login", json={"email": inactive["email"], "password": "secret123"})

        assert response.status_code == 401
        assert response.json()["message"] == "Account is deactivated"

    def test_login_unapproved_vendor(self, client, make_user):
        pending = make_user("vendor")

        response = client.post("/api/auth/login", json={"email": pending["email"], "password": "secret123"})

        assert response.status_code == 401
        assert "pending approval" in response.json()["message"]

    def test_token_form_login(self, client, user):
        response = client.post("/api/auth/token", data={"username": user["email"], "password": "secret123"})

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"


class TestCurrentUser:
    def test_me(self, client, user):
        response = client.get("/api/auth/me", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["email"] == user["email"]
        assert "password_hash" not in response.json()

    def test_no_token(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized, no token"

    def test_invalid_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token format"

    def test_expired_token(self, client, user):
        token = create_access_token({"sub": user["id"]}, expires_delta=timedelta(seconds=-10))

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    def test_deleted_user(self, client, db, user):
        headers = auth_headers(user)
        crud.delete_user(db, user["id"])

        response = client.get("/api/auth/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["message"] == "User not found"

    def test_deactivated_user(self, client, db, user):
        crud.update_user(db, user["id"], {"is_active": False})

        response = client.get("/api/auth/me", headers=auth_headers(user))

        assert response.status_code == 401
        assert response.json()["message"] == "Account is deactivated"

    def test_logout(self, client, user):
        response = client.post("/api/auth/logout", headers=auth_headers(user))

        assert response.status_code == 200


class TestRoleGating:
    def test_wrong_role_forbidden(self, client, user):
        response = client.get("/api/vehicles/vendor", headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["message"] == "User role user is not authorized to access this route"

    def test_unapproved_vendor_forbidden(self, client, make_user):
        pending = make_user("vendor")

        response = client.get("/api/vehicles/vendor", headers=auth_headers(pending))

        assert response.status_code == 403
        assert response.json()["message"] == "Your vendor account is pending approval"

    def test_admin_only_route(self, client, vendor, admin):
        assert client.get("/api/admin/dashboard", headers=auth_headers(vendor)).status_code == 403
        assert client.get("/api/admin/dashboard", headers=auth_headers(admin)).status_code == 200
