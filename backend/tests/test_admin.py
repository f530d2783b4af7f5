# backend/tests/test_admin.py
"""
Admin dashboard, account and fleet management, settings and exports.
"""
import logging

import pytest

from vehicle_rental.core import crud
from tests.conftest import auth_headers, booking_body


@pytest.fixture
def completed_booking(client, db, user, vehicle):
    response = client.post("/api/bookings", json=booking_body(vehicle["id"]), headers=auth_headers(user))
    booking = response.json()
    crud.update_booking(db, booking["id"], {"status": "completed"})
    return booking


def test_admin_health_is_public(client):
    response = client.get("/api/admin/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"


class TestDashboard:
    def test_stats(self, client, admin, vendor, mechanic, completed_booking):
        response = client.get("/api/admin/dashboard", headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.json()
        stats = data["stats"]
        assert stats["total_users"] == 1
        assert stats["total_vendors"] == 1
        assert stats["total_mechanics"] == 1
        assert stats["total_vehicles"] == 1
        assert stats["completed_bookings"] == 1
        assert stats["total_revenue"] == 2000.0
        assert data["recent_bookings"][0]["vehicle"]["brand"] == "Maruti"
        assert "password_hash" not in data["recent_users"][0]


class TestUserManagement:
    def test_filters(self, client, admin, user, make_user):
        make_user("vendor")
        make_user("vendor", is_approved=True, name="Kovai Wheels")
        headers = auth_headers(admin)

        def total(**params):
            return client.get("/api/admin/users", params=params, headers=headers).json()["pagination"]["total_users"]

        assert total() == 4
        assert total(role="vendor") == 2
        assert total(role="vendor", status="pending") == 1
        assert total(search="kovai") == 1
        assert total(search=user["email"]) == 1

    def test_create_user(self, client, admin):
        body = {"name": "Meena", "email": "meena@example.com", "password": "secret123",
                "phone": "9876500000", "role": "vendor"}

        response = client.post("/api/admin/users", json=body, headers=auth_headers(admin))
        again = client.post("/api/admin/users", json=body, headers=auth_headers(admin))

        assert response.status_code == 201
        assert response.json()["role"] == "vendor"
        assert "password_hash" not in response.json()
        assert again.status_code == 400
        assert again.json()["message"] == "Email already registered"

    def test_update_user_rehashes_password(self, client, admin, user):
        response = client.put(
            f"/api/admin/users/{user['id']}",
            json={"name": "Renamed", "password": "newpass1"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        login = client.post("/api/auth/login", json={"email": user["email"], "password": "newpass1"})
        assert login.status_code == 200

    def test_update_email_conflict(self, client, admin, user, vendor):
        response = client.put(
            f"/api/admin/users/{user['id']}", json={"email": vendor["email"]}, headers=auth_headers(admin)
        )

        assert response.status_code == 400

    def test_status_toggles(self, client, db, admin, user):
        headers = auth_headers(admin)

        response = client.put(f"/api/admin/users/{user['id']}/status", json={"is_active": False}, headers=headers)
        assert response.json()["message"] == "User deactivated successfully"
        assert crud.get_user_by_id(db, user["id"])["is_active"] is False

        client.put(f"/api/admin/users/{user['id']}/activate", headers=headers)
        assert crud.get_user_by_id(db, user["id"])["is_active"] is True

        client.put(f"/api/admin/users/{user['id']}/deactivate", headers=headers)
        assert crud.get_user_by_id(db, user["id"])["is_active"] is False

    def test_approve_vendor_only(self, client, admin, user, make_user):
        pending = make_user("vendor")
        headers = auth_headers(admin)

        assert client.put(f"/api/admin/users/{pending['id']}/approve", headers=headers).json()["user"]["is_approved"]
        response = client.put(f"/api/admin/users/{user['id']}/approve", headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Only vendors can be approved"

    def test_delete_user(self, client, db, admin, user):
        response = client.delete(f"/api/admin/users/{user['id']}", headers=auth_headers(admin))

        assert response.status_code == 200
        assert crud.get_user_by_id(db, user["id"]) is None

    def test_cannot_delete_self(self, client, admin):
        response = client.delete(f"/api/admin/users/{admin['id']}", headers=auth_headers(admin))

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete your own account"

    def test_missing_user(self, client, admin):
        assert client.delete("/api/admin/users/ghost", headers=auth_headers(admin)).status_code == 404


class TestFleetManagement:
    def test_list_filters(self, client, admin, vendor, make_vehicle, make_user):
        make_vehicle(vendor)
        make_vehicle(vendor, is_available=False)
        make_vehicle(make_user("vendor", is_approved=True))
        headers = auth_headers(admin)

        def total(**params):
            return client.get("/api/admin/vehicles", params=params, headers=headers).json()["pagination"]["total_vehicles"]

        assert total() == 3
        assert total(status="unavailable") == 1
        assert total(vendor=vendor["id"]) == 2

    def test_deactivate_and_approve(self, client, admin, vehicle):
        headers = auth_headers(admin)

        client.put(f"/api/admin/vehicles/{vehicle['id']}/deactivate", headers=headers)
        assert client.get("/api/vehicles").json()["pagination"]["total_vehicles"] == 0

        client.put(f"/api/admin/vehicles/{vehicle['id']}/approve", headers=headers)
        assert client.get("/api/vehicles").json()["pagination"]["total_vehicles"] == 1

    def test_delete_blocked_by_active_booking(self, client, db, admin, user, vehicle):
        booking = client.post("/api/bookings", json=booking_body(vehicle["id"]), headers=auth_headers(user)).json()
        url = f"/api/admin/vehicles/{vehicle['id']}"

        response = client.delete(url, headers=auth_headers(admin))
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete vehicle with active bookings"

        crud.update_booking(db, booking["id"], {"status": "cancelled"})
        assert client.delete(url, headers=auth_headers(admin)).status_code == 200

    def test_all_bookings(self, client, admin, completed_booking):
        data = client.get("/api/admin/bookings", params={"status": "completed"}, headers=auth_headers(admin)).json()

        assert data["pagination"]["total_bookings"] == 1
        assert data["bookings"][0]["id"] == completed_booking["id"]


class TestAnalytics:
    def test_daily_buckets(self, client, admin, completed_booking):
        response = client.get("/api/admin/analytics", params={"period": 7}, headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.json()
        assert data["period"] == 7
        assert sum(d["count"] for d in data["user_registrations"]) == 3
        assert sum(d["count"] for d in data["booking_stats"]) == 1
        assert data["revenue_stats"][0]["revenue"] == 2000.0

    def test_period_bounds(self, client, admin):
        response = client.get("/api/admin/analytics", params={"period": 0}, headers=auth_headers(admin))

        assert response.status_code == 400


class TestSettings:
    def test_defaults_created(self, client, admin):
        data = client.get("/api/admin/settings", headers=auth_headers(admin)).json()

        assert data["site_name"] == "Vehicle Rental System"
        assert data["system"]["allow_registration"] is True

    def test_nested_merge(self, client, admin):
        headers = auth_headers(admin)

        response = client.put(
            "/api/admin/settings",
            json={"site_name": "Kovai Rides", "system": {"maintenance_mode": True}},
            headers=headers,
        )

        assert response.status_code == 200
        settings = response.json()["settings"]
        assert settings["site_name"] == "Kovai Rides"
        assert settings["system"] == {"maintenance_mode": True, "allow_registration": True, "require_approval": True}
        assert settings["notifications"]["email_notifications"] is True

    def test_invalid_contact_email(self, client, admin):
        response = client.put("/api/admin/settings", json={"contact_email": "nope"}, headers=auth_headers(admin))

        assert response.status_code == 400


class TestExport:
    @pytest.mark.parametrize("resource,header", [
        ("users", "User ID,Name,Email"),
        ("vehicles", "Vehicle ID,Name,Brand"),
        ("bookings", "Booking ID,Customer Name"),
    ])
    def test_export(self, client, admin, completed_booking, resource, header):
        response = client.get(f"/api/admin/export/{resource}", headers=auth_headers(admin))

        assert response.status_code == 200
        assert f'filename="{resource}_' in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith(header)
        assert len(lines) > 1

    def test_unknown_resource(self, client, admin):
        assert client.get("/api/admin/export/payments", headers=auth_headers(admin)).status_code == 400


class TestFeedback:
    def test_reply(self, client, db, admin):
        item = crud.add_feedback(db, {"message": "App crashes on payment page"})
        headers = auth_headers(admin)

        listed = client.get("/api/admin/feedback", headers=headers).json()
        assert [f["id"] for f in listed] == [item["id"]]

        response = client.post(f"/api/admin/feedback/{item['id']}/reply", json={"reply": "Fixed, thanks"}, headers=headers)

        assert response.status_code == 200
        feedback = response.json()["feedback"]
        assert feedback["status"] == "answered"
        assert feedback["replies"][0]["reply"] == "Fixed, thanks"
        assert feedback["replies"][0]["admin_id"] == admin["id"]

    def test_reply_missing(self, client, admin):
        response = client.post("/api/admin/feedback/nope/reply", json={"reply": "hi"}, headers=auth_headers(admin))

        assert response.status_code == 404
        assert response.json()["message"] == "Feedback not found"


class TestSeedData:
    def test_seed_creates_demo_accounts_without_logging_passwords(self, client, db, caplog):
        caplog.set_level(logging.INFO, logger="vehicle_rental.core.crud")

        crud.seed_database(db)

        assert db.users.count_documents({}) == 4
        assert db.vehicles.count_documents({}) == 3
        assert "admin@vehiclerental.com" in caplog.text
        for password in ("admin123", "vendor123", "user123", "mechanic123"):
            assert password not in caplog.text
        response = client.post("/api/auth/login", json={"email": "admin@vehiclerental.com", "password": "admin123"})
        assert response.status_code == 200

    def test_seed_skips_populated_database(self, db, user):
        crud.seed_database(db)

        assert db.users.count_documents({}) == 1
        assert db.vehicles.count_documents({}) == 0
