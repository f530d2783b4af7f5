# backend/tests/test_bookings.py
"""
Vehicle booking lifecycle: creation rules, status changes, refunds,
simulated payment and vendor reporting.
"""
import pytest

from vehicle_rental.core import crud
from vehicle_rental.core.config import settings
from tests.conftest import auth_headers, booking_body


@pytest.fixture
def book(client):
    def _book(renter: dict, vehicle: dict, **kwargs) -> dict:
        response = client.post("/api/bookings", json=booking_body(vehicle["id"], **kwargs), headers=auth_headers(renter))
        assert response.status_code == 201, response.text
        return response.json()

    return _book


class TestCreateBooking:
    def test_create_booking(self, client, db, user, vehicle):
        body = booking_body(vehicle["id"], additional_services=[{"service": "GPS", "price": 200}])

        response = client.post("/api/bookings", json=body, headers=auth_headers(user))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["payment_status"] == "pending"
        assert data["total_days"] == 2
        assert data["total_amount"] == 2200.0
        assert data["vendor_id"] == vehicle["vendor_id"]
        assert data["vehicle"]["name"] == vehicle["name"]
        assert crud.get_vehicle_by_id(db, vehicle["id"])["is_available"] is False

    def test_partial_day_rounds_up(self, client, user, vehicle):
        body = booking_body(vehicle["id"], length_days=1.25)

        response = client.post("/api/bookings", json=body, headers=auth_headers(user))

        assert response.json()["total_days"] == 2

    def test_missing_vehicle(self, client, user):
        response = client.post("/api/bookings", json=booking_body("nope"), headers=auth_headers(user))

        assert response.status_code == 404
        assert response.json()["message"] == "Vehicle not found"

    def test_unavailable_vehicle(self, client, make_vehicle, vendor, user):
        parked = make_vehicle(vendor, is_available=False)

        response = client.post("/api/bookings", json=booking_body(parked["id"]), headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["message"] == "Vehicle is not available"

    def test_start_in_past(self, client, user, vehicle):
        response = client.post(
            "/api/bookings", json=booking_body(vehicle["id"], start_in_days=-1), headers=auth_headers(user)
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Start date must be in the future"

    def test_end_before_start(self, client, user, vehicle):
        response = client.post(
            "/api/bookings", json=booking_body(vehicle["id"], length_days=-1), headers=auth_headers(user)
        )

        assert response.status_code == 400
        assert response.json()["message"] == "End date must be after start date"

    def test_overlapping_booking_rejected(self, client, db, book, user, vehicle, make_user):
        book(user, vehicle, start_in_days=3, length_days=3)
        crud.set_vehicle_availability(db, vehicle["id"], True)

        response = client.post(
            "/api/bookings",
            json=booking_body(vehicle["id"], start_in_days=5, length_days=2),
            headers=auth_headers(make_user("user")),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Vehicle is already booked for these dates"

    def test_cancelled_booking_does_not_block(self, client, db, book, user, vehicle):
        first = book(user, vehicle)
        crud.update_booking(db, first["id"], {"status": "cancelled"})
        crud.set_vehicle_availability(db, vehicle["id"], True)

        response = client.post("/api/bookings", json=booking_body(vehicle["id"]), headers=auth_headers(user))

        assert response.status_code == 201

    def test_vendor_cannot_book(self, client, vendor, vehicle):
        response = client.post("/api/bookings", json=booking_body(vehicle["id"]), headers=auth_headers(vendor))

        assert response.status_code == 403

    def test_invalid_driver_phone(self, client, user, vehicle):
        body = booking_body(vehicle["id"])
        body["driver_details"]["phone"] = "123"

        response = client.post("/api/bookings", json=body, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "driver_details.phone"


class TestReadBookings:
    def test_my_bookings(self, client, book, user, vehicle, make_vehicle, vendor):
        book(user, vehicle)
        book(user, make_vehicle(vendor))

        response = client.get("/api/bookings", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()
        assert len(data["bookings"]) == 2
        assert data["pagination"]["total_bookings"] == 2

    def test_vendor_bookings(self, client, book, user, vehicle, vendor):
        book(user, vehicle)

        response = client.get("/api/bookings/vendor", headers=auth_headers(vendor))

        assert response.status_code == 200
        [item] = response.json()
        assert item["customer_name"] == user["name"]
        assert item["vehicle_name"] == vehicle["name"]

    def test_get_booking_access(self, client, book, user, vendor, admin, vehicle, make_user):
        booking = book(user, vehicle)
        url = f"/api/bookings/{booking['id']}"

        assert client.get(url, headers=auth_headers(user)).status_code == 200
        assert client.get(url, headers=auth_headers(vendor)).status_code == 200
        assert client.get(url, headers=auth_headers(admin)).status_code == 200

        response = client.get(url, headers=auth_headers(make_user("user")))
        assert response.status_code == 403
        assert response.json()["message"] == "Not authorized to view this booking"

    def test_missing_booking(self, client, user):
        response = client.get("/api/bookings/missing", headers=auth_headers(user))

        assert response.status_code == 404


class TestBookingStatus:
    def _set_status(self, client, booking_id, actor, new_status):
        return client.put(
            f"/api/bookings/{booking_id}/status", json={"status": new_status}, headers=auth_headers(actor)
        )

    def test_vendor_lifecycle(self, client, db, book, user, vendor, vehicle):
        booking = book(user, vehicle)

        for new_status in ("confirmed", "active", "completed"):
            response = self._set_status(client, booking["id"], vendor, new_status)
            assert response.status_code == 200
            assert response.json()["status"] == new_status

        assert crud.get_vehicle_by_id(db, vehicle["id"])["is_available"] is True

    def test_invalid_transition(self, client, book, user, vendor, vehicle):
        booking = book(user, vehicle)

        response = self._set_status(client, booking["id"], vendor, "completed")

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot change booking status from pending to completed"

    def test_renter_can_only_cancel(self, client, book, user, vehicle):
        booking = book(user, vehicle)

        response = self._set_status(client, booking["id"], user, "confirmed")

        assert response.status_code == 403
        assert response.json()["message"] == "You can only cancel your own bookings"

    def test_stranger_cannot_change(self, client, book, user, vehicle, make_user):
        booking = book(user, vehicle)

        response = self._set_status(client, booking["id"], make_user("user"), "cancelled")

        assert response.status_code == 403

    def test_early_cancellation_refunds_half(self, client, db, book, user, vehicle):
        booking = book(user, vehicle, start_in_days=3, length_days=2)

        response = client.put(
            f"/api/bookings/{booking['id']}/status",
            json={"status": "cancelled", "cancellation_reason": "Plans changed"},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["refund_amount"] == 1000.0
        assert data["cancellation_reason"] == "Plans changed"
        assert crud.get_vehicle_by_id(db, vehicle["id"])["is_available"] is True

    def test_late_cancellation_no_refund(self, client, book, user, vehicle):
        booking = book(user, vehicle, start_in_days=0.4, length_days=1)

        response = self._set_status(client, booking["id"], user, "cancelled")

        assert response.json()["refund_amount"] == 0.0

    def test_cancelled_is_terminal(self, client, book, user, admin, vehicle):
        booking = book(user, vehicle)
        self._set_status(client, booking["id"], user, "cancelled")

        response = self._set_status(client, booking["id"], admin, "confirmed")

        assert response.status_code == 400

    def test_unknown_status_rejected(self, client, book, user, vendor, vehicle):
        booking = book(user, vehicle)

        response = self._set_status(client, booking["id"], vendor, "lost")

        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"


class TestSimulatedPayment:
    def test_payment_success(self, client, book, user, vehicle, monkeypatch):
        monkeypatch.setattr(settings, "PAYMENT_SUCCESS_RATE", 1.0)
        booking = book(user, vehicle)
        url = f"/api/bookings/{booking['id']}/payment"

        response = client.post(url, json={"payment_method": "upi", "payment_id": "pay_123"}, headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Payment successful"
        assert data["booking"]["payment_status"] == "paid"
        assert data["booking"]["payment_id"] == "pay_123"

        again = client.post(url, json={"payment_method": "upi"}, headers=auth_headers(user))
        assert again.status_code == 400
        assert again.json()["message"] == "Payment already completed"

    def test_payment_failure(self, client, db, book, user, vehicle, monkeypatch):
        monkeypatch.setattr(settings, "PAYMENT_SUCCESS_RATE", 0.0)
        booking = book(user, vehicle)

        response = client.post(
            f"/api/bookings/{booking['id']}/payment", json={"payment_method": "card"}, headers=auth_headers(user)
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Payment failed. Please try again."
        assert crud.get_booking_by_id(db, booking["id"])["payment_status"] == "failed"

    def test_only_renter_pays(self, client, book, user, vehicle, make_user):
        booking = book(user, vehicle)

        response = client.post(
            f"/api/bookings/{booking['id']}/payment",
            json={"payment_method": "card"},
            headers=auth_headers(make_user("user")),
        )

        assert response.status_code == 403


class TestVendorReports:
    def test_earnings(self, client, db, book, user, vendor, vehicle, make_vehicle):
        paid = book(user, vehicle)
        crud.update_booking(db, paid["id"], {"payment_status": "paid"})
        book(user, make_vehicle(vendor))

        response = client.get("/api/bookings/vendor/earnings", params={"range": "7d"}, headers=auth_headers(vendor))

        assert response.status_code == 200
        data = response.json()
        assert data["range"] == "7d"
        assert data["total_earnings"] == 2000.0
        assert data["total_bookings"] == 1
        assert data["average_booking_value"] == 2000.0
        assert len(data["monthly"]) == 1
        assert data["monthly"][0]["bookings"] == 1

    def test_earnings_empty(self, client, vendor):
        data = client.get("/api/bookings/vendor/earnings", headers=auth_headers(vendor)).json()

        assert data["total_earnings"] == 0
        assert data["average_booking_value"] == 0.0
        assert data["monthly"] == []

    def test_earnings_bad_range(self, client, vendor):
        response = client.get("/api/bookings/vendor/earnings", params={"range": "2w"}, headers=auth_headers(vendor))

        assert response.status_code == 400

    def test_export_csv(self, client, book, user, vendor, vehicle):
        booking = book(user, vehicle)

        response = client.get("/api/bookings/vendor/export", headers=auth_headers(vendor))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="bookings_' in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Booking ID,Customer Name")
        assert lines[1].startswith(f"{booking['id']},{user['name']},{user['email']},{vehicle['name']}")
