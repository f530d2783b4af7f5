# backend/tests/conftest.py
"""
Pytest configuration.

Routes run against an in-memory mongomock database injected through the
`get_db` dependency. The app lifespan never runs, so no real MongoDB
connection is opened.
"""
import os

# Must be set before any vehicle_rental import reads settings
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_dummy"

from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from vehicle_rental.core import crud
from vehicle_rental.core.bookings import utcnow
from vehicle_rental.core.cache import vehicle_list_cache
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core.rate_limit import api_limiter, auth_limiter
from vehicle_rental.core.security import create_access_token
from vehicle_rental.main import app


def vehicle_payload(**overrides) -> dict:
    """A valid vehicle body; `specifications` keys may be overridden via specs"""
    expiry = (utcnow() + timedelta(days=365)).isoformat()
    specs = {
        "seats": 5,
        "transmission": "Manual",
        "mileage": 20.5,
        "engine_capacity": "1197cc",
        "color": "White",
        "registration_number": "TN-01-AA-0001",
        "insurance_expiry": expiry,
        "permit_expiry": expiry,
    }
    specs.update(overrides.pop("specs", {}))
    data = {
        "name": "Maruti Swift",
        "type": "Car",
        "fuel_type": "Petrol",
        "brand": "Maruti",
        "model": "Swift",
        "year": 2022,
        "description": "Compact hatchback for city drives.",
        "price_per_day": 1000.0,
        "location": "Coimbatore",
        "images": ["https://example.com/swift.jpg"],
        "features": ["AC", "GPS"],
        "specifications": specs,
    }
    data.update(overrides)
    return data


def future(days: float = 0, hours: float = 0) -> str:
    return (utcnow() + timedelta(days=days, hours=hours)).isoformat()


def booking_body(vehicle_id: str, start_in_days: float = 3, length_days: float = 2, **overrides) -> dict:
    start = utcnow() + timedelta(days=start_in_days)
    data = {
        "vehicle_id": vehicle_id,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=length_days)).isoformat(),
        "pickup_location": "Gandhipuram",
        "drop_location": "Peelamedu",
        "driver_details": {"name": "Arun", "license_number": "TN3820210001234", "phone": "9876501234"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def db():
    return mongomock.MongoClient()["vehicle_rental_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_vehicle_cache():
    vehicle_list_cache.clear()
    yield
    vehicle_list_cache.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    api_limiter.reset()
    auth_limiter.reset()
    yield
    api_limiter.reset()
    auth_limiter.reset()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "user", password: str = "secret123", **fields) -> dict:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "name": fields.pop("name", f"{role.title()} {n}"),
            "email": fields.pop("email", f"{role}{n}@example.com"),
            "phone": fields.pop("phone", f"98765{n:05d}"),
            "password": password,
            "role": role,
        }
        for key in ("is_approved", "is_active", "address", "location"):
            if key in fields:
                data[key] = fields.pop(key)
        user = crud.create_user(db, data)
        if fields:
            user = crud.update_user(db, user["id"], fields)
        return user

    return _make


def auth_headers(user: dict) -> dict:
    token = create_access_token({"sub": user["id"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(make_user):
    return make_user("user")


@pytest.fixture
def vendor(make_user):
    return make_user("vendor", is_approved=True)


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def mechanic(make_user):
    return make_user(
        "mechanic",
        is_approved=True,
        specialization="Engine Repair",
        experience=5,
        pricing={"hourly_rate": 400.0},
    )


@pytest.fixture
def make_vehicle(db):
    counter = {"n": 0}

    def _make(vendor: dict, **overrides) -> dict:
        counter["n"] += 1
        payload = vehicle_payload(**overrides)
        payload["specifications"]["registration_number"] = f"TN-01-AA-{counter['n']:04d}"
        for key in ("insurance_expiry", "permit_expiry"):
            payload["specifications"][key] = utcnow() + timedelta(days=365)
        return crud.create_vehicle(db, payload, vendor["id"])

    return _make


@pytest.fixture
def vehicle(make_vehicle, vendor):
    return make_vehicle(vendor)
