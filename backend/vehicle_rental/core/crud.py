"""
MongoDB CRUD Operations
Provides database operations for all collections
"""
import copy
import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4
from typing import Dict, List, Optional, Any, Tuple
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from bson import ObjectId
from vehicle_rental.core.security import get_password_hash
from vehicle_rental.core.bookings import ACTIVE_BOOKING_STATUSES, as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = {"type": "Point", "coordinates": [0, 0]}
DEFAULT_WORKING_HOURS = {"start": "09:00", "end": "18:00"}
DEFAULT_WORKING_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri"]

DEFAULT_SETTINGS = {
    "site_name": "Vehicle Rental System",
    "site_description": "Premium vehicle rental platform",
    "contact_email": "admin@vehiclerental.com",
    "contact_phone": "+91 98765 43210",
    "notifications": {
        "email_notifications": True,
        "sms_notifications": False,
        "push_notifications": True,
    },
    "security": {
        "require_email_verification": True,
        "require_phone_verification": False,
        "two_factor_auth": False,
    },
    "system": {
        "maintenance_mode": False,
        "allow_registration": True,
        "require_approval": True,
    },
}

# ============ Helper Functions ============

def generate_id() -> str:
    """Generate a unique ID string"""
    return str(uuid4())


def serialize_doc(doc: dict) -> dict:
    """Convert MongoDB document to JSON-serializable format"""
    if doc is None:
        return None

    result = {}
    for key, value in doc.items():
        if key == "_id":
            continue  # Skip MongoDB's internal _id
        elif isinstance(value, ObjectId):
            result[key] = str(value)
        elif isinstance(value, Decimal):
            result[key] = float(value)
        elif isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, dict):
            result[key] = serialize_doc(value)
        elif isinstance(value, list):
            result[key] = [serialize_doc(item) if isinstance(item, dict) else item for item in value]
        else:
            result[key] = value

    return result


def user_public(user: dict) -> dict:
    """Serialize a user without the password hash"""
    if user is None:
        return None
    data = serialize_doc(user)
    data.pop("password_hash", None)
    return data


def user_summary(user: Optional[dict], *fields: str) -> Optional[dict]:
    """Small embedded view of a user, like a populated reference"""
    if not user:
        return None
    fields = fields or ("name", "email", "phone")
    return {"id": user.get("id"), **{f: user.get(f) for f in fields}}


def paginate(collection, query: dict, page: int, limit: int,
             sort: Optional[List[Tuple[str, int]]] = None) -> Tuple[List[dict], int]:
    """Run a paged find and return (documents, total matching)"""
    skip = (page - 1) * limit
    cursor = collection.find(query)
    if sort:
        cursor = cursor.sort(sort)
    items = list(cursor.skip(skip).limit(limit))
    total = collection.count_documents(query)
    return items, total


def pagination_meta(page: int, limit: int, total: int, total_key: str, returned: int) -> dict:
    skip = (page - 1) * limit
    return {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if limit else 0,
        total_key: total,
        "has_next_page": skip + returned < total,
        "has_prev_page": page > 1,
    }


def _recompute_rating(reviews: List[dict]) -> Tuple[float, int]:
    if not reviews:
        return 0.0, 0
    total = sum(float(r.get("rating") or 0) for r in reviews)
    return total / len(reviews), len(reviews)


# ============ User CRUD ============

def create_user(db: Database, user_data: dict) -> dict:
    """Create a new user"""
    role = user_data.get("role", "user")
    now = utcnow()
    user = {
        "id": generate_id(),
        "name": user_data["name"].strip(),
        "email": user_data["email"].lower(),
        "phone": user_data["phone"],
        "password_hash": get_password_hash(user_data["password"]),
        "role": role,
        "address": user_data.get("address") or "",
        "location": user_data.get("location") or copy.deepcopy(DEFAULT_LOCATION),
        "is_active": user_data.get("is_active", True),
        "is_approved": user_data.get("is_approved", role in ("user", "admin")),
        "availability": True,
        "working_hours": dict(DEFAULT_WORKING_HOURS),
        "working_days": list(DEFAULT_WORKING_DAYS),
        "services": ["General Maintenance"],
        "profile_image": "",
        "rating": 0.0,
        "total_reviews": 0,
        "created_at": now,
        "updated_at": now,
    }

    db.users.insert_one(user)
    return user


def get_user_by_email(db: Database, email: str) -> Optional[dict]:
    """Get user by email"""
    return db.users.find_one({"email": email.lower()})


def get_user_by_id(db: Database, user_id: str) -> Optional[dict]:
    """Get user by ID"""
    if not user_id:
        return None
    return db.users.find_one({"id": user_id})


def list_users(db: Database, query: Optional[dict] = None) -> List[dict]:
    return list(db.users.find(query or {}).sort("created_at", DESCENDING))


def update_user(db: Database, user_id: str, update_data: dict) -> Optional[dict]:
    """Update user fields"""
    update_data = dict(update_data)
    if "password" in update_data:
        update_data["password_hash"] = get_password_hash(update_data.pop("password"))
    if "email" in update_data:
        update_data["email"] = update_data["email"].lower()
    update_data["updated_at"] = utcnow()
    return db.users.find_one_and_update(
        {"id": user_id}, {"$set": update_data}, return_document=ReturnDocument.AFTER
    )


def delete_user(db: Database, user_id: str) -> bool:
    result = db.users.delete_one({"id": user_id})
    return result.deleted_count > 0


# ============ Vehicle CRUD ============

def create_vehicle(db: Database, vehicle_data: dict, vendor_id: str) -> dict:
    """Create a new vehicle owned by `vendor_id`"""
    now = utcnow()
    vehicle = {
        **vehicle_data,
        "id": generate_id(),
        "vendor_id": vendor_id,
        "coordinates": vehicle_data.get("coordinates") or copy.deepcopy(DEFAULT_LOCATION),
        "is_available": vehicle_data.get("is_available", True),
        "is_active": True,
        "rating": 0.0,
        "total_reviews": 0,
        "reviews": [],
        "created_at": now,
        "updated_at": now,
    }

    db.vehicles.insert_one(vehicle)
    return vehicle


def get_vehicle_by_id(db: Database, vehicle_id: str) -> Optional[dict]:
    """Get vehicle by ID"""
    if not vehicle_id:
        return None
    return db.vehicles.find_one({"id": vehicle_id})


def update_vehicle(db: Database, vehicle_id: str, update_data: dict) -> Optional[dict]:
    """Update vehicle fields"""
    update_data = dict(update_data)
    update_data["updated_at"] = utcnow()
    return db.vehicles.find_one_and_update(
        {"id": vehicle_id}, {"$set": update_data}, return_document=ReturnDocument.AFTER
    )


def set_vehicle_availability(db: Database, vehicle_id: str, is_available: bool):
    db.vehicles.update_one(
        {"id": vehicle_id}, {"$set": {"is_available": is_available, "updated_at": utcnow()}}
    )


def delete_vehicle(db: Database, vehicle_id: str) -> bool:
    """Delete a vehicle"""
    result = db.vehicles.delete_one({"id": vehicle_id})
    return result.deleted_count > 0


def add_vehicle_review(db: Database, vehicle_id: str, review: dict) -> Optional[dict]:
    """Append a review and refresh rating / total_reviews"""
    vehicle = get_vehicle_by_id(db, vehicle_id)
    if not vehicle:
        return None
    reviews = vehicle.get("reviews", []) + [review]
    rating, total = _recompute_rating(reviews)
    return update_vehicle(db, vehicle_id, {"reviews": reviews, "rating": rating, "total_reviews": total})


# ============ Booking CRUD ============

def create_booking(db: Database, booking_data: dict) -> dict:
    """Create a new booking"""
    now = utcnow()
    booking = {
        "id": generate_id(),
        "user_id": booking_data["user_id"],
        "vehicle_id": booking_data["vehicle_id"],
        "vendor_id": booking_data["vendor_id"],
        "start_date": as_utc(booking_data["start_date"]),
        "end_date": as_utc(booking_data["end_date"]),
        "total_days": booking_data["total_days"],
        "total_amount": float(booking_data["total_amount"]),
        "status": "pending",
        "payment_status": "pending",
        "payment_method": booking_data.get("payment_method", "card"),
        "payment_id": "",
        "pickup_location": booking_data["pickup_location"],
        "drop_location": booking_data["drop_location"],
        "pickup_coordinates": booking_data.get("pickup_coordinates") or copy.deepcopy(DEFAULT_LOCATION),
        "drop_coordinates": booking_data.get("drop_coordinates") or copy.deepcopy(DEFAULT_LOCATION),
        "driver_details": booking_data["driver_details"],
        "additional_services": booking_data.get("additional_services") or [],
        "notes": booking_data.get("notes"),
        "cancellation_reason": None,
        "refund_amount": 0.0,
        "created_at": now,
        "updated_at": now,
    }

    db.bookings.insert_one(booking)
    return booking


def get_booking_by_id(db: Database, booking_id: str) -> Optional[dict]:
    """Get booking by ID"""
    if not booking_id:
        return None
    return db.bookings.find_one({"id": booking_id})


def update_booking(db: Database, booking_id: str, update_data: dict) -> Optional[dict]:
    """Update booking fields"""
    update_data = dict(update_data)
    update_data["updated_at"] = utcnow()
    return db.bookings.find_one_and_update(
        {"id": booking_id}, {"$set": update_data}, return_document=ReturnDocument.AFTER
    )


def find_conflicting_booking(db: Database, vehicle_id: str, start_date: datetime,
                             end_date: datetime, exclude_id: str = None) -> Optional[dict]:
    """A booking that holds the vehicle for any part of [start_date, end_date]"""
    query = {
        "vehicle_id": vehicle_id,
        "status": {"$in": list(ACTIVE_BOOKING_STATUSES)},
        "start_date": {"$lte": as_utc(end_date)},
        "end_date": {"$gte": as_utc(start_date)},
    }

    if exclude_id:
        query["id"] = {"$ne": exclude_id}

    return db.bookings.find_one(query)


def count_active_bookings_for_vehicle(db: Database, vehicle_id: str) -> int:
    return db.bookings.count_documents({
        "vehicle_id": vehicle_id,
        "status": {"$in": list(ACTIVE_BOOKING_STATUSES)},
    })


def list_bookings(db: Database, query: Optional[dict] = None) -> List[dict]:
    return list(db.bookings.find(query or {}).sort("created_at", DESCENDING))


# ============ Mechanic Profile CRUD ============

def create_mechanic(db: Database, mechanic_data: dict, user_id: str) -> dict:
    """Create a standalone mechanic profile for `user_id`"""
    now = utcnow()
    mechanic = {
        "availability": True,
        "working_hours": dict(DEFAULT_WORKING_HOURS),
        "working_days": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"],
        "location": copy.deepcopy(DEFAULT_LOCATION),
        "service_area": 10,
        "emergency_service": False,
        "languages": [],
        **mechanic_data,
        "id": generate_id(),
        "user_id": user_id,
        "rating": 0.0,
        "total_reviews": 0,
        "reviews": [],
        "is_verified": False,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }

    db.mechanics.insert_one(mechanic)
    return mechanic


def get_mechanic_by_id(db: Database, mechanic_id: str) -> Optional[dict]:
    if not mechanic_id:
        return None
    return db.mechanics.find_one({"id": mechanic_id})


def get_mechanic_by_user(db: Database, user_id: str) -> Optional[dict]:
    return db.mechanics.find_one({"user_id": user_id})


def update_mechanic(db: Database, mechanic_id: str, update_data: dict) -> Optional[dict]:
    update_data = dict(update_data)
    update_data["updated_at"] = utcnow()
    return db.mechanics.find_one_and_update(
        {"id": mechanic_id}, {"$set": update_data}, return_document=ReturnDocument.AFTER
    )


def add_mechanic_review(db: Database, mechanic_id: str, review: dict) -> Optional[dict]:
    mechanic = get_mechanic_by_id(db, mechanic_id)
    if not mechanic:
        return None
    reviews = mechanic.get("reviews", []) + [review]
    rating, total = _recompute_rating(reviews)
    return update_mechanic(db, mechanic_id, {"reviews": reviews, "rating": rating, "total_reviews": total})


def replace_mechanics(db: Database, mechanics: List[dict]) -> List[dict]:
    """Drop every mechanic profile and insert `mechanics`"""
    db.mechanics.delete_many({})
    now = utcnow()
    created = []
    for data in mechanics:
        doc = {
            "rating": 0.0,
            "total_reviews": 0,
            "reviews": [],
            "availability": True,
            "is_active": True,
            "is_verified": False,
            "location": copy.deepcopy(DEFAULT_LOCATION),
            **data,
            "id": generate_id(),
            "created_at": now,
            "updated_at": now,
        }
        db.mechanics.insert_one(doc)
        created.append(doc)
    return created


# ============ Mechanic Booking CRUD ============

def create_mechanic_booking(db: Database, booking_data: dict) -> dict:
    now = utcnow()
    booking = {
        "id": generate_id(),
        "customer_id": booking_data["customer_id"],
        "mechanic_id": booking_data["mechanic_id"],
        "service_type": booking_data["service_type"],
        "description": booking_data["description"],
        "preferred_date": as_utc(booking_data["preferred_date"]),
        "preferred_time": booking_data.get("preferred_time"),
        "location": booking_data["location"],
        "contact_phone": booking_data["contact_phone"],
        "estimated_duration": booking_data.get("estimated_duration") or "1 hour",
        "estimated_cost": booking_data.get("estimated_cost", 0.0),
        "status": "pending",
        "actual_start_time": None,
        "actual_end_time": None,
        "total_cost": None,
        "payment_status": "pending",
        "notes": None,
        "rating": None,
        "review": None,
        "created_at": now,
        "updated_at": now,
    }

    db.mechanic_bookings.insert_one(booking)
    return booking


def get_mechanic_booking_by_id(db: Database, booking_id: str) -> Optional[dict]:
    if not booking_id:
        return None
    return db.mechanic_bookings.find_one({"id": booking_id})


def update_mechanic_booking(db: Database, booking_id: str, update_data: dict) -> Optional[dict]:
    update_data = dict(update_data)
    update_data["updated_at"] = utcnow()
    return db.mechanic_bookings.find_one_and_update(
        {"id": booking_id}, {"$set": update_data}, return_document=ReturnDocument.AFTER
    )


def get_mechanic_bookings_by_mechanic(db: Database, mechanic_id: str, status: str = None,
                                      has_review: bool = False) -> List[dict]:
    """Bookings for a mechanic; `status` may be a comma-separated list"""
    query: Dict[str, Any] = {"mechanic_id": mechanic_id}
    if status:
        statuses = [s.strip() for s in status.split(",") if s.strip()]
        query["status"] = {"$in": statuses} if len(statuses) > 1 else statuses[0]
    if has_review:
        query["rating"] = {"$ne": None}
        query["review"] = {"$nin": [None, ""]}
    return list(db.mechanic_bookings.find(query).sort("preferred_date", 1))


def get_mechanic_bookings_by_customer(db: Database, customer_id: str, status: str = None) -> List[dict]:
    query: Dict[str, Any] = {"customer_id": customer_id}
    if status:
        query["status"] = status
    return list(db.mechanic_bookings.find(query).sort("preferred_date", DESCENDING))


def refresh_mechanic_rating(db: Database, mechanic_id: str) -> Optional[dict]:
    """Set the mechanic user's rating to the mean of their rated bookings"""
    rated = list(db.mechanic_bookings.find({"mechanic_id": mechanic_id, "rating": {"$ne": None}}))
    if not rated:
        return get_user_by_id(db, mechanic_id)
    average = sum(float(b["rating"]) for b in rated) / len(rated)
    return update_user(db, mechanic_id, {"rating": round(average, 1), "total_reviews": len(rated)})


# ============ Settings ============

def _merge(base: dict, updates: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_settings(db: Database) -> dict:
    """Return the singleton settings document, creating it on first use"""
    settings_doc = db.settings.find_one({})
    if not settings_doc:
        now = utcnow()
        settings_doc = {**copy.deepcopy(DEFAULT_SETTINGS), "id": generate_id(), "created_at": now, "updated_at": now}
        db.settings.insert_one(settings_doc)
    return settings_doc


def update_settings(db: Database, update_data: dict) -> dict:
    current = get_settings(db)
    merged = _merge(current, update_data)
    merged["updated_at"] = utcnow()
    merged.pop("_id", None)
    db.settings.update_one({"id": current["id"]}, {"$set": merged})
    return db.settings.find_one({"id": current["id"]})


# ============ Feedback ============

def add_feedback(db: Database, data: dict) -> dict:
    item = {
        "id": generate_id(),
        "user_id": data.get("user_id"),
        "name": data.get("name") or "Anonymous",
        "email": data.get("email") or "",
        "message": data["message"],
        "status": "open",
        "replies": [],
        "created_at": utcnow(),
    }
    db.feedback.insert_one(item)
    return item


def list_feedback(db: Database) -> List[dict]:
    return list(db.feedback.find({}).sort("created_at", DESCENDING))


def add_feedback_reply(db: Database, feedback_id: str, admin_id: str, reply: str) -> Optional[dict]:
    entry = {"id": generate_id(), "admin_id": admin_id, "reply": reply, "created_at": utcnow()}
    return db.feedback.find_one_and_update(
        {"id": feedback_id},
        {"$push": {"replies": entry}, "$set": {"status": "answered"}},
        return_document=ReturnDocument.AFTER,
    )


# ============ Seed Data ============

def seed_database(db: Database):
    """Seed the database with demo accounts and vehicles"""

    # Check if already seeded
    if db.users.count_documents({}) > 0:
        logger.info("Database already seeded, skipping...")
        return

    logger.info("Seeding database...")

    create_user(db, {
        "name": "Admin User", "email": "admin@vehiclerental.com", "phone": "9876543210",
        "password": "admin123", "role": "admin",
    })
    vendor = create_user(db, {
        "name": "Kovai Rentals", "email": "vendor@vehiclerental.com", "phone": "9876543211",
        "password": "vendor123", "role": "vendor", "is_approved": True,
        "address": "Gandhipuram, Coimbatore",
    })
    create_user(db, {
        "name": "Ravi Kumar", "email": "user@vehiclerental.com", "phone": "9876543212",
        "password": "user123", "role": "user",
    })
    mechanic = create_user(db, {
        "name": "Suresh Mechanic", "email": "mechanic@vehiclerental.com", "phone": "9876543213",
        "password": "mechanic123", "role": "mechanic", "is_approved": True,
        "location": {"type": "Point", "coordinates": [76.9558, 11.0168]},
    })
    update_user(db, mechanic["id"], {
        "specialization": "Engine Repair",
        "experience": 6,
        "services": ["Engine Repair", "Oil Change", "General Maintenance"],
        "pricing": {"hourly_rate": 400.0},
    })

    expiry = utcnow() + timedelta(days=365)
    vehicles_data = [
        {"name": "Maruti Swift Dzire", "type": "Car", "fuel_type": "Petrol", "brand": "Maruti",
         "model": "Swift Dzire", "year": 2022, "price_per_day": 1500.0, "location": "Coimbatore",
         "description": "Compact sedan, perfect for city drives. Fuel efficient and easy to handle.",
         "images": ["https://images.unsplash.com/photo-1549317661-bd32c8ce0db2?w=800"],
         "features": ["AC", "Power Steering", "Airbags"],
         "specifications": {"seats": 5, "transmission": "Manual", "mileage": 22.0, "engine_capacity": "1197cc",
                            "color": "White", "registration_number": "TN-38-AB-1234",
                            "insurance_expiry": expiry, "permit_expiry": expiry}},
        {"name": "Hyundai Creta", "type": "SUV", "fuel_type": "Diesel", "brand": "Hyundai",
         "model": "Creta", "year": 2023, "price_per_day": 2500.0, "location": "Erode",
         "description": "Premium SUV with spacious interiors. Great for highway and long trips.",
         "images": ["https://images.unsplash.com/photo-1606611013016-969c19ba27bb?w=800"],
         "features": ["AC", "GPS", "Bluetooth", "Backup Camera"],
         "specifications": {"seats": 5, "transmission": "Automatic", "mileage": 18.0, "engine_capacity": "1493cc",
                            "color": "Grey", "registration_number": "TN-33-CD-5678",
                            "insurance_expiry": expiry, "permit_expiry": expiry}},
        {"name": "Royal Enfield Classic 350", "type": "Bike", "fuel_type": "Petrol", "brand": "Royal Enfield",
         "model": "Classic 350", "year": 2021, "price_per_day": 800.0, "location": "Coimbatore",
         "description": "Comfortable cruiser for weekend rides through the Nilgiris.",
         "images": ["https://images.unsplash.com/photo-1558981403-c5f9899a28bc?w=800"],
         "features": [],
         "specifications": {"seats": 2, "transmission": "Manual", "mileage": 35.0, "engine_capacity": "349cc",
                            "color": "Black", "registration_number": "TN-38-EF-9012",
                            "insurance_expiry": expiry, "permit_expiry": expiry}},
    ]

    for data in vehicles_data:
        create_vehicle(db, data, vendor["id"])

    logger.info("Database seeded successfully")
    logger.info("Demo accounts: admin@vehiclerental.com, vendor@vehiclerental.com, "
                "user@vehiclerental.com, mechanic@vehiclerental.com")
