"""
Mechanic Routes

Mechanics exist in two shapes: users registered with the `mechanic`
role, and standalone profiles in the `mechanics` collection. Listing
endpoints merge both and de-duplicate by email.
"""
import logging
import math
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, HTTPException, status, Query, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core.config import settings
from vehicle_rental.core import crud
from vehicle_rental.core.bookings import utcnow
from vehicle_rental.api.routes.auth import PHONE_PATTERN, GeoPoint, get_current_admin, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mechanics", tags=["Mechanics"])

EARTH_RADIUS_KM = 6378.1
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
EXPERIENCE_RANGES = {"0-2": (0, 2), "3-5": (3, 5), "6-10": (6, 10), "10+": (10, None)}

MechanicService = Literal[
    "Engine Repair", "Brake Service", "Oil Change", "Tire Service", "Battery Service",
    "AC Service", "Electrical Repair", "Body Repair", "Paint Job", "General Maintenance",
]
Language = Literal["English", "Tamil", "Hindi", "Telugu", "Malayalam", "Kannada"]

# Sample points used by the add-locations helper, as (lat, lng)
SAMPLE_LOCATIONS = [
    (19.0760, 72.8777),
    (19.2183, 72.9781),
    (19.0330, 73.0297),
    (19.1077, 72.8262),
    (19.0176, 72.8562),
]


# ============ Schemas ============

class WorkingHours(BaseModel):
    start: str = Field(..., pattern=TIME_PATTERN)
    end: str = Field(..., pattern=TIME_PATTERN)


class Pricing(BaseModel):
    consultation_fee: float = Field(0, ge=0)
    hourly_rate: float = Field(..., ge=0)
    emergency_fee: float = Field(0, ge=0)


class MechanicAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)


class ContactInfo(BaseModel):
    phone: str = Field(..., pattern=PHONE_PATTERN)
    whatsapp: Optional[str] = None
    email: EmailStr


class Documents(BaseModel):
    license: str = Field(..., min_length=1)
    certifications: List[str] = Field(default_factory=list)
    insurance: Optional[str] = None


class MechanicCreate(BaseModel):
    specialization: str = Field(..., min_length=1)
    experience: int = Field(..., ge=0)
    services: List[MechanicService] = Field(..., min_length=1)
    address: MechanicAddress
    contact_info: ContactInfo
    documents: Documents
    pricing: Pricing
    location: Optional[GeoPoint] = None
    service_area: float = Field(10, ge=0)
    working_hours: Optional[WorkingHours] = None
    working_days: Optional[List[str]] = None
    emergency_service: bool = False
    languages: List[Language] = Field(default_factory=list)


class MechanicProfileUpdate(BaseModel):
    specialization: Optional[str] = Field(None, min_length=1)
    experience: Optional[int] = Field(None, ge=0)
    services: Optional[List[str]] = None
    pricing: Optional[Pricing] = None
    availability: Optional[bool] = None
    working_hours: Optional[WorkingHours] = None
    working_days: Optional[List[str]] = None


class AvailabilityUpdate(BaseModel):
    availability: bool
    working_hours: Optional[WorkingHours] = None
    working_days: Optional[List[str]] = None


class MechanicReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class SeedRequest(BaseModel):
    mechanics: Optional[List[Dict[str, Any]]] = None


# ============ Views ============

def user_mechanic_view(user: dict) -> dict:
    """A mechanic-role user in the shape of a mechanic profile"""
    return {
        "id": user.get("id"),
        "user": crud.user_summary(user),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "address": user.get("address"),
        "role": user.get("role"),
        "is_user_mechanic": True,
        "rating": user.get("rating") or 0,
        "total_reviews": user.get("total_reviews") or 0,
        "specialization": user.get("specialization") or "General Mechanic",
        "experience": user.get("experience") or 0,
        "availability": user.get("availability", True),
        "services": user.get("services") or [],
        "pricing": user.get("pricing") or {"hourly_rate": 0},
        "coordinates": (user.get("location") or {}).get("coordinates"),
        "created_at": user["created_at"].isoformat() if user.get("created_at") else None,
    }


def profile_view(db: Database, mechanic: dict) -> dict:
    data = crud.serialize_doc(mechanic)
    owner = crud.get_user_by_id(db, mechanic.get("user_id"))
    data["user"] = crud.user_summary(owner)
    data["name"] = (owner or {}).get("name")
    data["email"] = (owner or {}).get("email") or (mechanic.get("contact_info") or {}).get("email")
    data["is_user_mechanic"] = False
    return data


def own_profile_view(user: dict) -> dict:
    return {
        "id": user.get("id"),
        "user_id": user.get("id"),
        "specialization": user.get("specialization") or "General Mechanic",
        "experience": user.get("experience") or 0,
        "rating": user.get("rating") or 0,
        "total_reviews": user.get("total_reviews") or 0,
        "services": user.get("services") or ["General Maintenance"],
        "pricing": user.get("pricing") or {"hourly_rate": 0},
        "availability": user.get("availability", True),
        "working_hours": user.get("working_hours") or dict(crud.DEFAULT_WORKING_HOURS),
        "working_days": user.get("working_days") or list(crud.DEFAULT_WORKING_DAYS),
        "address": user.get("address"),
        "contact_info": {"phone": user.get("phone"), "email": user.get("email")},
    }


def dedupe_by_email(mechanics: List[dict]) -> List[dict]:
    seen = set()
    unique = []
    for mechanic in mechanics:
        key = (mechanic.get("email") or "").lower() or mechanic.get("id")
        if key in seen:
            continue
        seen.add(key)
        unique.append(mechanic)
    return unique


def _city_of(mechanic: dict) -> str:
    address = mechanic.get("address")
    if isinstance(address, dict):
        return address.get("city") or ""
    return address or ""


def filter_mechanics(mechanics: List[dict], specialization: Optional[str] = None,
                     city: Optional[str] = None, available: Optional[bool] = None,
                     search: Optional[str] = None, experience: Optional[str] = None,
                     rating: Optional[float] = None) -> List[dict]:
    if specialization:
        needle = specialization.lower()
        mechanics = [m for m in mechanics if needle in (m.get("specialization") or "").lower()]
    if city:
        needle = city.lower()
        mechanics = [m for m in mechanics if needle in _city_of(m).lower()]
    if available is not None:
        mechanics = [m for m in mechanics if bool(m.get("availability", True)) == available]
    if search:
        needle = search.lower()
        mechanics = [
            m for m in mechanics
            if any(needle in (m.get(f) or "").lower() for f in ("name", "specialization", "email"))
        ]
    if experience in EXPERIENCE_RANGES:
        low, high = EXPERIENCE_RANGES[experience]
        mechanics = [
            m for m in mechanics
            if (m.get("experience") or 0) >= low and (high is None or (m.get("experience") or 0) <= high)
        ]
    if rating is not None:
        mechanics = [m for m in mechanics if float(m.get("rating") or 0) >= rating]
    return mechanics


def nearby_query(lat: float, lng: float, max_distance_km: float) -> dict:
    """$geoWithin filter for points within `max_distance_km` of (lat, lng)"""
    return {
        "location": {
            "$geoWithin": {"$centerSphere": [[lng, lat], max_distance_km / EARTH_RADIUS_KM]}
        }
    }


def _require_debug():
    if not settings.DEBUG:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This endpoint is only available in development mode"
        )


# ============ Routes ============

@router.get("")
def list_mechanics(
    specialization: Optional[str] = None,
    city: Optional[str] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    experience: Optional[str] = None,
    rating: Optional[float] = Query(None, ge=0, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db)
):
    """List mechanic users and mechanic profiles together"""
    users = db.users.find({"role": "mechanic", "is_active": {"$ne": False}}).sort("created_at", -1)
    profiles = db.mechanics.find({"is_active": {"$ne": False}}).sort("rating", -1)

    mechanics = [user_mechanic_view(u) for u in users] + [profile_view(db, p) for p in profiles]
    mechanics = filter_mechanics(mechanics, specialization, city, available, search, experience, rating)
    mechanics = dedupe_by_email(mechanics)

    total = len(mechanics)
    skip = (page - 1) * limit
    page_items = mechanics[skip:skip + limit]

    return {
        "mechanics": page_items,
        "pagination": {
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_mechanics": total,
        },
    }


@router.get("/nearby")
def get_nearby_mechanics(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    max_distance: float = Query(10, gt=0),
    db: Database = Depends(get_db)
):
    """Mechanics within `max_distance` km of a point"""
    if lat is None or lng is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Latitude and longitude are required"
        )

    query = nearby_query(lat, lng, max_distance)
    profiles = db.mechanics.find(query).sort("rating", -1)
    users = db.users.find({"role": "mechanic", **query})

    mechanics = dedupe_by_email([user_mechanic_view(u) for u in users] + [profile_view(db, p) for p in profiles])
    logger.debug("Found %d mechanics within %s km of (%s, %s)", len(mechanics), max_distance, lat, lng)

    return {
        "mechanics": mechanics,
        "user_location": {"lat": lat, "lng": lng},
        "max_distance": max_distance,
    }


@router.get("/profile")
def get_mechanic_profile(current_user: dict = Depends(require_roles("mechanic"))):
    """The current mechanic's own profile"""
    return own_profile_view(current_user)


@router.put("/profile")
def update_mechanic_profile(
    profile: MechanicProfileUpdate,
    current_user: dict = Depends(require_roles("mechanic")),
    db: Database = Depends(get_db)
):
    update_data = profile.model_dump(exclude_none=True)
    user = crud.update_user(db, current_user["id"], update_data) if update_data else current_user
    return own_profile_view(user)


@router.put("/availability")
def update_availability(
    update: AvailabilityUpdate,
    current_user: dict = Depends(require_roles("mechanic")),
    db: Database = Depends(get_db)
):
    """Set availability and optionally working hours and days"""
    user = crud.update_user(db, current_user["id"], update.model_dump(exclude_none=True))
    return {"message": "Availability updated successfully", "user": crud.user_public(user)}


@router.post("/seed")
def seed_mechanics(
    request: SeedRequest,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Replace all mechanic profiles with the given list (development only)"""
    _require_debug()

    if request.mechanics is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mechanics array is required")

    created = crud.replace_mechanics(db, request.mechanics)
    logger.info("Seeded %d mechanic profiles", len(created))
    return {
        "message": "Mechanics seeded successfully",
        "count": len(created),
        "mechanics": [crud.serialize_doc(m) for m in created],
    }


@router.post("/add-locations")
def add_sample_locations(
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Assign sample coordinates to mechanics (development only)"""
    _require_debug()

    mechanics = list(db.mechanics.find({}))
    users = list(db.users.find({"role": "mechanic"}))

    for doc, (lat, lng) in zip(mechanics, SAMPLE_LOCATIONS):
        crud.update_mechanic(db, doc["id"], {"location": {"type": "Point", "coordinates": [lng, lat]}})
    for doc, (lat, lng) in zip(users, SAMPLE_LOCATIONS):
        crud.update_user(db, doc["id"], {"location": {"type": "Point", "coordinates": [lng, lat]}})

    return {
        "message": "Location data added successfully",
        "mechanics_updated": len(mechanics),
        "users_updated": len(users),
    }


@router.get("/{mechanic_id}")
def get_mechanic(mechanic_id: str, db: Database = Depends(get_db)):
    """Mechanic profile by id, falling back to a mechanic-role user"""
    mechanic = crud.get_mechanic_by_id(db, mechanic_id)
    if mechanic:
        return profile_view(db, mechanic)

    user = crud.get_user_by_id(db, mechanic_id)
    if user and user.get("role") == "mechanic":
        view = user_mechanic_view(user)
        view["reviews"] = user.get("reviews") or []
        return view

    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mechanic not found")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_mechanic_profile(
    mechanic_data: MechanicCreate,
    current_user: dict = Depends(require_roles("mechanic")),
    db: Database = Depends(get_db)
):
    """Create the current mechanic's standalone profile"""
    if crud.get_mechanic_by_user(db, current_user["id"]):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mechanic profile already exists")

    mechanic = crud.create_mechanic(db, mechanic_data.model_dump(exclude_none=True), current_user["id"])
    return profile_view(db, mechanic)


@router.post("/{mechanic_id}/reviews", status_code=status.HTTP_201_CREATED)
def add_mechanic_review(
    mechanic_id: str,
    review: MechanicReviewCreate,
    current_user: dict = Depends(require_roles("user", "admin")),
    db: Database = Depends(get_db)
):
    mechanic = crud.get_mechanic_by_id(db, mechanic_id)
    if not mechanic:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mechanic not found")

    if any(r.get("user_id") == current_user["id"] for r in mechanic.get("reviews", [])):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mechanic already reviewed")

    mechanic = crud.add_mechanic_review(db, mechanic_id, {
        "user_id": current_user["id"],
        "rating": review.rating,
        "comment": review.comment or "",
        "date": utcnow(),
    })
    return profile_view(db, mechanic)
