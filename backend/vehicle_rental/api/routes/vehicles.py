"""
Vehicle Routes
"""
import logging
import re
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, status, Query, Depends
from pydantic import BaseModel, Field, field_validator
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core import crud
from vehicle_rental.core.bookings import utcnow
from vehicle_rental.core.cache import make_key, vehicle_list_cache
from vehicle_rental.api.routes.auth import GeoPoint, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])

VehicleType = Literal["Car", "Bike", "SUV", "Van", "Truck", "Bus", "Auto"]
FuelType = Literal["Petrol", "Diesel", "Electric", "Hybrid", "CNG"]
Feature = Literal[
    "AC", "GPS", "Bluetooth", "USB Charger", "Backup Camera", "Parking Sensors",
    "Cruise Control", "Power Windows", "Power Steering", "ABS", "Airbags",
]


# ============ Schemas ============

class Specifications(BaseModel):
    seats: int = Field(..., ge=1)
    transmission: Literal["Manual", "Automatic"]
    mileage: float = Field(..., ge=0)
    engine_capacity: Optional[str] = None
    color: Optional[str] = None
    registration_number: str = Field(..., min_length=1)
    insurance_expiry: datetime
    permit_expiry: datetime


class VehicleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: VehicleType
    fuel_type: FuelType
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900)
    description: str = Field(..., min_length=10, max_length=1000)
    price_per_day: float = Field(..., ge=0)
    location: str = Field(..., min_length=1)
    coordinates: Optional[GeoPoint] = None
    images: List[str] = Field(..., min_length=1)
    features: List[Feature] = Field(default_factory=list)
    specifications: Specifications
    is_available: bool = True

    @field_validator("year")
    @classmethod
    def year_not_in_future(cls, v: int) -> int:
        if v > utcnow().year + 1:
            raise ValueError("Year cannot be later than next year")
        return v


class VehicleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[VehicleType] = None
    fuel_type: Optional[FuelType] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    price_per_day: Optional[float] = Field(None, ge=0)
    location: Optional[str] = None
    coordinates: Optional[GeoPoint] = None
    images: Optional[List[str]] = Field(None, min_length=1)
    features: Optional[List[Feature]] = None
    specifications: Optional[Specifications] = None
    is_available: Optional[bool] = None


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


def vehicle_to_response(vehicle: dict, vendor: Optional[dict] = None) -> dict:
    data = crud.serialize_doc(vehicle)
    data["price_per_day"] = float(vehicle.get("price_per_day", 0))
    if vendor is not None:
        data["vendor"] = crud.user_summary(vendor)
    return data


def _get_owned_vehicle(db: Database, vehicle_id: str, vendor: dict) -> dict:
    vehicle = crud.get_vehicle_by_id(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    if vehicle.get("vendor_id") != vendor.get("id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to modify this vehicle"
        )
    return vehicle


def _registration_taken(db: Database, registration_number: str, exclude_id: str = None) -> bool:
    query = {"specifications.registration_number": registration_number}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return db.vehicles.count_documents(query) > 0


def _contains(value: str) -> dict:
    return {"$regex": re.escape(value), "$options": "i"}


def build_vehicle_query(search: Optional[str] = None, type: Optional[str] = None,
                        fuel_type: Optional[str] = None, min_price: Optional[float] = None,
                        max_price: Optional[float] = None, location: Optional[str] = None,
                        available: Optional[bool] = None) -> dict:
    """Mongo filter for the public vehicle listing"""
    query = {"is_active": True}

    if search:
        query["$or"] = [
            {field: _contains(search)}
            for field in ("name", "description", "location", "brand", "model")
        ]
    if type:
        query["type"] = type
    if fuel_type:
        query["fuel_type"] = fuel_type

    price = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        query["price_per_day"] = price

    if location:
        query["location"] = _contains(location)
    if available:
        query["is_available"] = True

    return query


# ============ Routes ============

@router.get("")
def list_vehicles(
    search: Optional[str] = None,
    type: Optional[VehicleType] = None,
    fuel_type: Optional[FuelType] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    location: Optional[str] = None,
    available: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db)
):
    """List active vehicles with filters and pagination"""
    params = {
        "search": search, "type": type, "fuel_type": fuel_type, "min_price": min_price,
        "max_price": max_price, "location": location, "available": available,
        "page": page, "limit": limit,
    }
    cache_key = make_key("vehicles", params)
    cached = vehicle_list_cache.get(cache_key)
    if cached is not None:
        return cached

    query = build_vehicle_query(search, type, fuel_type, min_price, max_price, location, available)
    vehicles, total = crud.paginate(db.vehicles, query, page, limit, sort=[("created_at", -1)])

    vendor_ids = {v.get("vendor_id") for v in vehicles}
    vendors = {u["id"]: u for u in db.users.find({"id": {"$in": list(vendor_ids)}})}

    response = {
        "vehicles": [vehicle_to_response(v, vendors.get(v.get("vendor_id"), {})) for v in vehicles],
        "pagination": crud.pagination_meta(page, limit, total, "total_vehicles", len(vehicles)),
    }
    vehicle_list_cache.set(cache_key, response)
    return response


@router.get("/vendor")
def get_vendor_vehicles(
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Vehicles owned by the current vendor"""
    vehicles = db.vehicles.find({"vendor_id": vendor["id"]}).sort("created_at", -1)
    return [vehicle_to_response(v) for v in vehicles]


# ============ Vendor Mechanics ============

def _find_mechanic(db: Database, mechanic_id: str) -> Optional[dict]:
    """A mechanic profile, or a mechanic-role user, by id"""
    mechanic = crud.get_mechanic_by_id(db, mechanic_id)
    if mechanic:
        return mechanic
    user = crud.get_user_by_id(db, mechanic_id)
    if user and user.get("role") == "mechanic":
        return user
    return None


def _mechanic_to_response(db: Database, mechanic: dict) -> dict:
    data = crud.user_public(mechanic) if mechanic.get("role") == "mechanic" else crud.serialize_doc(mechanic)
    if mechanic.get("user_id"):
        data["user"] = crud.user_summary(crud.get_user_by_id(db, mechanic["user_id"]))
    return data


@router.get("/vendor/mechanics")
def get_vendor_mechanics(
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Mechanics associated with the vendor, or available ones when none are"""
    associated = vendor.get("associated_mechanics") or []
    if associated:
        mechanics = [m for m in (_find_mechanic(db, mid) for mid in associated) if m]
    else:
        mechanics = list(db.mechanics.find({"availability": True}).limit(10))
    return [_mechanic_to_response(db, m) for m in mechanics]


@router.post("/vendor/mechanics/{mechanic_id}/associate")
def associate_mechanic(
    mechanic_id: str,
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    mechanic = _find_mechanic(db, mechanic_id)
    if not mechanic:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mechanic not found")

    associated = list(vendor.get("associated_mechanics") or [])
    if mechanic_id not in associated:
        associated.append(mechanic_id)
        crud.update_user(db, vendor["id"], {"associated_mechanics": associated})

    return {
        "message": "Mechanic associated successfully",
        "mechanic": _mechanic_to_response(db, mechanic),
    }


@router.delete("/vendor/mechanics/{mechanic_id}/disassociate")
def disassociate_mechanic(
    mechanic_id: str,
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    if not _find_mechanic(db, mechanic_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mechanic not found")

    associated = [m for m in (vendor.get("associated_mechanics") or []) if m != mechanic_id]
    crud.update_user(db, vendor["id"], {"associated_mechanics": associated})
    return {"message": "Mechanic disassociated successfully"}


# ============ Single Vehicle ============

@router.get("/{vehicle_id}")
def get_vehicle(vehicle_id: str, db: Database = Depends(get_db)):
    """Get vehicle details"""
    vehicle = crud.get_vehicle_by_id(db, vehicle_id)

    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    vendor = crud.get_user_by_id(db, vehicle.get("vendor_id"))
    return vehicle_to_response(vehicle, vendor or {})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_vehicle(
    vehicle_data: VehicleCreate,
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Add a new vehicle"""
    if _registration_taken(db, vehicle_data.specifications.registration_number):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Registration number already exists"
        )

    vehicle = crud.create_vehicle(db, vehicle_data.model_dump(exclude_none=True), vendor["id"])
    vehicle_list_cache.clear()
    logger.info("Vendor %s added vehicle %s", vendor["id"], vehicle["id"])
    return vehicle_to_response(vehicle)


@router.put("/{vehicle_id}")
def update_vehicle(
    vehicle_id: str,
    vehicle_data: VehicleUpdate,
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Update vehicle details"""
    _get_owned_vehicle(db, vehicle_id, vendor)

    update_data = vehicle_data.model_dump(exclude_none=True)
    specs = update_data.get("specifications")
    if specs and _registration_taken(db, specs["registration_number"], exclude_id=vehicle_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Registration number already exists"
        )

    vehicle = crud.update_vehicle(db, vehicle_id, update_data)
    vehicle_list_cache.clear()
    return vehicle_to_response(vehicle)


@router.delete("/{vehicle_id}")
def delete_vehicle(
    vehicle_id: str,
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Delete a vehicle"""
    _get_owned_vehicle(db, vehicle_id, vendor)
    crud.delete_vehicle(db, vehicle_id)
    vehicle_list_cache.clear()
    return {"message": "Vehicle deleted successfully"}


@router.post("/{vehicle_id}/reviews", status_code=status.HTTP_201_CREATED)
def add_review(
    vehicle_id: str,
    review: ReviewCreate,
    current_user: dict = Depends(require_roles("user")),
    db: Database = Depends(get_db)
):
    """Review a vehicle, once per user"""
    vehicle = crud.get_vehicle_by_id(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    if any(r.get("user_id") == current_user["id"] for r in vehicle.get("reviews", [])):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You have already reviewed this vehicle"
        )

    vehicle = crud.add_vehicle_review(db, vehicle_id, {
        "user_id": current_user["id"],
        "rating": review.rating,
        "comment": review.comment or "",
        "date": utcnow(),
    })
    vehicle_list_cache.clear()
    return {"message": "Review added successfully", "vehicle": vehicle_to_response(vehicle)}
