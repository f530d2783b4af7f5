"""
Mechanic Booking Routes
"""
import logging
import math
from datetime import datetime
from typing import Literal, Optional
from fastapi import APIRouter, HTTPException, status, Query, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core import crud
from vehicle_rental.core.bookings import (
    MECHANIC_BOOKING_STATUSES,
    MECHANIC_BOOKING_TRANSITIONS,
    as_utc,
    can_transition,
    estimate_mechanic_cost,
    utcnow,
)
from vehicle_rental.core.export import MECHANIC_BOOKING_HEADERS, csv_response, mechanic_booking_row
from vehicle_rental.api.routes.auth import get_current_admin, get_current_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mechanics", tags=["Mechanic Bookings"])

ServiceType = Literal[
    "Engine Repair", "Brake Service", "Oil Change", "Tire Replacement", "Battery Service",
    "AC Repair", "Transmission Service", "Electrical Repair", "General Maintenance", "Other",
]
EstimatedDuration = Literal["30 minutes", "1 hour", "2 hours", "3 hours", "4+ hours"]


# ============ Schemas ============

class MechanicBookingCreate(BaseModel):
    mechanic_id: str
    service_type: ServiceType
    description: str = Field(..., min_length=10, max_length=500)
    preferred_date: datetime
    preferred_time: Optional[str] = None
    location: str = Field(..., min_length=5, max_length=200)
    contact_phone: str = Field(..., pattern=r"^\+?[0-9]{10,13}$")
    estimated_duration: EstimatedDuration = "1 hour"


class MechanicBookingStatusUpdate(BaseModel):
    status: Literal[MECHANIC_BOOKING_STATUSES]
    notes: Optional[str] = Field(None, max_length=500)
    total_cost: Optional[float] = Field(None, ge=0)


class RatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=300)


def mechanic_booking_to_response(booking: dict, db: Database) -> dict:
    data = crud.serialize_doc(booking)
    data["customer"] = crud.user_summary(crud.get_user_by_id(db, booking.get("customer_id")))
    data["mechanic"] = crud.user_summary(
        crud.get_user_by_id(db, booking.get("mechanic_id")), "name", "email", "phone", "specialization"
    )
    return data


def _get_booking_or_404(db: Database, booking_id: str) -> dict:
    booking = crud.get_mechanic_booking_by_id(db, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


def _is_booked_mechanic(booking: dict, user: dict) -> bool:
    return user.get("role") == "mechanic" and booking.get("mechanic_id") == user["id"]


# ============ Routes ============

@router.post("/book", status_code=status.HTTP_201_CREATED)
def book_mechanic(
    booking_data: MechanicBookingCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Request a service visit from a mechanic"""
    mechanic = crud.get_user_by_id(db, booking_data.mechanic_id)
    if not mechanic or mechanic.get("role") != "mechanic":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mechanic not found")

    if not mechanic.get("availability", True):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Mechanic is not available for bookings"
        )

    preferred_date = as_utc(booking_data.preferred_date)
    if preferred_date < utcnow():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Booking date cannot be in the past"
        )

    hourly_rate = (mechanic.get("pricing") or {}).get("hourly_rate", 0)
    booking = crud.create_mechanic_booking(db, {
        **booking_data.model_dump(),
        "customer_id": current_user["id"],
        "preferred_date": preferred_date,
        "estimated_cost": estimate_mechanic_cost(hourly_rate, booking_data.estimated_duration),
    })
    logger.info("Mechanic booking %s requested for mechanic %s", booking["id"], mechanic["id"])

    return {
        "message": "Mechanic booking request submitted successfully",
        "booking": mechanic_booking_to_response(booking, db),
    }


@router.get("/bookings/customer")
def get_customer_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    bookings = crud.get_mechanic_bookings_by_customer(db, current_user["id"], status_filter)
    return {
        "bookings": [mechanic_booking_to_response(b, db) for b in bookings],
        "count": len(bookings),
    }


@router.get("/bookings/mechanic")
def get_mechanic_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    has_review: bool = False,
    current_user: dict = Depends(require_roles("mechanic")),
    db: Database = Depends(get_db)
):
    """Bookings assigned to the current mechanic; status may be comma separated"""
    bookings = crud.get_mechanic_bookings_by_mechanic(db, current_user["id"], status_filter, has_review)
    return {
        "bookings": [mechanic_booking_to_response(b, db) for b in bookings],
        "count": len(bookings),
    }


@router.get("/bookings/all")
def get_all_mechanic_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    service_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Every booking for admins and vendors; a customer's own bookings otherwise"""
    role = current_user.get("role")
    query = {}
    if role not in ("admin", "vendor"):
        query["customer_id"] = current_user["id"]
    if status_filter and status_filter != "all":
        query["status"] = status_filter
    if service_type and service_type != "all":
        query["service_type"] = service_type

    bookings, total = crud.paginate(db.mechanic_bookings, query, page, limit, sort=[("preferred_date", -1)])
    return {
        "bookings": [mechanic_booking_to_response(b, db) for b in bookings],
        "count": len(bookings),
        "total": total,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "user_role": role,
        "is_admin": role == "admin",
    }


@router.get("/bookings/export")
def export_mechanic_bookings(
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    bookings = db.mechanic_bookings.find({}).sort("created_at", -1)
    rows = [
        mechanic_booking_row(
            b,
            crud.get_user_by_id(db, b.get("customer_id")),
            crud.get_user_by_id(db, b.get("mechanic_id")),
        )
        for b in bookings
    ]
    return csv_response("mechanic_bookings", MECHANIC_BOOKING_HEADERS, rows)


@router.get("/bookings/{booking_id}")
def get_mechanic_booking(
    booking_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    booking = _get_booking_or_404(db, booking_id)

    allowed = (
        booking.get("customer_id") == current_user["id"]
        or _is_booked_mechanic(booking, current_user)
        or current_user.get("role") == "admin"
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to view this booking"
        )

    return {"booking": mechanic_booking_to_response(booking, db)}


@router.put("/bookings/{booking_id}/status")
def update_mechanic_booking_status(
    booking_id: str,
    update: MechanicBookingStatusUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Move a service booking through its lifecycle"""
    booking = _get_booking_or_404(db, booking_id)

    is_mechanic = _is_booked_mechanic(booking, current_user)
    is_customer = booking.get("customer_id") == current_user["id"]

    if not is_mechanic and not is_customer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to update this booking"
        )

    if not is_mechanic and update.status != "cancelled":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customers can only cancel a booking"
        )

    current = booking.get("status")
    if not can_transition(MECHANIC_BOOKING_TRANSITIONS, current, update.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change booking status from {current} to {update.status}"
        )

    update_data = {"status": update.status}
    if update.notes:
        update_data["notes"] = update.notes
    if update.total_cost is not None:
        update_data["total_cost"] = update.total_cost

    if update.status == "in_progress" and not booking.get("actual_start_time"):
        update_data["actual_start_time"] = utcnow()
    if update.status == "completed" and not booking.get("actual_end_time"):
        update_data["actual_end_time"] = utcnow()

    booking = crud.update_mechanic_booking(db, booking_id, update_data)
    return {
        "message": "Booking status updated successfully",
        "booking": mechanic_booking_to_response(booking, db),
    }


@router.post("/bookings/{booking_id}/rate")
def rate_mechanic_booking(
    booking_id: str,
    rating: RatingCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Rate a completed booking and refresh the mechanic's average"""
    booking = _get_booking_or_404(db, booking_id)

    if booking.get("customer_id") != current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to rate this booking"
        )

    if booking.get("status") != "completed":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Can only rate completed bookings"
        )

    update_data = {"rating": rating.rating}
    if rating.review:
        update_data["review"] = rating.review

    booking = crud.update_mechanic_booking(db, booking_id, update_data)
    crud.refresh_mechanic_rating(db, booking["mechanic_id"])

    return {
        "message": "Rating submitted successfully",
        "booking": mechanic_booking_to_response(booking, db),
    }
