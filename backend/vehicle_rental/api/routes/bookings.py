"""
Bookings Routes
"""
import logging
import random
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Literal, Optional
from fastapi import APIRouter, HTTPException, status, Query, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core.config import settings
from vehicle_rental.core import crud
from vehicle_rental.core.bookings import (
    BOOKING_STATUSES,
    BOOKING_TRANSITIONS,
    PAYMENT_METHODS,
    as_utc,
    calculate_refund,
    calculate_total_amount,
    calculate_total_days,
    can_transition,
    utcnow,
)
from vehicle_rental.core.cache import vehicle_list_cache
from vehicle_rental.core.export import BOOKING_HEADERS, booking_row, csv_response
from vehicle_rental.api.routes.auth import PHONE_PATTERN, GeoPoint, get_current_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

EARNINGS_RANGES = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}


# ============ Schemas ============

class DriverDetails(BaseModel):
    name: str = Field(..., min_length=1)
    license_number: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=PHONE_PATTERN)


class AdditionalService(BaseModel):
    service: Literal["GPS", "Child Seat", "Extra Driver", "Insurance", "Fuel"]
    price: float = Field(0, ge=0)


class BookingCreate(BaseModel):
    vehicle_id: str
    start_date: datetime
    end_date: datetime
    pickup_location: str = Field(..., min_length=1)
    drop_location: str = Field(..., min_length=1)
    pickup_coordinates: Optional[GeoPoint] = None
    drop_coordinates: Optional[GeoPoint] = None
    driver_details: DriverDetails
    additional_services: List[AdditionalService] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: Literal[BOOKING_STATUSES]
    cancellation_reason: Optional[str] = Field(None, max_length=200)


class PaymentRequest(BaseModel):
    payment_method: Literal[PAYMENT_METHODS]
    payment_id: Optional[str] = None


def booking_to_response(booking: dict, db: Database) -> dict:
    vehicle = crud.get_vehicle_by_id(db, booking.get("vehicle_id"))
    vendor = crud.get_user_by_id(db, booking.get("vendor_id"))
    user = crud.get_user_by_id(db, booking.get("user_id"))

    data = crud.serialize_doc(booking)
    data["total_amount"] = float(booking.get("total_amount", 0))
    data["vehicle"] = {
        "id": vehicle.get("id"),
        "name": vehicle.get("name"),
        "type": vehicle.get("type"),
        "brand": vehicle.get("brand"),
        "model": vehicle.get("model"),
        "price_per_day": float(vehicle.get("price_per_day", 0)),
        "location": vehicle.get("location"),
        "images": vehicle.get("images", []),
    } if vehicle else None
    data["vendor"] = crud.user_summary(vendor, "name", "phone")
    data["user"] = crud.user_summary(user, "name", "phone")
    return data


def _get_booking_or_404(db: Database, booking_id: str) -> dict:
    booking = crud.get_booking_by_id(db, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


def _free_vehicle(db: Database, vehicle_id: str):
    crud.set_vehicle_availability(db, vehicle_id, True)
    vehicle_list_cache.clear()


# ============ Routes ============

@router.post("", status_code=status.HTTP_201_CREATED)
def create_booking(
    booking_data: BookingCreate,
    current_user: dict = Depends(require_roles("user")),
    db: Database = Depends(get_db)
):
    """Book a vehicle for a date range"""
    vehicle = crud.get_vehicle_by_id(db, booking_data.vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    if not vehicle.get("is_available") or not vehicle.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Vehicle is not available")

    start = as_utc(booking_data.start_date)
    end = as_utc(booking_data.end_date)

    if start <= utcnow():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Start date must be in the future"
        )
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date must be after start date"
        )

    if crud.find_conflicting_booking(db, vehicle["id"], start, end):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Vehicle is already booked for these dates"
        )

    services = [s.model_dump() for s in booking_data.additional_services]
    days = calculate_total_days(start, end)

    booking = crud.create_booking(db, {
        **booking_data.model_dump(exclude_none=True),
        "user_id": current_user["id"],
        "vendor_id": vehicle.get("vendor_id"),
        "start_date": start,
        "end_date": end,
        "total_days": days,
        "total_amount": calculate_total_amount(vehicle.get("price_per_day", 0), days, services),
        "additional_services": services,
    })

    crud.set_vehicle_availability(db, vehicle["id"], False)
    vehicle_list_cache.clear()
    logger.info("Booking %s created for vehicle %s", booking["id"], vehicle["id"])

    return booking_to_response(booking, db)


@router.get("")
def get_my_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Bookings made by the current user"""
    query = {"user_id": current_user["id"]}
    if status_filter:
        query["status"] = status_filter

    bookings, total = crud.paginate(db.bookings, query, page, limit, sort=[("created_at", -1)])
    return {
        "bookings": [booking_to_response(b, db) for b in bookings],
        "pagination": crud.pagination_meta(page, limit, total, "total_bookings", len(bookings)),
    }


@router.get("/vendor")
def get_vendor_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Bookings for the current vendor's vehicles"""
    query = {"vendor_id": vendor["id"]}
    if status_filter:
        query["status"] = status_filter

    results = []
    for booking in crud.list_bookings(db, query):
        data = booking_to_response(booking, db)
        data["customer_name"] = (data["user"] or {}).get("name", "Unknown Customer")
        data["vehicle_name"] = (data["vehicle"] or {}).get("name", "Unknown Vehicle")
        results.append(data)
    return results


@router.get("/vendor/earnings")
def get_vendor_earnings(
    range_: str = Query("30d", alias="range"),
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Earnings from paid or completed bookings within a time range"""
    if range_ not in EARNINGS_RANGES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid range. Use one of: {', '.join(EARNINGS_RANGES)}"
        )

    since = utcnow() - timedelta(days=EARNINGS_RANGES[range_])
    bookings = crud.list_bookings(db, {
        "vendor_id": vendor["id"],
        "created_at": {"$gte": since},
        "$or": [{"payment_status": "paid"}, {"status": "completed"}],
    })

    monthly = OrderedDict()
    for booking in sorted(bookings, key=lambda b: b["created_at"]):
        month = booking["created_at"].strftime("%Y-%m")
        bucket = monthly.setdefault(month, {"month": month, "earnings": 0.0, "bookings": 0})
        bucket["earnings"] += float(booking.get("total_amount", 0))
        bucket["bookings"] += 1

    total = sum(float(b.get("total_amount", 0)) for b in bookings)
    return {
        "range": range_,
        "total_earnings": round(total, 2),
        "total_bookings": len(bookings),
        "average_booking_value": round(total / len(bookings), 2) if bookings else 0.0,
        "monthly": [dict(m, earnings=round(m["earnings"], 2)) for m in monthly.values()],
    }


@router.get("/vendor/export")
def export_vendor_bookings(
    vendor: dict = Depends(require_roles("vendor")),
    db: Database = Depends(get_db)
):
    """Download the vendor's bookings as CSV"""
    rows = []
    for booking in crud.list_bookings(db, {"vendor_id": vendor["id"]}):
        rows.append(booking_row(
            booking,
            crud.get_user_by_id(db, booking.get("user_id")),
            crud.get_vehicle_by_id(db, booking.get("vehicle_id")),
            vendor,
        ))
    return csv_response("bookings", BOOKING_HEADERS, rows)


@router.get("/{booking_id}")
def get_booking(
    booking_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Get booking details"""
    booking = _get_booking_or_404(db, booking_id)

    allowed = (
        booking.get("user_id") == current_user["id"]
        or booking.get("vendor_id") == current_user["id"]
        or current_user.get("role") == "admin"
    )
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to view this booking")

    return booking_to_response(booking, db)


@router.put("/{booking_id}/status")
def update_booking_status(
    booking_id: str,
    update: BookingStatusUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Move a booking through its lifecycle"""
    booking = _get_booking_or_404(db, booking_id)

    is_renter = booking.get("user_id") == current_user["id"]
    is_manager = booking.get("vendor_id") == current_user["id"] or current_user.get("role") == "admin"

    if not is_renter and not is_manager:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")

    if not is_manager and update.status != "cancelled":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only cancel your own bookings"
        )

    current = booking.get("status")
    if not can_transition(BOOKING_TRANSITIONS, current, update.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change booking status from {current} to {update.status}"
        )

    update_data = {"status": update.status}
    if update.cancellation_reason:
        update_data["cancellation_reason"] = update.cancellation_reason

    if update.status == "cancelled":
        update_data["refund_amount"] = calculate_refund(booking.get("total_amount", 0), booking["start_date"])
        _free_vehicle(db, booking.get("vehicle_id"))
    elif update.status == "completed":
        _free_vehicle(db, booking.get("vehicle_id"))

    booking = crud.update_booking(db, booking_id, update_data)
    logger.info("Booking %s moved from %s to %s", booking_id, current, update.status)
    return booking_to_response(booking, db)


@router.post("/{booking_id}/payment")
def process_payment(
    booking_id: str,
    payment: PaymentRequest,
    current_user: dict = Depends(require_roles("user")),
    db: Database = Depends(get_db)
):
    """Simulated payment for a booking"""
    booking = _get_booking_or_404(db, booking_id)

    if booking.get("user_id") != current_user["id"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")

    if booking.get("payment_status") == "paid":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment already completed")

    if random.random() < settings.PAYMENT_SUCCESS_RATE:
        update_data = {"payment_status": "paid", "payment_method": payment.payment_method}
        if payment.payment_id:
            update_data["payment_id"] = payment.payment_id
        booking = crud.update_booking(db, booking_id, update_data)
        return {"message": "Payment successful", "booking": booking_to_response(booking, db)}

    crud.update_booking(db, booking_id, {"payment_status": "failed"})
    logger.warning("Simulated payment failed for booking %s", booking_id)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment failed. Please try again.")
