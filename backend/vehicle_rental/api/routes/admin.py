"""
Admin Routes
"""
import logging
import re
from collections import defaultdict
from datetime import timedelta
from typing import Literal, Optional
from fastapi import APIRouter, HTTPException, status, Query, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core import crud
from vehicle_rental.core.bookings import utcnow
from vehicle_rental.core.cache import vehicle_list_cache
from vehicle_rental.core.export import (
    BOOKING_HEADERS,
    USER_HEADERS,
    VEHICLE_HEADERS,
    booking_row,
    csv_response,
    user_row,
    vehicle_row,
)
from vehicle_rental.api.routes.auth import PHONE_PATTERN, Role, get_current_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ============ Schemas ============

class AdminUserCreate(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    role: Role
    is_active: bool = True


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class UserStatusUpdate(BaseModel):
    is_active: bool


class NotificationSettings(BaseModel):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None


class SecuritySettings(BaseModel):
    require_email_verification: Optional[bool] = None
    require_phone_verification: Optional[bool] = None
    two_factor_auth: Optional[bool] = None


class SystemSettings(BaseModel):
    maintenance_mode: Optional[bool] = None
    allow_registration: Optional[bool] = None
    require_approval: Optional[bool] = None


class SettingsUpdate(BaseModel):
    site_name: Optional[str] = Field(None, min_length=1, max_length=100)
    site_description: Optional[str] = Field(None, min_length=1, max_length=500)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, pattern=r"^\+?[0-9 ]{10,16}$")
    notifications: Optional[NotificationSettings] = None
    security: Optional[SecuritySettings] = None
    system: Optional[SystemSettings] = None


class FeedbackReply(BaseModel):
    reply: str = Field(..., min_length=1, max_length=1000)


def _get_user_or_404(db: Database, user_id: str) -> dict:
    user = crud.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _get_vehicle_or_404(db: Database, vehicle_id: str) -> dict:
    vehicle = crud.get_vehicle_by_id(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    return vehicle


def _admin_booking_view(db: Database, booking: dict) -> dict:
    vehicle = crud.get_vehicle_by_id(db, booking.get("vehicle_id"))
    data = crud.serialize_doc(booking)
    data["user"] = crud.user_summary(crud.get_user_by_id(db, booking.get("user_id")))
    data["vehicle"] = {
        "id": vehicle.get("id"),
        "brand": vehicle.get("brand"),
        "model": vehicle.get("model"),
        "type": vehicle.get("type"),
    } if vehicle else None
    data["vendor"] = crud.user_summary(crud.get_user_by_id(db, booking.get("vendor_id")), "name", "email")
    return data


# ============ Health ============

@router.get("/health")
def admin_health():
    return {
        "status": "OK",
        "message": "Admin API is healthy",
        "timestamp": utcnow().isoformat(),
    }


# ============ Dashboard ============

@router.get("/dashboard")
def get_dashboard(
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Get admin dashboard stats"""
    completed = crud.list_bookings(db, {"status": "completed"})
    recent_users = db.users.find({"role": "user"}).sort("created_at", -1).limit(5)
    recent_bookings = db.bookings.find({}).sort("created_at", -1).limit(5)

    return {
        "stats": {
            "total_users": db.users.count_documents({"role": "user"}),
            "total_vendors": db.users.count_documents({"role": "vendor"}),
            "total_mechanics": db.users.count_documents({"role": "mechanic"}) + db.mechanics.count_documents({}),
            "total_vehicles": db.vehicles.count_documents({}),
            "total_bookings": db.bookings.count_documents({}),
            "pending_bookings": db.bookings.count_documents({"status": "pending"}),
            "active_bookings": db.bookings.count_documents({"status": "active"}),
            "completed_bookings": len(completed),
            "total_revenue": round(sum(float(b.get("total_amount", 0)) for b in completed), 2),
        },
        "recent_users": [
            {**crud.user_summary(u, "name", "email"), "created_at": u["created_at"].isoformat()}
            for u in recent_users
        ],
        "recent_bookings": [_admin_booking_view(db, b) for b in recent_bookings],
    }


# ============ User Management ============

@router.get("/users")
def list_users(
    role: Optional[Role] = None,
    status_filter: Optional[Literal["active", "inactive", "approved", "pending"]] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Users with role, status and text filters"""
    query = {}
    if role:
        query["role"] = role
    if status_filter == "active":
        query["is_active"] = True
    elif status_filter == "inactive":
        query["is_active"] = False
    elif status_filter == "approved":
        query["is_approved"] = True
    elif status_filter == "pending":
        query["is_approved"] = False

    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"email": pattern}, {"phone": pattern}]

    users, total = crud.paginate(db.users, query, page, limit, sort=[("created_at", -1)])
    return {
        "users": [crud.user_public(u) for u in users],
        "pagination": crud.pagination_meta(page, limit, total, "total_users", len(users)),
    }


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: AdminUserCreate,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    if crud.get_user_by_email(db, user_data.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user = crud.create_user(db, user_data.model_dump())
    logger.info("Admin %s created %s account %s", admin["id"], user["role"], user["id"])
    return crud.user_public(user)


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    user_data: AdminUserUpdate,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    user = _get_user_or_404(db, user_id)

    update_data = user_data.model_dump(exclude_none=True)
    if "email" in update_data and update_data["email"].lower() != user.get("email"):
        if crud.get_user_by_email(db, update_data["email"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    if not update_data:
        return crud.user_public(user)
    return crud.user_public(crud.update_user(db, user_id, update_data))


@router.put("/users/{user_id}/status")
def set_user_status(
    user_id: str,
    update: UserStatusUpdate,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    _get_user_or_404(db, user_id)
    user = crud.update_user(db, user_id, {"is_active": update.is_active})
    state = "activated" if update.is_active else "deactivated"
    return {"message": f"User {state} successfully", "user": crud.user_public(user)}


@router.put("/users/{user_id}/approve")
def approve_vendor(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Approve a vendor account"""
    user = _get_user_or_404(db, user_id)
    if user.get("role") != "vendor":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only vendors can be approved")

    user = crud.update_user(db, user_id, {"is_approved": True})
    return {"message": "Vendor approved successfully", "user": crud.user_public(user)}


@router.put("/users/{user_id}/deactivate")
def deactivate_user(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    _get_user_or_404(db, user_id)
    user = crud.update_user(db, user_id, {"is_active": False})
    return {"message": "User deactivated successfully", "user": crud.user_public(user)}


@router.put("/users/{user_id}/activate")
def activate_user(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    _get_user_or_404(db, user_id)
    user = crud.update_user(db, user_id, {"is_active": True})
    return {"message": "User activated successfully", "user": crud.user_public(user)}


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    _get_user_or_404(db, user_id)
    if user_id == admin["id"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")

    crud.delete_user(db, user_id)
    return {"message": "User deleted successfully"}


# ============ Vehicle Management ============

@router.get("/vehicles")
def list_vehicles(
    status_filter: Optional[Literal["active", "inactive", "available", "unavailable"]] = Query(None, alias="status"),
    vendor: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    query = {}
    if status_filter == "active":
        query["is_active"] = True
    elif status_filter == "inactive":
        query["is_active"] = False
    elif status_filter == "available":
        query["is_available"] = True
    elif status_filter == "unavailable":
        query["is_available"] = False
    if vendor:
        query["vendor_id"] = vendor

    vehicles, total = crud.paginate(db.vehicles, query, page, limit, sort=[("created_at", -1)])
    results = []
    for vehicle in vehicles:
        data = crud.serialize_doc(vehicle)
        data["vendor"] = crud.user_summary(crud.get_user_by_id(db, vehicle.get("vendor_id")))
        results.append(data)

    return {
        "vehicles": results,
        "pagination": crud.pagination_meta(page, limit, total, "total_vehicles", len(vehicles)),
    }


@router.put("/vehicles/{vehicle_id}/approve")
def approve_vehicle(
    vehicle_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    _get_vehicle_or_404(db, vehicle_id)
    vehicle = crud.update_vehicle(db, vehicle_id, {"is_active": True})
    vehicle_list_cache.clear()
    return {"message": "Vehicle approved successfully", "vehicle": crud.serialize_doc(vehicle)}


@router.put("/vehicles/{vehicle_id}/deactivate")
def deactivate_vehicle(
    vehicle_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    _get_vehicle_or_404(db, vehicle_id)
    vehicle = crud.update_vehicle(db, vehicle_id, {"is_active": False})
    vehicle_list_cache.clear()
    return {"message": "Vehicle deactivated successfully", "vehicle": crud.serialize_doc(vehicle)}


@router.delete("/vehicles/{vehicle_id}")
def delete_vehicle(
    vehicle_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Delete a vehicle that has no pending, confirmed or active bookings"""
    _get_vehicle_or_404(db, vehicle_id)

    if crud.count_active_bookings_for_vehicle(db, vehicle_id) > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete vehicle with active bookings"
        )

    crud.delete_vehicle(db, vehicle_id)
    vehicle_list_cache.clear()
    return {"message": "Vehicle deleted successfully"}


# ============ Bookings ============

@router.get("/bookings")
def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    query = {"status": status_filter} if status_filter else {}
    bookings, total = crud.paginate(db.bookings, query, page, limit, sort=[("created_at", -1)])
    return {
        "bookings": [_admin_booking_view(db, b) for b in bookings],
        "pagination": crud.pagination_meta(page, limit, total, "total_bookings", len(bookings)),
    }


# ============ Analytics ============

def _daily_counts(docs, value=None) -> list:
    buckets = defaultdict(float) if value else defaultdict(int)
    for doc in docs:
        day = doc["created_at"].strftime("%Y-%m-%d")
        buckets[day] += value(doc) if value else 1
    key = "revenue" if value else "count"
    return [{"date": day, key: buckets[day]} for day in sorted(buckets)]


@router.get("/analytics")
def get_analytics(
    period: int = Query(30, ge=1, le=365),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Daily registrations, bookings and revenue over the last `period` days"""
    since = {"created_at": {"$gte": utcnow() - timedelta(days=period)}}

    return {
        "period": period,
        "user_registrations": _daily_counts(db.users.find(since)),
        "vehicle_registrations": _daily_counts(db.vehicles.find(since)),
        "booking_stats": _daily_counts(db.bookings.find(since)),
        "revenue_stats": _daily_counts(
            db.bookings.find({**since, "status": "completed"}),
            value=lambda b: float(b.get("total_amount", 0)),
        ),
    }


# ============ Settings ============

@router.get("/settings")
def get_settings(
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    return crud.serialize_doc(crud.get_settings(db))


@router.put("/settings")
def update_settings(
    settings_data: SettingsUpdate,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Partially update site settings; nested sections are merged"""
    updated = crud.update_settings(db, settings_data.model_dump(exclude_none=True))
    logger.info("Settings updated by admin %s", admin["id"])
    return {"message": "Settings updated successfully", "settings": crud.serialize_doc(updated)}


# ============ Export ============

@router.get("/export/{resource}")
def export_resource(
    resource: Literal["users", "vehicles", "bookings"],
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Download users, vehicles or bookings as CSV"""
    if resource == "users":
        rows = [user_row(u) for u in crud.list_users(db)]
        return csv_response("users", USER_HEADERS, rows)

    users = {u["id"]: u for u in crud.list_users(db)}

    if resource == "vehicles":
        vehicles = db.vehicles.find({}).sort("created_at", -1)
        rows = [vehicle_row(v, users.get(v.get("vendor_id"))) for v in vehicles]
        return csv_response("vehicles", VEHICLE_HEADERS, rows)

    vehicles = {v["id"]: v for v in db.vehicles.find({})}
    rows = [
        booking_row(b, users.get(b.get("user_id")), vehicles.get(b.get("vehicle_id")), users.get(b.get("vendor_id")))
        for b in crud.list_bookings(db)
    ]
    return csv_response("bookings", BOOKING_HEADERS, rows)


# ============ Feedback ============

@router.get("/feedback")
def list_feedback(
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    return [crud.serialize_doc(f) for f in crud.list_feedback(db)]


@router.post("/feedback/{feedback_id}/reply")
def reply_to_feedback(
    feedback_id: str,
    reply: FeedbackReply,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    feedback = crud.add_feedback_reply(db, feedback_id, admin["id"], reply.reply)
    if not feedback:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feedback not found")
    return {"message": "Reply added successfully", "feedback": crud.serialize_doc(feedback)}
