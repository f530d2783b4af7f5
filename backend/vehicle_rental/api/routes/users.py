"""
User Routes
"""
from typing import Optional
from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core import crud
from vehicle_rental.api.routes.auth import (
    PHONE_PATTERN,
    GeoPoint,
    get_current_admin,
    get_current_user,
    require_roles,
)

router = APIRouter(prefix="/users", tags=["Users"])


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, min_length=5)
    location: Optional[GeoPoint] = None
    profile_image: Optional[str] = None


@router.get("/profile")
def get_profile(current_user: dict = Depends(get_current_user)):
    """Get current user profile"""
    return crud.user_public(current_user)


@router.put("/profile")
def update_profile(
    profile: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Update name, phone, address or location"""
    update_data = profile.model_dump(exclude_none=True)
    if not update_data:
        return crud.user_public(current_user)
    user = crud.update_user(db, current_user["id"], update_data)
    return crud.user_public(user)


@router.get("")
def list_users(
    current_user: dict = Depends(require_roles("admin", "vendor")),
    db: Database = Depends(get_db)
):
    """List all users"""
    return [crud.user_public(u) for u in crud.list_users(db)]


@router.get("/{user_id}")
def get_user(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    user = crud.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return crud.user_public(user)


@router.put("/{user_id}/approve")
def approve_vendor(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    """Approve a vendor account"""
    user = crud.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.get("role") != "vendor":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only vendors can be approved"
        )

    user = crud.update_user(db, user_id, {"is_approved": True})
    return {"message": "Vendor approved successfully", "user": crud.user_public(user)}


@router.put("/{user_id}/deactivate")
def deactivate_user(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_db)
):
    user = crud.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    crud.update_user(db, user_id, {"is_active": False})
    return {"message": "User deactivated successfully"}
