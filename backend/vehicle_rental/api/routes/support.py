"""
Support Routes
"""
from typing import Optional
from fastapi import APIRouter, status, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core import crud
from vehicle_rental.api.routes.auth import get_optional_user

router = APIRouter(prefix="/support", tags=["Support"])


class FeedbackCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    message: str = Field(..., min_length=5, max_length=2000)


@router.post("/feedback", status_code=status.HTTP_201_CREATED)
def submit_feedback(
    feedback: FeedbackCreate,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db)
):
    """Submit a support message; signed-in users are linked to it"""
    data = feedback.model_dump()
    if current_user:
        data["user_id"] = current_user["id"]
        data["name"] = data["name"] or current_user.get("name")
        data["email"] = data["email"] or current_user.get("email")

    item = crud.add_feedback(db, data)
    return {"message": "Feedback submitted successfully", "feedback": crud.serialize_doc(item)}
