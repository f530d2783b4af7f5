"""
Stripe Payment Routes
"""
import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Request, status, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core.config import settings
from vehicle_rental.core import crud, payments
from vehicle_rental.core.bookings import BOOKING_TRANSITIONS, can_transition, utcnow
from vehicle_rental.api.routes.auth import get_current_user
from vehicle_rental.api.routes.bookings import booking_to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


# ============ Schemas ============

class CreateIntentRequest(BaseModel):
    booking_id: Optional[str] = None
    amount: Optional[float] = None


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: Optional[str] = None
    booking_id: Optional[str] = None


def _get_own_booking(db: Database, booking_id: str, user: dict, action: str) -> dict:
    booking = crud.get_booking_by_id(db, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    if booking.get("user_id") != user["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not authorized to {action}"
        )
    return booking


# ============ Routes ============

@router.post("/create-intent")
def create_intent(
    request: CreateIntentRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Create a Stripe PaymentIntent for a confirmed booking"""
    if not request.booking_id or not request.amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Booking ID and amount are required"
        )

    booking = _get_own_booking(db, request.booking_id, current_user, "pay for this booking")

    if booking.get("status") != "confirmed":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only confirmed bookings can be paid"
        )

    result = payments.create_payment_intent(
        request.amount,
        settings.STRIPE_CURRENCY,
        {"booking_id": booking["id"], "user_id": current_user["id"], "vehicle_id": booking.get("vehicle_id")},
    )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return {
        "success": True,
        "client_secret": result.client_secret,
        "payment_intent_id": result.payment_intent_id,
    }


@router.post("/confirm")
def confirm_payment(
    request: ConfirmPaymentRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Confirm a PaymentIntent and activate the booking"""
    if not request.payment_intent_id or not request.booking_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment Intent ID and Booking ID are required"
        )

    booking = _get_own_booking(db, request.booking_id, current_user, "confirm this payment")

    if not can_transition(BOOKING_TRANSITIONS, booking.get("status"), "active"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only confirmed bookings can be activated"
        )

    result = payments.confirm_payment_intent(request.payment_intent_id)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    booking = crud.update_booking(db, request.booking_id, {
        "status": "active",
        "payment_status": "paid",
        "payment_intent_id": request.payment_intent_id,
        "activated_at": utcnow(),
    })
    logger.info("Booking %s activated by payment %s", request.booking_id, request.payment_intent_id)

    return {
        "success": True,
        "message": "Payment confirmed and booking activated",
        "booking": booking_to_response(booking, db),
    }


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Database = Depends(get_db)):
    """Stripe webhook receiver"""
    payload = await request.body()
    result = payments.construct_webhook_event(payload, request.headers.get("stripe-signature"))
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    event = result.event
    intent = event["data"]["object"]

    if event["type"] == "payment_intent.succeeded":
        logger.info("Payment succeeded: %s", intent["id"])
        booking_id = (intent.get("metadata") or {}).get("booking_id")
        if booking_id and await run_in_threadpool(crud.get_booking_by_id, db, booking_id):
            await run_in_threadpool(
                crud.update_booking, db, booking_id, {"payment_status": "paid", "payment_intent_id": intent["id"]}
            )
    elif event["type"] == "payment_intent.payment_failed":
        logger.warning("Payment failed: %s", intent["id"])
    else:
        logger.info("Unhandled event type: %s", event["type"])

    return {"received": True}


@router.get("/config")
def get_payment_config():
    return {
        "publishable_key": settings.STRIPE_PUBLISHABLE_KEY,
        "currency": settings.STRIPE_CURRENCY,
    }
