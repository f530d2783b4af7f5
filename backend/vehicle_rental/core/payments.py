"""
Stripe payment helpers

Thin wrapper over the Stripe SDK. Every call returns a PaymentResult
instead of raising, so routes can map failures onto 400 responses.

Confirmation runs in demo mode: intents still waiting for a payment
method or confirmation are reported as succeeded.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from vehicle_rental.core.config import settings

logger = logging.getLogger(__name__)

DEMO_SUCCESS_STATUSES = ("requires_payment_method", "requires_confirmation")


@dataclass
class PaymentResult:
    success: bool
    error: Optional[str] = None
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    status: Optional[str] = None
    event: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _configure():
    stripe.api_key = settings.STRIPE_SECRET_KEY


def to_cents(amount: float) -> int:
    return int(round(float(amount) * 100))


def create_payment_intent(amount: float, currency: Optional[str] = None,
                          metadata: Optional[Dict[str, Any]] = None) -> PaymentResult:
    """Create a PaymentIntent for `amount` in major currency units"""
    _configure()
    try:
        intent = stripe.PaymentIntent.create(
            amount=to_cents(amount),
            currency=currency or settings.STRIPE_CURRENCY,
            metadata={k: str(v) for k, v in (metadata or {}).items()},
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as e:
        logger.error("Stripe payment intent creation error: %s", e)
        return PaymentResult(success=False, error=getattr(e, "user_message", None) or str(e))

    return PaymentResult(
        success=True,
        client_secret=intent["client_secret"],
        payment_intent_id=intent["id"],
        status=intent["status"],
    )


def confirm_payment_intent(payment_intent_id: str) -> PaymentResult:
    """Check a PaymentIntent and report whether the booking may be activated"""
    _configure()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        logger.error("Stripe payment confirmation error: %s", e)
        return PaymentResult(success=False, error=getattr(e, "user_message", None) or str(e))

    intent_status = intent["status"]
    logger.info("Payment intent %s status: %s", payment_intent_id, intent_status)

    if intent_status == "succeeded":
        return PaymentResult(success=True, payment_intent_id=payment_intent_id, status=intent_status)

    if intent_status in DEMO_SUCCESS_STATUSES:
        logger.info("Simulating successful payment for demo purposes")
        return PaymentResult(success=True, payment_intent_id=payment_intent_id, status="succeeded")

    return PaymentResult(
        success=False,
        payment_intent_id=payment_intent_id,
        status=intent_status,
        error=f"Payment not completed. Status: {intent_status}",
    )


def construct_webhook_event(payload: bytes, signature: Optional[str]) -> PaymentResult:
    """Verify a webhook payload against STRIPE_WEBHOOK_SECRET"""
    try:
        event = stripe.Webhook.construct_event(payload, signature or "", settings.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error("Stripe webhook error: %s", e)
        return PaymentResult(success=False, error=str(e))

    return PaymentResult(success=True, event=event)
