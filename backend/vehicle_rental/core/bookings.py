"""
Booking status rules and pricing helpers
"""
import math
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, Optional

from vehicle_rental.core.config import settings

BOOKING_STATUSES = ("pending", "confirmed", "active", "completed", "cancelled")
PAYMENT_METHODS = ("card", "upi", "netbanking", "cash")

# Statuses that hold a vehicle for their date range
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed", "active")

BOOKING_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"active", "cancelled"}),
    "active": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

MECHANIC_BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")

MECHANIC_BOOKING_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

DURATION_HOURS = {
    "30 minutes": 0.5,
    "1 hour": 1,
    "2 hours": 2,
    "3 hours": 3,
    "4+ hours": 4,
}


def can_transition(table: Dict[str, FrozenSet[str]], current: str, new: str) -> bool:
    return new in table.get(current, frozenset())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in MongoDB"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Normalise to a naive UTC datetime; naive input is assumed to be UTC"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def calculate_total_days(start: datetime, end: datetime) -> int:
    """Whole days between start and end, rounded up, never below one"""
    seconds = abs((as_utc(end) - as_utc(start)).total_seconds())
    return max(1, math.ceil(seconds / 86400))


def calculate_total_amount(price_per_day: float, days: int, services: Optional[Iterable[dict]] = None) -> float:
    total = float(price_per_day) * days
    for service in services or []:
        total += float(service.get("price") or 0)
    return round(total, 2)


def calculate_refund(total_amount: float, start: datetime, now: Optional[datetime] = None) -> float:
    """Refund owed when a booking is cancelled at `now`"""
    now = now or utcnow()
    hours_until_start = (as_utc(start) - as_utc(now)).total_seconds() / 3600
    if hours_until_start > settings.REFUND_WINDOW_HOURS:
        return round(float(total_amount) * settings.REFUND_RATE, 2)
    return 0.0


def duration_hours(estimated_duration: Optional[str]) -> float:
    return DURATION_HOURS.get(estimated_duration or "", 1)


def estimate_mechanic_cost(hourly_rate: float, estimated_duration: Optional[str]) -> float:
    return round(float(hourly_rate or 0) * duration_hours(estimated_duration), 2)
