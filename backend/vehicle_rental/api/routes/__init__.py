# API routes package
from vehicle_rental.api.routes import (
    admin,
    auth,
    bookings,
    mechanic_bookings,
    mechanics,
    payments,
    support,
    users,
    vehicles,
)

__all__ = [
    "admin",
    "auth",
    "bookings",
    "mechanic_bookings",
    "mechanics",
    "payments",
    "support",
    "users",
    "vehicles",
]
