"""
CSV export helpers
"""
import csv
import io
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from fastapi.responses import Response

BOOKING_HEADERS = [
    "Booking ID", "Customer Name", "Customer Email", "Vehicle Name", "Vendor Name",
    "Start Date", "End Date", "Total Days", "Total Amount", "Status", "Payment Status", "Created At",
]

USER_HEADERS = ["User ID", "Name", "Email", "Phone", "Role", "Active", "Approved", "Created At"]

VEHICLE_HEADERS = [
    "Vehicle ID", "Name", "Brand", "Model", "Type", "Fuel Type", "Price Per Day",
    "Location", "Vendor Name", "Available", "Active", "Rating", "Created At",
]

MECHANIC_BOOKING_HEADERS = [
    "Booking ID", "Customer Name", "Mechanic Name", "Service Type", "Preferred Date",
    "Status", "Estimated Cost", "Total Cost", "Rating",
]


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence]) -> str:
    """Render rows as CSV text with a header line"""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return buffer.getvalue()


def csv_response(resource: str, headers: Sequence[str], rows: Iterable[Sequence],
                 today: Optional[date] = None) -> Response:
    filename = f"{resource}_{(today or date.today()).isoformat()}.csv"
    return Response(
        content=rows_to_csv(headers, rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def booking_row(booking: dict, customer: Optional[dict], vehicle: Optional[dict], vendor: Optional[dict]) -> List:
    return [
        booking.get("id"),
        (customer or {}).get("name", "Unknown Customer"),
        (customer or {}).get("email", ""),
        (vehicle or {}).get("name", "Unknown Vehicle"),
        (vendor or {}).get("name", ""),
        booking.get("start_date"),
        booking.get("end_date"),
        booking.get("total_days"),
        booking.get("total_amount"),
        booking.get("status"),
        booking.get("payment_status"),
        booking.get("created_at"),
    ]


def user_row(user: dict) -> List:
    return [
        user.get("id"),
        user.get("name"),
        user.get("email"),
        user.get("phone"),
        user.get("role"),
        user.get("is_active", True),
        user.get("is_approved", False),
        user.get("created_at"),
    ]


def vehicle_row(vehicle: dict, vendor: Optional[dict]) -> List:
    return [
        vehicle.get("id"),
        vehicle.get("name"),
        vehicle.get("brand"),
        vehicle.get("model"),
        vehicle.get("type"),
        vehicle.get("fuel_type"),
        vehicle.get("price_per_day"),
        vehicle.get("location"),
        (vendor or {}).get("name", ""),
        vehicle.get("is_available", True),
        vehicle.get("is_active", True),
        vehicle.get("rating", 0),
        vehicle.get("created_at"),
    ]


def mechanic_booking_row(booking: dict, customer: Optional[dict], mechanic: Optional[dict]) -> List:
    return [
        booking.get("id"),
        (customer or {}).get("name", ""),
        (mechanic or {}).get("name", ""),
        booking.get("service_type"),
        booking.get("preferred_date"),
        booking.get("status"),
        booking.get("estimated_cost"),
        booking.get("total_cost"),
        booking.get("rating"),
    ]
