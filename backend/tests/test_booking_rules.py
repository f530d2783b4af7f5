# backend/tests/test_booking_rules.py
"""
Pure booking helpers: durations, pricing, refunds and status tables.
"""
from datetime import datetime, timedelta, timezone

import pytest

from vehicle_rental.core.bookings import (
    BOOKING_TRANSITIONS,
    MECHANIC_BOOKING_TRANSITIONS,
    as_utc,
    calculate_refund,
    calculate_total_amount,
    calculate_total_days,
    can_transition,
    duration_hours,
    estimate_mechanic_cost,
)


START = datetime(2030, 5, 1, 10, 0)


class TestTotalDays:
    @pytest.mark.parametrize("delta,expected", [
        (timedelta(days=1), 1),
        (timedelta(days=3), 3),
        (timedelta(days=2, hours=1), 3),
        (timedelta(hours=2), 1),
    ])
    def test_rounds_up(self, delta, expected):
        assert calculate_total_days(START, START + delta) == expected

    def test_never_below_one(self):
        assert calculate_total_days(START, START) == 1

    def test_mixed_timezones(self):
        aware = datetime(2030, 5, 2, 15, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))

        assert calculate_total_days(START, aware) == 1


class TestAmounts:
    def test_price_times_days(self):
        assert calculate_total_amount(1500, 3) == 4500.0

    def test_adds_services(self):
        services = [{"service": "GPS", "price": 150}, {"service": "Child Seat", "price": None}]

        assert calculate_total_amount(1000, 2, services) == 2150.0


class TestRefund:
    def test_more_than_a_day_ahead(self):
        now = START - timedelta(hours=25)

        assert calculate_refund(3000, START, now=now) == 1500.0

    def test_exactly_at_window_gets_nothing(self):
        now = START - timedelta(hours=24)

        assert calculate_refund(3000, START, now=now) == 0.0

    def test_after_start(self):
        assert calculate_refund(3000, START, now=START + timedelta(hours=1)) == 0.0


class TestTransitions:
    @pytest.mark.parametrize("current,new", [
        ("pending", "confirmed"),
        ("pending", "cancelled"),
        ("confirmed", "active"),
        ("confirmed", "cancelled"),
        ("active", "completed"),
    ])
    def test_allowed(self, current, new):
        assert can_transition(BOOKING_TRANSITIONS, current, new)

    @pytest.mark.parametrize("current,new", [
        ("pending", "active"),
        ("active", "cancelled"),
        ("completed", "pending"),
        ("cancelled", "confirmed"),
        ("unknown", "confirmed"),
    ])
    def test_rejected(self, current, new):
        assert not can_transition(BOOKING_TRANSITIONS, current, new)

    def test_mechanic_jobs_can_be_cancelled_in_progress(self):
        assert can_transition(MECHANIC_BOOKING_TRANSITIONS, "in_progress", "cancelled")
        assert not can_transition(MECHANIC_BOOKING_TRANSITIONS, "completed", "in_progress")


class TestMechanicCost:
    def test_known_durations(self):
        assert duration_hours("30 minutes") == 0.5
        assert duration_hours("4+ hours") == 4

    def test_unknown_duration_is_one_hour(self):
        assert duration_hours(None) == 1
        assert duration_hours("all day") == 1

    def test_estimate(self):
        assert estimate_mechanic_cost(400, "2 hours") == 800.0
        assert estimate_mechanic_cost(None, "2 hours") == 0.0


def test_as_utc_strips_timezone():
    aware = datetime(2030, 1, 1, 5, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))

    assert as_utc(aware) == datetime(2030, 1, 1, 0, 0)
    assert as_utc(START) is START
