"""Business-hour slot arithmetic.  Pure functions, no I/O."""

from __future__ import annotations

from datetime import date

from recall_outreach.config import (
    APPOINTMENT_DURATION_HOURS,
    BUSINESS_HOURS_END,
    BUSINESS_HOURS_START,
)


def is_weekday(day: date) -> bool:
    """True for Monday through Friday.  Accepts ``date`` or ``datetime``."""
    return day.weekday() < 5


def get_business_hour_slots() -> list[int]:
    """Every bookable start hour, e.g. ``[9, 10, ..., 16]``."""
    return list(range(BUSINESS_HOURS_START, BUSINESS_HOURS_END, APPOINTMENT_DURATION_HOURS))


def slots_for_date(day: date) -> list[int]:
    """Bookable start hours on *day*; weekends have none."""
    if not is_weekday(day):
        return []
    return get_business_hour_slots()


def format_time_slot(hour: int) -> str:
    """Render an hour of day on a 12-hour clock: ``13`` -> ``"1:00 PM"``."""
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:00 {period}"
