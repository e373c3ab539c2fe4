"""Open-slot lookup for a single calendar day."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from recall_outreach.db.models import Appointment
from recall_outreach.services.slots import format_time_slot, slots_for_date

logger = logging.getLogger(__name__)


def parse_date(date_string: str) -> date:
    """Parse a ``YYYY-MM-DD`` string.  Raises ``ValueError`` on anything else."""
    return date.fromisoformat(date_string.strip())


def check_availability(session: Session, date_string: str) -> list[str]:
    """Return the free slots on *date_string* as ``"9:00 AM"``-style strings.

    Weekends return an empty list without touching the database.  Storage
    errors propagate to the caller.
    """
    day = parse_date(date_string)
    slots = slots_for_date(day)
    if not slots:
        logger.debug("No slots on %s (weekend)", day)
        return []

    start_of_day = datetime.combine(day, time.min)
    end_of_day = datetime.combine(day, time.max)

    booked = session.scalars(
        select(Appointment.scheduled_at).where(
            Appointment.scheduled_at >= start_of_day,
            Appointment.scheduled_at <= end_of_day,
        )
    ).all()
    booked_hours = {scheduled_at.hour for scheduled_at in booked}

    available = [format_time_slot(hour) for hour in slots if hour not in booked_hours]
    logger.debug("%s: %d booked, %d free", day, len(booked_hours), len(available))
    return available


def describe_availability(date_string: str, slots: list[str]) -> dict[str, Any]:
    """Shape an availability result the way the agent tool and the API return it."""
    if slots:
        message = f"Available times on {date_string}: {', '.join(slots)}."
    else:
        message = (
            f"No appointments are available on {date_string}. "
            "Appointments are offered Monday through Friday; please choose another date."
        )
    return {
        "date": date_string,
        "available": bool(slots),
        "message": message,
        "slots": slots,
    }
