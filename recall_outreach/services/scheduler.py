"""Appointment booking against the shared service-bay calendar.

Business-rule violations (weekend, outside hours, unknown contact, slot
already taken) come back as a :class:`ScheduleResult` with
``success=False`` and a customer-facing message.  They are expected
outcomes of a conversation, so nothing here raises for them.  Storage
errors do propagate.

Double booking is prevented in two layers: the conflict query inside the
caller's transaction, and the unique constraint on
``appointments.scheduled_at``.  When two workers race for the same hour,
the loser's flush hits the constraint and is reported as "already booked".
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recall_outreach.config import BUSINESS_HOURS_END, BUSINESS_HOURS_START
from recall_outreach.db.models import Appointment, Contact
from recall_outreach.services.metrics import metrics
from recall_outreach.services.slots import format_time_slot, is_weekday

logger = logging.getLogger(__name__)

WEEKDAY_ONLY_MESSAGE = "Appointments are only available Monday through Friday."
HOURS_MESSAGE = (
    f"Appointments are only available between {format_time_slot(BUSINESS_HOURS_START)} "
    f"and {format_time_slot(BUSINESS_HOURS_END - 1)}."
)
CONTACT_NOT_FOUND_MESSAGE = "Contact not found."
CREATE_FAILED_MESSAGE = "Failed to create appointment."


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of a booking attempt."""

    success: bool
    message: str
    appointment_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.appointment_id is not None:
            data["appointmentId"] = self.appointment_id
        return data


def parse_date_time(value: str) -> datetime:
    """Parse an ISO 8601 date-time as naive local time.

    A UTC ``Z`` suffix or explicit offset is dropped, keeping the wall-clock
    reading; the calendar has no notion of timezones.
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed


def _slot_taken(hour: int) -> ScheduleResult:
    return ScheduleResult(
        success=False,
        message=f"The {format_time_slot(hour)} time slot is already booked. Please choose another time.",
    )


def _format_long_date(moment: datetime) -> str:
    """``Friday, March 15, 2024``"""
    return f"{moment:%A, %B} {moment.day}, {moment.year}"


def schedule_appointment(session: Session, contact_id: str, date_time_string: str) -> ScheduleResult:
    """Book the hour containing *date_time_string* for *contact_id*.

    The new row is flushed inside *session*'s transaction; committing is
    the caller's job (see ``Database.session_scope``).
    """
    try:
        requested = parse_date_time(date_time_string)
    except ValueError:
        return ScheduleResult(
            success=False,
            message=(
                f'"{date_time_string}" is not a valid date and time. '
                "Please use ISO 8601 format, e.g. 2024-03-15T10:00:00."
            ),
        )

    if not is_weekday(requested):
        return ScheduleResult(success=False, message=WEEKDAY_ONLY_MESSAGE)

    hour = requested.hour
    if hour < BUSINESS_HOURS_START or hour >= BUSINESS_HOURS_END:
        return ScheduleResult(success=False, message=HOURS_MESSAGE)

    contact = session.get(Contact, contact_id)
    if contact is None:
        logger.warning("Booking requested for unknown contact %s", contact_id)
        return ScheduleResult(success=False, message=CONTACT_NOT_FOUND_MESSAGE)

    start_of_hour = requested.replace(minute=0, second=0, microsecond=0)
    end_of_hour = start_of_hour + timedelta(minutes=59, seconds=59, microseconds=999_999)

    t0 = time.perf_counter()
    existing = session.scalars(
        select(Appointment.id)
        .where(
            Appointment.scheduled_at >= start_of_hour,
            Appointment.scheduled_at <= end_of_hour,
        )
        .limit(1)
    ).first()
    if existing is not None:
        logger.info("Slot %s already booked (appointment %s)", start_of_hour, existing)
        metrics.record_failure("scheduler", "book", error_type="slot_taken")
        return _slot_taken(hour)

    appointment = Appointment(
        contact_id=contact.id,
        campaign_id=contact.campaign_id,
        scheduled_at=start_of_hour,
    )
    session.add(appointment)
    try:
        session.flush()
    except IntegrityError:
        # Another worker committed this hour between our check and insert
        session.rollback()
        logger.info("Lost booking race for %s (contact %s)", start_of_hour, contact_id)
        metrics.record_failure("scheduler", "book", error_type="slot_taken")
        return _slot_taken(hour)

    if not appointment.id:
        return ScheduleResult(success=False, message=CREATE_FAILED_MESSAGE)

    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success("scheduler", "book", latency_ms=elapsed)
    logger.info(
        "Booked appointment %s for contact %s at %s", appointment.id, contact_id, start_of_hour,
    )
    return ScheduleResult(
        success=True,
        message=(
            f"Appointment successfully scheduled for {_format_long_date(start_of_hour)} "
            f"at {format_time_slot(hour)}."
        ),
        appointment_id=appointment.id,
    )
