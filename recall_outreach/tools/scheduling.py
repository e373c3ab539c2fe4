"""LangChain tools that let the agent check and book service slots.

Tools are built per conversation turn by :func:`make_scheduling_tools` so
that the contact id is fixed by the caller and never chosen by the model.
Each tool runs in its own database transaction and returns a JSON string
the model can read.
"""

from __future__ import annotations

import json
import logging
import threading

from langchain_core.tools import BaseTool, tool

from recall_outreach.db.session import Database
from recall_outreach.services.availability import check_availability as find_open_slots
from recall_outreach.services.availability import describe_availability
from recall_outreach.services.scheduler import schedule_appointment as book_slot

logger = logging.getLogger(__name__)


class TurnCancelledError(Exception):
    """Raised inside a turn whose caller has stopped waiting for it."""


def raise_if_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise TurnCancelledError("Agent turn was cancelled")


def make_scheduling_tools(
    database: Database,
    contact_id: str,
    cancel_event: threading.Event | None = None,
) -> list[BaseTool]:
    """Return ``[check_availability, schedule_appointment]`` bound to *contact_id*.

    When *cancel_event* is set, a booking is rolled back instead of committed.
    """

    @tool
    def check_availability(date: str) -> str:
        """Check which one-hour service appointment slots are free on a given day.

        Service appointments run Monday through Friday, starting on the hour
        from 9:00 AM to 4:00 PM.

        Args:
            date: The day to check in YYYY-MM-DD format (e.g. "2024-03-15").
        """
        try:
            with database.session_scope() as session:
                slots = find_open_slots(session, date)
        except ValueError:
            return json.dumps(
                {
                    "date": date,
                    "available": False,
                    "message": f'"{date}" is not a valid date. Use the YYYY-MM-DD format.',
                    "slots": [],
                }
            )
        logger.debug("check_availability(%s) -> %d slots", date, len(slots))
        return json.dumps(describe_availability(date, slots))

    @tool
    def schedule_appointment(date_time: str) -> str:
        """Book a one-hour recall service appointment for this customer.

        Only call this once the customer has agreed to a specific day and time.
        The booking covers the whole hour that contains the given time.

        Args:
            date_time: The appointment start in ISO 8601 local time
                       (e.g. "2024-03-15T10:00:00").
        """
        raise_if_cancelled(cancel_event)
        with database.session_scope() as session:
            result = book_slot(session, contact_id, date_time)
            # Raising here rolls the booking back before it is committed
            raise_if_cancelled(cancel_event)
        logger.info(
            "schedule_appointment(%s) for contact %s -> success=%s",
            date_time, contact_id, result.success,
        )
        return json.dumps(result.to_dict())

    return [check_availability, schedule_appointment]
