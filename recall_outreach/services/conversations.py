"""Conversation history and contact lookups."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from recall_outreach.config import HISTORY_LIMIT
from recall_outreach.db.models import Appointment, Contact, Direction, Message

logger = logging.getLogger(__name__)

CONTACT_SEARCH_LIMIT = 50


@dataclass(frozen=True)
class CustomerProfile:
    """The slice of a contact the agent is allowed to see."""

    first_name: str
    last_name: str
    phone: str
    vin: str
    year: int
    make: str
    recall_code: str
    recall_desc: str
    language: str

    @classmethod
    def from_contact(cls, contact: Contact) -> CustomerProfile:
        return cls(
            first_name=contact.first_name,
            last_name=contact.last_name,
            phone=contact.phone,
            vin=contact.vin,
            year=contact.year,
            make=contact.make,
            recall_code=contact.recall_code,
            recall_desc=contact.recall_desc,
            language=contact.language,
        )


@dataclass(frozen=True)
class HistoryEntry:
    direction: Direction
    body: str
    created_at: datetime


@dataclass(frozen=True)
class AgentContext:
    """Everything the agent needs to answer one inbound SMS."""

    contact_id: str
    message: str
    customer: CustomerProfile
    conversation_history: list[HistoryEntry] = field(default_factory=list)
    campaign_id: str | None = None


def get_contact(session: Session, contact_id: str) -> Contact | None:
    return session.get(Contact, contact_id)


def record_message(
    session: Session,
    contact_id: str,
    body: str,
    direction: Direction,
    campaign_id: str | None = None,
) -> Message:
    """Append a message to the contact's conversation."""
    message = Message(
        contact_id=contact_id,
        campaign_id=campaign_id,
        body=body,
        direction=Direction(direction),
    )
    session.add(message)
    session.flush()
    logger.debug("Recorded %s message %s for contact %s", message.direction.value, message.id, contact_id)
    return message


def get_recent_history(session: Session, contact_id: str, limit: int = HISTORY_LIMIT) -> list[HistoryEntry]:
    """The last *limit* messages for a contact, oldest first."""
    rows = session.scalars(
        select(Message)
        .where(Message.contact_id == contact_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    ).all()
    return [
        HistoryEntry(direction=row.direction, body=row.body, created_at=row.created_at)
        for row in reversed(rows)
    ]


def list_messages(session: Session, contact_id: str) -> list[Message]:
    """The full conversation for a contact in chronological order."""
    return list(
        session.scalars(
            select(Message)
            .where(Message.contact_id == contact_id)
            .order_by(Message.created_at.asc())
        ).all()
    )


def list_appointments(session: Session, contact_id: str) -> list[Appointment]:
    return list(
        session.scalars(
            select(Appointment)
            .where(Appointment.contact_id == contact_id)
            .order_by(Appointment.scheduled_at.asc())
        ).all()
    )


def search_contacts(session: Session, query: str) -> list[Contact]:
    """Case-insensitive match on first, last or full name.  Blank query lists all."""
    stmt = select(Contact).limit(CONTACT_SEARCH_LIMIT)
    if query.strip():
        term = f"%{query.strip().lower()}%"
        full_name = func.lower(Contact.first_name + " " + Contact.last_name)
        stmt = stmt.where(
            or_(
                func.lower(Contact.first_name).like(term),
                func.lower(Contact.last_name).like(term),
                full_name.like(term),
            )
        )
    return list(session.scalars(stmt).all())


def build_agent_context(session: Session, contact: Contact, message: str) -> AgentContext:
    """Assemble the agent input from the stored profile and prior messages.

    Call this *before* recording the inbound message, otherwise it would
    show up twice (once in history, once as the latest message).
    """
    return AgentContext(
        contact_id=contact.id,
        message=message,
        customer=CustomerProfile.from_contact(contact),
        conversation_history=get_recent_history(session, contact.id),
        campaign_id=contact.campaign_id,
    )
