"""SQLAlchemy models for campaigns, contacts, conversation history and appointments."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Direction(str, enum.Enum):
    """Who sent a message: the customer (inbound) or the system (outbound)."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Campaign(Base):
    """A batch outreach run; only a grouping key."""

    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    contacts: Mapped[list[Contact]] = relationship(
        back_populates="campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id})>"


class Contact(Base):
    """One vehicle-recall subject, created at ingestion."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("campaign_id", "phone", name="uq_contacts_campaign_phone"),
        Index("idx_contacts_phone", "phone"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )

    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Vehicle and recall
    vin: Mapped[str] = mapped_column(String(32), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    make: Mapped[str] = mapped_column(String(100), nullable=False)
    recall_code: Mapped[str] = mapped_column(String(64), nullable=False)
    recall_desc: Mapped[str] = mapped_column(Text, nullable=False)

    language: Mapped[str] = mapped_column(String(32), nullable=False)
    opt_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    campaign: Mapped[Campaign] = relationship(back_populates="contacts")
    messages: Mapped[list[Message]] = relationship(
        back_populates="contact",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    appointments: Mapped[list[Appointment]] = relationship(
        back_populates="contact",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, phone={self.phone}, name={self.full_name})>"


class Message(Base):
    """One SMS in a conversation.  Append-only."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_contact_created", "contact_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True
    )
    contact_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    direction: Mapped[Direction] = mapped_column(
        Enum(Direction, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        server_default=func.current_timestamp(),
        nullable=False,
    )

    contact: Mapped[Contact] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, contact_id={self.contact_id}, direction={self.direction.value})>"


class Appointment(Base):
    """A booked service hour.

    ``scheduled_at`` is naive local time truncated to the top of the hour.
    The unique constraint makes the service bay a single shared calendar:
    two bookings for the same hour cannot both commit, whichever contact
    they belong to.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint("scheduled_at", name="uq_appointments_scheduled_at"),
        Index("idx_appointments_campaign_time", "campaign_id", "scheduled_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True
    )
    contact_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    contact: Mapped[Contact] = relationship(back_populates="appointments")

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, contact_id={self.contact_id}, scheduled_at={self.scheduled_at})>"
