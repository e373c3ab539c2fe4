"""Pydantic schemas for the HTTP API and the queue payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recall_outreach.db.models import Direction


# ── Ingestion ────────────────────────────────────────────────────────


class ContactRecord(BaseModel):
    """One validated row of a recall CSV."""

    phone: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    vin: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900, le=2100)
    make: str = Field(..., min_length=1)
    model: str | None = None
    recall_code: str = Field(..., min_length=1)
    recall_desc: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1)
    priority: str | None = None
    outreach_message: str | None = Field(
        None,
        description="Already-rendered first SMS for this contact; queued for delivery if present",
    )

    @field_validator("year", mode="before")
    @classmethod
    def _strip_year(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class CreateCampaignRequest(BaseModel):
    contacts: list[ContactRecord] = Field(..., min_length=1)


class CreateCampaignResponse(BaseModel):
    campaign_id: str
    count: int
    queued: int = 0
    failed: int = Field(0, description="Outreach messages that could not be queued")


class FunnelStatsResponse(BaseModel):
    campaign_id: str
    sent: int
    delivered: int
    scheduled: int


# ── Contacts & conversations ────────────────────────────────────────


class ContactSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    phone: str
    opt_out: bool = False


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    contact_id: str
    direction: Direction
    body: str
    created_at: datetime


class OptOutRequest(BaseModel):
    opt_out: bool = True


class InboundMessageRequest(BaseModel):
    """A simulated customer SMS."""

    message: str = Field(..., min_length=1, max_length=1600, description="The customer's SMS text")


class ReplyResponse(BaseModel):
    reply: str = Field(..., description="The agent's SMS reply")
    contact_id: str


# ── Scheduling ──────────────────────────────────────────────────────


class AvailabilityResponse(BaseModel):
    date: str
    available: bool
    message: str
    slots: list[str]


class ScheduleRequest(BaseModel):
    date_time: str = Field(..., min_length=1, description="ISO 8601 local date-time, e.g. 2024-03-15T10:00:00")


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    appointment_id: str | None = Field(None, serialization_alias="appointmentId")


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    contact_id: str
    campaign_id: str | None
    scheduled_at: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "recall-outreach-agent"


# ── Queue payloads ──────────────────────────────────────────────────


class CustomerSummary(BaseModel):
    first_name: str
    last_name: str
    vin: str


class AgentRequest(BaseModel):
    """An inbound SMS handed to the agent worker."""

    model_config = ConfigDict(populate_by_name=True)

    contact_id: str = Field(..., alias="contactId")
    message: str = Field(..., min_length=1)
    campaign_id: str | None = Field(None, alias="campaignId")
    phone: str | None = None
    customer: CustomerSummary | None = None
    timestamp: datetime | None = None


class SmsDispatch(BaseModel):
    """A message on the SMS queue, in either direction."""

    model_config = ConfigDict(populate_by_name=True)

    contact_id: str = Field(..., alias="contactId")
    phone: str
    message: str
    customer: CustomerSummary
    campaign_id: str | None = Field(None, alias="campaignId")
    direction: Direction
    timestamp: datetime

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
