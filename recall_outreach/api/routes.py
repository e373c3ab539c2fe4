"""FastAPI route definitions for the recall outreach API."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, Request

from recall_outreach.agent import AgentTimeoutError, generate_agent_response_async
from recall_outreach.api.schemas import (
    AppointmentOut,
    AvailabilityResponse,
    ContactRecord,
    ContactSummary,
    CreateCampaignRequest,
    CreateCampaignResponse,
    CustomerSummary,
    FunnelStatsResponse,
    HealthResponse,
    InboundMessageRequest,
    MessageOut,
    OptOutRequest,
    ReplyResponse,
    ScheduleRequest,
    ScheduleResponse,
    SmsDispatch,
)
from recall_outreach.db.models import Direction
from recall_outreach.db.session import Database
from recall_outreach.services import campaigns, conversations
from recall_outreach.services.availability import check_availability, describe_availability
from recall_outreach.services.inbound import record_reply, start_turn
from recall_outreach.services.queue import QueueConnectionPool
from recall_outreach.services.scheduler import schedule_appointment

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_database(request: Request) -> Database:
    """Retrieve the Database created in the server lifespan."""
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return database


def _get_queue(request: Request) -> QueueConnectionPool | None:
    return getattr(request.app.state, "queue", None)


def _require_contact(database: Database, contact_id: str) -> None:
    with database.session_scope() as session:
        if conversations.get_contact(session, contact_id) is None:
            raise HTTPException(status_code=404, detail="Contact not found.")


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Scheduling ──────────────────────────────────────────────────────


@router.get("/availability/{date}", response_model=AvailabilityResponse)
def get_availability(date: str, http_request: Request):
    """Open one-hour slots on *date* (``YYYY-MM-DD``); weekends are always empty."""
    database = _get_database(http_request)
    try:
        with database.session_scope() as session:
            slots = check_availability(session, date)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid date {date!r}; expected YYYY-MM-DD.") from e
    return describe_availability(date, slots)


@router.post("/contacts/{contact_id}/appointments", response_model=ScheduleResponse)
def create_appointment(contact_id: str, request: ScheduleRequest, http_request: Request):
    """Book a slot for a contact.

    Business-rule rejections are returned with ``success=false`` and a
    200 status, exactly as the agent sees them.
    """
    database = _get_database(http_request)
    with database.session_scope() as session:
        result = schedule_appointment(session, contact_id, request.date_time)
    return ScheduleResponse(
        success=result.success,
        message=result.message,
        appointment_id=result.appointment_id,
    )


@router.get("/contacts/{contact_id}/appointments", response_model=list[AppointmentOut])
def list_appointments(contact_id: str, http_request: Request):
    database = _get_database(http_request)
    with database.session_scope() as session:
        return [AppointmentOut.model_validate(a) for a in conversations.list_appointments(session, contact_id)]


# ── Contacts & conversations ────────────────────────────────────────


@router.get("/contacts", response_model=list[ContactSummary])
def search_contacts(http_request: Request, q: str = Query("", max_length=100)):
    database = _get_database(http_request)
    with database.session_scope() as session:
        return [ContactSummary.model_validate(c) for c in conversations.search_contacts(session, q)]


@router.get("/contacts/{contact_id}/messages", response_model=list[MessageOut])
def list_messages(contact_id: str, http_request: Request):
    database = _get_database(http_request)
    with database.session_scope() as session:
        return [MessageOut.model_validate(m) for m in conversations.list_messages(session, contact_id)]


@router.put("/contacts/{contact_id}/opt-out", response_model=ContactSummary)
def update_opt_out(contact_id: str, request: OptOutRequest, http_request: Request):
    """Stop (or resume) automated replies to a contact."""
    database = _get_database(http_request)
    with database.session_scope() as session:
        contact = campaigns.set_opt_out(session, contact_id, request.opt_out)
        if contact is None:
            raise HTTPException(status_code=404, detail="Contact not found.")
        logger.info("Contact %s opt_out=%s", contact_id, request.opt_out)
        return ContactSummary.model_validate(contact)


@router.post("/contacts/{contact_id}/messages", response_model=ReplyResponse)
async def simulate_inbound_message(contact_id: str, request: InboundMessageRequest, http_request: Request):
    """Simulate an inbound SMS and return the agent's reply.

    The inbound message and the reply are both written to the
    conversation history.  The blocking agent turn runs in a worker thread
    with a wall-clock deadline so the event loop stays responsive.
    """
    database = _get_database(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    await asyncio.to_thread(_require_contact, database, contact_id)
    context = await asyncio.to_thread(start_turn, database, contact_id, request.message)
    if context is None:
        raise HTTPException(status_code=409, detail="Contact has opted out of messages.")

    try:
        reply = await generate_agent_response_async(
            database, context, getattr(http_request.app.state, "llm", None),
        )
    except AgentTimeoutError as e:
        logger.error("[%s] Agent timed out for contact %s", request_id, contact_id)
        raise HTTPException(status_code=504, detail="The assistant took too long to respond.") from e
    except Exception as e:
        # Full traceback stays in the server log; the client gets a generic message
        logger.exception("[%s] Error processing inbound message", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    await asyncio.to_thread(record_reply, database, context, reply)
    return ReplyResponse(reply=reply, contact_id=contact_id)


# ── Campaigns ────────────────────────────────────────────────────────


def _create_campaign(database: Database, records: list[ContactRecord]) -> tuple[str, int, list[SmsDispatch]]:
    """Store the campaign and build the outreach payloads in one transaction."""
    with database.session_scope() as session:
        campaign, contacts = campaigns.create_campaign(session, records)
        outreach = [
            SmsDispatch(
                contact_id=contact.id,
                phone=contact.phone,
                message=record.outreach_message,
                customer=CustomerSummary(
                    first_name=contact.first_name,
                    last_name=contact.last_name,
                    vin=contact.vin,
                ),
                campaign_id=campaign.id,
                direction=Direction.OUTBOUND,
                timestamp=datetime.now(),
            )
            for contact, record in zip(contacts, records)
            if record.outreach_message
        ]
        return campaign.id, len(contacts), outreach


@router.post("/campaigns", response_model=CreateCampaignResponse, status_code=201)
async def create_campaign(request: CreateCampaignRequest, http_request: Request):
    """Create a campaign from validated records and queue any first messages.

    The campaign is committed before anything is published.  A message that
    cannot be queued is logged and counted in ``failed``; the rest are still
    sent, so the response always identifies the campaign that was created.
    """
    database = _get_database(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    campaign_id, count, outreach = await asyncio.to_thread(_create_campaign, database, request.contacts)

    queued = 0
    failed = 0
    queue = _get_queue(http_request)
    if outreach and queue is None:
        logger.warning("Campaign %s created but no queue is configured; %d messages not sent", campaign_id, len(outreach))
        failed = len(outreach)
    elif outreach:
        for dispatch in outreach:
            try:
                await queue.send_to_sms_queue(dispatch.to_payload())
            except Exception:
                logger.exception(
                    "[%s] Failed to queue outreach for contact %s (campaign %s)",
                    request_id, dispatch.contact_id, campaign_id,
                )
                failed += 1
            else:
                queued += 1

    return CreateCampaignResponse(campaign_id=campaign_id, count=count, queued=queued, failed=failed)


@router.get("/campaigns/{campaign_id}/stats", response_model=FunnelStatsResponse)
def campaign_stats(campaign_id: str, http_request: Request):
    database = _get_database(http_request)
    with database.session_scope() as session:
        stats = campaigns.get_funnel_stats(session, campaign_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Campaign not found.")
    return FunnelStatsResponse(
        campaign_id=campaign_id,
        sent=stats.sent,
        delivered=stats.delivered,
        scheduled=stats.scheduled,
    )


@router.delete("/campaigns/{campaign_id}", status_code=204)
def delete_campaign(campaign_id: str, http_request: Request):
    database = _get_database(http_request)
    with database.session_scope() as session:
        if not campaigns.delete_campaign(session, campaign_id):
            raise HTTPException(status_code=404, detail="Campaign not found.")
