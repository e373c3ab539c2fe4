"""Glue between an inbound SMS, the stored conversation and the agent."""

from __future__ import annotations

import logging
from datetime import datetime

from recall_outreach.api.schemas import CustomerSummary, SmsDispatch
from recall_outreach.db.models import Direction
from recall_outreach.db.session import Database
from recall_outreach.services.conversations import (
    AgentContext,
    build_agent_context,
    get_contact,
    record_message,
)

logger = logging.getLogger(__name__)


def start_turn(
    database: Database,
    contact_id: str,
    message: str,
    campaign_id: str | None = None,
) -> AgentContext | None:
    """Record an inbound SMS and return the context the agent should answer.

    History is read before the new message is stored so it is not
    duplicated.  Returns ``None`` when the contact does not exist or has
    opted out; in the opt-out case the message is still recorded.
    """
    with database.session_scope() as session:
        contact = get_contact(session, contact_id)
        if contact is None:
            logger.warning("Contact not found for ID %s", contact_id)
            return None

        context = build_agent_context(session, contact, message)
        record_message(
            session,
            contact.id,
            message,
            Direction.INBOUND,
            campaign_id=campaign_id or contact.campaign_id,
        )
        if contact.opt_out:
            logger.info("Contact %s has opted out; not replying", contact_id)
            return None
    return context


def record_reply(database: Database, context: AgentContext, reply: str) -> None:
    """Store the agent's reply directly (used when no SMS worker is in the loop)."""
    with database.session_scope() as session:
        record_message(
            session, context.contact_id, reply, Direction.OUTBOUND, campaign_id=context.campaign_id,
        )


def build_dispatch(context: AgentContext, reply: str) -> SmsDispatch:
    """The outbound SMS-queue payload for an agent reply."""
    customer = context.customer
    return SmsDispatch(
        contact_id=context.contact_id,
        phone=customer.phone,
        message=reply,
        customer=CustomerSummary(
            first_name=customer.first_name,
            last_name=customer.last_name,
            vin=customer.vin,
        ),
        campaign_id=context.campaign_id,
        direction=Direction.OUTBOUND,
        timestamp=datetime.now(),
    )
