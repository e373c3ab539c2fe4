"""Campaign creation from validated recall records, plus funnel counts."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from recall_outreach.api.schemas import ContactRecord
from recall_outreach.db.models import Appointment, Campaign, Contact, Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunnelStats:
    sent: int
    delivered: int
    scheduled: int


def create_campaign(session: Session, records: Iterable[ContactRecord]) -> tuple[Campaign, list[Contact]]:
    """Insert a new campaign and one contact per record."""
    campaign = Campaign()
    session.add(campaign)
    session.flush()

    contacts = [
        Contact(
            campaign_id=campaign.id,
            phone=record.phone,
            first_name=record.first_name,
            last_name=record.last_name,
            vin=record.vin,
            year=record.year,
            make=record.make,
            recall_code=record.recall_code,
            recall_desc=record.recall_desc,
            language=record.language,
        )
        for record in records
    ]
    session.add_all(contacts)
    session.flush()
    logger.info("Created campaign %s with %d contacts", campaign.id, len(contacts))
    return campaign, contacts


def delete_campaign(session: Session, campaign_id: str) -> bool:
    """Delete a campaign and its contacts.  Returns ``False`` if it did not exist."""
    campaign = session.get(Campaign, campaign_id)
    if campaign is None:
        return False
    session.delete(campaign)
    session.flush()
    logger.info("Deleted campaign %s", campaign_id)
    return True


def set_opt_out(session: Session, contact_id: str, opt_out: bool = True) -> Contact | None:
    """Flip a contact's opt-out flag, the only mutable contact field."""
    contact = session.get(Contact, contact_id)
    if contact is None:
        return None
    contact.opt_out = opt_out
    session.flush()
    return contact


def get_funnel_stats(session: Session, campaign_id: str) -> FunnelStats | None:
    """Split a campaign's contacts into mutually exclusive funnel stages.

    ``scheduled`` counts appointments, ``delivered`` counts contacts with any
    message minus those scheduled, ``sent`` is everyone else.  Returns
    ``None`` for an unknown campaign.
    """
    if session.get(Campaign, campaign_id) is None:
        return None
    total = session.scalar(
        select(func.count()).select_from(Contact).where(Contact.campaign_id == campaign_id)
    ) or 0
    responded = session.scalar(
        select(func.count(distinct(Message.contact_id))).where(Message.campaign_id == campaign_id)
    ) or 0
    scheduled = session.scalar(
        select(func.count()).select_from(Appointment).where(Appointment.campaign_id == campaign_id)
    ) or 0

    return FunnelStats(
        sent=total - responded,
        delivered=responded - scheduled,
        scheduled=scheduled,
    )
