"""SMS worker: persists every message that passes through the SMS queue.

Handing the text to the carrier is outside this service; this worker is
the point where the conversation history gets written.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from recall_outreach.api.schemas import SmsDispatch
from recall_outreach.config import SMS_QUEUE
from recall_outreach.db.session import Database
from recall_outreach.services.conversations import get_contact, record_message
from recall_outreach.services.queue import QueueConnectionPool
from recall_outreach.workers.consumer import QueueConsumer

logger = logging.getLogger(__name__)


class SmsConsumer(QueueConsumer):
    name = "SMS Consumer"

    def __init__(
        self,
        pool: QueueConnectionPool,
        database: Database,
        *,
        queue_name: str = SMS_QUEUE,
    ) -> None:
        super().__init__(pool, queue_name)
        self.database = database

    async def handle(self, payload: dict[str, Any]) -> None:
        sms = SmsDispatch.model_validate(payload)
        await asyncio.to_thread(self._save, sms)

    def _save(self, sms: SmsDispatch) -> None:
        with self.database.session_scope() as session:
            if get_contact(session, sms.contact_id) is None:
                logger.warning("Dropping SMS for unknown contact %s", sms.contact_id)
                return
            record_message(
                session,
                sms.contact_id,
                sms.message,
                sms.direction,
                campaign_id=sms.campaign_id,
            )
        logger.info("SMS message saved to database for contact %s", sms.contact_id)
