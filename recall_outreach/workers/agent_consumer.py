"""Agent worker: inbound SMS in, agent reply out to the SMS queue."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from langchain_core.language_models import BaseChatModel

from recall_outreach.agent import generate_agent_response_async
from recall_outreach.api.schemas import AgentRequest
from recall_outreach.config import AGENT_QUEUE
from recall_outreach.db.session import Database
from recall_outreach.services.inbound import build_dispatch, start_turn
from recall_outreach.services.queue import QueueConnectionPool
from recall_outreach.workers.consumer import QueueConsumer

logger = logging.getLogger(__name__)


class AgentConsumer(QueueConsumer):
    name = "Agent Consumer"

    def __init__(
        self,
        pool: QueueConnectionPool,
        database: Database,
        *,
        llm: BaseChatModel | None = None,
        queue_name: str = AGENT_QUEUE,
    ) -> None:
        super().__init__(pool, queue_name)
        self.database = database
        self.llm = llm

    async def handle(self, payload: dict[str, Any]) -> None:
        request = AgentRequest.model_validate(payload)
        logger.info("Processing agent request for contact %s", request.contact_id)

        context = await asyncio.to_thread(
            start_turn, self.database, request.contact_id, request.message, request.campaign_id,
        )
        if context is None:
            return

        reply = await generate_agent_response_async(self.database, context, self.llm)
        await self.pool.send_to_sms_queue(build_dispatch(context, reply).to_payload())
        logger.info("Agent response sent to SMS queue for contact %s", request.contact_id)
