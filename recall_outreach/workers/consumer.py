"""Base RabbitMQ consumer: one JSON message at a time, ack or reject."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue
from pydantic import ValidationError

from recall_outreach.config import QUEUE_PREFETCH_COUNT
from recall_outreach.services.queue import QueueConnectionPool

logger = logging.getLogger(__name__)


class QueueConsumer(ABC):
    """Consume a durable queue and hand each decoded payload to :meth:`handle`.

    A message is acked once ``handle`` returns.  Any exception (bad JSON,
    payload validation, storage, model) rejects it without requeue so the
    broker can dead-letter it; redelivery policy belongs to the broker.
    """

    name = "consumer"

    def __init__(self, pool: QueueConnectionPool, queue_name: str) -> None:
        self.pool = pool
        self.queue_name = queue_name
        self.channel: AbstractChannel | None = None
        self.queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None
        self._running = False

    @abstractmethod
    async def handle(self, payload: dict[str, Any]) -> None:
        """Process one decoded message; raising rejects it."""

    async def start(self) -> None:
        """Start consuming messages from the queue."""
        if self._running:
            logger.warning("[%s] already running", self.name)
            return

        self.channel = await self.pool.open_channel(prefetch_count=QUEUE_PREFETCH_COUNT)
        self.queue = await self.pool.declare(self.channel, self.queue_name)
        self._consumer_tag = await self.queue.consume(self.on_message)
        self._running = True
        logger.info("[%s] Waiting for messages in %s...", self.name, self.queue_name)

    async def stop(self) -> None:
        """Stop consuming and close the channel."""
        if not self._running:
            return
        self._running = False

        if self.queue and self._consumer_tag:
            try:
                await self.queue.cancel(self._consumer_tag)
            except Exception:
                logger.exception("[%s] Error cancelling consumer", self.name)
            finally:
                self._consumer_tag = None

        if self.channel and not self.channel.is_closed:
            try:
                await self.channel.close()
            except Exception:
                logger.exception("[%s] Error closing channel", self.name)
        logger.info("[%s] stopped", self.name)

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        try:
            payload = json.loads(message.body.decode("utf-8"))
            await self.handle(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            logger.error("[%s] Malformed message %s: %s", self.name, message.message_id, exc)
            await message.reject(requeue=False)
        except Exception:
            logger.exception("[%s] Error processing message %s", self.name, message.message_id)
            await message.reject(requeue=False)
        else:
            await message.ack()

    @property
    def is_running(self) -> bool:
        return self._running
