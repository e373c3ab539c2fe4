"""RabbitMQ connection pool and JSON publisher.

One :class:`QueueConnectionPool` is created per process by the entry point
and passed to whatever publishes or consumes.  Connections and channels
are opened lazily on first use and released by :meth:`close` on shutdown.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractRobustConnection
from aio_pika.pool import Pool

from recall_outreach.config import (
    QUEUE_MAX_CHANNELS,
    QUEUE_MAX_CONNECTIONS,
    RABBITMQ_URL,
    SMS_QUEUE,
)
from recall_outreach.services.metrics import metrics

logger = logging.getLogger(__name__)


class QueueConnectionPool:
    """Pooled aio-pika connections and channels for one broker URL."""

    def __init__(
        self,
        url: str | None = None,
        *,
        max_connections: int = QUEUE_MAX_CONNECTIONS,
        max_channels: int = QUEUE_MAX_CHANNELS,
    ) -> None:
        self._url = url or RABBITMQ_URL
        self._max_connections = max_connections
        self._max_channels = max_channels
        self._connection_pool: Pool[AbstractRobustConnection] | None = None
        self._channel_pool: Pool[AbstractChannel] | None = None
        self._declared: set[str] = set()

    async def _new_connection(self) -> AbstractRobustConnection:
        logger.info("Opening RabbitMQ connection")
        return await aio_pika.connect_robust(self._url)

    async def _new_channel(self) -> AbstractChannel:
        connection_pool = self._ensure_pools()[0]
        async with connection_pool.acquire() as connection:
            return await connection.channel()

    def _ensure_pools(self) -> tuple[Pool[AbstractRobustConnection], Pool[AbstractChannel]]:
        """Create the connection and channel pools on first use."""
        if self._connection_pool is None or self._channel_pool is None:
            self._connection_pool = Pool(self._new_connection, max_size=self._max_connections)
            self._channel_pool = Pool(self._new_channel, max_size=self._max_channels)
        return self._connection_pool, self._channel_pool

    @asynccontextmanager
    async def channel(self) -> AsyncIterator[AbstractChannel]:
        """Borrow a pooled channel for a short operation such as a publish."""
        channel_pool = self._ensure_pools()[1]
        async with channel_pool.acquire() as channel:
            yield channel

    async def open_channel(self, prefetch_count: int | None = None) -> AbstractChannel:
        """Open a dedicated channel for a long-lived consumer.

        The caller owns the channel and must close it.
        """
        channel = await self._new_channel()
        if prefetch_count is not None:
            await channel.set_qos(prefetch_count=prefetch_count)
        return channel

    async def declare(self, channel: AbstractChannel, queue_name: str):
        """Declare a durable queue (idempotent on the broker)."""
        queue = await channel.declare_queue(queue_name, durable=True)
        if queue_name not in self._declared:
            self._declared.add(queue_name)
            logger.info("Declared queue %s", queue_name)
        return queue

    async def publish(self, queue_name: str, payload: dict[str, Any]) -> None:
        """Publish *payload* as a persistent JSON message on *queue_name*."""
        body = json.dumps(payload, default=str).encode("utf-8")
        t0 = time.perf_counter()
        try:
            async with self.channel() as channel:
                await self.declare(channel, queue_name)
                await channel.default_exchange.publish(
                    Message(
                        body=body,
                        content_type="application/json",
                        delivery_mode=DeliveryMode.PERSISTENT,
                    ),
                    routing_key=queue_name,
                )
        except Exception as exc:
            metrics.record_failure(
                "rabbitmq", "publish",
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        metrics.record_success("rabbitmq", "publish", latency_ms=(time.perf_counter() - t0) * 1000)
        logger.debug("Published %d bytes to %s", len(body), queue_name)

    async def send_to_sms_queue(self, payload: dict[str, Any]) -> None:
        await self.publish(SMS_QUEUE, payload)

    async def close(self) -> None:
        """Close every pooled channel and connection."""
        try:
            if self._channel_pool is not None:
                await self._channel_pool.close()
        finally:
            self._channel_pool = None
        try:
            if self._connection_pool is not None:
                await self._connection_pool.close()
                logger.info("RabbitMQ connections closed")
        finally:
            self._connection_pool = None
            self._declared.clear()
