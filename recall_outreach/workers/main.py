"""Entry point for the queue workers.

Usage:
    python -m recall_outreach.workers.main               # agent + SMS workers
    python -m recall_outreach.workers.main --only sms    # just one of them
    python -m recall_outreach.workers.main --debug
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from recall_outreach.db.session import Database
from recall_outreach.services.queue import QueueConnectionPool
from recall_outreach.workers.agent_consumer import AgentConsumer
from recall_outreach.workers.consumer import QueueConsumer
from recall_outreach.workers.sms_consumer import SmsConsumer

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        for noisy in ("httpx", "httpcore", "aio_pika", "aiormq"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


async def run(only: str | None = None) -> None:
    """Start the consumers and block until SIGINT/SIGTERM."""
    database = Database()
    database.create_all()
    pool = QueueConnectionPool()

    consumers: list[QueueConsumer] = []
    if only in (None, "sms"):
        consumers.append(SmsConsumer(pool, database))
    if only in (None, "agent"):
        consumers.append(AgentConsumer(pool, database))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Starting consumers...")
    try:
        for consumer in consumers:
            await consumer.start()
        await stop.wait()
    finally:
        for consumer in consumers:
            await consumer.stop()
        await pool.close()
        database.dispose()
        logger.info("Workers shut down")


def main() -> None:
    parser = argparse.ArgumentParser(description="Recall Outreach queue workers")
    parser.add_argument("--only", choices=["agent", "sms"], help="Run a single worker")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    _configure_logging(debug=args.debug)
    asyncio.run(run(only=args.only))


if __name__ == "__main__":
    main()
