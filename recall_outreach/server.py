"""FastAPI server for the Recall Outreach agent.

Run with:
    uvicorn recall_outreach.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from recall_outreach.agent import build_llm
from recall_outreach.api.routes import router
from recall_outreach.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from recall_outreach.db.session import Database
from recall_outreach.services.queue import QueueConnectionPool

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the database, the model client and the queue pool once.

    The queue pool connects lazily, so the API starts even when RabbitMQ
    is down; only campaign outreach needs it.
    """
    database = Database()
    database.create_all()
    application.state.database = database
    application.state.llm = build_llm()
    application.state.queue = QueueConnectionPool()
    logger.info("Recall Outreach API ready.")
    yield
    await application.state.queue.close()
    database.dispose()
    logger.info("Recall Outreach API shut down.")


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Recall Outreach Agent",
    description=(
        "SMS recall outreach: conversation history, service-slot availability "
        "and AI-assisted appointment booking."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it in ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Recall Outreach Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting Recall Outreach API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "recall_outreach.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
