"""Main FastAPI application."""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from app.core.config import settings
from app.core.dependencies import create_orchestrator
from app.core.logging import setup_logging
from app.db.database import AsyncSessionLocal, init_db
from app.services.events.buffer import EventBuffer
from app.api import conversations, events, health, outbound
from app.api.webhooks import telnyx

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    orchestrator = create_orchestrator(settings, http_client, AsyncSessionLocal)
    app.state.orchestrator = orchestrator
    app.state.event_buffer = EventBuffer(settings.event_buffer_size)
    sweeper = asyncio.create_task(orchestrator.run_sweeper(settings.sweep_interval_seconds))

    logger.info("Webhook endpoint: POST /webhooks/telnyx (also POST /telnyx-webhook)")
    if settings.telnyx_api_key:
        logger.info("Telnyx API key configured - will handle inbound calls")
    else:
        logger.warning("No TELNYX_API_KEY - call control actions will fail")

    yield

    # Shutdown
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await orchestrator.notifier.drain()
    await http_client.aclose()


app = FastAPI(
    title="Personal Agent Webhook",
    description="Bridges Telnyx calls to conversational AI agents",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(telnyx.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(telnyx.legacy_router, tags=["webhooks"])
app.include_router(events.router, tags=["events"])
app.include_router(conversations.router, tags=["conversations"])
app.include_router(outbound.router, tags=["calls"])
