"""Health check endpoints."""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_event_buffer, get_orchestrator
from app.services.events.buffer import EventBuffer
from app.services.orchestration.orchestrator import CallOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy"}


@router.get("/")
async def root(
    event_buffer: EventBuffer = Depends(get_event_buffer),
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Service status with buffer and conversation counts."""
    return {
        "status": "ok",
        "service": "personal-agent-webhook",
        "events_stored": len(event_buffer),
        "active_conferences": len(orchestrator.store.list_conversations()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
