"""Diagnostic webhook event endpoints."""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.dependencies import get_event_buffer
from app.services.events.buffer import EventBuffer

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/events")
async def list_events(
    since: Optional[datetime] = None,
    event_type: Optional[str] = Query(None, alias="type"),
    event_buffer: EventBuffer = Depends(get_event_buffer),
):
    """Recent events for polling, newest first."""
    events = event_buffer.list(since=since, event_type=event_type)
    return {
        "success": True,
        "count": len(events),
        "events": [e.model_dump(mode="json") for e in events],
    }


@router.get("/events/{event_id}")
async def get_event(event_id: str, event_buffer: EventBuffer = Depends(get_event_buffer)):
    """A single stored event."""
    event = event_buffer.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return {"success": True, "event": event.model_dump(mode="json")}


@router.delete("/events")
async def clear_events(event_buffer: EventBuffer = Depends(get_event_buffer)):
    """Clear stored events."""
    event_buffer.clear()
    logger.info("[EVENTS] Event buffer cleared")
    return {"success": True, "message": "Events cleared"}
