"""Telnyx call-control webhook endpoint."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from app.core.dependencies import get_event_buffer, get_orchestrator
from app.services.events.buffer import EventBuffer
from app.services.orchestration.orchestrator import CallOrchestrator
from app.services.telephony.events import CallEvent

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/telnyx")
async def handle_telnyx_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
    event_buffer: EventBuffer = Depends(get_event_buffer),
):
    """
    Receive a Telnyx webhook.

    The event is acknowledged right away; orchestration runs after the
    response is sent so Telnyx never waits on our own call-control requests.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="No data")

    stored = event_buffer.record(data)
    event = CallEvent.from_webhook(data)
    logger.info(
        f"[WEBHOOK] Received: {event.event_type} - CallControlId: {event.call_control_id}, "
        f"Direction: {event.direction}, From: {event.from_address}, To: {event.to}"
    )

    if event.kind is not None:
        background_tasks.add_task(orchestrator.handle_event, event)
    else:
        logger.debug(f"[WEBHOOK] No handler for {event.event_type}, stored only")

    orchestrator.notifier.forward_webhook(body)

    return {"success": True, "event_id": stored.id}


# Path used by existing Telnyx connection configurations.
legacy_router = APIRouter()
legacy_router.add_api_route(
    "/telnyx-webhook",
    handle_telnyx_webhook,
    methods=["POST"],
    include_in_schema=False,
)
