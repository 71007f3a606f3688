"""Conversation, call history and transcript endpoints."""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from app.core.dependencies import get_orchestrator
from app.db.database import get_db
from app.services.correlation.models import ActiveConversation, TranscriptEntry
from app.services.orchestration.orchestrator import CallOrchestrator
from app.services.persistence.calls import CallPersistenceService

router = APIRouter()
logger = logging.getLogger(__name__)


class CallResponse(BaseModel):
    """Call history response model."""
    id: int
    call_control_id: str
    direction: str | None = None
    role: str | None = None
    from_number: str | None = None
    to_number: str | None = None
    conference_id: str | None = None
    status: str
    started_at: str
    connected_at: str | None = None
    ended_at: str | None = None
    duration_seconds: float | None = None
    hangup_cause: str | None = None
    transcript: str | None = None


class TranscriptResponse(BaseModel):
    """Buffered transcript of a live conversation."""
    conference_id: str
    entries: List[TranscriptEntry] = []


@router.get("/conferences")
async def list_conferences(orchestrator: CallOrchestrator = Depends(get_orchestrator)):
    """Active conversations."""
    conversations: List[ActiveConversation] = orchestrator.store.list_conversations()
    return {
        "success": True,
        "conferences": [c.model_dump(mode="json") for c in conversations],
    }


@router.get("/api/calls/history", response_model=List[CallResponse])
async def get_call_history(
    request: Request,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """Call history, most recent first."""
    logger.info(
        f"[CALL HISTORY] Request received - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        calls = await CallPersistenceService(db).list_calls(limit=limit)
    except Exception as e:
        logger.error(
            f"[CALL HISTORY] Error fetching call history - "
            f"limit: {limit}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        raise HTTPException(status_code=500, detail=f"Error fetching call history: {str(e)}")

    return [
        CallResponse(
            id=call.id,
            call_control_id=call.call_control_id,
            direction=call.direction,
            role=call.role,
            from_number=call.from_number,
            to_number=call.to_number,
            conference_id=call.conference_id,
            status=call.status,
            started_at=call.started_at.isoformat() if call.started_at else "",
            connected_at=call.connected_at.isoformat() if call.connected_at else None,
            ended_at=call.ended_at.isoformat() if call.ended_at else None,
            duration_seconds=call.duration_seconds,
            hangup_cause=call.hangup_cause,
            transcript=call.transcript,
        )
        for call in calls
    ]


@router.get("/api/conversations/{conference_id}/transcript", response_model=TranscriptResponse)
async def get_transcript(
    conference_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Finalized transcript lines of a live conversation."""
    if orchestrator.store.find_conversation_by_conference_id(conference_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return TranscriptResponse(
        conference_id=conference_id,
        entries=orchestrator.store.get_transcript(conference_id),
    )
